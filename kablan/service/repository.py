"""Persistence helpers for projects, categories, suppliers, users, logs and settings."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from .. import records
from ..schemas import LIST_COLLECTIONS, get_collection
from .store import CollectionStore

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = [
    {"id": "1", "name": "חומרי בנייה"},
    {"id": "2", "name": "קבלני משנה"},
    {"id": "3", "name": "חשמל"},
]

DEFAULT_SUPPLIERS = [
    {"id": "1", "name": "ספק כללי", "description": "ספק ברירת מחדל"},
]

DEFAULT_USERS = [
    {"id": "super-admin", "username": "admin", "role": "admin", "fullName": "Administrator"},
]

DEFAULT_SETTINGS: Dict[str, Any] = {
    "id": "settings",
    "taxRate": 0,
    "taxAmount": 0,
    "vatRate": 18,
    "updatedBy": "system",
}


def _ensure_list_collection(name: str) -> None:
    if name not in LIST_COLLECTIONS:
        raise KeyError(f"'{name}' is not a record list")


def _build(name: str, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    model = get_collection(name).model
    return [records.build_record(model, item) for item in items]


def seed_defaults(store: CollectionStore) -> List[str]:
    """Write first-run defaults for collections that have no file yet."""
    defaults = {
        "projects": lambda: [],
        "categories": lambda: _build("categories", DEFAULT_CATEGORIES),
        "suppliers": lambda: _build("suppliers", DEFAULT_SUPPLIERS),
        "users": lambda: _build("users", DEFAULT_USERS),
        "activityLogs": lambda: [],
        "settings": lambda: records.merge_settings({}, DEFAULT_SETTINGS),
    }
    seeded = []
    for name, factory in defaults.items():
        with store.lock(name):
            if store.exists(name):
                continue
            store.write(name, factory())
            seeded.append(name)
    if seeded:
        logger.info("Seeded default data for: %s", ", ".join(seeded))
    return seeded


# ----------------------------------------------------------------------
# Record lists
# ----------------------------------------------------------------------


def list_records(store: CollectionStore, name: str) -> List[Dict[str, Any]]:
    """All records of a list collection, with model defaults filled in."""
    _ensure_list_collection(name)
    model = get_collection(name).model
    return [model.model_validate(item).to_json() for item in store.read(name)]


def create_record(store: CollectionStore, name: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    _ensure_list_collection(name)
    payload = {key: value for key, value in payload.items() if key != "id"}
    return store.update(name, lambda items: records.insert_record(items, name, payload))


def update_record(
    store: CollectionStore, name: str, record_id: str, changes: Dict[str, Any]
) -> Dict[str, Any]:
    _ensure_list_collection(name)
    return store.update(name, lambda items: records.update_record(items, name, record_id, changes))


def delete_record(store: CollectionStore, name: str, record_id: str) -> Dict[str, Any]:
    _ensure_list_collection(name)
    return store.update(name, lambda items: records.remove_record(items, name, record_id))


def delete_all(store: CollectionStore, name: str) -> int:
    _ensure_list_collection(name)

    def clear(items: List[Dict[str, Any]]) -> int:
        count = len(items)
        items.clear()
        return count

    removed = store.update(name, clear)
    logger.warning("Deleted all %d %s records", removed, name)
    return removed


# ----------------------------------------------------------------------
# Nested records (project incomes/expenses/milestones, subcategories)
# ----------------------------------------------------------------------


def add_child(
    store: CollectionStore, name: str, parent_id: str, child: str, payload: Dict[str, Any]
) -> Dict[str, Any]:
    payload = {key: value for key, value in payload.items() if key != "id"}
    return store.update(
        name, lambda items: records.insert_child(items, name, parent_id, child, payload)
    )


def update_child(
    store: CollectionStore,
    name: str,
    parent_id: str,
    child: str,
    child_id: str,
    changes: Dict[str, Any],
) -> Dict[str, Any]:
    return store.update(
        name,
        lambda items: records.update_child(items, name, parent_id, child, child_id, changes),
    )


def delete_child(
    store: CollectionStore, name: str, parent_id: str, child: str, child_id: str
) -> Dict[str, Any]:
    return store.update(
        name, lambda items: records.remove_child(items, name, parent_id, child, child_id)
    )


# ----------------------------------------------------------------------
# Settings & activity log
# ----------------------------------------------------------------------


def get_settings(store: CollectionStore) -> Dict[str, Any]:
    settings = store.read("settings") or DEFAULT_SETTINGS
    return get_collection("settings").model.model_validate(settings).to_json()


def update_settings(
    store: CollectionStore, changes: Dict[str, Any], updated_by: Optional[str] = None
) -> Dict[str, Any]:
    def apply(settings: Dict[str, Any]) -> Dict[str, Any]:
        if not settings:
            settings.update(DEFAULT_SETTINGS)
        return dict(records.merge_settings(settings, changes, updated_by))

    return store.update("settings", apply)


def log_activity(store: CollectionStore, payload: Dict[str, Any]) -> Dict[str, Any]:
    return create_record(store, "activityLogs", {**payload, "timestamp": None})
