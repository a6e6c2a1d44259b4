"""
Record-level mutations applied to an in-memory collection.

Collections are persisted whole, so every change to a record is expressed as
an in-place edit of the parent list (or settings object). The server applies
these under the collection lock; the client applies the same functions to its
local cache when the server is unreachable.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Type

from .schemas import Record, SystemSettings, get_child_model, get_collection


class RecordNotFound(LookupError):
    """Raised when an id does not exist in the target collection."""

    def __init__(self, collection: str, record_id: str):
        super().__init__(f"{collection} record '{record_id}' not found")
        self.collection = collection
        self.record_id = record_id


def new_id() -> str:
    return f"id_{uuid.uuid4().hex[:16]}"


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def build_record(model: Type[Record], payload: Dict[str, Any], **extra: Any) -> Dict[str, Any]:
    """Validate a new record, assigning an id and creation stamps where missing."""
    data = dict(payload)
    data.update(extra)
    data["id"] = data.get("id") or new_id()
    if "created_at" in model.model_fields and not (data.get("createdAt") or data.get("created_at")):
        data["createdAt"] = now_iso()
    if "timestamp" in model.model_fields and not data.get("timestamp"):
        data["timestamp"] = now_iso()
    return model.model_validate(data).to_json()


def find_index(records: List[Dict[str, Any]], record_id: str, collection: str) -> int:
    for index, record in enumerate(records):
        if isinstance(record, dict) and record.get("id") == record_id:
            return index
    raise RecordNotFound(collection, record_id)


def insert_record(records: List[Dict[str, Any]], collection: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    spec = get_collection(collection)
    record = build_record(spec.model, payload)
    for index, existing in enumerate(records):
        if isinstance(existing, dict) and existing.get("id") == record["id"]:
            records[index] = record
            break
    else:
        records.append(record)
    return record


def update_record(
    records: List[Dict[str, Any]], collection: str, record_id: str, changes: Dict[str, Any]
) -> Dict[str, Any]:
    """Shallow-merge ``changes`` into the record; the id never changes."""
    spec = get_collection(collection)
    index = find_index(records, record_id, collection)
    merged = {**records[index], **changes, "id": record_id}
    records[index] = spec.model.model_validate(merged).to_json()
    return records[index]


def remove_record(records: List[Dict[str, Any]], collection: str, record_id: str) -> Dict[str, Any]:
    index = find_index(records, record_id, collection)
    return records.pop(index)


def _children(parent: Dict[str, Any], child: str) -> List[Dict[str, Any]]:
    items = parent.get(child)
    if not isinstance(items, list):
        items = []
        parent[child] = items
    return items


def insert_child(
    records: List[Dict[str, Any]],
    collection: str,
    parent_id: str,
    child: str,
    payload: Dict[str, Any],
) -> Dict[str, Any]:
    model = get_child_model(collection, child)
    parent = records[find_index(records, parent_id, collection)]
    extra: Dict[str, Any] = {}
    if "project_id" in model.model_fields:
        extra["projectId"] = parent_id
    record = build_record(model, payload, **extra)
    if child == "milestones" and record.get("percentage") is None:
        # percentage is derived from the parent contract amount
        contract = float(parent.get("contractAmount") or 0)
        record["percentage"] = round(record["amount"] / contract * 100, 2) if contract > 0 else 0.0
    _children(parent, child).append(record)
    return record


def update_child(
    records: List[Dict[str, Any]],
    collection: str,
    parent_id: str,
    child: str,
    child_id: str,
    changes: Dict[str, Any],
) -> Dict[str, Any]:
    model = get_child_model(collection, child)
    parent = records[find_index(records, parent_id, collection)]
    items = _children(parent, child)
    index = find_index(items, child_id, child)
    merged = {**items[index], **changes, "id": child_id}
    items[index] = model.model_validate(merged).to_json()
    return items[index]


def remove_child(
    records: List[Dict[str, Any]],
    collection: str,
    parent_id: str,
    child: str,
    child_id: str,
) -> Dict[str, Any]:
    get_child_model(collection, child)
    parent = records[find_index(records, parent_id, collection)]
    items = _children(parent, child)
    return items.pop(find_index(items, child_id, child))


def merge_settings(
    settings: Dict[str, Any], changes: Dict[str, Any], updated_by: Optional[str] = None
) -> Dict[str, Any]:
    merged = {**settings, **changes}
    merged["updatedAt"] = now_iso()
    if updated_by:
        merged["updatedBy"] = updated_by
    validated = SystemSettings.model_validate(merged).to_json()
    settings.clear()
    settings.update(validated)
    return settings
