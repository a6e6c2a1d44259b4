"""
Entity APIs used by the front end.

Each API talks to the collection service through the shared gateway and
falls back to the local cache when the service is unreachable. Offline
changes are applied with the same record mutations the service uses, so a
record created offline shows up in the next offline read.
"""

from __future__ import annotations

import logging
from contextlib import suppress
from typing import Any, Callable, Dict, List, Optional

import requests

from .. import records
from ..config import ClientConfig
from ..schemas import LIST_COLLECTIONS, SystemSettings
from .cache import LocalCache, SyncStatus
from .gateway import ClientGateway, GatewayResult

logger = logging.getLogger(__name__)

Mutation = Callable[[Any], Any]
Mirror = Callable[[Any, Any], Any]


def _replace_settings(settings: Dict[str, Any], remote: Dict[str, Any]) -> Dict[str, Any]:
    settings.clear()
    settings.update(remote)
    return settings


class CollectionAPI:
    """Generic CRUD over one list collection."""

    collection: str = ""

    def __init__(self, gateway: ClientGateway):
        if self.collection not in LIST_COLLECTIONS:
            raise ValueError(f"'{self.collection}' is not a record list")
        self.gateway = gateway

    @property
    def cache(self) -> LocalCache:
        return self.gateway.cache

    @property
    def path(self) -> str:
        return f"/api/{self.collection}"

    def get_all(self) -> GatewayResult:
        result = self.gateway.call(
            self.collection,
            "GET",
            self.path,
            fallback=lambda: self.cache.get(self.collection),
            expect=list,
        )
        if result.synced:
            self.cache.set(self.collection, result.data)
        return result

    def get(self, record_id: str) -> GatewayResult:
        """Single record lookup on top of :meth:`get_all`."""
        result = self.get_all()
        index = records.find_index(result.data, record_id, self.collection)
        return GatewayResult(result.data[index], result.synced)

    def create(self, payload: Dict[str, Any]) -> GatewayResult:
        # ids are always assigned by whoever stores the record
        payload = {key: value for key, value in payload.items() if key != "id"}
        return self._mutate(
            "POST",
            self.path,
            payload,
            offline=lambda items: records.insert_record(items, self.collection, payload),
            mirror=lambda items, remote: records.insert_record(items, self.collection, remote),
            expect=dict,
        )

    def update(self, record_id: str, changes: Dict[str, Any]) -> GatewayResult:
        return self._mutate(
            "PUT",
            f"{self.path}/{record_id}",
            changes,
            offline=lambda items: records.update_record(items, self.collection, record_id, changes),
            mirror=lambda items, remote: records.update_record(items, self.collection, record_id, remote),
            expect=dict,
        )

    def delete(self, record_id: str) -> GatewayResult:
        result = self._mutate(
            "DELETE",
            f"{self.path}/{record_id}",
            None,
            offline=lambda items: records.remove_record(items, self.collection, record_id),
            mirror=lambda items, _: records.remove_record(items, self.collection, record_id),
        )
        return GatewayResult(True, result.synced)

    # ------------------------------------------------------------------
    # Nested records
    # ------------------------------------------------------------------

    def _add_child(self, parent_id: str, child: str, payload: Dict[str, Any]) -> GatewayResult:
        payload = {key: value for key, value in payload.items() if key != "id"}
        return self._mutate(
            "POST",
            f"{self.path}/{parent_id}/{child}",
            payload,
            offline=lambda items: records.insert_child(items, self.collection, parent_id, child, payload),
            mirror=lambda items, remote: records.insert_child(
                items, self.collection, parent_id, child, remote
            ),
            expect=dict,
        )

    def _update_child(
        self, parent_id: str, child: str, child_id: str, changes: Dict[str, Any]
    ) -> GatewayResult:
        return self._mutate(
            "PUT",
            f"{self.path}/{parent_id}/{child}/{child_id}",
            changes,
            offline=lambda items: records.update_child(
                items, self.collection, parent_id, child, child_id, changes
            ),
            mirror=lambda items, remote: records.update_child(
                items, self.collection, parent_id, child, child_id, remote
            ),
            expect=dict,
        )

    def _delete_child(self, parent_id: str, child: str, child_id: str) -> GatewayResult:
        result = self._mutate(
            "DELETE",
            f"{self.path}/{parent_id}/{child}/{child_id}",
            None,
            offline=lambda items: records.remove_child(items, self.collection, parent_id, child, child_id),
            mirror=lambda items, _: records.remove_child(
                items, self.collection, parent_id, child, child_id
            ),
        )
        return GatewayResult(True, result.synced)

    def _mutate(
        self,
        method: str,
        path: str,
        payload: Any,
        offline: Mutation,
        mirror: Mirror,
        expect: Optional[type] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> GatewayResult:
        result = self.gateway.call(
            self.collection,
            method,
            path,
            fallback=lambda: self.cache.update(self.collection, offline),
            payload=payload,
            params=params,
            expect=expect,
        )
        if result.synced:
            # Keep the cache close to the service until the next full refresh.
            with suppress(records.RecordNotFound):
                self.cache.update(self.collection, lambda content: mirror(content, result.data))
        return result


class ProjectsAPI(CollectionAPI):
    collection = "projects"

    def archive(self, project_id: str) -> GatewayResult:
        return self.update(project_id, {"isArchived": True})

    def unarchive(self, project_id: str) -> GatewayResult:
        return self.update(project_id, {"isArchived": False})

    def delete_all(self) -> GatewayResult:
        def clear(items: List[Dict[str, Any]]) -> int:
            count = len(items)
            items.clear()
            return count

        result = self._mutate("DELETE", self.path, None, offline=clear, mirror=lambda items, _: clear(items))
        return GatewayResult(True, result.synced)

    def add_income(self, project_id: str, payload: Dict[str, Any]) -> GatewayResult:
        return self._add_child(project_id, "incomes", payload)

    def update_income(self, project_id: str, income_id: str, changes: Dict[str, Any]) -> GatewayResult:
        return self._update_child(project_id, "incomes", income_id, changes)

    def delete_income(self, project_id: str, income_id: str) -> GatewayResult:
        return self._delete_child(project_id, "incomes", income_id)

    def add_expense(self, project_id: str, payload: Dict[str, Any]) -> GatewayResult:
        return self._add_child(project_id, "expenses", payload)

    def update_expense(self, project_id: str, expense_id: str, changes: Dict[str, Any]) -> GatewayResult:
        return self._update_child(project_id, "expenses", expense_id, changes)

    def delete_expense(self, project_id: str, expense_id: str) -> GatewayResult:
        return self._delete_child(project_id, "expenses", expense_id)

    def add_milestone(self, project_id: str, payload: Dict[str, Any]) -> GatewayResult:
        return self._add_child(project_id, "milestones", payload)

    def update_milestone(
        self, project_id: str, milestone_id: str, changes: Dict[str, Any]
    ) -> GatewayResult:
        return self._update_child(project_id, "milestones", milestone_id, changes)

    def delete_milestone(self, project_id: str, milestone_id: str) -> GatewayResult:
        return self._delete_child(project_id, "milestones", milestone_id)


class CategoriesAPI(CollectionAPI):
    collection = "categories"

    def add_subcategory(self, category_id: str, payload: Dict[str, Any]) -> GatewayResult:
        return self._add_child(category_id, "subcategories", payload)

    def update_subcategory(
        self, category_id: str, subcategory_id: str, changes: Dict[str, Any]
    ) -> GatewayResult:
        return self._update_child(category_id, "subcategories", subcategory_id, changes)

    def delete_subcategory(self, category_id: str, subcategory_id: str) -> GatewayResult:
        return self._delete_child(category_id, "subcategories", subcategory_id)


class SuppliersAPI(CollectionAPI):
    collection = "suppliers"


class UsersAPI(CollectionAPI):
    collection = "users"


class ActivityLogAPI(CollectionAPI):
    collection = "activityLogs"

    def add(self, payload: Dict[str, Any]) -> GatewayResult:
        return self.create({**payload, "timestamp": payload.get("timestamp") or records.now_iso()})


class SettingsAPI:
    """System settings, a single object rather than a list."""

    collection = "settings"
    path = "/api/settings"

    def __init__(self, gateway: ClientGateway):
        self.gateway = gateway

    @property
    def cache(self) -> LocalCache:
        return self.gateway.cache

    def _offline_get(self) -> Dict[str, Any]:
        settings = self.cache.get(self.collection)
        return settings or SystemSettings().to_json()

    def get(self) -> GatewayResult:
        result = self.gateway.call(self.collection, "GET", self.path, fallback=self._offline_get, expect=dict)
        if result.synced:
            self.cache.set(self.collection, result.data)
        return result

    def update(self, changes: Dict[str, Any], updated_by: Optional[str] = None) -> GatewayResult:
        result = self.gateway.call(
            self.collection,
            "PUT",
            self.path,
            fallback=lambda: self.cache.update(
                self.collection, lambda settings: records.merge_settings(settings, changes, updated_by)
            ),
            payload=changes,
            params={"updated_by": updated_by} if updated_by else None,
            expect=dict,
        )
        if result.synced:
            self.cache.update(self.collection, lambda settings: _replace_settings(settings, result.data))
        return result


class DataSync:
    """Refreshes the local cache from the service and reports sync state."""

    def __init__(self, apis: Dict[str, Any], cache: LocalCache):
        self.apis = apis
        self.cache = cache

    def full_sync(self) -> Dict[str, bool]:
        """Pull every collection; returns which ones came from the service."""
        synced: Dict[str, bool] = {}
        for name, api in self.apis.items():
            result = api.get() if isinstance(api, SettingsAPI) else api.get_all()
            synced[name] = result.synced
        if all(synced.values()):
            logger.info("Full sync completed")
        else:
            offline = [name for name, ok in synced.items() if not ok]
            logger.warning("Full sync incomplete, using local data for: %s", ", ".join(offline))
        return synced

    def status(self) -> SyncStatus:
        return self.cache.status()

    def reset_local_cache(self) -> None:
        self.cache.clear_all()


class KablanAPI:
    """Single entry point bundling every entity API over one gateway."""

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        session: Optional[requests.Session] = None,
        cache: Optional[LocalCache] = None,
    ):
        config = config or ClientConfig()
        config.validate()
        self.cache = cache or LocalCache(config.cache_file, seed_dir=config.seed_dir)
        self.gateway = ClientGateway(
            config.api_url,
            self.cache,
            timeout=config.request_timeout,
            session=session,
        )
        self.projects = ProjectsAPI(self.gateway)
        self.categories = CategoriesAPI(self.gateway)
        self.suppliers = SuppliersAPI(self.gateway)
        self.users = UsersAPI(self.gateway)
        self.activity_logs = ActivityLogAPI(self.gateway)
        self.settings = SettingsAPI(self.gateway)
        apis = {
            "projects": self.projects,
            "categories": self.categories,
            "suppliers": self.suppliers,
            "users": self.users,
            "activityLogs": self.activity_logs,
            "settings": self.settings,
        }
        self.sync = DataSync(apis, self.cache)
