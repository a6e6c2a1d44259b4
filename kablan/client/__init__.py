"""Client side of the Kablan store: entity APIs with offline fallback."""

from .api_client import (
    ActivityLogAPI,
    CategoriesAPI,
    CollectionAPI,
    DataSync,
    KablanAPI,
    ProjectsAPI,
    SettingsAPI,
    SuppliersAPI,
    UsersAPI,
)
from .cache import LocalCache, SyncStatus
from .gateway import ClientGateway, GatewayError, GatewayResult, RemoteRejected, RemoteUnavailable

__all__ = [
    "ActivityLogAPI",
    "CategoriesAPI",
    "ClientGateway",
    "CollectionAPI",
    "DataSync",
    "GatewayError",
    "GatewayResult",
    "KablanAPI",
    "LocalCache",
    "ProjectsAPI",
    "RemoteRejected",
    "RemoteUnavailable",
    "SettingsAPI",
    "SuppliersAPI",
    "SyncStatus",
    "UsersAPI",
]
