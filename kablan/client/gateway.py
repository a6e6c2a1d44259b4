"""
HTTP gateway to the collection service with transparent local fallback.

Every entity call goes through :meth:`ClientGateway.call`: the remote call is
attempted first and, when the service cannot be reached or answers with
something that is not JSON, the supplied fallback runs against the local
cache instead. Callers only learn about the outage through ``synced=False``
and the cache's sync status.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Optional, TypeVar

import requests

from .cache import OFFLINE, ONLINE, LocalCache

logger = logging.getLogger(__name__)

T = TypeVar("T")

HTML_PREFIXES = ("<!doctype", "<html")
# Client errors that still mean "try again later" rather than "bad request".
TRANSIENT_STATUS = {408, 429}


class GatewayError(Exception):
    """Base class for gateway failures."""


class RemoteUnavailable(GatewayError):
    """The service could not be reached or returned an unusable response."""


class RemoteRejected(GatewayError):
    """The service understood the request and refused it (4xx)."""

    def __init__(self, status_code: int, detail: str):
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


@dataclass
class GatewayResult(Generic[T]):
    data: T
    synced: bool


def _service_error_detail(response: requests.Response) -> Optional[str]:
    """Detail of a JSON error raised by the collection service, else None."""
    try:
        payload = response.json()
    except ValueError:
        return None
    if not isinstance(payload, dict) or "detail" not in payload:
        return None
    return str(payload["detail"])


class ClientGateway:
    def __init__(
        self,
        base_url: str,
        cache: LocalCache,
        timeout: float = 10,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.cache = cache
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def remote_enabled(self) -> bool:
        return bool(self.base_url)

    def request(
        self,
        method: str,
        path: str,
        payload: Any = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Perform one HTTP call and return the decoded JSON body."""
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(
                method,
                url,
                json=payload,
                params=params,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise RemoteUnavailable(f"{method} {url} failed: {exc}") from exc

        status = int(response.status_code)
        stripped = (response.text or "").lstrip()
        # A static host answering for the API serves its HTML pages, whatever the status.
        if stripped.lower().startswith(HTML_PREFIXES):
            raise RemoteUnavailable(f"{method} {url} returned HTML instead of JSON ({status})")
        if status >= 500 or status in TRANSIENT_STATUS:
            raise RemoteUnavailable(f"{method} {url} returned {status}")
        if status >= 400:
            detail = _service_error_detail(response)
            if detail is None:
                raise RemoteUnavailable(f"{method} {url} returned {status} without a service error body")
            raise RemoteRejected(status, detail)

        if not stripped:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteUnavailable(f"{method} {url} returned invalid JSON") from exc

    def call(
        self,
        collection: str,
        method: str,
        path: str,
        fallback: Callable[[], T],
        payload: Any = None,
        params: Optional[Dict[str, Any]] = None,
        expect: Optional[type] = None,
    ) -> GatewayResult:
        """
        Try the service first, otherwise run ``fallback`` against the cache.

        ``expect`` guards the top-level type of a successful response; a
        mismatch counts as an unusable response.
        """
        if not self.remote_enabled:
            self.cache.set_mode(OFFLINE)
            return GatewayResult(fallback(), synced=False)
        try:
            data = self.request(method, path, payload=payload, params=params)
            if expect is not None and not isinstance(data, expect):
                raise RemoteUnavailable(
                    f"{method} {path} returned {type(data).__name__}, expected {expect.__name__}"
                )
        except RemoteUnavailable as exc:
            logger.warning("Service unavailable for %s, using local data: %s", collection, exc)
            self.cache.set_mode(OFFLINE)
            return GatewayResult(fallback(), synced=False)
        self.cache.set_mode(ONLINE)
        return GatewayResult(data, synced=True)
