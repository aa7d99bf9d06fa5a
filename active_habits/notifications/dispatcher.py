from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Optional, Protocol

import httpx

from active_habits.core.errors import AuthorizationError, DispatcherNotFoundError, SchedulingError


class NotificationDispatcher(Protocol):
    """Delivery side of local reminders; fires an alert at the requested time."""

    def schedule(self, fire_at: datetime, payload: dict[str, Any]) -> str: ...

    def cancel(self, dispatcher_id: str) -> None: ...

    def is_authorized(self) -> bool: ...


TokenProvider = Callable[[], str]


class HttpNotificationDispatcher:
    """Client for a push gateway that owns the device notification center."""

    def __init__(
        self,
        base_url: str,
        token_provider: Optional[TokenProvider] = None,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token_provider = token_provider
        self._timeout = timeout
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        token = self._token_provider() if self._token_provider else ""
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _client(self) -> httpx.Client:
        return httpx.Client(base_url=self._base_url, timeout=self._timeout, transport=self._transport)

    def is_authorized(self) -> bool:
        try:
            with self._client() as client:
                resp = client.get("/authorization", headers=self._headers())
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPError:
            return False
        return bool(data.get("authorized"))

    def schedule(self, fire_at: datetime, payload: dict[str, Any]) -> str:
        body = {"fire_at": fire_at.isoformat(), "payload": payload}
        try:
            with self._client() as client:
                resp = client.post("/notifications", headers=self._headers(), json=body)
                if resp.status_code in {401, 403}:
                    raise AuthorizationError(f"Notifications not authorized (status={resp.status_code})")
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPError as exc:
            raise SchedulingError(f"Scheduling failed for {fire_at.isoformat()}: {exc}") from exc

        dispatcher_id = str((data or {}).get("id") or "").strip()
        if not dispatcher_id:
            raise SchedulingError(f"Dispatcher returned no id for {fire_at.isoformat()}")
        return dispatcher_id

    def cancel(self, dispatcher_id: str) -> None:
        try:
            with self._client() as client:
                resp = client.delete(f"/notifications/{dispatcher_id}", headers=self._headers())
                if resp.status_code == 404:
                    raise DispatcherNotFoundError(dispatcher_id)
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise SchedulingError(f"Cancel failed for {dispatcher_id}: {exc}") from exc


def build_dispatcher() -> HttpNotificationDispatcher:
    from active_habits.config import settings

    token = settings.dispatcher_token
    return HttpNotificationDispatcher(
        settings.dispatcher_url,
        token_provider=(lambda: token) if token else None,
        timeout=float(settings.dispatcher_timeout_sec),
    )
