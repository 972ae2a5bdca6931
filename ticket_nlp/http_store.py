"""
Ticket and identity stores backed by the ticket service REST API.

Uses a synchronous httpx client. A 404 means "not found" and maps to
None; any other transport or HTTP failure raises UpstreamError.

Configuration via environment variables:
    TICKET_API_URL      - base URL of the ticket service (default: http://localhost:8080)
    TICKET_API_TOKEN    - optional bearer token
    TICKET_API_TIMEOUT  - request timeout in seconds (default: 10)
"""

import logging
import os
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from .errors import UpstreamError
from .models import Ticket

logger = logging.getLogger("ticket-nlp.http-store")


def _get_config() -> dict:
    return {
        "api_url": os.getenv("TICKET_API_URL", "http://localhost:8080"),
        "token": os.getenv("TICKET_API_TOKEN", ""),
        "timeout": float(os.getenv("TICKET_API_TIMEOUT", "10")),
    }


def _segment(value: str) -> str:
    return quote(str(value), safe="")


class _ApiClient:
    """Thin JSON wrapper shared by both stores."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        cfg = _get_config()
        if client is None:
            headers = {"Accept": "application/json"}
            token = cfg["token"] if token is None else token
            if token:
                headers["Authorization"] = f"Bearer {token}"
            client = httpx.Client(
                base_url=base_url or cfg["api_url"],
                headers=headers,
                timeout=cfg["timeout"] if timeout is None else timeout,
            )
        self._client = client

    def request(self, method: str, path: str, **kwargs) -> Optional[Any]:
        try:
            resp = self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"{method} {path} failed: {e}", exc_info=True)
            raise UpstreamError(f"{method} {path} failed: {e}") from e

        if resp.status_code == 404:
            return None
        try:
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"{method} {path} returned {resp.status_code}")
            raise UpstreamError(f"{method} {path} returned {resp.status_code}") from e

        if not resp.content:
            return None
        return resp.json()

    def close(self) -> None:
        self._client.close()


class HttpTicketStore:
    """TicketStore over /api/tickets."""

    def __init__(self, api: Optional[_ApiClient] = None, **client_kwargs) -> None:
        self._api = api or _ApiClient(**client_kwargs)

    def __enter__(self) -> "HttpTicketStore":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self._api.close()

    @staticmethod
    def _tickets(payload: Optional[List[Dict[str, Any]]]) -> List[Ticket]:
        return [Ticket.model_validate(item) for item in payload or []]

    def exists_ticket(self, ticket_id: str) -> bool:
        return self.get_ticket_by_ticket_id(ticket_id) is not None

    def get_ticket_by_ticket_id(self, ticket_id: str) -> Optional[Ticket]:
        data = self._api.request("GET", f"/api/tickets/ticket-id/{_segment(ticket_id)}")
        return Ticket.model_validate(data) if data else None

    def get_all_tickets(self) -> List[Ticket]:
        return self._tickets(self._api.request("GET", "/api/tickets"))

    def get_tickets_by_user_id(self, user_id: str) -> List[Ticket]:
        # The API has no per-user listing, so filter the full set
        return [t for t in self.get_all_tickets() if t.user_id == user_id]

    def get_tickets_by_status(self, status: str) -> List[Ticket]:
        return self._tickets(self._api.request("GET", f"/api/tickets/admin/status/{_segment(status)}"))

    def _update(self, ticket_id: str, **changes) -> Ticket:
        current = self.get_ticket_by_ticket_id(ticket_id)
        if current is None:
            raise KeyError(f"Ticket not found: {ticket_id}")
        updated = current.model_copy(update=changes)
        key = current.id if current.id is not None else current.ticket_id
        data = self._api.request(
            "PUT",
            f"/api/tickets/{_segment(key)}",
            json=updated.model_dump(by_alias=True, exclude_none=True),
        )
        logger.info(f"Updated ticket {ticket_id}: {changes}")
        return Ticket.model_validate(data) if data else updated

    def update_ticket_status(self, ticket_id: str, status: str) -> Ticket:
        return self._update(ticket_id, status=status)

    def update_ticket_priority(self, ticket_id: str, priority: str) -> Ticket:
        return self._update(ticket_id, priority=priority)

    def assign_ticket(self, ticket_id: str, assignee: str) -> Ticket:
        return self._update(ticket_id, assigned_to=assignee)

    def create_ticket(
        self,
        description: str,
        user_id: str,
        emergency_type: Optional[str] = None,
        emergency_contact: Optional[str] = None,
        duration: Optional[int] = None,
    ) -> Ticket:
        body = {
            "description": description,
            "userId": user_id,
            "status": "Active",
            "emergencyType": emergency_type,
            "emergencyContact": emergency_contact,
            "duration": duration,
        }
        data = self._api.request("POST", "/api/tickets", json={k: v for k, v in body.items() if v is not None})
        if not data:
            raise UpstreamError("Ticket service returned an empty response for create")
        return Ticket.model_validate(data)


class HttpIdentityStore:
    """IdentityStore over /api/users."""

    def __init__(self, api: Optional[_ApiClient] = None, **client_kwargs) -> None:
        self._api = api or _ApiClient(**client_kwargs)

    def close(self) -> None:
        self._api.close()

    def _user(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self._api.request("GET", f"/api/users/{_segment(user_id)}")

    def get_user_role(self, user_id: str) -> Optional[str]:
        user = self._user(user_id)
        if not user:
            return None
        if user.get("role"):
            return str(user["role"])
        return "ADMIN" if user.get("isAdmin") else "USER"

    def user_exists(self, user_id: str) -> bool:
        return self._user(user_id) is not None

    def is_user_authorized(self, user_id: str) -> bool:
        return bool(self._api.request("GET", f"/api/users/{_segment(user_id)}/authorized"))

    def has_role(self, user_id: str, role: str) -> bool:
        return bool(self._api.request("GET", f"/api/users/{_segment(user_id)}/roles/{_segment(role)}"))

    def exists_user(self, name: str) -> bool:
        lowered = name.lower()
        for user in self._api.request("GET", "/api/users") or []:
            if lowered in (str(user.get("userId", "")).lower(), str(user.get("username", "")).lower()):
                return True
        return False
