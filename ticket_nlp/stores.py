"""
Ticket and identity store interfaces consumed by the pipeline.

The pipeline never owns durable state; it talks to these collaborators.
In-memory implementations are provided for local runs and tests.
"""

import itertools
import threading
from typing import Dict, Iterable, List, Optional, Protocol, runtime_checkable

from .models import Ticket


@runtime_checkable
class TicketStore(Protocol):
    def exists_ticket(self, ticket_id: str) -> bool: ...

    def get_ticket_by_ticket_id(self, ticket_id: str) -> Optional[Ticket]: ...

    def get_tickets_by_user_id(self, user_id: str) -> List[Ticket]: ...

    def get_all_tickets(self) -> List[Ticket]: ...

    def get_tickets_by_status(self, status: str) -> List[Ticket]: ...

    def update_ticket_status(self, ticket_id: str, status: str) -> Ticket: ...

    def update_ticket_priority(self, ticket_id: str, priority: str) -> Ticket: ...

    def assign_ticket(self, ticket_id: str, assignee: str) -> Ticket: ...

    def create_ticket(
        self,
        description: str,
        user_id: str,
        emergency_type: Optional[str] = None,
        emergency_contact: Optional[str] = None,
        duration: Optional[int] = None,
    ) -> Ticket: ...


@runtime_checkable
class IdentityStore(Protocol):
    def get_user_role(self, user_id: str) -> Optional[str]: ...

    def user_exists(self, user_id: str) -> bool: ...

    def is_user_authorized(self, user_id: str) -> bool: ...

    def has_role(self, user_id: str, role: str) -> bool: ...

    def exists_user(self, name: str) -> bool: ...


class InMemoryTicketStore:
    """Dict-backed TicketStore. Ticket IDs are assigned sequentially on create."""

    def __init__(self, tickets: Iterable[Ticket] = ()) -> None:
        self._lock = threading.Lock()
        self._tickets: Dict[str, Ticket] = {t.ticket_id: t for t in tickets}
        numeric = [int(t) for t in self._tickets if t.isdigit()]
        self._ids = itertools.count(max(numeric, default=0) + 1)

    def exists_ticket(self, ticket_id: str) -> bool:
        return ticket_id in self._tickets

    def get_ticket_by_ticket_id(self, ticket_id: str) -> Optional[Ticket]:
        return self._tickets.get(ticket_id)

    def get_tickets_by_user_id(self, user_id: str) -> List[Ticket]:
        return [t for t in self._tickets.values() if t.user_id == user_id]

    def get_all_tickets(self) -> List[Ticket]:
        return list(self._tickets.values())

    def get_tickets_by_status(self, status: str) -> List[Ticket]:
        return [t for t in self._tickets.values() if t.status.lower() == status.lower()]

    def _replace(self, ticket_id: str, **changes) -> Ticket:
        with self._lock:
            current = self._tickets.get(ticket_id)
            if current is None:
                raise KeyError(f"Ticket not found: {ticket_id}")
            updated = current.model_copy(update=changes)
            self._tickets[ticket_id] = updated
            return updated

    def update_ticket_status(self, ticket_id: str, status: str) -> Ticket:
        return self._replace(ticket_id, status=status)

    def update_ticket_priority(self, ticket_id: str, priority: str) -> Ticket:
        return self._replace(ticket_id, priority=priority)

    def assign_ticket(self, ticket_id: str, assignee: str) -> Ticket:
        return self._replace(ticket_id, assigned_to=assignee)

    def create_ticket(
        self,
        description: str,
        user_id: str,
        emergency_type: Optional[str] = None,
        emergency_contact: Optional[str] = None,
        duration: Optional[int] = None,
    ) -> Ticket:
        with self._lock:
            ticket = Ticket(
                ticket_id=str(next(self._ids)),
                status="Active",
                user_id=user_id,
                description=description,
                emergency_type=emergency_type,
                emergency_contact=emergency_contact,
                duration=duration,
            )
            self._tickets[ticket.ticket_id] = ticket
            return ticket


class InMemoryIdentityStore:
    """Maps user IDs to a role and a display name."""

    def __init__(self, users: Optional[Dict[str, Dict[str, str]]] = None) -> None:
        # {user_id: {"role": "ADMIN", "name": "jane"}}
        self._users = dict(users or {})

    def get_user_role(self, user_id: str) -> Optional[str]:
        user = self._users.get(user_id)
        return user.get("role") if user else None

    def user_exists(self, user_id: str) -> bool:
        return user_id in self._users

    def is_user_authorized(self, user_id: str) -> bool:
        return user_id in self._users and self._users[user_id].get("authorized", "true") == "true"

    def has_role(self, user_id: str, role: str) -> bool:
        current = self.get_user_role(user_id)
        return current is not None and current.upper() == role.upper()

    def exists_user(self, name: str) -> bool:
        lowered = name.lower()
        return any(
            uid.lower() == lowered or user.get("name", "").lower() == lowered
            for uid, user in self._users.items()
        )
