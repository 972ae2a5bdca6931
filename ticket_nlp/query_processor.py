"""
Authorization-aware execution of ticket queries and operations.

Reads are scoped by role: admins see every ticket, everyone else only
their own. Writes on an existing ticket require the caller to own it
unless they are an admin. Store failures never escape this module; they
come back as an ERROR QueryResult.
"""

import csv
import io
import logging
from collections import Counter
from typing import Any, Dict, List, Optional

from .config import NLPConfig
from .models import (
    EntityType,
    ExtractedEntities,
    Intent,
    IntentType,
    QueryResult,
    QueryResultType,
    Ticket,
    TicketOperation,
    TicketQueryType,
)
from .stores import TicketStore

logger = logging.getLogger("ticket-nlp.processor")

UNAVAILABLE_MESSAGE = "The ticket service is unavailable. Please try again later."
MISSING_TICKET_ID_MESSAGE = "Please specify a ticket ID, for example #123."

INTENT_QUERY_TYPES: Dict[IntentType, TicketQueryType] = {
    IntentType.SHOW_TICKETS: TicketQueryType.USER_TICKETS,
    IntentType.SHOW_ACTIVE_TICKETS: TicketQueryType.ACTIVE_TICKETS,
    IntentType.SHOW_COMPLETED_TICKETS: TicketQueryType.COMPLETED_TICKETS,
    IntentType.SHOW_ALL_TICKETS: TicketQueryType.ALL_TICKETS,
    IntentType.SEARCH_TICKETS: TicketQueryType.TICKET_LIST_BY_FILTER,
    IntentType.GET_TICKET_DETAILS: TicketQueryType.TICKET_DETAILS,
    IntentType.GET_SYSTEM_STATS: TicketQueryType.SYSTEM_STATS,
    IntentType.EXPORT_TICKETS: TicketQueryType.EXPORT_DATA,
}

INTENT_OPERATIONS: Dict[IntentType, TicketOperation] = {
    IntentType.CREATE_TICKET: TicketOperation.CREATE_TICKET,
    IntentType.UPDATE_TICKET_STATUS: TicketOperation.UPDATE_TICKET_STATUS,
    IntentType.UPDATE_PRIORITY: TicketOperation.UPDATE_PRIORITY,
    IntentType.CLOSE_TICKET: TicketOperation.CLOSE_TICKET,
    IntentType.ASSIGN_TICKET: TicketOperation.ASSIGN_TICKET,
}

# Canonical status -> spelling written to the store
_WRITE_STATUSES = {
    "open": "Active",
    "active": "Active",
    "in progress": "Active",
    "completed": "Completed",
    "closed": "Closed",
    "rejected": "Rejected",
}

# Canonical status -> stored spellings that satisfy it when querying
_QUERY_STATUSES = {
    "open": ("Active",),
    "active": ("Active",),
    "in progress": ("Active",),
    "completed": ("Completed", "Closed"),
    "closed": ("Completed", "Closed"),
    "rejected": ("Rejected",),
}

_CLOSED_STATUS = "Completed"

EXPORT_COLUMNS = (
    "ticketId",
    "status",
    "userId",
    "emergencyType",
    "priority",
    "assignedTo",
    "duration",
    "requestDate",
    "description",
)


def _canonical(value: str) -> str:
    return " ".join(value.split()).lower()


def _store_statuses(status: str) -> tuple:
    return _QUERY_STATUSES.get(status, (status,))


def _matches(ticket: Ticket, filters: Dict[str, Any]) -> bool:
    if "ticketId" in filters and ticket.ticket_id != filters["ticketId"]:
        return False
    if "status" in filters:
        wanted = {s.lower() for s in _store_statuses(filters["status"])}
        if ticket.status.lower() not in wanted:
            return False
    if "emergencyType" in filters and (ticket.emergency_type or "").lower() != filters["emergencyType"]:
        return False
    if "assigned" in filters and (ticket.assigned_to or "").lower() != filters["assigned"]:
        return False
    if "priority" in filters and (ticket.priority or "").lower() != filters["priority"]:
        return False
    if "date" in filters and not (ticket.request_date or "").startswith(filters["date"]):
        return False
    if "duration" in filters and ticket.duration != filters["duration"]:
        return False
    return True


def tickets_to_csv(tickets: List[Ticket]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(EXPORT_COLUMNS)
    for t in tickets:
        writer.writerow(
            [
                t.ticket_id,
                t.status,
                t.user_id,
                t.emergency_type or "",
                t.priority or "",
                t.assigned_to or "",
                "" if t.duration is None else t.duration,
                t.request_date or "",
                t.description,
            ]
        )
    return buffer.getvalue()


class QueryProcessor:
    """Executes reads and writes against an injected TicketStore."""

    def __init__(self, ticket_store: TicketStore, config: Optional[NLPConfig] = None) -> None:
        self.ticket_store = ticket_store
        self.config = config or NLPConfig()

    # --- Filters ---

    def build_query_filters(self, entities: ExtractedEntities) -> Dict[str, Any]:
        """Map extracted entities to canonical filter keys. The first entity of a type wins."""
        filters: Dict[str, Any] = {}

        ticket_id = entities.first(EntityType.TICKET_ID)
        if ticket_id:
            filters["ticketId"] = ticket_id.strip().lstrip("#")

        for entity_type, key in (
            (EntityType.STATUS, "status"),
            (EntityType.EMERGENCY_TYPE, "emergencyType"),
            (EntityType.USER_NAME, "assigned"),
            (EntityType.PRIORITY, "priority"),
        ):
            value = entities.first(entity_type)
            if value:
                filters[key] = _canonical(value)

        day = entities.first(EntityType.DATE)
        if day:
            filters["date"] = day

        duration = entities.first(EntityType.DURATION)
        if duration and duration.isdigit():
            filters["duration"] = int(duration)

        return filters

    # --- Authorization ---

    def validate_user_operation(
        self,
        operation: TicketOperation,
        entities: ExtractedEntities,
        user_id: str,
        is_admin: bool,
    ) -> bool:
        """Admins may do anything; users may create, or act on tickets they own."""
        if is_admin:
            return True
        if operation == TicketOperation.CREATE_TICKET:
            return bool(user_id)
        if operation == TicketOperation.ASSIGN_TICKET:
            return False

        ticket_id = entities.first(EntityType.TICKET_ID)
        if not ticket_id:
            logger.info(f"Denied {operation.value} for {user_id}: no ticket ID given")
            return False

        try:
            ticket = self.ticket_store.get_ticket_by_ticket_id(ticket_id)
        except Exception as e:
            logger.warning(f"Ownership lookup failed for ticket {ticket_id}: {e}", exc_info=True)
            return False

        allowed = ticket is not None and ticket.user_id == user_id
        if not allowed:
            logger.info(f"Denied {operation.value} on ticket {ticket_id} for {user_id}")
        return allowed

    # --- Reads ---

    def _fetch(self, filters: Dict[str, Any], user_id: str, is_admin: bool) -> List[Ticket]:
        status = filters.get("status")
        if is_admin and status:
            seen: Dict[str, Ticket] = {}
            for spelling in _store_statuses(status):
                for t in self.ticket_store.get_tickets_by_status(spelling):
                    seen.setdefault(t.ticket_id, t)
            tickets = list(seen.values())
        elif is_admin:
            tickets = self.ticket_store.get_all_tickets()
        else:
            tickets = self.ticket_store.get_tickets_by_user_id(user_id)
        return [t for t in tickets if _matches(t, filters)]

    def _ticket_list(self, tickets: List[Ticket]) -> QueryResult:
        return QueryResult(result_type=QueryResultType.TICKET_LIST, data=tickets, record_count=len(tickets))

    def _details(self, filters: Dict[str, Any], user_id: str, is_admin: bool) -> QueryResult:
        ticket_id = filters.get("ticketId")
        if not ticket_id:
            return QueryResult.failure(MISSING_TICKET_ID_MESSAGE)
        ticket = self.ticket_store.get_ticket_by_ticket_id(ticket_id)
        if ticket is None or (not is_admin and ticket.user_id != user_id):
            return QueryResult.failure(f"Ticket #{ticket_id} was not found.")
        return QueryResult(result_type=QueryResultType.TICKET_DETAILS, data=ticket, record_count=1)

    def _stats(self, user_id: str, is_admin: bool) -> QueryResult:
        # One snapshot so the per-status counts always add up to the total
        tickets = self.ticket_store.get_all_tickets() if is_admin else self.ticket_store.get_tickets_by_user_id(user_id)
        counts = Counter(t.status for t in tickets)
        stats = {
            "scope": "system" if is_admin else "user",
            "totalTickets": len(tickets),
            "countsPerStatus": dict(counts),
        }
        return QueryResult(result_type=QueryResultType.STATISTICS, data=stats, record_count=len(tickets))

    def execute_ticket_query(
        self,
        query_type: TicketQueryType,
        filters: Dict[str, Any],
        user_id: str,
        is_admin: bool,
    ) -> QueryResult:
        if query_type in (TicketQueryType.ALL_TICKETS, TicketQueryType.EXPORT_DATA) and not is_admin:
            return QueryResult.failure("Permission denied: admin privileges required.")

        try:
            if query_type == TicketQueryType.SYSTEM_STATS:
                return self._stats(user_id, is_admin)
            if query_type == TicketQueryType.TICKET_DETAILS:
                return self._details(filters, user_id, is_admin)

            if query_type == TicketQueryType.ACTIVE_TICKETS:
                filters = {**filters, "status": "active"}
            elif query_type == TicketQueryType.COMPLETED_TICKETS:
                filters = {**filters, "status": "completed"}

            tickets = self._fetch(filters, user_id, is_admin)
        except Exception as e:
            logger.error(f"Ticket query {query_type.value} failed: {e}", exc_info=True)
            return QueryResult.failure(UNAVAILABLE_MESSAGE)

        if query_type == TicketQueryType.EXPORT_DATA:
            return QueryResult(
                result_type=QueryResultType.EXPORT,
                data=tickets_to_csv(tickets),
                record_count=len(tickets),
            )
        return self._ticket_list(tickets)

    # --- Writes ---

    def _create(self, entities: ExtractedEntities, user_id: str, original_query: str) -> QueryResult:
        duration = entities.first(EntityType.DURATION)
        ticket = self.ticket_store.create_ticket(
            description=entities.first(EntityType.DESCRIPTION) or original_query.strip(),
            user_id=user_id,
            emergency_type=entities.first(EntityType.EMERGENCY_TYPE),
            emergency_contact=entities.first(EntityType.PHONE),
            duration=int(duration) if duration and duration.isdigit() else None,
        )
        logger.info(f"Created ticket {ticket.ticket_id} for {user_id}")
        return self._operation_result(TicketOperation.CREATE_TICKET, ticket, f"Ticket #{ticket.ticket_id} created.")

    def _operation_result(self, operation: TicketOperation, ticket: Optional[Ticket], message: str) -> QueryResult:
        if ticket is None:
            return QueryResult.failure("The ticket could not be found.")
        return QueryResult(
            result_type=QueryResultType.OPERATION_RESULT,
            data=ticket,
            record_count=1,
            message=message,
            operation=operation,
        )

    def _update(self, operation: TicketOperation, entities: ExtractedEntities) -> QueryResult:
        ticket_id = entities.first(EntityType.TICKET_ID)
        if not ticket_id:
            return QueryResult.failure(MISSING_TICKET_ID_MESSAGE)

        if operation == TicketOperation.UPDATE_TICKET_STATUS:
            status = entities.first(EntityType.STATUS)
            if not status:
                return QueryResult.failure("Please specify the new status, for example 'completed'.")
            new_status = _WRITE_STATUSES.get(_canonical(status), status.title())
            ticket = self.ticket_store.update_ticket_status(ticket_id, new_status)
            message = f"Ticket #{ticket_id} status updated to {new_status}."
        elif operation == TicketOperation.CLOSE_TICKET:
            ticket = self.ticket_store.update_ticket_status(ticket_id, _CLOSED_STATUS)
            message = f"Ticket #{ticket_id} closed."
        elif operation == TicketOperation.UPDATE_PRIORITY:
            priority = entities.first(EntityType.PRIORITY)
            if not priority:
                return QueryResult.failure("Please specify the new priority: low, medium, high or critical.")
            ticket = self.ticket_store.update_ticket_priority(ticket_id, priority.title())
            message = f"Ticket #{ticket_id} priority set to {priority.title()}."
        else:
            assignee = entities.first(EntityType.USER_NAME)
            if not assignee:
                return QueryResult.failure("Please name the user to assign the ticket to.")
            ticket = self.ticket_store.assign_ticket(ticket_id, assignee)
            message = f"Ticket #{ticket_id} assigned to {assignee}."

        logger.info(message)
        return self._operation_result(operation, ticket, message)

    def execute_ticket_operation(
        self,
        operation: TicketOperation,
        entities: ExtractedEntities,
        user_id: str,
        is_admin: bool,
        original_query: str = "",
    ) -> QueryResult:
        """Authorize, then apply one write through the ticket store."""
        if not self.validate_user_operation(operation, entities, user_id, is_admin):
            return QueryResult.failure("Permission denied: you are not allowed to modify this ticket.")

        try:
            if operation == TicketOperation.CREATE_TICKET:
                return self._create(entities, user_id, original_query)
            return self._update(operation, entities)
        except KeyError:
            return QueryResult.failure(f"Ticket #{entities.first(EntityType.TICKET_ID)} was not found.")
        except Exception as e:
            logger.error(f"Ticket operation {operation.value} failed: {e}", exc_info=True)
            return QueryResult.failure(UNAVAILABLE_MESSAGE)

    def process(self, intent: Intent, entities: ExtractedEntities, user_id: str, is_admin: bool) -> QueryResult:
        """Dispatch an authorized intent to the read or write path."""
        operation = INTENT_OPERATIONS.get(intent.type)
        if operation is not None:
            return self.execute_ticket_operation(operation, entities, user_id, is_admin, intent.original_query)

        query_type = INTENT_QUERY_TYPES.get(intent.type)
        if query_type is None:
            return QueryResult.failure(f"Unsupported request: {intent.type.value}")
        return self.execute_ticket_query(query_type, self.build_query_filters(entities), user_id, is_admin)
