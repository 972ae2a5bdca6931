"""
Pydantic models for the ticket query pipeline.

Defines intent and entity types, the per-request value objects passed
between pipeline stages, and the externally visible response shapes.
All models are frozen: they are built once per request and never mutated.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class IntentType(str, Enum):
    """Closed set of things a user can ask for."""

    # Ticket queries
    SHOW_TICKETS = "show_tickets"
    SHOW_ACTIVE_TICKETS = "show_active_tickets"
    SHOW_COMPLETED_TICKETS = "show_completed_tickets"
    SEARCH_TICKETS = "search_tickets"
    GET_TICKET_DETAILS = "get_ticket_details"

    # Ticket management
    CREATE_TICKET = "create_ticket"
    UPDATE_TICKET_STATUS = "update_ticket_status"
    UPDATE_PRIORITY = "update_priority"
    CLOSE_TICKET = "close_ticket"
    ASSIGN_TICKET = "assign_ticket"

    # Admin
    SHOW_ALL_TICKETS = "show_all_tickets"
    GET_SYSTEM_STATS = "get_system_stats"
    EXPORT_TICKETS = "export_tickets"

    # Meta
    GET_HELP = "get_help"
    SHOW_CAPABILITIES = "show_capabilities"
    UNKNOWN = "unknown"


INTENT_DESCRIPTIONS: Dict[IntentType, str] = {
    IntentType.SHOW_TICKETS: "show your tickets",
    IntentType.SHOW_ACTIVE_TICKETS: "show active tickets",
    IntentType.SHOW_COMPLETED_TICKETS: "show completed tickets",
    IntentType.SEARCH_TICKETS: "search tickets by status, ID or emergency type",
    IntentType.GET_TICKET_DETAILS: "show the details of a ticket",
    IntentType.CREATE_TICKET: "create a new emergency ticket",
    IntentType.UPDATE_TICKET_STATUS: "update the status of a ticket",
    IntentType.UPDATE_PRIORITY: "change the priority of a ticket",
    IntentType.CLOSE_TICKET: "close a ticket",
    IntentType.ASSIGN_TICKET: "assign a ticket to a user",
    IntentType.SHOW_ALL_TICKETS: "show all tickets in the system",
    IntentType.GET_SYSTEM_STATS: "show ticket statistics",
    IntentType.EXPORT_TICKETS: "export tickets as CSV",
    IntentType.GET_HELP: "get help",
    IntentType.SHOW_CAPABILITIES: "list what the assistant can do",
    IntentType.UNKNOWN: "unknown request",
}


class Intent(BaseModel):
    """Classified purpose of a query."""

    model_config = ConfigDict(frozen=True)

    type: IntentType
    confidence: float = Field(ge=0.0, le=1.0)
    original_query: str = ""
    threshold: float = Field(default=0.7, ge=0.0, le=1.0)

    def is_success(self) -> bool:
        return self.type != IntentType.UNKNOWN and self.confidence >= self.threshold


class EntityType(str, Enum):
    TICKET_ID = "ticket_id"
    STATUS = "status"
    DATE = "date"
    EMERGENCY_TYPE = "emergency_type"
    USER_NAME = "user_name"
    PRIORITY = "priority"
    DURATION = "duration"
    PHONE = "phone"
    DESCRIPTION = "description"


class Entity(BaseModel):
    """A typed span of the original query."""

    model_config = ConfigDict(frozen=True)

    type: EntityType
    raw_value: str
    normalized_value: str
    start_offset: int = Field(ge=0)
    end_offset: int = Field(ge=0)
    confidence: float = Field(ge=0.0, le=1.0)


class ExtractedEntities(BaseModel):
    """Entities found in a query, grouped by type in order of appearance.

    Only types with at least one match are present as keys.
    """

    model_config = ConfigDict(frozen=True)

    entities: Dict[EntityType, Tuple[Entity, ...]] = Field(default_factory=dict)

    def get(self, entity_type: EntityType) -> Tuple[Entity, ...]:
        return self.entities.get(entity_type, ())

    def first(self, entity_type: EntityType) -> Optional[str]:
        """Normalized value of the first entity of a type, if any."""
        found = self.get(entity_type)
        if not found:
            return None
        return found[0].normalized_value or found[0].raw_value

    def all(self) -> List[Entity]:
        return [e for group in self.entities.values() for e in group]

    def is_empty(self) -> bool:
        return not self.entities

    @property
    def ticket_ids(self) -> Tuple[Entity, ...]:
        return self.get(EntityType.TICKET_ID)

    @property
    def statuses(self) -> Tuple[Entity, ...]:
        return self.get(EntityType.STATUS)

    @property
    def dates(self) -> Tuple[Entity, ...]:
        return self.get(EntityType.DATE)

    @property
    def emergency_types(self) -> Tuple[Entity, ...]:
        return self.get(EntityType.EMERGENCY_TYPE)

    @property
    def user_names(self) -> Tuple[Entity, ...]:
        return self.get(EntityType.USER_NAME)

    @property
    def priorities(self) -> Tuple[Entity, ...]:
        return self.get(EntityType.PRIORITY)


class ValidationResult(BaseModel):
    """Outcome of checking entities against live data. Errors block, warnings don't."""

    model_config = ConfigDict(frozen=True)

    valid: bool = True
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class TicketOperation(str, Enum):
    """Write actions against the ticket store."""

    CREATE_TICKET = "create_ticket"
    UPDATE_TICKET_STATUS = "update_ticket_status"
    UPDATE_PRIORITY = "update_priority"
    CLOSE_TICKET = "close_ticket"
    ASSIGN_TICKET = "assign_ticket"


# Operations that act on an existing ticket and need an ownership check
TICKET_REFERENCING_OPERATIONS = frozenset(
    {
        TicketOperation.UPDATE_TICKET_STATUS,
        TicketOperation.UPDATE_PRIORITY,
        TicketOperation.CLOSE_TICKET,
        TicketOperation.ASSIGN_TICKET,
    }
)


class TicketQueryType(str, Enum):
    """Read aggregations against the ticket store."""

    USER_TICKETS = "user_tickets"
    ACTIVE_TICKETS = "active_tickets"
    COMPLETED_TICKETS = "completed_tickets"
    ALL_TICKETS = "all_tickets"
    TICKET_LIST_BY_FILTER = "ticket_list_by_filter"
    TICKET_DETAILS = "ticket_details"
    SYSTEM_STATS = "system_stats"
    EXPORT_DATA = "export_data"


class QueryResultType(str, Enum):
    TICKET_LIST = "ticket_list"
    TICKET_DETAILS = "ticket_details"
    STATISTICS = "statistics"
    OPERATION_RESULT = "operation_result"
    EXPORT = "export"
    HELP = "help"
    ERROR = "error"


class Ticket(BaseModel):
    """Summary of an emergency-access ticket as held by the ticket store."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )

    ticket_id: str
    status: str
    user_id: str
    description: str = ""
    emergency_type: Optional[str] = None
    emergency_contact: Optional[str] = None
    duration: Optional[int] = None
    priority: Optional[str] = None
    assigned_to: Optional[str] = None
    request_date: Optional[str] = None
    id: Optional[int] = None


class QueryResult(BaseModel):
    """Typed outcome of a read query or write operation, before rendering.

    The shape of ``data`` is fixed by ``result_type``:
    TICKET_LIST -> list of Ticket, TICKET_DETAILS / OPERATION_RESULT -> Ticket,
    STATISTICS -> dict of counters, EXPORT -> CSV text, HELP -> list of str,
    ERROR -> None.
    """

    model_config = ConfigDict(frozen=True)

    result_type: QueryResultType
    data: Any = None
    record_count: int = 0
    success: bool = True
    message: str = ""
    operation: Optional[TicketOperation] = None

    @classmethod
    def failure(cls, message: str) -> "QueryResult":
        return cls(result_type=QueryResultType.ERROR, success=False, message=message)


class ResponseStyle(str, Enum):
    PROFESSIONAL = "professional"
    CASUAL = "casual"


class ResponsePreferences(BaseModel):
    """Formatting knobs. They change presentation, never the facts."""

    model_config = ConfigDict(frozen=True)

    style: ResponseStyle = ResponseStyle.PROFESSIONAL
    include_emojis: bool = False
    verbose_mode: bool = False
    max_response_length: Optional[int] = Field(default=None, gt=0)


class QueryContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    original_query: str = ""
    intent: Optional[IntentType] = None
    filters: Dict[str, Any] = Field(default_factory=dict)
    include_details: bool = False


class NLPResponse(BaseModel):
    """What the caller gets back for every request, success or not."""

    model_config = ConfigDict(frozen=True)

    success: bool
    message: str
    data: Any = None


class Capabilities(BaseModel):
    model_config = ConfigDict(frozen=True)

    available: bool
    admin_access: bool = False
    access_level: Optional[str] = None
    supported_intents: List[str] = Field(default_factory=list)
    supported_entities: List[str] = Field(default_factory=list)


class Suggestions(BaseModel):
    model_config = ConfigDict(frozen=True)

    available: bool
    user_role: Optional[str] = None
    suggested_queries: List[str] = Field(default_factory=list)
    examples: List[str] = Field(default_factory=list)
    quick_actions: List[str] = Field(default_factory=list)
