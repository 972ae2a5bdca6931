"""
Deterministic natural-language query layer for emergency-access tickets.

Turns a free-text question plus a caller identity into a role-appropriate
textual answer by recognizing the intent, extracting typed entities,
executing the matching ticket query or operation, and rendering the result.

Usage:
    from ticket_nlp import InMemoryIdentityStore, InMemoryTicketStore, build_orchestrator

    orchestrator = build_orchestrator(InMemoryTicketStore(tickets), InMemoryIdentityStore(users))
    response = orchestrator.process_query("show active tickets", "user1")
    print(response.message)
"""

from .classifier import DEFAULT_CATALOG, IntentRecognizer
from .config import NLPConfig, configure_logging
from .entity_extractor import EntityExtractor
from .errors import (
    AuthorizationError,
    NLPError,
    ReferenceNotFoundError,
    UnrecognizedIntentError,
    UpstreamError,
    ValidationError,
)
from .models import (
    Capabilities,
    Entity,
    EntityType,
    ExtractedEntities,
    Intent,
    IntentType,
    NLPResponse,
    QueryContext,
    QueryResult,
    QueryResultType,
    ResponsePreferences,
    ResponseStyle,
    Suggestions,
    Ticket,
    TicketOperation,
    TicketQueryType,
    ValidationResult,
)
from .orchestrator import Orchestrator, build_orchestrator
from .query_processor import QueryProcessor
from .response_generator import ResponseGenerator
from .stores import IdentityStore, InMemoryIdentityStore, InMemoryTicketStore, TicketStore

__all__ = [
    "AuthorizationError",
    "Capabilities",
    "DEFAULT_CATALOG",
    "Entity",
    "EntityExtractor",
    "EntityType",
    "ExtractedEntities",
    "IdentityStore",
    "InMemoryIdentityStore",
    "InMemoryTicketStore",
    "Intent",
    "IntentRecognizer",
    "IntentType",
    "NLPConfig",
    "NLPError",
    "NLPResponse",
    "Orchestrator",
    "QueryContext",
    "QueryProcessor",
    "QueryResult",
    "QueryResultType",
    "ReferenceNotFoundError",
    "ResponseGenerator",
    "ResponsePreferences",
    "ResponseStyle",
    "Suggestions",
    "Ticket",
    "TicketOperation",
    "TicketQueryType",
    "TicketStore",
    "UnrecognizedIntentError",
    "UpstreamError",
    "ValidationError",
    "ValidationResult",
    "build_orchestrator",
    "configure_logging",
]
