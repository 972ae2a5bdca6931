"""
Single entry point for the ticket query pipeline.

Drives validate -> resolve role -> recognize -> authorize -> extract ->
process -> render for each request and folds every outcome, including
collaborator exceptions, into one NLPResponse.
"""

import logging
from typing import Callable, List, Optional

from .classifier import IntentRecognizer
from .config import NLPConfig
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
    INTENT_DESCRIPTIONS,
    Capabilities,
    EntityType,
    ExtractedEntities,
    IntentType,
    NLPResponse,
    QueryContext,
    QueryResult,
    QueryResultType,
    ResponsePreferences,
    Suggestions,
)
from .query_processor import QueryProcessor
from .response_generator import ResponseGenerator
from .stores import IdentityStore, TicketStore

logger = logging.getLogger("ticket-nlp.orchestrator")

ADMIN_ROLE = "ADMIN"
USER_ROLE = "USER"
GUEST_ROLE = "GUEST"

PERMISSION_DENIED_MESSAGE = "Permission denied."
SERVICE_UNAVAILABLE_MESSAGE = "Service unavailable. Please try again later."

# Intents answered from the role table alone, without touching entities or stores
_META_INTENTS = frozenset({IntentType.GET_HELP, IntentType.SHOW_CAPABILITIES})

# Intents that act on one specific ticket, so an unknown ticket ID is an error
_TICKET_TARGETED_INTENTS = frozenset(
    {
        IntentType.GET_TICKET_DETAILS,
        IntentType.UPDATE_TICKET_STATUS,
        IntentType.UPDATE_PRIORITY,
        IntentType.CLOSE_TICKET,
        IntentType.ASSIGN_TICKET,
    }
)

INTENT_EXAMPLES = {
    IntentType.SHOW_TICKETS: "show my tickets",
    IntentType.SHOW_ACTIVE_TICKETS: "show active tickets",
    IntentType.SHOW_COMPLETED_TICKETS: "show completed tickets",
    IntentType.SEARCH_TICKETS: "search tickets with status rejected",
    IntentType.GET_TICKET_DETAILS: "ticket details #123",
    IntentType.CREATE_TICKET: 'create ticket for hr emergency "payroll system locked" for 2 hours',
    IntentType.UPDATE_TICKET_STATUS: "update ticket #123 to completed",
    IntentType.UPDATE_PRIORITY: "set priority of ticket #123 to high",
    IntentType.CLOSE_TICKET: "close ticket #123",
    IntentType.ASSIGN_TICKET: "assign ticket #123 to jdoe",
    IntentType.SHOW_ALL_TICKETS: "show all tickets",
    IntentType.GET_SYSTEM_STATS: "system statistics",
    IntentType.EXPORT_TICKETS: "export tickets",
    IntentType.GET_HELP: "help",
    IntentType.SHOW_CAPABILITIES: "what can you do",
}


def _failure(message: str) -> NLPResponse:
    return NLPResponse(success=False, message=message)


class Orchestrator:
    def __init__(
        self,
        recognizer: Optional[IntentRecognizer],
        extractor: Optional[EntityExtractor],
        processor: Optional[QueryProcessor],
        generator: Optional[ResponseGenerator],
        identity_store: Optional[IdentityStore] = None,
        config: Optional[NLPConfig] = None,
    ) -> None:
        self.recognizer = recognizer
        self.extractor = extractor
        self.processor = processor
        self.generator = generator
        self.identity_store = identity_store
        self.config = config or NLPConfig()

    # --- Helpers ---

    def _guarded(self, step: Callable[[], NLPResponse]) -> NLPResponse:
        """Run a request and convert any escaping exception into a safe failure."""
        try:
            return step()
        except AuthorizationError as e:
            logger.warning(f"Request denied: {e}")
            return _failure(e.public_message)
        except PermissionError as e:
            logger.warning(f"Request denied: {e}")
            return _failure(PERMISSION_DENIED_MESSAGE)
        except UpstreamError as e:
            logger.error(f"Request failed: {e}", exc_info=True)
            return _failure(SERVICE_UNAVAILABLE_MESSAGE)
        except NLPError as e:
            logger.info(f"Request rejected: {e}")
            return _failure(e.public_message)
        except Exception as e:
            logger.error(f"Request failed: {e}", exc_info=True)
            return _failure(SERVICE_UNAVAILABLE_MESSAGE)

    def _validate_input(self, query: Optional[str], user_id: Optional[str]) -> None:
        if query is None or not query.strip():
            message = "Query cannot be null or empty."
        elif user_id is None or not user_id.strip():
            message = "User ID cannot be null or empty."
        elif len(query) > self.config.max_query_length:
            message = f"Query exceeds maximum length of {self.config.max_query_length} characters."
        else:
            return
        raise ValidationError(public_message=message)

    def _resolve_role(self, user_id: str, is_admin_override: Optional[bool] = None) -> Optional[str]:
        if is_admin_override is not None:
            return ADMIN_ROLE if is_admin_override else USER_ROLE
        if self.identity_store is None:
            return None
        try:
            role = self.identity_store.get_user_role(user_id)
        except Exception as e:
            raise UpstreamError(f"Role lookup failed for {user_id}: {e}") from e
        return role.strip().upper() if role else None

    def _help_result(self, role: Optional[str]) -> QueryResult:
        items = [
            f"{INTENT_DESCRIPTIONS[t]} (e.g. '{INTENT_EXAMPLES[t]}')"
            for t in self.recognizer.get_supported_intents(role)
            if t in INTENT_EXAMPLES
        ]
        return QueryResult(result_type=QueryResultType.HELP, data=items, record_count=len(items))

    # --- Pipeline ---

    def _process(
        self,
        query: Optional[str],
        user_id: Optional[str],
        is_admin_override: Optional[bool],
        preferences: Optional[ResponsePreferences],
    ) -> NLPResponse:
        self._validate_input(query, user_id)

        role = self._resolve_role(user_id, is_admin_override)

        intent = self.recognizer.recognize(query)
        if not intent.is_success():
            raise UnrecognizedIntentError(
                f"Unrecognized query from {user_id}: {query!r} ({intent.type.value}, {intent.confidence})"
            )

        if not self.recognizer.is_intent_allowed(intent.type, role):
            raise AuthorizationError(
                f"Intent {intent.type.value} denied for {user_id} (role {role or GUEST_ROLE})",
                public_message=f"Access denied: you do not have permission to {INTENT_DESCRIPTIONS[intent.type]}.",
            )

        context = QueryContext(original_query=query, intent=intent.type)
        if intent.type in _META_INTENTS:
            result = self._help_result(role)
        else:
            entities = self.extractor.extract(query)
            validation = self.extractor.validate(entities, tickets_required=intent.type in _TICKET_TARGETED_INTENTS)
            if not validation.valid:
                raise ReferenceNotFoundError("; ".join(validation.errors), public_message=validation.errors[0])
            for warning in validation.warnings:
                logger.info(f"Entity warning for {user_id}: {warning}")

            context = QueryContext(
                original_query=query,
                intent=intent.type,
                filters=self.processor.build_query_filters(entities),
            )
            result = self.processor.process(intent, entities, user_id, role == ADMIN_ROLE)

        message = self.generator.generate(result, context, preferences)
        logger.debug(f"{intent.type.value} for {user_id} -> {result.result_type.value} ({result.record_count})")
        return NLPResponse(success=result.success, message=message, data=result.data if result.success else None)

    def process_query(
        self,
        query: Optional[str],
        user_id: Optional[str],
        is_admin_override: Optional[bool] = None,
        preferences: Optional[ResponsePreferences] = None,
    ) -> NLPResponse:
        """Answer a free-text query for a user. Never raises."""
        return self._guarded(lambda: self._process(query, user_id, is_admin_override, preferences))

    def process_admin_query(
        self,
        query: Optional[str],
        user_id: Optional[str],
        preferences: Optional[ResponsePreferences] = None,
    ) -> NLPResponse:
        """Like process_query, but refuses non-admins before any ticket data is read."""

        def step() -> NLPResponse:
            self._validate_input(query, user_id)

            is_admin = self._resolve_role(user_id) == ADMIN_ROLE
            if not is_admin and self.identity_store is not None:
                is_admin = self.identity_store.has_role(user_id, ADMIN_ROLE)
            if not is_admin:
                raise AuthorizationError(
                    f"Admin query refused for {user_id}",
                    public_message="Access denied: admin privileges required.",
                )

            return self._process(query, user_id, True, preferences)

        return self._guarded(step)

    # --- Introspection ---

    def get_capabilities(self, user_id: Optional[str]) -> Capabilities:
        if not user_id or not user_id.strip() or self.recognizer is None:
            return Capabilities(available=False)
        try:
            role = self._resolve_role(user_id)
        except UpstreamError as e:
            logger.error(f"Capabilities unavailable for {user_id}: {e}", exc_info=True)
            return Capabilities(available=False)

        return Capabilities(
            available=True,
            admin_access=role == ADMIN_ROLE,
            access_level=role or GUEST_ROLE,
            supported_intents=[t.value for t in self.recognizer.get_supported_intents(role)],
            supported_entities=[e.value for e in EntityType],
        )

    def get_suggestions(self, user_id: Optional[str]) -> Suggestions:
        if not user_id or not user_id.strip():
            return Suggestions(available=False)
        try:
            role = self._resolve_role(user_id)
        except UpstreamError as e:
            logger.error(f"Suggestions unavailable for {user_id}: {e}", exc_info=True)
            return Suggestions(available=False)

        suggested: List[str] = [
            "show my tickets",
            "show active tickets",
            "create a new ticket",
            "close ticket #123",
        ]
        quick_actions: List[str] = ["Show active tickets", "Create ticket", "Get help"]
        if role == ADMIN_ROLE:
            suggested += ["show all tickets", "system statistics", "export tickets"]
            quick_actions += ["Show all tickets", "System statistics"]

        return Suggestions(
            available=True,
            user_role=role or GUEST_ROLE,
            suggested_queries=suggested,
            examples=[
                "ticket details #123",
                'create ticket for financial emergency "invoice approval blocked" for 30 minutes',
                "update ticket #123 to completed",
            ],
            quick_actions=quick_actions,
        )

    def is_service_healthy(self) -> bool:
        """Probe every stage with a trivial input."""
        if any(c is None for c in (self.recognizer, self.extractor, self.processor, self.generator)):
            return False
        try:
            intent = self.recognizer.recognize("help")
            self.extractor.extract("test query")
            self.processor.build_query_filters(ExtractedEntities())
            self.generator.generate(QueryResult(result_type=QueryResultType.HELP, data=[]))
        except Exception as e:
            logger.error(f"Health check failed: {e}", exc_info=True)
            return False
        return intent.type == IntentType.GET_HELP


def build_orchestrator(
    ticket_store: TicketStore,
    identity_store: Optional[IdentityStore] = None,
    config: Optional[NLPConfig] = None,
) -> Orchestrator:
    """Wire the four pipeline stages around the given stores."""
    config = config or NLPConfig()
    return Orchestrator(
        recognizer=IntentRecognizer(config),
        extractor=EntityExtractor(config, ticket_store=ticket_store, identity_store=identity_store),
        processor=QueryProcessor(ticket_store, config),
        generator=ResponseGenerator(config),
        identity_store=identity_store,
        config=config,
    )
