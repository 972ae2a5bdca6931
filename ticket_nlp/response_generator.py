"""
Deterministic rendering of QueryResults into user-facing text.

The generator is a pure function of (result, context, preferences): it
performs no I/O and never changes the facts it is given, only how they
are phrased.
"""

import re
from typing import List, Optional

from .config import NLPConfig
from .models import (
    IntentType,
    QueryContext,
    QueryResult,
    QueryResultType,
    ResponsePreferences,
    ResponseStyle,
    Ticket,
    TicketOperation,
)

NO_TICKETS_MESSAGE = "No tickets found matching your query."
TRUNCATION_MARKER = "... (truncated)"

_LIST_LABELS = {
    IntentType.SHOW_ACTIVE_TICKETS: "active ",
    IntentType.SHOW_COMPLETED_TICKETS: "completed ",
}

_STATUS_EMOJI = {
    "active": "🟢",
    "completed": "✅",
    "closed": "✅",
    "rejected": "⛔",
}

_OPERATION_VERBS = {
    TicketOperation.CREATE_TICKET: "has been created",
    TicketOperation.UPDATE_TICKET_STATUS: "has been updated",
    TicketOperation.CLOSE_TICKET: "has been closed",
}


def _plural(n: int, word: str) -> str:
    return word if n == 1 else word + "s"


def truncate(text: str, limit: int) -> str:
    """Cut ``text`` to at most ``limit`` characters on a word boundary, marking the cut."""
    if len(text) <= limit:
        return text
    budget = limit - len(TRUNCATION_MARKER)
    if budget <= 0:
        return TRUNCATION_MARKER[:limit]
    cut = text[:budget]
    # Back up to the last whitespace unless the cut already ends on one
    if not text[budget].isspace():
        boundary = max((m.start() for m in re.finditer(r"\s", cut)), default=-1)
        if boundary > 0:
            cut = cut[:boundary]
    return cut.rstrip() + TRUNCATION_MARKER


class ResponseGenerator:
    def __init__(self, config: Optional[NLPConfig] = None) -> None:
        self.config = config or NLPConfig()

    def generate(
        self,
        result: QueryResult,
        context: Optional[QueryContext] = None,
        prefs: Optional[ResponsePreferences] = None,
    ) -> str:
        context = context or QueryContext()
        prefs = prefs or ResponsePreferences()

        renderers = {
            QueryResultType.TICKET_LIST: self._render_ticket_list,
            QueryResultType.TICKET_DETAILS: self._render_details,
            QueryResultType.STATISTICS: self._render_statistics,
            QueryResultType.OPERATION_RESULT: self._render_operation,
            QueryResultType.EXPORT: self._render_export,
            QueryResultType.HELP: self._render_help,
            QueryResultType.ERROR: self._render_error,
        }
        text = renderers[result.result_type](result, context, prefs)

        limit = prefs.max_response_length or self.config.max_response_length
        return truncate(text, limit)

    # --- Renderers ---

    def _ticket_line(self, ticket: Ticket, prefs: ResponsePreferences) -> str:
        prefix = "- "
        if prefs.include_emojis:
            prefix += _STATUS_EMOJI.get(ticket.status.lower(), "🎫") + " "
        line = f"{prefix}[{ticket.ticket_id}] {ticket.status} - {ticket.description}"
        if prefs.verbose_mode:
            extras = self._ticket_extras(ticket)
            if extras:
                line += f" ({', '.join(extras)})"
        return line

    def _ticket_extras(self, ticket: Ticket) -> List[str]:
        extras = []
        if ticket.emergency_type:
            extras.append(f"type: {ticket.emergency_type}")
        if ticket.priority:
            extras.append(f"priority: {ticket.priority}")
        if ticket.assigned_to:
            extras.append(f"assigned to: {ticket.assigned_to}")
        if ticket.duration is not None:
            extras.append(f"duration: {ticket.duration} min")
        if ticket.request_date:
            extras.append(f"requested: {ticket.request_date}")
        return extras

    def _render_ticket_list(self, result: QueryResult, context: QueryContext, prefs: ResponsePreferences) -> str:
        tickets = result.data or []
        if result.record_count == 0 or not tickets:
            return NO_TICKETS_MESSAGE

        n = result.record_count
        noun = _LIST_LABELS.get(context.intent, "") + _plural(n, "ticket")
        if prefs.style == ResponseStyle.CASUAL:
            header = f"You've got {n} {noun}:"
        else:
            header = f"Found {n} {noun}:"
        if prefs.include_emojis:
            header = "🎫 " + header
        return "\n".join([header] + [self._ticket_line(t, prefs) for t in tickets])

    def _render_details(self, result: QueryResult, context: QueryContext, prefs: ResponsePreferences) -> str:
        ticket: Ticket = result.data
        lines = [
            f"Ticket [{ticket.ticket_id}]",
            f"Status: {ticket.status}",
            f"Owner: {ticket.user_id}",
            f"Description: {ticket.description or '-'}",
        ]
        lines += [extra[0].upper() + extra[1:] for extra in self._ticket_extras(ticket)]
        if ticket.emergency_contact:
            lines.append(f"Emergency contact: {ticket.emergency_contact}")
        if prefs.include_emojis:
            lines[0] = "🎫 " + lines[0]
        return "\n".join(lines)

    def _render_statistics(self, result: QueryResult, context: QueryContext, prefs: ResponsePreferences) -> str:
        stats = result.data or {}
        scope = "system" if stats.get("scope") == "system" else "your tickets"
        header = f"Ticket statistics ({scope}):"
        if prefs.include_emojis:
            header = "📊 " + header
        lines = [header, f"Total tickets: {stats.get('totalTickets', 0)}"]
        for status, count in sorted(stats.get("countsPerStatus", {}).items()):
            lines.append(f"- {status}: {count}")
        return "\n".join(lines)

    def _render_operation(self, result: QueryResult, context: QueryContext, prefs: ResponsePreferences) -> str:
        ticket: Ticket = result.data
        if result.operation == TicketOperation.UPDATE_PRIORITY:
            action = f"priority is now {ticket.priority}"
        elif result.operation == TicketOperation.ASSIGN_TICKET:
            action = f"has been assigned to {ticket.assigned_to}"
        else:
            action = _OPERATION_VERBS.get(result.operation, "has been updated")

        text = f"Ticket [{ticket.ticket_id}] {action}. Current status: {ticket.status}"
        if prefs.verbose_mode and ticket.description:
            text += f"\nDescription: {ticket.description}"
        if prefs.style == ResponseStyle.CASUAL:
            text = "Done! " + text
        if prefs.include_emojis:
            text = "✅ " + text
        return text

    def _render_export(self, result: QueryResult, context: QueryContext, prefs: ResponsePreferences) -> str:
        n = result.record_count
        text = f"Exported {n} {_plural(n, 'ticket')} as CSV."
        if prefs.verbose_mode and result.data:
            text += "\n\n" + result.data
        return text

    def _render_help(self, result: QueryResult, context: QueryContext, prefs: ResponsePreferences) -> str:
        header = "Here's what I can do:" if prefs.style == ResponseStyle.CASUAL else "I can help you with:"
        return "\n".join([header] + [f"- {item}" for item in result.data or []])

    def _render_error(self, result: QueryResult, context: QueryContext, prefs: ResponsePreferences) -> str:
        text = result.message or "Something went wrong while processing your request."
        if prefs.include_emojis:
            text = "❌ " + text
        return text
