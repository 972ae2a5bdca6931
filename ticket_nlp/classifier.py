"""
Deterministic phrase/keyword/regex intent recognizer.

No AI models used. Each IntentType owns one or more weighted rules made of
exact phrases, regex patterns and keywords. The catalog of rules is built
once at import time and shared read-only by every recognizer.

Scoring (per rule, query normalized to lowercase words):

    coverage(n) = min(1, n / words_in_query)
    phrase      = 1.0 on exact equality, else 0.9 + 0.1 * coverage(phrase words)
    pattern     = 0.8 + 0.1 * coverage(words in the matched span)
    keyword     = 0.6 * (matched / total keywords) + 0.1 * coverage(matched)
    score       = weight * max(phrase, pattern, keyword)

An intent scores the max of its rules. Highest score wins; on a tie the
intent declared first in the catalog wins.
"""

import logging
import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, FrozenSet, List, Mapping, Optional, Tuple

from .config import NLPConfig
from .models import Intent, IntentType

logger = logging.getLogger("ticket-nlp.classifier")


@dataclass(frozen=True)
class IntentRule:
    """One weighted trigger group for an intent."""

    intent: IntentType
    weight: float
    phrases: Tuple[Tuple[str, re.Pattern, int], ...]
    patterns: Tuple[re.Pattern, ...]
    keywords: FrozenSet[str]


IntentCatalog = Tuple[IntentRule, ...]


def _phrase(text: str) -> Tuple[str, re.Pattern, int]:
    """Word-bounded containment matcher for an exact phrase."""
    pattern = re.compile(rf"(?<![\w#-]){re.escape(text)}(?![\w#-])")
    return text, pattern, len(text.split())


def _rule(
    intent: IntentType,
    phrases: Tuple[str, ...] = (),
    patterns: Tuple[str, ...] = (),
    keywords: Tuple[str, ...] = (),
    weight: float = 1.0,
) -> IntentRule:
    return IntentRule(
        intent=intent,
        weight=weight,
        phrases=tuple(_phrase(p) for p in phrases),
        patterns=tuple(re.compile(p) for p in patterns),
        keywords=frozenset(keywords),
    )


def build_catalog() -> IntentCatalog:
    """Build the intent rules. Order matters: more specific intents first."""
    return (
        # --- Ticket queries ---
        _rule(
            IntentType.SHOW_ACTIVE_TICKETS,
            phrases=("show active tickets", "active tickets", "current tickets", "open tickets"),
            patterns=(r"\b(?:active|current|open|running)\s+tickets\b",),
            keywords=("active", "current", "running", "open"),
        ),
        _rule(
            IntentType.SHOW_COMPLETED_TICKETS,
            phrases=("show completed tickets", "completed tickets", "finished tickets", "closed tickets"),
            patterns=(r"\b(?:completed|finished|closed|done|resolved)\s+tickets\b",),
            keywords=("completed", "finished", "done", "closed"),
        ),
        _rule(
            IntentType.SHOW_ALL_TICKETS,
            phrases=("show all tickets", "all tickets", "system tickets"),
            patterns=(r"\ball\s+(?:the\s+)?tickets\b", r"\b(?:system|everyone)\s+tickets\b"),
            keywords=("all", "system", "everyone"),
        ),
        _rule(
            IntentType.SHOW_TICKETS,
            phrases=("show my tickets", "my tickets", "list my tickets"),
            patterns=(r"\bmy\s+tickets\b",),
            keywords=("my",),
        ),
        _rule(
            IntentType.SHOW_TICKETS,
            phrases=("what tickets do i have", "tickets for me"),
            patterns=(r"\btickets\s+for\s+me\b", r"\bwhat\s+tickets\s+do\s+i\s+have\b"),
            weight=0.9,
        ),
        _rule(
            IntentType.SHOW_TICKETS,
            patterns=(r"^(?:show\s+|list\s+)?tickets$",),
            weight=0.9,
        ),
        _rule(
            IntentType.SEARCH_TICKETS,
            phrases=("search tickets", "search for tickets", "find tickets"),
            patterns=(r"\b(?:search|find|look\s*up|filter)\b.*\btickets?\b",),
            keywords=("search", "find", "lookup", "filter"),
        ),
        _rule(
            IntentType.GET_TICKET_DETAILS,
            phrases=("ticket details", "show ticket details", "details of ticket", "ticket info"),
            patterns=(
                r"\bdetails?\b.*\btickets?\b",
                r"\btickets?\b.*\bdetails?\b",
                r"\b(?:info|information)\b.*\btickets?\b",
                r"^(?:show|get|view|display)\s+(?:me\s+)?ticket\s+#?\d+$",
            ),
            keywords=("details", "info", "information", "describe"),
        ),
        # --- Ticket management ---
        _rule(
            IntentType.UPDATE_TICKET_STATUS,
            phrases=("update ticket status", "change ticket status", "update status", "change status", "set status"),
            patterns=(
                r"\b(?:update|change|set)\b.*\bstatus\b",
                r"\b(?:update|change|set|mark)\b(?!.*\bpriority\b).*\btickets?\b.*\b(?:to|as)\b",
            ),
            keywords=("update", "change", "set", "status", "mark"),
        ),
        _rule(
            IntentType.UPDATE_PRIORITY,
            phrases=("update ticket priority", "update priority", "change priority", "set priority"),
            patterns=(
                r"\b(?:update|change|set|raise|lower|mark)\b.*\bpriority\b",
                r"\bpriority\b.*\bto\s+(?:low|medium|normal|high|urgent|critical)\b",
            ),
            keywords=("priority", "urgent", "raise", "lower"),
        ),
        _rule(
            IntentType.CREATE_TICKET,
            phrases=(
                "create ticket",
                "create a ticket",
                "new ticket",
                "create emergency ticket",
                "new emergency request",
                "open a ticket",
                "report an emergency",
            ),
            patterns=(
                r"\bcreate\b.*\b(?:ticket|request)\b",
                r"\bnew\b.*\b(?:ticket|emergency|request)\b",
                r"\bopen\s+(?:a\s+)?(?:new\s+)?ticket\b",
            ),
            keywords=("create", "new", "emergency", "request", "report"),
        ),
        _rule(
            IntentType.CREATE_TICKET,
            phrases=("hr emergency", "financial emergency", "management emergency", "logistics emergency"),
            patterns=(r"\b(?:hr|financial|finance|management|logistics)\s+emergency\b",),
            keywords=("hr", "financial", "management", "logistics"),
            weight=0.9,
        ),
        _rule(
            IntentType.CLOSE_TICKET,
            phrases=("close ticket", "close my ticket", "end ticket", "finish ticket", "complete ticket"),
            patterns=(r"\b(?:close|end|finish|complete)\b.*\btickets?\b",),
            keywords=("close", "end", "finish", "complete"),
        ),
        _rule(
            IntentType.ASSIGN_TICKET,
            phrases=("assign ticket", "reassign ticket"),
            patterns=(r"\b(?:re)?assign\b.*\bto\b",),
            keywords=("assign", "reassign", "assignee"),
        ),
        # --- Admin ---
        _rule(
            IntentType.GET_SYSTEM_STATS,
            phrases=("system statistics", "system stats", "ticket statistics", "ticket stats", "statistics", "stats"),
            patterns=(r"\b(?:stats|statistics|metrics|analytics)\b", r"\bhow\s+many\s+tickets\b"),
            keywords=("statistics", "stats", "metrics", "analytics", "count"),
        ),
        _rule(
            IntentType.EXPORT_TICKETS,
            phrases=("export tickets", "download tickets", "export data"),
            patterns=(r"\b(?:export|download)\b.*\b(?:tickets?|data)\b",),
            keywords=("export", "download", "csv", "excel"),
        ),
        # --- Help ---
        _rule(
            IntentType.SHOW_CAPABILITIES,
            phrases=("what can you do", "show capabilities", "capabilities", "features"),
            patterns=(r"\bwhat\s+can\s+(?:you|i)\s+do\b",),
            keywords=("capabilities", "features", "functions"),
        ),
        _rule(
            IntentType.GET_HELP,
            phrases=("help", "need help", "help me", "how to"),
            patterns=(r"\bhelp\b", r"\bhow\s+(?:do|can)\s+i\b"),
            keywords=("help", "how", "usage"),
        ),
    )


DEFAULT_CATALOG: IntentCatalog = build_catalog()


_USER_INTENTS = frozenset(
    {
        IntentType.SHOW_TICKETS,
        IntentType.SHOW_ACTIVE_TICKETS,
        IntentType.SHOW_COMPLETED_TICKETS,
        IntentType.SEARCH_TICKETS,
        IntentType.GET_TICKET_DETAILS,
        IntentType.CREATE_TICKET,
        IntentType.UPDATE_TICKET_STATUS,
        IntentType.UPDATE_PRIORITY,
        IntentType.CLOSE_TICKET,
        IntentType.GET_HELP,
        IntentType.SHOW_CAPABILITIES,
    }
)

ROLE_INTENTS: Mapping[str, FrozenSet[IntentType]] = MappingProxyType(
    {
        "ADMIN": frozenset(t for t in IntentType if t != IntentType.UNKNOWN),
        "USER": _USER_INTENTS,
    }
)


_NON_WORD = re.compile(r"[^a-z0-9\s#-]")
_SPACES = re.compile(r"\s+")


def normalize_query(text: str) -> str:
    """Lowercase, drop punctuation other than '#' and '-', collapse whitespace."""
    return _SPACES.sub(" ", _NON_WORD.sub(" ", text.lower())).strip()


def _normalize_role(role: Optional[str]) -> Optional[str]:
    if role is None or not role.strip():
        return None
    return role.strip().upper()


class IntentRecognizer:
    """Classifies queries against an immutable intent catalog."""

    def __init__(self, config: Optional[NLPConfig] = None, catalog: IntentCatalog = DEFAULT_CATALOG) -> None:
        self.config = config or NLPConfig()
        self.catalog = catalog

    def _score_rule(self, rule: IntentRule, query: str, words: List[str]) -> float:
        total = max(len(words), 1)

        def coverage(n: int) -> float:
            return min(1.0, n / total)

        best = 0.0

        for text, pattern, size in rule.phrases:
            if query == text:
                return rule.weight
            if pattern.search(query):
                best = max(best, 0.9 + 0.1 * coverage(size))

        for pattern in rule.patterns:
            m = pattern.search(query)
            if m:
                best = max(best, 0.8 + 0.1 * coverage(len(m.group(0).split())))

        if rule.keywords:
            matched = len(rule.keywords.intersection(words))
            if matched:
                best = max(best, 0.6 * matched / len(rule.keywords) + 0.1 * coverage(matched))

        return rule.weight * min(best, 1.0)

    def _score_intents(self, query: str) -> Dict[IntentType, float]:
        """Best score per intent, in catalog declaration order."""
        words = query.split()
        scores: Dict[IntentType, float] = {}
        for rule in self.catalog:
            score = self._score_rule(rule, query, words)
            if score > scores.get(rule.intent, 0.0):
                scores[rule.intent] = score
            else:
                scores.setdefault(rule.intent, 0.0)
        return scores

    def _intent(self, intent_type: IntentType, score: float, query: str) -> Intent:
        return Intent(
            type=intent_type,
            confidence=round(score, 4),
            original_query=query,
            threshold=self.config.intent_confidence_threshold,
        )

    def recognize(self, query: Optional[str]) -> Intent:
        """Return the best matching intent for a query.

        Below-threshold matches keep their type but report ``is_success() == False``.
        """
        if query is None or not query.strip():
            return self._intent(IntentType.UNKNOWN, 0.0, query or "")

        normalized = normalize_query(query)
        best_type = IntentType.UNKNOWN
        best_score = 0.0
        for intent_type, score in self._score_intents(normalized).items():
            if score > best_score:
                best_type, best_score = intent_type, score

        if best_score <= 0.0:
            logger.debug(f"No intent matched query: {normalized!r}")
            return self._intent(IntentType.UNKNOWN, 0.0, query)

        logger.debug(f"Recognized {best_type.value} ({best_score:.3f}) for {normalized!r}")
        return self._intent(best_type, best_score, query)

    def recognize_multiple(self, query: Optional[str]) -> List[Intent]:
        """All intents scoring above the configured floor, highest first."""
        if query is None or not query.strip():
            return []

        floor = self.config.multi_intent_floor
        scored = [
            (intent_type, score)
            for intent_type, score in self._score_intents(normalize_query(query)).items()
            if score > floor
        ]
        # sorted() is stable, so equal scores keep declaration order
        scored = sorted(scored, key=lambda item: item[1], reverse=True)
        return [self._intent(t, s, query) for t, s in scored]

    def get_supported_intents(self, role: Optional[str]) -> List[IntentType]:
        allowed = ROLE_INTENTS.get(_normalize_role(role) or "", frozenset())
        return [t for t in IntentType if t in allowed]

    def is_intent_allowed(self, intent_type: Optional[IntentType], role: Optional[str]) -> bool:
        if intent_type is None or intent_type == IntentType.UNKNOWN:
            return False
        normalized = _normalize_role(role)
        if normalized is None:
            return False
        allowed = intent_type in ROLE_INTENTS.get(normalized, frozenset())
        logger.debug(f"Intent {intent_type.value} allowed for role {normalized}: {allowed}")
        return allowed
