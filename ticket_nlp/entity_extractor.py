"""
Typed entity extraction and validation.

Each EntityType has one regex-based rule run against the original query,
so entity offsets point into the text the user typed. Extracted ticket IDs
and user names are then checked against the ticket and identity stores;
lookups that find the item are cached for ``entity_cache_ttl`` seconds,
up to a fixed number of entries.
"""

import logging
import re
import threading
import time
from datetime import date, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .config import NLPConfig
from .errors import UpstreamError
from .models import Entity, EntityType, ExtractedEntities, ValidationResult
from .stores import IdentityStore, TicketStore

logger = logging.getLogger("ticket-nlp.entities")

Today = Callable[[], date]

_CACHE_MAX_ENTRIES = 1024


def _entity(entity_type: EntityType, m: "re.Match", normalized: str, confidence: float, group: int = 0) -> Entity:
    return Entity(
        type=entity_type,
        raw_value=m.group(group),
        normalized_value=normalized,
        start_offset=m.start(group),
        end_offset=m.end(group),
        confidence=confidence,
    )


# --- Ticket IDs ---

# A number followed by "-d" or "/d" is part of a date, not a ticket ID
_TICKET_ID_RE = re.compile(r"(?:#|\bt-?|\btickets?\s*(?:#|no\.?\s*|number\s+)?)(\d+)\b(?![-/]\d)", re.I)


def _extract_ticket_ids(text: str, today: Today) -> List[Entity]:
    return [_entity(EntityType.TICKET_ID, m, m.group(1), 0.9) for m in _TICKET_ID_RE.finditer(text)]


# --- Statuses ---

_STATUS_SYNONYMS = {
    "open": "open",
    "active": "active",
    "in progress": "in progress",
    "in-progress": "in progress",
    "completed": "completed",
    "done": "completed",
    "finished": "completed",
    "closed": "closed",
    "rejected": "rejected",
    "revoked": "rejected",
}

_STATUS_RE = re.compile(r"\b(in[\s-]progress|open|active|completed|done|finished|closed|rejected|revoked)\b", re.I)


def _extract_statuses(text: str, today: Today) -> List[Entity]:
    found = []
    for m in _STATUS_RE.finditer(text):
        key = re.sub(r"\s+", " ", m.group(1).lower())
        found.append(_entity(EntityType.STATUS, m, _STATUS_SYNONYMS[key], 0.9))
    return found


# --- Dates ---

_RELATIVE_DAYS = {"yesterday": -1, "today": 0, "tomorrow": 1}
_RELATIVE_DATE_RE = re.compile(r"\b(today|yesterday|tomorrow)\b", re.I)
_ISO_DATE_RE = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b")
_US_DATE_RE = re.compile(r"\b(\d{1,2})/(\d{1,2})/(\d{4})\b")


def _extract_dates(text: str, today: Today) -> List[Entity]:
    found = []
    for m in _RELATIVE_DATE_RE.finditer(text):
        day = today() + timedelta(days=_RELATIVE_DAYS[m.group(1).lower()])
        found.append(_entity(EntityType.DATE, m, day.isoformat(), 0.9))

    for m in _ISO_DATE_RE.finditer(text):
        try:
            day = date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        except ValueError:
            continue
        found.append(_entity(EntityType.DATE, m, day.isoformat(), 0.95))

    for m in _US_DATE_RE.finditer(text):
        try:
            day = date(int(m.group(3)), int(m.group(1)), int(m.group(2)))
        except ValueError:
            continue
        found.append(_entity(EntityType.DATE, m, day.isoformat(), 0.85))
    return found


# --- Emergency types ---

_EMERGENCY_SYNONYMS = {
    "hr": "hr",
    "human resources": "hr",
    "financial": "financial",
    "finance": "financial",
    "management": "management",
    "logistics": "logistics",
    "logistic": "logistics",
}

_EMERGENCY_RE = re.compile(r"(?<!\d)(?<!\d\s)\b(hr|human\s+resources|financial|finance|management|logistics?)\b(\s+emergency\b)?", re.I)


def _extract_emergency_types(text: str, today: Today) -> List[Entity]:
    found = []
    for m in _EMERGENCY_RE.finditer(text):
        key = re.sub(r"\s+", " ", m.group(1).lower())
        confidence = 0.9 if m.group(2) else 0.7
        found.append(_entity(EntityType.EMERGENCY_TYPE, m, _EMERGENCY_SYNONYMS[key], confidence))
    return found


# --- User names ---

_USER_NAME_RE = re.compile(
    r"\b(?:assign(?:ed)?\b.*?\bto|for\s+user|user|owner)\s+@?([A-Za-z][\w.@-]*)",
    re.I,
)
_NOT_NAMES = frozenset({"the", "a", "an", "me", "my", "ticket", "tickets", "user", "to"})


def _extract_user_names(text: str, today: Today) -> List[Entity]:
    found = []
    for m in _USER_NAME_RE.finditer(text):
        name = m.group(1).rstrip(".")
        if name.lower() in _NOT_NAMES:
            continue
        found.append(
            Entity(
                type=EntityType.USER_NAME,
                raw_value=name,
                normalized_value=name,
                start_offset=m.start(1),
                end_offset=m.start(1) + len(name),
                confidence=0.8,
            )
        )
    return found


# --- Priorities ---

_PRIORITY_SYNONYMS = {
    "low": "low",
    "medium": "medium",
    "normal": "medium",
    "high": "high",
    "critical": "critical",
    "urgent": "critical",
}

_PRIORITY_RE = re.compile(r"\b(low|medium|normal|high|critical|urgent)\b", re.I)


def _extract_priorities(text: str, today: Today) -> List[Entity]:
    confidence = 0.9 if re.search(r"\bpriority\b", text, re.I) else 0.7
    return [
        _entity(EntityType.PRIORITY, m, _PRIORITY_SYNONYMS[m.group(1).lower()], confidence)
        for m in _PRIORITY_RE.finditer(text)
    ]


# --- Durations ---

_DURATION_RE = re.compile(r"\b(\d+)\s*(minutes?|mins?|hours?|hrs?|h)\b", re.I)


def _extract_durations(text: str, today: Today) -> List[Entity]:
    found = []
    for m in _DURATION_RE.finditer(text):
        amount = int(m.group(1))
        minutes = amount if m.group(2).lower().startswith("m") else amount * 60
        found.append(_entity(EntityType.DURATION, m, str(minutes), 0.85))
    return found


# --- Phone numbers ---

_PHONE_RE = re.compile(r"\b(?:contact|phone|call|tel)\b[^\d+]{0,20}(\+?\d[\d\s().-]{5,}\d)", re.I)


def _extract_phones(text: str, today: Today) -> List[Entity]:
    found = []
    for m in _PHONE_RE.finditer(text):
        raw = m.group(1)
        digits = re.sub(r"\D", "", raw)
        normalized = "+" + digits if raw.startswith("+") else digits
        found.append(_entity(EntityType.PHONE, m, normalized, 0.9, group=1))
    return found


# --- Descriptions ---

_QUOTED_RE = re.compile(r"[\"“]([^\"”]+)[\"”]")
_DESCRIPTION_TRIGGER_RE = re.compile(
    r"\b(?:create|open|new|report|raise)\b.*?\b(?:ticket|request|emergency)\b\s*"
    r"(?::|-|\bfor\b|\babout\b|\bregarding\b|\bbecause\b)\s*(.+)$",
    re.I,
)


def _extract_descriptions(text: str, today: Today) -> List[Entity]:
    quoted = [
        _entity(EntityType.DESCRIPTION, m, m.group(1).strip(), 1.0, group=1)
        for m in _QUOTED_RE.finditer(text)
        if m.group(1).strip()
    ]
    if quoted:
        return quoted

    m = _DESCRIPTION_TRIGGER_RE.search(text)
    if m and len(m.group(1).strip()) >= 3:
        return [_entity(EntityType.DESCRIPTION, m, m.group(1).strip(), 0.8, group=1)]
    return []


_EXTRACTORS: Dict[EntityType, Callable[[str, Today], List[Entity]]] = {
    EntityType.TICKET_ID: _extract_ticket_ids,
    EntityType.STATUS: _extract_statuses,
    EntityType.DATE: _extract_dates,
    EntityType.EMERGENCY_TYPE: _extract_emergency_types,
    EntityType.USER_NAME: _extract_user_names,
    EntityType.PRIORITY: _extract_priorities,
    EntityType.DURATION: _extract_durations,
    EntityType.PHONE: _extract_phones,
    EntityType.DESCRIPTION: _extract_descriptions,
}


def _drop_overlaps(entities: Iterable[Entity]) -> List[Entity]:
    """Order by offset and keep the first of any overlapping spans."""
    kept: List[Entity] = []
    for entity in sorted(entities, key=lambda e: (e.start_offset, -e.end_offset)):
        if kept and entity.start_offset < kept[-1].end_offset:
            continue
        kept.append(entity)
    return kept


def _overlaps(entity: Entity, others: Iterable[Entity]) -> bool:
    return any(entity.start_offset < o.end_offset and o.start_offset < entity.end_offset for o in others)


class EntityExtractor:
    """Extracts typed entities and validates them against live reference data."""

    def __init__(
        self,
        config: Optional[NLPConfig] = None,
        ticket_store: Optional[TicketStore] = None,
        identity_store: Optional[IdentityStore] = None,
        today: Today = date.today,
    ) -> None:
        self.config = config or NLPConfig()
        self.ticket_store = ticket_store
        self.identity_store = identity_store
        self._today = today
        self._cache: Dict[Tuple[str, str], tuple] = {}  # {(kind, key): (timestamp, exists)}
        self._cache_lock = threading.Lock()

    def _run(self, query: str, entity_type: EntityType) -> List[Entity]:
        threshold = self.config.entity_confidence_threshold
        found = [e for e in _EXTRACTORS[entity_type](query, self._today) if e.confidence >= threshold]
        return _drop_overlaps(found)

    def extract(self, query: Optional[str]) -> ExtractedEntities:
        if query is None or not query.strip():
            return ExtractedEntities()

        grouped = {}
        for entity_type in EntityType:
            found = self._run(query, entity_type)
            if entity_type == EntityType.TICKET_ID:
                # Digits inside a date span never count as a ticket reference
                dates = self._run(query, EntityType.DATE)
                found = [e for e in found if not _overlaps(e, dates)]
            if found:
                grouped[entity_type] = tuple(found)

        logger.debug(f"Extracted {sum(len(v) for v in grouped.values())} entities from {query!r}")
        return ExtractedEntities(entities=grouped)

    def extract_specific(self, query: Optional[str], types: Iterable[EntityType]) -> Dict[EntityType, List[Entity]]:
        """Run only the rules for ``types``. Every requested type is a key, possibly empty."""
        if query is None or not query.strip():
            return {}
        return {entity_type: self._run(query, entity_type) for entity_type in types}

    # --- Validation ---

    def clear_cache(self) -> None:
        with self._cache_lock:
            self._cache.clear()

    def _cached_lookup(self, kind: str, key: str, lookup: Callable[[str], bool]) -> bool:
        if self.config.entity_cache_enabled:
            with self._cache_lock:
                entry = self._cache.get((kind, key))
                if entry is not None:
                    ts, exists = entry
                    if time.time() - ts <= self.config.entity_cache_ttl:
                        return exists
                    del self._cache[(kind, key)]

        try:
            exists = bool(lookup(key))
        except Exception as e:
            logger.error(f"{kind} lookup failed for {key!r}: {e}", exc_info=True)
            raise UpstreamError(f"{kind} lookup failed: {e}") from e

        # Misses are not cached: the ticket or user may be created moments later
        if exists and self.config.entity_cache_enabled:
            self._store(kind, key)
        return exists

    def _store(self, kind: str, key: str) -> None:
        now = time.time()
        with self._cache_lock:
            if len(self._cache) >= _CACHE_MAX_ENTRIES:
                ttl = self.config.entity_cache_ttl
                for stale in [k for k, (ts, _) in self._cache.items() if now - ts > ttl]:
                    del self._cache[stale]
            while len(self._cache) >= _CACHE_MAX_ENTRIES:
                del self._cache[next(iter(self._cache))]
            self._cache[(kind, key)] = (now, True)

    def validate(self, entities: ExtractedEntities, tickets_required: bool = True) -> ValidationResult:
        """Cross-check ticket IDs and user names against the stores.

        A missing ticket is an error when the request acts on it
        (``tickets_required``) and a warning otherwise. A missing user
        is always a warning. Store failures raise UpstreamError.
        """
        errors: List[str] = []
        warnings: List[str] = []

        if self.ticket_store is not None:
            for entity in entities.ticket_ids:
                ticket_id = entity.normalized_value
                if self._cached_lookup("ticket", ticket_id, self.ticket_store.exists_ticket):
                    continue
                message = f"Ticket #{ticket_id} does not exist."
                (errors if tickets_required else warnings).append(message)

        if self.identity_store is not None:
            for entity in entities.user_names:
                name = entity.normalized_value
                if not self._cached_lookup("user", name, self.identity_store.exists_user):
                    warnings.append(f"User '{name}' was not found.")

        if errors:
            logger.info(f"Entity validation failed: {errors}")
        return ValidationResult(valid=not errors, errors=errors, warnings=warnings)
