"""
Tests for the intent recognizer.

Covers every catalog phrase, representative free-text queries, the
scoring edge cases, multi-intent ranking and the role table.
"""

import dataclasses

import pytest

from ticket_nlp.classifier import (
    DEFAULT_CATALOG,
    ROLE_INTENTS,
    IntentRecognizer,
    _rule,
    normalize_query,
)
from ticket_nlp.config import NLPConfig
from ticket_nlp.models import IntentType

CATALOG_PHRASES = [(text, rule.intent) for rule in DEFAULT_CATALOG for text, _, _ in rule.phrases]


@pytest.fixture
def recognizer():
    return IntentRecognizer(NLPConfig())


class TestBlankInput:
    """Test recognition of empty input."""

    @pytest.mark.parametrize("query", [None, "", "   ", "\t\n"])
    def test_blank_is_unknown(self, recognizer, query):
        intent = recognizer.recognize(query)
        assert intent.type == IntentType.UNKNOWN
        assert intent.confidence == 0.0
        assert not intent.is_success()

    @pytest.mark.parametrize("query", [None, "", "  "])
    def test_blank_multiple_is_empty(self, recognizer, query):
        assert recognizer.recognize_multiple(query) == []


class TestCatalogPhrases:
    """Test that every catalog phrase maps to its intent."""

    @pytest.mark.parametrize("phrase,expected", CATALOG_PHRASES)
    def test_phrase_maps_to_its_intent(self, recognizer, phrase, expected):
        intent = recognizer.recognize(phrase)
        assert intent.type == expected
        assert intent.confidence >= 0.7
        assert intent.is_success()

    def test_every_intent_has_a_phrase(self):
        covered = {intent for _, intent in CATALOG_PHRASES}
        assert covered == {t for t in IntentType if t != IntentType.UNKNOWN}


class TestFreeTextQueries:
    """Test intent recognition on free-text queries."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("show active tickets", IntentType.SHOW_ACTIVE_TICKETS),
            ("Show Active Tickets!", IntentType.SHOW_ACTIVE_TICKETS),
            ("show my tickets", IntentType.SHOW_TICKETS),
            ("tickets", IntentType.SHOW_TICKETS),
            ("show all tickets", IntentType.SHOW_ALL_TICKETS),
            ("update ticket #123 to open", IntentType.UPDATE_TICKET_STATUS),
            ("close ticket #12", IntentType.CLOSE_TICKET),
            ("create a ticket for hr emergency", IntentType.CREATE_TICKET),
            ("assign ticket #5 to jdoe", IntentType.ASSIGN_TICKET),
            ("set priority of ticket #123 to high", IntentType.UPDATE_PRIORITY),
            ("ticket details #42", IntentType.GET_TICKET_DETAILS),
            ("search tickets with status rejected", IntentType.SEARCH_TICKETS),
            ("system statistics", IntentType.GET_SYSTEM_STATS),
            ("export tickets", IntentType.EXPORT_TICKETS),
            ("what can you do", IntentType.SHOW_CAPABILITIES),
            ("help", IntentType.GET_HELP),
        ],
    )
    def test_classification(self, recognizer, text, expected):
        intent = recognizer.recognize(text)
        assert intent.type == expected
        assert intent.is_success()

    def test_original_query_is_kept(self, recognizer):
        intent = recognizer.recognize("Close ticket #12")
        assert intent.original_query == "Close ticket #12"

    def test_no_match_is_unknown(self, recognizer):
        intent = recognizer.recognize("the weather is nice")
        assert intent.type == IntentType.UNKNOWN
        assert intent.confidence == 0.0

    def test_weak_match_keeps_type_but_fails(self, recognizer):
        intent = recognizer.recognize("open")
        assert intent.type == IntentType.SHOW_ACTIVE_TICKETS
        assert 0.0 < intent.confidence < 0.7
        assert not intent.is_success()

    def test_extra_words_lower_confidence(self, recognizer):
        short = recognizer.recognize("close ticket #12")
        long = recognizer.recognize("please could you close ticket #12 for me today")
        assert short.type == long.type == IntentType.CLOSE_TICKET
        assert long.confidence < short.confidence

    def test_threshold_comes_from_config(self):
        strict = IntentRecognizer(NLPConfig(intent_confidence_threshold=0.99))
        intent = strict.recognize("close ticket #12")
        assert intent.type == IntentType.CLOSE_TICKET
        assert not intent.is_success()


class TestScoring:
    """Test confidence scoring and thresholds."""

    def test_tie_goes_to_first_declared(self):
        catalog = (
            _rule(IntentType.SEARCH_TICKETS, phrases=("find it",)),
            _rule(IntentType.GET_HELP, phrases=("find it",)),
        )
        intent = IntentRecognizer(NLPConfig(), catalog=catalog).recognize("find it")
        assert intent.type == IntentType.SEARCH_TICKETS

    def test_rule_weight_scales_score(self):
        catalog = (_rule(IntentType.GET_HELP, phrases=("assist",), weight=0.5),)
        intent = IntentRecognizer(NLPConfig(), catalog=catalog).recognize("assist")
        assert intent.confidence == 0.5

    def test_phrase_containment_is_word_bounded(self):
        catalog = (_rule(IntentType.GET_HELP, phrases=("help",)),)
        intent = IntentRecognizer(NLPConfig(), catalog=catalog).recognize("helpful")
        assert intent.type == IntentType.UNKNOWN

    def test_normalize_query(self):
        assert normalize_query("  Close ticket #12, please! ") == "close ticket #12 please"
        assert normalize_query("T-99") == "t-99"


class TestRecognizeMultiple:
    """Test ranked multi-intent recognition."""

    def test_ranked_descending(self, recognizer):
        intents = recognizer.recognize_multiple("update ticket #5 status and export data")
        types = [i.type for i in intents]
        assert IntentType.EXPORT_TICKETS in types
        assert IntentType.UPDATE_TICKET_STATUS in types
        confidences = [i.confidence for i in intents]
        assert confidences == sorted(confidences, reverse=True)

    def test_respects_floor(self, recognizer):
        intents = recognizer.recognize_multiple("close ticket #12")
        assert intents[0].type == IntentType.CLOSE_TICKET
        assert all(i.confidence > 0.3 for i in intents)
        assert len({i.type for i in intents}) == len(intents)


class TestRoleTable:
    """Test role-based intent permissions."""

    @pytest.mark.parametrize("intent_type", list(IntentType))
    def test_null_role_denied(self, recognizer, intent_type):
        assert recognizer.is_intent_allowed(intent_type, None) is False

    @pytest.mark.parametrize("intent_type", [t for t in IntentType if t != IntentType.UNKNOWN])
    def test_admin_allowed_everything(self, recognizer, intent_type):
        assert recognizer.is_intent_allowed(intent_type, "ADMIN") is True

    def test_unknown_intent_never_allowed(self, recognizer):
        assert recognizer.is_intent_allowed(IntentType.UNKNOWN, "ADMIN") is False

    @pytest.mark.parametrize(
        "intent_type,allowed",
        [
            (IntentType.SHOW_TICKETS, True),
            (IntentType.SHOW_ACTIVE_TICKETS, True),
            (IntentType.CREATE_TICKET, True),
            (IntentType.CLOSE_TICKET, True),
            (IntentType.GET_HELP, True),
            (IntentType.SHOW_ALL_TICKETS, False),
            (IntentType.GET_SYSTEM_STATS, False),
            (IntentType.EXPORT_TICKETS, False),
            (IntentType.ASSIGN_TICKET, False),
        ],
    )
    def test_user_subset(self, recognizer, intent_type, allowed):
        assert recognizer.is_intent_allowed(intent_type, "USER") is allowed

    def test_role_is_case_insensitive(self, recognizer):
        assert recognizer.is_intent_allowed(IntentType.SHOW_ALL_TICKETS, " admin ")

    @pytest.mark.parametrize("role", ["GUEST", "", "   ", "superuser"])
    def test_unknown_role_denied(self, recognizer, role):
        assert not recognizer.is_intent_allowed(IntentType.GET_HELP, role)

    def test_supported_intents(self, recognizer):
        user = recognizer.get_supported_intents("USER")
        admin = recognizer.get_supported_intents("ADMIN")
        assert IntentType.SHOW_ALL_TICKETS not in user
        assert set(user) < set(admin)
        assert recognizer.get_supported_intents(None) == []


class TestCatalogImmutability:
    """Test that the intent catalog cannot be changed."""

    def test_catalog_is_tuple(self):
        assert isinstance(DEFAULT_CATALOG, tuple)

    def test_rules_are_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            DEFAULT_CATALOG[0].weight = 0.1

    def test_role_table_is_read_only(self):
        with pytest.raises(TypeError):
            ROLE_INTENTS["GUEST"] = frozenset()
