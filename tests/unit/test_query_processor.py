"""
Tests for the query processor.

Uses the in-memory ticket store for realistic reads and writes, and
MagicMock stores where failures need to be injected.
"""

from unittest.mock import MagicMock

import pytest

from ticket_nlp.models import (
    Entity,
    EntityType,
    ExtractedEntities,
    Intent,
    IntentType,
    QueryResultType,
    Ticket,
    TicketOperation,
    TicketQueryType,
)
from ticket_nlp.query_processor import QueryProcessor
from ticket_nlp.stores import InMemoryTicketStore


def _entity(entity_type, value, raw=None):
    raw = raw if raw is not None else value
    return Entity(
        type=entity_type,
        raw_value=raw,
        normalized_value=value,
        start_offset=0,
        end_offset=len(raw),
        confidence=0.9,
    )


def _entities(*items):
    grouped = {}
    for item in items:
        grouped.setdefault(item.type, []).append(item)
    return ExtractedEntities(entities={k: tuple(v) for k, v in grouped.items()})


@pytest.fixture
def store():
    return InMemoryTicketStore(
        [
            Ticket(ticket_id="1", status="Active", user_id="user1", description="VPN access", emergency_type="hr"),
            Ticket(ticket_id="2", status="Completed", user_id="user1", description="Payroll run", emergency_type="financial"),
            Ticket(ticket_id="3", status="Closed", user_id="user2", description="Warehouse keys", emergency_type="logistics"),
            Ticket(ticket_id="4", status="Rejected", user_id="user2", description="Board access"),
            Ticket(ticket_id="5", status="Active", user_id="user2", description="Server room"),
        ]
    )


@pytest.fixture
def processor(store):
    return QueryProcessor(store)


def _ids(result):
    return [t.ticket_id for t in result.data]


class TestBuildQueryFilters:
    """Test entity to filter mapping."""

    def test_status_is_lowercased(self, processor):
        filters = processor.build_query_filters(_entities(_entity(EntityType.STATUS, "Open", raw="Open")))
        assert filters == {"status": "open"}

    def test_status_whitespace_collapsed(self, processor):
        filters = processor.build_query_filters(_entities(_entity(EntityType.STATUS, "  In   Progress ")))
        assert filters["status"] == "in progress"

    def test_empty_entities_give_empty_filters(self, processor):
        assert processor.build_query_filters(ExtractedEntities()) == {}

    def test_all_keys(self, processor):
        filters = processor.build_query_filters(
            _entities(
                _entity(EntityType.TICKET_ID, "123", raw="#123"),
                _entity(EntityType.EMERGENCY_TYPE, "HR"),
                _entity(EntityType.USER_NAME, "JDoe"),
                _entity(EntityType.PRIORITY, "high"),
                _entity(EntityType.DATE, "2024-03-15"),
                _entity(EntityType.DURATION, "120"),
            )
        )
        assert filters == {
            "ticketId": "123",
            "emergencyType": "hr",
            "assigned": "jdoe",
            "priority": "high",
            "date": "2024-03-15",
            "duration": 120,
        }

    def test_first_entity_wins(self, processor):
        filters = processor.build_query_filters(
            _entities(_entity(EntityType.TICKET_ID, "7"), _entity(EntityType.TICKET_ID, "8"))
        )
        assert filters["ticketId"] == "7"


class TestValidateUserOperation:
    """Test operation ownership checks."""

    @pytest.mark.parametrize(
        "user_id,is_admin,expected",
        [
            ("user1", False, True),
            ("user2", False, False),
            ("user2", True, True),
        ],
    )
    def test_ownership(self, processor, user_id, is_admin, expected):
        entities = _entities(_entity(EntityType.TICKET_ID, "1"))
        assert processor.validate_user_operation(TicketOperation.UPDATE_PRIORITY, entities, user_id, is_admin) is expected

    def test_create_always_allowed(self, processor):
        assert processor.validate_user_operation(TicketOperation.CREATE_TICKET, ExtractedEntities(), "anyone", False)

    def test_assign_needs_admin(self, processor):
        entities = _entities(_entity(EntityType.TICKET_ID, "1"))
        assert not processor.validate_user_operation(TicketOperation.ASSIGN_TICKET, entities, "user1", False)
        assert processor.validate_user_operation(TicketOperation.ASSIGN_TICKET, entities, "user1", True)

    def test_missing_ticket_id_denied(self, processor):
        assert not processor.validate_user_operation(TicketOperation.CLOSE_TICKET, ExtractedEntities(), "user1", False)

    def test_unknown_ticket_denied(self, processor):
        entities = _entities(_entity(EntityType.TICKET_ID, "999"))
        assert not processor.validate_user_operation(TicketOperation.CLOSE_TICKET, entities, "user1", False)

    def test_lookup_failure_denied(self):
        store = MagicMock()
        store.get_ticket_by_ticket_id.side_effect = RuntimeError("timeout")
        entities = _entities(_entity(EntityType.TICKET_ID, "1"))
        assert not QueryProcessor(store).validate_user_operation(TicketOperation.CLOSE_TICKET, entities, "user1", False)


class TestTicketQueries:
    """Test role-scoped ticket reads."""

    def test_user_tickets_scoped(self, processor):
        result = processor.execute_ticket_query(TicketQueryType.USER_TICKETS, {}, "user1", False)
        assert result.result_type == QueryResultType.TICKET_LIST
        assert _ids(result) == ["1", "2"]
        assert result.record_count == 2

    def test_active_for_user(self, processor):
        result = processor.execute_ticket_query(TicketQueryType.ACTIVE_TICKETS, {}, "user1", False)
        assert _ids(result) == ["1"]

    def test_active_ignores_status_filter(self, processor):
        result = processor.execute_ticket_query(TicketQueryType.ACTIVE_TICKETS, {"status": "rejected"}, "user1", False)
        assert _ids(result) == ["1"]

    def test_completed_includes_closed(self, processor):
        result = processor.execute_ticket_query(TicketQueryType.COMPLETED_TICKETS, {}, "admin", True)
        assert sorted(_ids(result)) == ["2", "3"]

    def test_active_for_admin(self, processor):
        result = processor.execute_ticket_query(TicketQueryType.ACTIVE_TICKETS, {}, "admin", True)
        assert _ids(result) == ["1", "5"]

    @pytest.mark.parametrize(
        "filters,expected",
        [
            ({"status": "rejected"}, ["4"]),
            ({"status": "open"}, ["1", "5"]),
            ({"emergencyType": "logistics"}, ["3"]),
            ({"ticketId": "2"}, ["2"]),
            ({}, ["1", "2", "3", "4", "5"]),
        ],
    )
    def test_filter_search_as_admin(self, processor, filters, expected):
        result = processor.execute_ticket_query(TicketQueryType.TICKET_LIST_BY_FILTER, filters, "admin", True)
        assert _ids(result) == expected

    def test_filter_search_by_duration_and_date(self):
        store = InMemoryTicketStore(
            [
                Ticket(ticket_id="1", status="Active", user_id="user1", duration=120, request_date="2024-01-05T09:30:00"),
                Ticket(ticket_id="2", status="Active", user_id="user1", duration=30, request_date="2024-01-05T11:00:00"),
                Ticket(ticket_id="3", status="Active", user_id="user1", request_date="2024-02-01T08:00:00"),
            ]
        )
        processor = QueryProcessor(store)

        by_duration = processor.execute_ticket_query(
            TicketQueryType.TICKET_LIST_BY_FILTER, {"duration": 120}, "admin", True
        )
        by_date = processor.execute_ticket_query(
            TicketQueryType.TICKET_LIST_BY_FILTER, {"date": "2024-01-05"}, "admin", True
        )
        both = processor.execute_ticket_query(
            TicketQueryType.TICKET_LIST_BY_FILTER, {"date": "2024-01-05", "duration": 30}, "user1", False
        )
        assert _ids(by_duration) == ["1"]
        assert _ids(by_date) == ["1", "2"]
        assert _ids(both) == ["2"]

    def test_filter_search_scoped_for_user(self, processor):
        result = processor.execute_ticket_query(
            TicketQueryType.TICKET_LIST_BY_FILTER, {"emergencyType": "logistics"}, "user1", False
        )
        assert result.success
        assert result.record_count == 0

    def test_all_tickets_requires_admin(self, processor):
        result = processor.execute_ticket_query(TicketQueryType.ALL_TICKETS, {}, "user1", False)
        assert not result.success
        assert result.result_type == QueryResultType.ERROR

    def test_all_tickets_for_admin(self, processor):
        result = processor.execute_ticket_query(TicketQueryType.ALL_TICKETS, {}, "admin", True)
        assert result.record_count == 5

    def test_system_stats_sum(self, processor):
        result = processor.execute_ticket_query(TicketQueryType.SYSTEM_STATS, {}, "admin", True)
        stats = result.data
        assert result.result_type == QueryResultType.STATISTICS
        assert stats["scope"] == "system"
        assert stats["totalTickets"] == sum(stats["countsPerStatus"].values()) == 5
        assert stats["countsPerStatus"] == {"Active": 2, "Completed": 1, "Closed": 1, "Rejected": 1}

    def test_user_stats_scoped(self, processor):
        stats = processor.execute_ticket_query(TicketQueryType.SYSTEM_STATS, {}, "user1", False).data
        assert stats["scope"] == "user"
        assert stats["totalTickets"] == sum(stats["countsPerStatus"].values()) == 2

    def test_details_for_owner(self, processor):
        result = processor.execute_ticket_query(TicketQueryType.TICKET_DETAILS, {"ticketId": "1"}, "user1", False)
        assert result.result_type == QueryResultType.TICKET_DETAILS
        assert result.data.description == "VPN access"

    def test_details_hidden_from_other_users(self, processor):
        result = processor.execute_ticket_query(TicketQueryType.TICKET_DETAILS, {"ticketId": "3"}, "user1", False)
        assert not result.success
        assert "#3" in result.message

    def test_details_need_ticket_id(self, processor):
        result = processor.execute_ticket_query(TicketQueryType.TICKET_DETAILS, {}, "user1", False)
        assert not result.success

    def test_export_csv(self, processor):
        result = processor.execute_ticket_query(TicketQueryType.EXPORT_DATA, {}, "admin", True)
        lines = result.data.splitlines()
        assert result.result_type == QueryResultType.EXPORT
        assert result.record_count == 5
        assert lines[0].startswith("ticketId,status,userId")
        assert len(lines) == 6
        assert lines[1].startswith("1,Active,user1,hr")

    def test_store_failure_becomes_error_result(self):
        store = MagicMock()
        store.get_tickets_by_user_id.side_effect = RuntimeError("connection refused")
        result = QueryProcessor(store).execute_ticket_query(TicketQueryType.USER_TICKETS, {}, "user1", False)
        assert result.result_type == QueryResultType.ERROR
        assert not result.success
        assert "unavailable" in result.message
        assert "connection refused" not in result.message


class TestTicketOperations:
    """Test ticket writes."""

    def test_close_own_ticket(self, processor, store):
        entities = _entities(_entity(EntityType.TICKET_ID, "1"))
        result = processor.execute_ticket_operation(TicketOperation.CLOSE_TICKET, entities, "user1", False)
        assert result.result_type == QueryResultType.OPERATION_RESULT
        assert result.operation == TicketOperation.CLOSE_TICKET
        assert result.data.status == "Completed"
        assert store.get_ticket_by_ticket_id("1").status == "Completed"

    def test_close_other_users_ticket_denied(self, processor, store):
        entities = _entities(_entity(EntityType.TICKET_ID, "1"))
        result = processor.execute_ticket_operation(TicketOperation.CLOSE_TICKET, entities, "user2", False)
        assert not result.success
        assert "Permission denied" in result.message
        assert store.get_ticket_by_ticket_id("1").status == "Active"

    @pytest.mark.parametrize(
        "status,stored",
        [("rejected", "Rejected"), ("open", "Active"), ("completed", "Completed"), ("closed", "Closed")],
    )
    def test_update_status_spelling(self, processor, store, status, stored):
        entities = _entities(_entity(EntityType.TICKET_ID, "1"), _entity(EntityType.STATUS, status))
        result = processor.execute_ticket_operation(TicketOperation.UPDATE_TICKET_STATUS, entities, "user1", False)
        assert result.data.status == stored
        assert store.get_ticket_by_ticket_id("1").status == stored

    def test_update_status_needs_status(self, processor):
        entities = _entities(_entity(EntityType.TICKET_ID, "1"))
        result = processor.execute_ticket_operation(TicketOperation.UPDATE_TICKET_STATUS, entities, "user1", False)
        assert not result.success

    def test_update_priority(self, processor):
        entities = _entities(_entity(EntityType.TICKET_ID, "3"), _entity(EntityType.PRIORITY, "high"))
        result = processor.execute_ticket_operation(TicketOperation.UPDATE_PRIORITY, entities, "admin", True)
        assert result.data.priority == "High"

    def test_assign_as_admin(self, processor, store):
        entities = _entities(_entity(EntityType.TICKET_ID, "3"), _entity(EntityType.USER_NAME, "jdoe"))
        result = processor.execute_ticket_operation(TicketOperation.ASSIGN_TICKET, entities, "admin", True)
        assert result.data.assigned_to == "jdoe"
        assert store.get_ticket_by_ticket_id("3").assigned_to == "jdoe"

    def test_assign_as_owner_denied(self, processor, store):
        entities = _entities(_entity(EntityType.TICKET_ID, "1"), _entity(EntityType.USER_NAME, "jdoe"))
        result = processor.execute_ticket_operation(TicketOperation.ASSIGN_TICKET, entities, "user1", False)
        assert not result.success
        assert store.get_ticket_by_ticket_id("1").assigned_to is None

    def test_create_from_entities(self, processor, store):
        entities = _entities(
            _entity(EntityType.DESCRIPTION, "payroll locked"),
            _entity(EntityType.EMERGENCY_TYPE, "hr"),
            _entity(EntityType.PHONE, "5551234567"),
            _entity(EntityType.DURATION, "120"),
        )
        result = processor.execute_ticket_operation(
            TicketOperation.CREATE_TICKET, entities, "user1", False, "create ticket ..."
        )
        ticket = result.data
        assert result.operation == TicketOperation.CREATE_TICKET
        assert ticket.ticket_id == "6"
        assert ticket.status == "Active"
        assert ticket.user_id == "user1"
        assert ticket.description == "payroll locked"
        assert ticket.emergency_type == "hr"
        assert ticket.emergency_contact == "5551234567"
        assert ticket.duration == 120
        assert store.exists_ticket("6")

    def test_create_falls_back_to_query(self, processor):
        result = processor.execute_ticket_operation(
            TicketOperation.CREATE_TICKET, ExtractedEntities(), "user1", False, "  new ticket please  "
        )
        assert result.data.description == "new ticket please"

    def test_admin_update_of_missing_ticket(self, processor):
        entities = _entities(_entity(EntityType.TICKET_ID, "999"))
        result = processor.execute_ticket_operation(TicketOperation.CLOSE_TICKET, entities, "admin", True)
        assert not result.success
        assert "#999" in result.message

    def test_store_failure_on_write(self):
        store = MagicMock()
        store.get_ticket_by_ticket_id.return_value = Ticket(ticket_id="1", status="Active", user_id="user1")
        store.update_ticket_status.side_effect = RuntimeError("503")
        entities = _entities(_entity(EntityType.TICKET_ID, "1"))
        result = QueryProcessor(store).execute_ticket_operation(TicketOperation.CLOSE_TICKET, entities, "user1", False)
        assert result.result_type == QueryResultType.ERROR
        assert "unavailable" in result.message


class TestProcess:
    """Test intent dispatch to queries and operations."""

    def test_read_intent(self, processor):
        intent = Intent(type=IntentType.SHOW_ACTIVE_TICKETS, confidence=1.0)
        result = processor.process(intent, ExtractedEntities(), "user1", False)
        assert _ids(result) == ["1"]

    def test_write_intent(self, processor):
        intent = Intent(type=IntentType.CLOSE_TICKET, confidence=1.0, original_query="close ticket #1")
        result = processor.process(intent, _entities(_entity(EntityType.TICKET_ID, "1")), "user1", False)
        assert result.operation == TicketOperation.CLOSE_TICKET

    def test_search_uses_entities(self, processor):
        intent = Intent(type=IntentType.SEARCH_TICKETS, confidence=1.0)
        entities = _entities(_entity(EntityType.STATUS, "completed"))
        result = processor.process(intent, entities, "user1", False)
        assert _ids(result) == ["2"]

    def test_meta_intent_unsupported(self, processor):
        result = processor.process(Intent(type=IntentType.GET_HELP, confidence=1.0), ExtractedEntities(), "user1", False)
        assert not result.success
