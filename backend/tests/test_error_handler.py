from datetime import datetime
from datetime import timedelta

import pytest

from agentos.services.error_handler import DEFAULT_FALLBACK_MESSAGES
from agentos.services.error_handler import GENERIC_FALLBACK_MESSAGE
from agentos.services.error_handler import ErrorHandler


class Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return Clock(datetime(2024, 3, 20, 12, 0, 0))


@pytest.fixture
def handler(repository, clock):
    return ErrorHandler(repository, clock=clock)


def test_fallback_resolution_order(handler):
    assert handler.get_fallback_message("gmail", "agent-1") == DEFAULT_FALLBACK_MESSAGES["gmail"]

    handler.set_fallback_message("gmail", "Tool-wide gmail fallback")
    assert handler.get_fallback_message("gmail", "agent-1") == "Tool-wide gmail fallback"

    handler.set_fallback_message("gmail", "Agent specific", agent_id="agent-1")
    assert handler.get_fallback_message("gmail", "agent-1") == "Agent specific"
    assert handler.get_fallback_message("gmail", "agent-2") == "Tool-wide gmail fallback"
    assert handler.get_fallback_message("gmail") == "Tool-wide gmail fallback"


def test_unknown_tool_gets_generic_fallback(handler):
    message = handler.get_fallback_message("trello", "agent-1")
    assert message == GENERIC_FALLBACK_MESSAGE
    assert message


def test_builtin_fallbacks():
    assert DEFAULT_FALLBACK_MESSAGES["slack"] == "Unable to send message to Slack. Please try again later."
    assert DEFAULT_FALLBACK_MESSAGES["notion"] == (
        "Unable to complete Notion action. Your content has been saved locally."
    )


def test_set_fallback_upserts_and_rejects_empty(handler, repository):
    handler.set_fallback_message("slack", "first", agent_id="a1", updated_by="ops@example.com")
    handler.set_fallback_message("slack", "second", agent_id="a1")

    row = repository.get_fallback("slack", "a1")
    assert row.message == "second"
    assert handler.get_fallback_message("slack", "a1") == "second"

    with pytest.raises(ValueError):
        handler.set_fallback_message("slack", "   ")


def test_error_count_window_and_policies(handler, clock):
    for _ in range(3):
        handler.log_error("gmail", "500", "boom", agent_id="a1")

    assert handler.get_error_count("a1", "gmail") == 3
    assert handler.get_error_count("a2", "gmail") == 0
    # gmail allows 3 attempts
    assert handler.should_retry("a1", "gmail") is False
    assert handler.should_retry("a1", "trello") is True

    clock.now += timedelta(hours=2)
    assert handler.get_error_count("a1", "gmail") == 0
    assert handler.should_retry("a1", "gmail") is True


def test_tool_disabled_after_more_than_ten_errors(handler):
    for _ in range(10):
        handler.log_error("slack", "429", "rate limited", agent_id="a1")
    assert handler.should_disable_tool("a1", "slack") is False

    handler.log_error("slack", "429", "rate limited", agent_id="a1")
    assert handler.should_disable_tool("a1", "slack") is True


def test_resolve_and_bulk_resolve(handler, repository):
    first = handler.log_error("gmail", "500", "one", agent_id="a1")
    second = handler.log_error("gmail", "500", "two", agent_id="a1")
    third = handler.log_error("gmail", "500", "three", agent_id="a1")

    assert handler.resolve_error(first.id) is True
    assert handler.resolve_error("missing") is False
    assert handler.bulk_resolve_errors([]) == 0
    assert handler.bulk_resolve_errors([second.id, third.id, "missing"]) == 2

    for record in (first, second, third):
        repository.db.refresh(record)
        assert record.resolved is True
        assert record.resolved_at is not None


def test_agent_errors_newest_first(handler, clock):
    handler.log_error("gmail", "500", "old", agent_id="a1")
    clock.now += timedelta(minutes=5)
    handler.log_error("gmail", "500", "new", agent_id="a1")

    assert [e.message for e in handler.get_agent_errors("a1")] == ["new", "old"]
    assert [e.message for e in handler.get_agent_errors("a1", limit=1)] == ["new"]


def test_error_trends_zero_filled_ascending(handler, clock):
    handler.log_error("gmail", "500", "today")
    handler.log_error("slack", "500", "today")
    clock.now -= timedelta(days=2)
    handler.log_error("gmail", "500", "two days ago")
    clock.now += timedelta(days=2)

    trends = handler.get_error_trends(days=3)
    assert trends == [
        {"date": "2024-03-18", "count": 1},
        {"date": "2024-03-19", "count": 0},
        {"date": "2024-03-20", "count": 2},
    ]
    assert [t["count"] for t in handler.get_error_trends(days=3, tool="slack")] == [0, 0, 1]
    assert len(handler.get_error_trends()) == 30


def test_stats_and_top_codes(handler):
    for code in ("401", "401", "500"):
        handler.log_error("gmail", code, "x")
    handler.log_error("asana", "404", "x")

    assert handler.get_error_stats_by_tool() == {"gmail": 3, "asana": 1}
    top = handler.get_most_frequent_error_codes(limit=2)
    assert top[0] == {"error_code": "401", "count": 2}
    assert len(top) == 2
