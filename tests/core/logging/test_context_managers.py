"""Tests for logging context managers."""

import pytest

from core.logging.context import clear_log_context, get_log_context, set_log_context
from core.logging.context_managers import LogContext


@pytest.fixture(autouse=True)
def reset_context():
    """Reset log context before each test."""
    clear_log_context()
    yield
    clear_log_context()


class TestLogContext:

    def test_sets_context_inside_block(self):
        with LogContext(stage="publish", event_id="e1"):
            ctx = get_log_context()
            assert ctx["stage"] == "publish"
            assert ctx["event_id"] == "e1"

    def test_restores_previous_context(self):
        set_log_context(stage="refresh", dimension="clusters")

        with LogContext(stage="publish", event_id="e1"):
            assert get_log_context()["dimension"] == "clusters"

        ctx = get_log_context()
        assert ctx["stage"] == "refresh"
        assert ctx["dimension"] == "clusters"
        assert ctx["event_id"] == ""

    def test_restores_on_exception(self):
        with pytest.raises(RuntimeError):
            with LogContext(dimension="allowlist"):
                raise RuntimeError("boom")

        assert get_log_context()["dimension"] == ""

    def test_none_values_leave_context_untouched(self):
        set_log_context(event_id="e9")
        with LogContext(stage="publish"):
            assert get_log_context()["event_id"] == "e9"
