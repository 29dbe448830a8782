"""Unit tests for the request-scoped monitor context."""

from aigen.utils.monitor import MonitorContext, current_monitor_context, monitor_context


def test_context_is_bound_only_inside_block():
    assert current_monitor_context() == MonitorContext()

    with monitor_context(user_id="1001", app_id="42") as context:
        assert current_monitor_context() is context
        assert context.app_id == "42"

    assert current_monitor_context() == MonitorContext()
