"""
Runtime Kernel — Widget Store Trigger, Snapshot and Sweep Tests

Triggers are observed by exactly one rerun. Sweeping unseen widgets is
idempotent and keeps form accounting consistent.
"""

import pytest

from runtime.kernel.forms import FormsAggregator
from runtime.kernel.types import reason_code
from runtime.kernel.widget_store import WidgetStateStore


@pytest.fixture
def forms():
    return FormsAggregator()


@pytest.fixture
def store(forms):
    return WidgetStateStore(forms)


# ============================================================================
# Triggers
# ============================================================================


class TestTrigger:
    def test_consume_once(self, store):
        store.set_trigger("btn")
        assert store.consume_trigger("btn") is True
        assert store.consume_trigger("btn") is False

    def test_set_trigger_requests_rerun(self, store):
        result = store.set_trigger("btn")
        assert result.accepted
        assert result.rerun_needed

    def test_unknown_trigger_consumes_false(self, store):
        assert store.consume_trigger("ghost") is False

    def test_consume_non_trigger_is_false(self, store):
        store.set_value("x", "int", 1, from_ui=True)
        assert store.consume_trigger("x") is False
        assert store.get_value("x").value == 1

    def test_check_trigger_reasons(self, store):
        store.set_value("x", "int", 1, from_ui=True)
        assert reason_code(store.check_trigger("ghost").reason) == "UNKNOWN_WIDGET"
        assert reason_code(store.check_trigger("x").reason) == "NOT_A_TRIGGER"
        store.set_trigger("btn")
        assert store.check_trigger("btn").accepted

    def test_set_value_with_trigger_kind_fires(self, store):
        result = store.set_value("btn", "trigger", True, from_ui=True)
        assert result.rerun_needed
        assert store.consume_trigger("btn") is True

    def test_backend_declaration_does_not_fire(self, store):
        store.set_value("btn", "trigger", False, from_ui=False)
        assert store.consume_trigger("btn") is False
        assert store.take_snapshot() == {}

    def test_trigger_in_form_is_not_buffered(self, store, forms):
        result = store.set_trigger("submit", form_id="f")
        assert result.rerun_needed
        assert forms.dirty_count("f") == 0
        assert "submit" in store.take_snapshot()

    def test_string_trigger(self, store):
        store.set_string_trigger("chat", "hello")
        assert store.take_snapshot() == {"chat": {"string_trigger_value": {"data": "hello"}}}
        assert store.take_snapshot() == {}

    def test_string_trigger_rejects_non_str(self, store):
        result = store.set_string_trigger("chat", 5)
        assert not result.accepted
        assert reason_code(result.reason) == "MALFORMED_VALUE"
        assert "chat" not in store

    def test_empty_string_trigger_still_fires(self, store):
        store.set_string_trigger("chat", "")
        assert store.consume_trigger("chat") is True


# ============================================================================
# Snapshot
# ============================================================================


class TestSnapshot:
    def test_trigger_in_exactly_one_snapshot(self, store):
        store.set_value("x", "int", 1, from_ui=True)
        store.set_trigger("btn")
        first = store.take_snapshot()
        second = store.take_snapshot()
        assert first == {"x": {"int_value": 1}, "btn": {"trigger_value": True}}
        assert second == {"x": {"int_value": 1}}

    def test_snapshot_without_consume_keeps_pulse(self, store):
        store.set_trigger("btn")
        store.take_snapshot(consume_triggers=False)
        assert store.consume_trigger("btn") is True

    def test_snapshot_is_deterministic(self, store):
        store.set_value("b", "json", {"y": 1, "x": 2}, from_ui=True)
        store.set_value("a", "bytes", b"\x01", from_ui=True)
        assert store.take_snapshot() == store.take_snapshot()

    def test_trigger_refires_after_consume(self, store):
        store.set_trigger("btn")
        store.take_snapshot()
        store.set_trigger("btn")
        assert store.take_snapshot() == {"btn": {"trigger_value": True}}


# ============================================================================
# Sweep
# ============================================================================


class TestSweep:
    def test_removes_unseen(self, store):
        for wid in ("a", "b", "c"):
            store.set_value(wid, "int", 1, from_ui=False)
        removed = store.sweep_unseen({"a"})
        assert removed == ["b", "c"]
        assert store.widget_ids() == {"a"}

    def test_idempotent(self, store):
        store.set_value("a", "int", 1, from_ui=False)
        store.set_value("b", "int", 1, from_ui=False)
        assert store.sweep_unseen({"a"}) == ["b"]
        assert store.sweep_unseen({"a"}) == []
        assert store.widget_ids() == {"a"}

    def test_sweep_of_dirty_widget_fixes_form_count(self, store, forms):
        store.set_value("w", "string", "a", from_ui=False, form_id="f")
        store.set_value("w", "string", "b", from_ui=True, form_id="f")
        assert forms.dirty_count("f") == 1
        store.sweep_unseen(set())
        assert forms.dirty_count("f") == 0

    def test_listener_told_of_removal(self, store):
        seen = []
        store.set_value("a", "int", 1, from_ui=False)
        store.subscribe("a", lambda wid, value: seen.append(value))
        store.sweep_unseen(set())
        assert seen == [None]

    def test_sweep_drops_element_state(self, store):
        store.set_value("a", "int", 1, from_ui=False)
        store.set_element_state("a", "expanded", True)
        store.set_element_state("gone", "expanded", True)
        store.sweep_unseen({"a"})
        assert store.get_element_state("a", "expanded") is True
        assert store.get_element_state("gone", "expanded") is None

    def test_sweep_keeps_state_of_listed_element_ids(self, store):
        store.set_value("a", "int", 1, from_ui=False)
        store.set_element_state("chart1", "zoom", 2)
        store.set_element_state("a", "expanded", True)
        removed = store.sweep_unseen({"a"}, {"a", "chart1"})
        assert removed == []
        assert store.get_element_state("chart1", "zoom") == 2
        assert store.get_element_state("a", "expanded") is True

        store.sweep_unseen({"a"}, {"a"})
        assert store.get_element_state("chart1", "zoom") is None


# ============================================================================
# Element state
# ============================================================================


class TestElementState:
    def test_set_get(self, store):
        store.set_element_state("chart", "zoom", 2)
        assert store.get_element_state("chart", "zoom") == 2
        assert store.get_element_state("chart", "pan") is None

    def test_not_in_snapshot(self, store):
        store.set_element_state("chart", "zoom", 2)
        assert store.take_snapshot() == {}

    def test_delete_key_and_element(self, store):
        store.set_element_state("chart", "zoom", 2)
        store.set_element_state("chart", "pan", 1)
        store.delete_element_state("chart", "zoom")
        assert store.get_element_state("chart", "zoom") is None
        assert store.get_element_state("chart", "pan") == 1
        store.delete_element_state("chart")
        assert store.get_element_state("chart", "pan") is None
