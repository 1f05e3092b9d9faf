"""
Tests for the sync bridge: inbound dispatch, outbound rerun requests, and
form bookkeeping driven by tree events.
"""

import logging

import pytest

from client.models.messages import RerunRequested, RunStarted, TreeDelta
from client.services.sync_bridge import SyncBridge
from runtime.kernel.forms import FormsAggregator
from runtime.kernel.messages import block_delta, element_delta, run_finished, run_started, widget_default
from runtime.kernel.output_tree import OutputTree
from runtime.kernel.reconciler import RunReconciler
from runtime.kernel.widget_store import WidgetStateStore


@pytest.fixture
def sent():
    return []


@pytest.fixture
def bridge(sent):
    forms = FormsAggregator()
    store = WidgetStateStore(forms)
    tree = OutputTree()
    reconciler = RunReconciler(tree, store)
    return SyncBridge(store, forms, tree, reconciler, sent.append)


# ============================================================================
# Outbound
# ============================================================================


class TestSendRerunRequest:
    def test_snapshot_of_store(self, bridge, sent):
        bridge.store.set_value("x", "int", 3, from_ui=True)
        msg = bridge.send_rerun_request()
        assert isinstance(msg, RerunRequested)
        assert sent == [msg]
        assert msg.widget_values == {"x": {"int_value": 3}}
        assert bridge.sent_count == 1

    def test_explicit_snapshot(self, bridge, sent):
        msg = bridge.send_rerun_request({"y": {"bool_value": True}}, form_id="f", form_submit_count=2)
        assert msg.widget_values == {"y": {"bool_value": True}}
        assert msg.form_id == "f"
        assert msg.form_submit_count == 2

    def test_empty_form_id_is_omitted(self, bridge):
        msg = bridge.send_rerun_request(form_id="")
        assert msg.form_id is None
        assert msg.fragment_ids is None

    def test_serialized_shape(self, bridge):
        bridge.store.set_value("x", "string", "a", from_ui=True)
        data = bridge.send_rerun_request().model_dump(exclude_none=True)
        assert data == {"type": "rerun_requested", "widget_values": {"x": {"string_value": "a"}}}

    def test_logs_request(self, bridge, caplog):
        with caplog.at_level(logging.INFO, logger="client.services.sync_bridge"):
            bridge.send_rerun_request(fragment_ids=["frag"])
        assert "rerun requested" in caplog.text


# ============================================================================
# Inbound
# ============================================================================


class TestInboundDispatch:
    def test_accepts_models(self, bridge):
        assert bridge.on_inbound_message(RunStarted(run_id="r1"))
        assert bridge.on_inbound_message(TreeDelta(path=[0], run_id="r1", payload={"element": {"type": "text"}}))
        assert (0,) in bridge.tree

    def test_accepts_dicts(self, bridge):
        assert bridge.on_inbound_message(run_started("r1"))
        assert bridge.on_inbound_message(element_delta([0], "r1", "text", body="hi"))
        assert bridge.on_inbound_message(run_finished("r1"))
        assert bridge.tree.get((0,)).element["body"] == "hi"

    def test_fragment_ids_reach_reconciler(self, bridge):
        bridge.on_inbound_message(run_started("r1", fragment_ids=["a", "b"]))
        assert bridge.reconciler.fragment_ids == ["a", "b"]

    def test_widget_default_commits(self, bridge):
        assert bridge.on_inbound_message(widget_default("w", "double_array", [1, 2], form_id="f"))
        committed = bridge.store.get_committed("w")
        assert committed.value == [1.0, 2.0]
        assert bridge.store.get_form_id("w") == "f"

    def test_widget_default_kind_mismatch(self, bridge, caplog):
        msg = {"type": "widget_default", "id": "w", "kind": "int", "value": {"bool_value": True}}
        with caplog.at_level(logging.WARNING):
            assert not bridge.on_inbound_message(msg)
        assert "malformed widget_default" in caplog.text
        assert "w" not in bridge.store

    def test_stale_delta_logged(self, bridge, caplog):
        bridge.on_inbound_message(run_started("r1"))
        bridge.on_inbound_message(run_started("r2"))
        with caplog.at_level(logging.WARNING):
            assert not bridge.on_inbound_message(element_delta([0], "r1", "text"))
        assert "ignoring stale tree_delta" in caplog.text

    def test_rejected_delta_logged(self, bridge, caplog):
        bridge.on_inbound_message(run_started("r1"))
        with caplog.at_level(logging.WARNING):
            assert not bridge.on_inbound_message(element_delta([3, 0], "r1", "text"))
        assert "PARENT_NOT_FOUND" in caplog.text

    def test_invalid_status_dropped(self, bridge):
        bridge.on_inbound_message(run_started("r1"))
        assert not bridge.on_inbound_message({"type": "run_finished", "run_id": "r1", "status": "exploded"})
        assert bridge.reconciler.running


# ============================================================================
# Form bookkeeping
# ============================================================================


class TestFormBookkeeping:
    def test_form_block_registers_options(self, bridge):
        bridge.on_inbound_message(run_started("r1"))
        bridge.on_inbound_message(block_delta([0], "r1", type="form", form_id="f", clear_on_submit=True))
        data = bridge.forms.get("f")
        assert data.clear_on_submit is True
        assert data.enter_to_submit is True

    def test_submit_button_tracked_with_tree(self, bridge):
        bridge.on_inbound_message(run_started("r1"))
        bridge.on_inbound_message(block_delta([0], "r1", type="form", form_id="f"))
        bridge.on_inbound_message(element_delta([0, 0], "r1", "form_submit_button", widget_id="go"))
        assert bridge.forms.get("f").submit_buttons == ["go"]

        bridge.on_inbound_message(run_finished("r1"))
        bridge.on_inbound_message(run_started("r2"))
        bridge.on_inbound_message(block_delta([0], "r2", type="form", form_id="f"))
        bridge.on_inbound_message(run_finished("r2"))
        assert bridge.forms.get("f").submit_buttons == []

    def test_replaced_button_stays_registered_once(self, bridge):
        bridge.on_inbound_message(run_started("r1"))
        bridge.on_inbound_message(block_delta([0], "r1", type="form", form_id="f"))
        bridge.on_inbound_message(element_delta([0, 0], "r1", "form_submit_button", widget_id="go", label="Go"))
        bridge.on_inbound_message(run_started("r2"))
        bridge.on_inbound_message(element_delta([0, 0], "r2", "form_submit_button", widget_id="go", label="Send"))
        assert bridge.forms.get("f").submit_buttons == ["go"]

    def test_button_outside_form_ignored(self, bridge):
        bridge.on_inbound_message(run_started("r1"))
        bridge.on_inbound_message(element_delta([0], "r1", "form_submit_button", widget_id="go"))
        assert bridge.forms.all() == {}
