"""
Backend sync bridge.

Translates inbound backend messages into reconciler/store mutations and
store snapshots into outbound rerun requests. Delivery itself belongs to the
transport; the bridge only hands finished messages to a callable.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any

from pydantic import ValidationError

from client.models.messages import (
    RerunRequested,
    RunFinished,
    RunStarted,
    TreeDelta,
    WidgetDefault,
    parse_inbound,
)
from runtime.kernel.codec import decode
from runtime.kernel.forms import FormsAggregator
from runtime.kernel.output_tree import OutputTree
from runtime.kernel.reconciler import RunReconciler
from runtime.kernel.types import (
    STALE_RUN_DELTA,
    BlockNode,
    ElementNode,
    MalformedValue,
    OutputNode,
    Path,
    path_key,
    reason_code,
)
from runtime.kernel.widget_store import WidgetStateStore

logger = logging.getLogger(__name__)

Transport = Callable[[RerunRequested], None]

# Element types that act as a form's submit button
SUBMIT_BUTTON_TYPES = {"form_submit_button"}


class SyncBridge:
    """Adapter between the session core and the external transport."""

    def __init__(
        self,
        store: WidgetStateStore,
        forms: FormsAggregator,
        tree: OutputTree,
        reconciler: RunReconciler,
        transport: Transport,
    ) -> None:
        self.store = store
        self.forms = forms
        self.tree = tree
        self.reconciler = reconciler
        self.transport = transport
        self.sent_count = 0

        # path key → (form_id, button widget id) of mounted submit buttons
        self._submit_buttons: dict[str, tuple[str, str]] = {}
        tree.subscribe(self._on_tree_event)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def send_rerun_request(
        self,
        snapshot: dict[str, dict[str, Any]] | None = None,
        *,
        form_id: str | None = None,
        form_submit_count: int | None = None,
        fragment_ids: Iterable[str] | None = None,
    ) -> RerunRequested:
        """
        Build one RerunRequested carrying every widget value and hand it to
        the transport. Without an explicit snapshot, the store's snapshot is
        taken, which also clears pending trigger pulses.
        """
        if snapshot is None:
            snapshot = self.store.take_snapshot()

        msg = RerunRequested(
            widget_values=snapshot,
            form_id=form_id or None,
            form_submit_count=form_submit_count,
            fragment_ids=list(fragment_ids) if fragment_ids else None,
        )
        self.transport(msg)
        self.sent_count += 1
        logger.info(
            "bridge: rerun requested widgets=%d form_id=%s fragments=%s",
            len(snapshot),
            msg.form_id,
            msg.fragment_ids,
        )
        return msg

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def on_inbound_message(self, msg: RunStarted | TreeDelta | RunFinished | WidgetDefault | dict[str, Any]) -> bool:
        """
        Dispatch one inbound message. Accepts a validated model or a raw dict.
        Returns True if the message was applied.
        """
        if isinstance(msg, dict):
            try:
                msg = parse_inbound(msg)
            except ValidationError as e:
                logger.warning("bridge: dropping invalid inbound message: %s", e.errors()[:3])
                return False

        if isinstance(msg, RunStarted):
            result = self.reconciler.begin_run(msg.run_id, msg.fragment_ids)
            if result.accepted:
                logger.info("bridge: run started run_id=%s fragments=%s", msg.run_id, msg.fragment_ids)
            return self._report(result.accepted, result.reason, "run_started")

        if isinstance(msg, TreeDelta):
            result = self.reconciler.apply_delta(msg.path, msg.run_id, msg.payload, msg.fragment_id)
            return self._report(result.accepted, result.reason, "tree_delta")

        if isinstance(msg, RunFinished):
            result = self.reconciler.finish_run(msg.run_id, msg.status)
            if result.accepted:
                logger.info(
                    "bridge: run finished run_id=%s status=%s pruned=%d swept=%d",
                    msg.run_id,
                    msg.status,
                    len(result.removed),
                    len(result.swept_widgets),
                )
            return self._report(result.accepted, result.reason, "run_finished")

        if isinstance(msg, WidgetDefault):
            return self._apply_widget_default(msg)

        logger.warning("bridge: unhandled inbound message %r", msg)
        return False

    def _apply_widget_default(self, msg: WidgetDefault) -> bool:
        try:
            value = decode(msg.kind, msg.value)
        except MalformedValue as e:
            logger.warning("bridge: malformed widget_default for id=%s, keeping previous value: %s", msg.id, e)
            return False
        result = self.store.set_value(msg.id, msg.kind, value, from_ui=False, form_id=msg.form_id)
        return self._report(result.accepted, result.reason, "widget_default")

    @staticmethod
    def _report(accepted: bool, reason: str | None, msg_type: str) -> bool:
        if accepted:
            return True
        if reason_code(reason) == STALE_RUN_DELTA:
            # Indicates reordering somewhere between backend and client
            logger.warning("bridge: ignoring stale %s: %s", msg_type, reason)
        else:
            logger.warning("bridge: rejected %s: %s", msg_type, reason)
        return False

    # ------------------------------------------------------------------
    # Form bookkeeping driven by tree events
    # ------------------------------------------------------------------

    def _on_tree_event(self, change: str, path: Path, node: OutputNode) -> None:
        if change == "restamped":
            return
        self._drop_submit_button(path)
        if change == "removed":
            return

        if isinstance(node, BlockNode) and node.form_id:
            self.forms.register_form(
                node.form_id,
                clear_on_submit=bool(node.layout.get("clear_on_submit", False)),
                enter_to_submit=bool(node.layout.get("enter_to_submit", True)),
            )
        elif isinstance(node, ElementNode) and node.element.get("type") in SUBMIT_BUTTON_TYPES:
            if node.form_id and node.widget_id:
                self._submit_buttons[path_key(path)] = (node.form_id, node.widget_id)
                self.forms.add_submit_button(node.form_id, node.widget_id)

    def _drop_submit_button(self, path: Path) -> None:
        registered = self._submit_buttons.pop(path_key(path), None)
        if registered is not None:
            self.forms.remove_submit_button(*registered)
