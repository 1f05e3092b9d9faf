"""
Client session.

One AppSession per connection: it builds the widget store, forms
aggregator, output tree, run reconciler and sync bridge, and is the only
entry point the rendering layer uses to mutate them. Rejected operations are
logged here and reported back as results; none of them ends the session.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any

from client.config import settings
from client.models.messages import RerunRequested
from client.services.sync_bridge import SyncBridge, Transport
from runtime.kernel.forms import FormsAggregator, FormsListener
from runtime.kernel.output_tree import OutputTree, TreeListener
from runtime.kernel.reconciler import RunReconciler
from runtime.kernel.types import (
    NO_FORM,
    SUBMIT_WHILE_BLOCKED,
    SetResult,
    SubmitResult,
    WidgetValue,
    reason_code,
)
from runtime.kernel.widget_store import ValueListener, WidgetStateStore

logger = logging.getLogger(__name__)


class AppSession:
    """Session-scoped core: store, forms, tree, reconciler and bridge."""

    def __init__(self, transport: Transport, *, sweep_widgets: bool | None = None) -> None:
        if sweep_widgets is None:
            sweep_widgets = settings.SWEEP_UNSEEN_WIDGETS

        self.forms = FormsAggregator()
        self.store = WidgetStateStore(self.forms)
        self.tree = OutputTree()
        self.reconciler = RunReconciler(self.tree, self.store, sweep_widgets=sweep_widgets)
        self.bridge = SyncBridge(self.store, self.forms, self.tree, self.reconciler, transport)

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def handle_message(self, msg: Any) -> bool:
        """Apply one inbound backend message (model or raw dict)."""
        return self.bridge.on_inbound_message(msg)

    # ------------------------------------------------------------------
    # Widget values
    # ------------------------------------------------------------------

    def get_value(self, widget_id: str) -> WidgetValue | None:
        return self.store.get_value(widget_id)

    def set_value(
        self,
        widget_id: str,
        kind: str,
        value: Any,
        *,
        from_ui: bool = True,
        form_id: str | None = NO_FORM,
        fragment_id: str | None = None,
    ) -> SetResult:
        """
        Write a widget value. Changes outside a form request a rerun
        immediately; changes inside a form wait for submit_form.
        """
        result = self.store.set_value(widget_id, kind, value, from_ui=from_ui, form_id=form_id)
        return self._after_write(result, fragment_id)

    def set_trigger(self, widget_id: str, *, fragment_id: str | None = None) -> SetResult:
        """Fire a button-style trigger and request a rerun."""
        return self._after_write(self.store.set_trigger(widget_id), fragment_id)

    def set_string_trigger(self, widget_id: str, text: str, *, fragment_id: str | None = None) -> SetResult:
        """Fire a chat-input style string trigger and request a rerun."""
        return self._after_write(self.store.set_string_trigger(widget_id, text), fragment_id)

    def consume_trigger(self, widget_id: str) -> bool:
        if self.store.consume_trigger(widget_id):
            return True
        check = self.store.check_trigger(widget_id)
        if not check.accepted:
            logger.debug("session: consume_trigger ignored: %s", check.reason)
        return False

    def _after_write(self, result: SetResult, fragment_id: str | None) -> SetResult:
        if not result.accepted:
            logger.warning("session: ignoring value for widget_id=%s: %s", result.widget_id, result.reason)
            return result
        if result.rerun_needed:
            self.bridge.send_rerun_request(fragment_ids=[fragment_id] if fragment_id else None)
        return result

    def request_rerun(self, fragment_ids: Sequence[str] | None = None) -> RerunRequested:
        """Ask for a rerun without any widget change (e.g. a user-initiated rerun)."""
        return self.bridge.send_rerun_request(fragment_ids=fragment_ids)

    # ------------------------------------------------------------------
    # Forms
    # ------------------------------------------------------------------

    def submit_form(
        self,
        form_id: str,
        *,
        fragment_id: str | None = None,
        submit_button_id: str | None = None,
    ) -> SubmitResult:
        """
        Commit a form and send one rerun request tagged with it.

        The pressed submit button (or the form's first one) fires as a
        trigger so the backend can tell which button was used. Rejected while
        uploads are pending; the rendering layer keeps the button disabled.
        """
        if not self.forms.can_submit(form_id):
            result = self.forms.on_submit(form_id)
            if reason_code(result.reason) == SUBMIT_WHILE_BLOCKED:
                logger.info("session: submit blocked: %s", result.reason)
            else:
                logger.warning("session: submit rejected: %s", result.reason)
            return result

        data = self.forms.get(form_id)
        if submit_button_id is None and data is not None and data.submit_buttons:
            submit_button_id = data.submit_buttons[0]
        if submit_button_id is not None:
            self.store.set_trigger(submit_button_id, form_id=form_id)

        result = self.forms.on_submit(form_id)
        self.bridge.send_rerun_request(
            form_id=form_id,
            form_submit_count=result.submit_count,
            fragment_ids=[fragment_id] if fragment_id else None,
        )

        data = self.forms.get(form_id)
        if data is not None and data.clear_on_submit:
            self.store.reset_form_to_defaults(form_id)
        return result

    def submit_on_enter(self, form_id: str, *, fragment_id: str | None = None) -> SubmitResult | None:
        """Submit from an enter keypress inside the form, if the form allows it."""
        if not self.forms.allow_enter_to_submit(form_id):
            return None
        return self.submit_form(form_id, fragment_id=fragment_id)

    def register_pending_request(self, form_id: str, token: str) -> None:
        """Called by the upload collaborator before starting an upload."""
        self.forms.register_pending_request(form_id, token)

    def resolve_pending_request(self, form_id: str, token: str) -> bool:
        """Called by the upload collaborator when an upload ends, successfully or not."""
        resolved = self.forms.resolve_pending_request(form_id, token)
        if not resolved:
            logger.debug("session: unknown pending request form_id=%s token=%s", form_id, token)
        return resolved

    # ------------------------------------------------------------------
    # Rendering subscriptions
    # ------------------------------------------------------------------

    def subscribe_value(self, widget_id: str, listener: ValueListener) -> Callable[[], None]:
        return self.store.subscribe(widget_id, listener)

    def subscribe_forms(self, listener: FormsListener) -> Callable[[], None]:
        return self.forms.subscribe(listener)

    def subscribe_tree(self, listener: TreeListener) -> Callable[[], None]:
        return self.tree.subscribe(listener)

    def is_stale(self, path: Sequence[int]) -> bool:
        return self.reconciler.is_stale(path)
