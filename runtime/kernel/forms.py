"""
Runtime Kernel — Forms Aggregator

Tracks, per form:
  - dirty_count       widgets whose buffered value differs from the last submit
  - pending_requests  opaque tokens (file uploads, ...) that block submission
  - submit_count      incremented on every accepted submit

State per form:

  idle    dirty_count == 0, no pending requests
  dirty   dirty_count  > 0, no pending requests
  blocked pending requests outstanding (overrides idle/dirty)

Submission is allowed in idle and dirty, never in blocked. The dirty count
never gates submission: submitting an unchanged form is valid.

The aggregator does not own widget values. The widget store registers itself
as a submit listener and flushes buffered values when a submit is accepted.
"""

from __future__ import annotations

from collections.abc import Callable

from runtime.kernel.types import (
    NOT_A_FORM,
    SUBMIT_WHILE_BLOCKED,
    FormsData,
    FormState,
    SubmitResult,
    is_form,
)

FormsListener = Callable[[dict[str, FormsData]], None]
SubmitListener = Callable[[FormsData], None]


class FormsAggregator:
    """Per-session registry of forms data."""

    def __init__(self) -> None:
        self._forms: dict[str, FormsData] = {}
        self._listeners: list[FormsListener] = []
        self._submit_listeners: list[SubmitListener] = []

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, form_id: str) -> FormsData | None:
        """Return a copy of the form's data, or None if never seen."""
        data = self._forms.get(form_id)
        return data.copy() if data is not None else None

    def all(self) -> dict[str, FormsData]:
        """Copies of every form's data, keyed by form id."""
        return {form_id: data.copy() for form_id, data in self._forms.items()}

    def dirty_count(self, form_id: str) -> int:
        data = self._forms.get(form_id)
        return data.dirty_count if data is not None else 0

    def submit_count(self, form_id: str) -> int:
        data = self._forms.get(form_id)
        return data.submit_count if data is not None else 0

    def state(self, form_id: str) -> FormState:
        data = self._forms.get(form_id)
        return data.state if data is not None else "idle"

    def can_submit(self, form_id: str) -> bool:
        return is_form(form_id) and self.state(form_id) != "blocked"

    def forms_with_pending_requests(self) -> set[str]:
        return {form_id for form_id, data in self._forms.items() if data.pending_requests}

    def allow_enter_to_submit(self, form_id: str) -> bool:
        """
        True if pressing enter inside the form should submit it: the form
        allows it, at least one submit button is mounted, and it is not blocked.
        """
        data = self._forms.get(form_id)
        if data is None:
            return False
        return data.enter_to_submit and bool(data.submit_buttons) and data.state != "blocked"

    # ------------------------------------------------------------------
    # Form registration
    # ------------------------------------------------------------------

    def _ensure(self, form_id: str) -> FormsData:
        data = self._forms.get(form_id)
        if data is None:
            data = FormsData(form_id=form_id)
            self._forms[form_id] = data
        return data

    def register_form(self, form_id: str, *, clear_on_submit: bool = False, enter_to_submit: bool = True) -> None:
        """Record form options declared by the backend's form block."""
        if not is_form(form_id):
            return
        data = self._ensure(form_id)
        changed = data.clear_on_submit != clear_on_submit or data.enter_to_submit != enter_to_submit
        data.clear_on_submit = clear_on_submit
        data.enter_to_submit = enter_to_submit
        if changed:
            self.notify_forms_changed()

    def add_submit_button(self, form_id: str, button_id: str) -> None:
        if not is_form(form_id):
            return
        data = self._ensure(form_id)
        if button_id not in data.submit_buttons:
            data.submit_buttons.append(button_id)
            self.notify_forms_changed()

    def remove_submit_button(self, form_id: str, button_id: str) -> None:
        data = self._forms.get(form_id)
        if data is None or button_id not in data.submit_buttons:
            return
        data.submit_buttons.remove(button_id)
        self.notify_forms_changed()

    # ------------------------------------------------------------------
    # Dirty accounting (driven by the widget store)
    # ------------------------------------------------------------------

    def increment_dirty(self, form_id: str) -> None:
        if not is_form(form_id):
            return
        self._ensure(form_id).dirty_count += 1
        self.notify_forms_changed()

    def decrement_dirty(self, form_id: str) -> None:
        data = self._forms.get(form_id)
        if data is None or data.dirty_count == 0:
            return
        data.dirty_count -= 1
        self.notify_forms_changed()

    # ------------------------------------------------------------------
    # Pending requests
    # ------------------------------------------------------------------

    def register_pending_request(self, form_id: str, token: str) -> None:
        """Hold the form's submit disabled until `token` resolves."""
        if not is_form(form_id):
            return
        data = self._ensure(form_id)
        if token in data.pending_requests:
            return
        data.pending_requests.add(token)
        self.notify_forms_changed()

    def resolve_pending_request(self, form_id: str, token: str) -> bool:
        """
        Release a pending request. Resolving an unknown token (or resolving
        twice) is a no-op and returns False.
        """
        data = self._forms.get(form_id)
        if data is None or token not in data.pending_requests:
            return False
        data.pending_requests.discard(token)
        self.notify_forms_changed()
        return True

    # ------------------------------------------------------------------
    # Submit
    # ------------------------------------------------------------------

    def on_submit(self, form_id: str) -> SubmitResult:
        """
        Commit the form: run submit listeners (buffered values are flushed),
        reset the dirty count and bump the submit counter.

        Rejected while any pending request is outstanding.
        """
        if not is_form(form_id):
            return SubmitResult(form_id, accepted=False, reason=f"{NOT_A_FORM}: {form_id!r} is not a form id")

        data = self._ensure(form_id)
        if data.pending_requests:
            return SubmitResult(
                form_id,
                accepted=False,
                reason=f"{SUBMIT_WHILE_BLOCKED}: {len(data.pending_requests)} pending request(s) on '{form_id}'",
                submit_count=data.submit_count,
            )

        for listener in list(self._submit_listeners):
            listener(data.copy())

        data.dirty_count = 0
        data.submit_count += 1
        self.notify_forms_changed()
        return SubmitResult(form_id, accepted=True, submit_count=data.submit_count)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, listener: FormsListener) -> Callable[[], None]:
        """Call `listener` with all forms data after every transition."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def add_submit_listener(self, listener: SubmitListener) -> None:
        self._submit_listeners.append(listener)

    def notify_forms_changed(self) -> None:
        if not self._listeners:
            return
        snapshot = self.all()
        for listener in list(self._listeners):
            listener(snapshot)
