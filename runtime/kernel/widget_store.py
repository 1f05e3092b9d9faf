"""
Runtime Kernel — Widget State Store

Authoritative widget id → value mapping for one session.

Each entry keeps two values:
  value      what the widget currently shows (buffered while inside a form)
  committed  what the backend will receive on the next rerun request

Widgets outside a form commit on every change. Widgets inside a form buffer
UI changes until the form is submitted; the forms aggregator counts how many
of them differ from their committed value.

Every value is validated through the codec before it is stored, so the store
never holds something that cannot be sent.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from runtime.kernel.codec import decode, encode, values_equal
from runtime.kernel.forms import FormsAggregator
from runtime.kernel.types import (
    MALFORMED_VALUE,
    NO_FORM,
    NOT_A_TRIGGER,
    TRIGGER_KINDS,
    UNKNOWN_WIDGET,
    FormsData,
    MalformedValue,
    SetResult,
    WidgetValue,
    is_form,
)

ValueListener = Callable[[str, WidgetValue | None], None]


class _Unset:
    def __repr__(self) -> str:  # pragma: no cover
        return "<unset>"


# No committed baseline: never declared by the backend, or the kind changed
_UNSET: Any = _Unset()


@dataclass
class _Entry:
    widget_id: str
    kind: str
    value: Any = None
    committed: Any = _UNSET
    default: Any = _UNSET
    form_id: str = NO_FORM
    dirty: bool = False


class WidgetStateStore:
    """
    Widget values for one session.

    Constructed once per session and shared by reference. The rendering
    layer reads through get_value/subscribe and writes only through
    set_value and the trigger setters.
    """

    def __init__(self, forms: FormsAggregator) -> None:
        self._forms = forms
        self._entries: dict[str, _Entry] = {}
        self._element_states: dict[str, dict[str, Any]] = {}
        self._listeners: dict[str, list[ValueListener]] = {}
        forms.add_submit_listener(self.flush_form)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_value(self, widget_id: str) -> WidgetValue | None:
        """Current (possibly buffered) value, or None if never declared."""
        entry = self._entries.get(widget_id)
        if entry is None:
            return None
        return WidgetValue(kind=entry.kind, value=entry.value)

    def get_committed(self, widget_id: str) -> WidgetValue | None:
        """Value the backend will receive, or None if there is none yet."""
        entry = self._entries.get(widget_id)
        if entry is None or entry.committed is _UNSET:
            return None
        return WidgetValue(kind=entry.kind, value=entry.committed)

    def get_form_id(self, widget_id: str) -> str | None:
        entry = self._entries.get(widget_id)
        return entry.form_id if entry is not None else None

    def is_dirty(self, widget_id: str) -> bool:
        entry = self._entries.get(widget_id)
        return entry is not None and entry.dirty

    def widget_ids(self) -> set[str]:
        return set(self._entries)

    def __contains__(self, widget_id: object) -> bool:
        return widget_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set_value(
        self,
        widget_id: str,
        kind: str,
        value: Any,
        *,
        from_ui: bool,
        form_id: str | None = NO_FORM,
    ) -> SetResult:
        """
        Write a widget value.

        from_ui=False (backend push): committed immediately, clears dirtiness.
        from_ui=True, no form:        committed immediately, rerun needed.
        from_ui=True, inside a form:  buffered; the form's dirty count tracks
                                      whether it differs from the committed value.
        """
        if kind in TRIGGER_KINDS and from_ui:
            if kind == "trigger":
                return self.set_trigger(widget_id, form_id=form_id)
            return self.set_string_trigger(widget_id, value, form_id=form_id)

        try:
            value = decode(kind, encode(kind, value))
        except MalformedValue as e:
            return SetResult(widget_id, accepted=False, reason=f"{MALFORMED_VALUE}: {e}")

        form_id = form_id or NO_FORM
        entry = self._prepare(widget_id, kind, form_id)

        if not from_ui and kind in TRIGGER_KINDS:
            # Backend declares the trigger; only the UI can fire it
            self._mark_clean(entry)
            self._clear_pulse(entry)
            return SetResult(widget_id)

        if not from_ui:
            entry.value = value
            entry.committed = value
            entry.default = value
            self._mark_clean(entry)
            self._notify(entry)
            return SetResult(widget_id)

        if is_form(form_id):
            entry.value = value
            now_dirty = entry.committed is _UNSET or not values_equal(kind, value, entry.committed)
            if now_dirty:
                self._mark_dirty(entry)
            else:
                self._mark_clean(entry)
            return SetResult(widget_id, deferred=True, dirty=entry.dirty)

        entry.value = value
        entry.committed = value
        self._notify(entry)
        return SetResult(widget_id, rerun_needed=True)

    def _prepare(self, widget_id: str, kind: str, form_id: str) -> _Entry:
        """Create the entry if needed, then apply form and kind changes."""
        entry = self._entries.get(widget_id)
        if entry is None:
            entry = _Entry(widget_id=widget_id, kind=kind, form_id=form_id)
            self._entries[widget_id] = entry
            return entry

        if entry.form_id != form_id:
            # Dirty accounting follows the widget to its new form
            was_dirty = entry.dirty
            self._mark_clean(entry)
            entry.form_id = form_id
            if was_dirty and is_form(form_id):
                self._mark_dirty(entry)

        if entry.kind != kind:
            # Old baseline is meaningless for the new kind
            entry.kind = kind
            entry.committed = _UNSET
            entry.default = _UNSET
            if kind in TRIGGER_KINDS:
                # Triggers are never buffered, so they never count as dirty
                self._mark_clean(entry)
        return entry

    def _mark_dirty(self, entry: _Entry) -> None:
        if entry.dirty or not is_form(entry.form_id):
            return
        entry.dirty = True
        self._forms.increment_dirty(entry.form_id)

    def _mark_clean(self, entry: _Entry) -> None:
        if not entry.dirty:
            return
        entry.dirty = False
        self._forms.decrement_dirty(entry.form_id)

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def set_trigger(self, widget_id: str, *, form_id: str | None = NO_FORM) -> SetResult:
        """Fire a one-shot pulse (button press). Never buffered by forms."""
        entry = self._prepare(widget_id, "trigger", form_id or NO_FORM)
        entry.value = True
        entry.committed = True
        self._notify(entry)
        return SetResult(widget_id, rerun_needed=True)

    def set_string_trigger(self, widget_id: str, text: Any, *, form_id: str | None = NO_FORM) -> SetResult:
        """Fire a one-shot string pulse (chat input submission)."""
        if not isinstance(text, str):
            return SetResult(
                widget_id,
                accepted=False,
                reason=f"{MALFORMED_VALUE}: string_trigger expects a str, got {type(text).__name__}",
            )
        entry = self._prepare(widget_id, "string_trigger", form_id or NO_FORM)
        entry.value = text
        entry.committed = text
        self._notify(entry)
        return SetResult(widget_id, rerun_needed=True)

    def consume_trigger(self, widget_id: str) -> bool:
        """
        Read and clear a trigger pulse.

        Returns True exactly once per set_trigger; False if the widget is
        unknown, not a trigger, or its pulse was already consumed.
        """
        entry = self._entries.get(widget_id)
        if entry is None or entry.kind not in TRIGGER_KINDS:
            return False
        if not self._has_pulse(entry):
            return False
        self._clear_pulse(entry)
        return True

    def check_trigger(self, widget_id: str) -> SetResult:
        """Describe why consume_trigger would return False (for logging)."""
        entry = self._entries.get(widget_id)
        if entry is None:
            return SetResult(widget_id, accepted=False, reason=f"{UNKNOWN_WIDGET}: '{widget_id}'")
        if entry.kind not in TRIGGER_KINDS:
            return SetResult(widget_id, accepted=False, reason=f"{NOT_A_TRIGGER}: '{widget_id}' is {entry.kind}")
        return SetResult(widget_id)

    @staticmethod
    def _has_pulse(entry: _Entry) -> bool:
        if entry.kind == "trigger":
            return entry.committed is True
        return isinstance(entry.committed, str)

    @staticmethod
    def _clear_pulse(entry: _Entry) -> None:
        if entry.kind == "trigger":
            entry.value = False
            entry.committed = False
        else:
            entry.value = None
            entry.committed = _UNSET

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def take_snapshot(self, *, consume_triggers: bool = True) -> dict[str, dict[str, Any]]:
        """
        Encode every committed value for a rerun request.

        Buffered form values are not included until their form is submitted.
        Pending trigger pulses are included once, then cleared.
        """
        snapshot: dict[str, dict[str, Any]] = {}
        for widget_id, entry in self._entries.items():
            if entry.kind in TRIGGER_KINDS:
                if self._has_pulse(entry):
                    snapshot[widget_id] = encode(entry.kind, entry.committed)
                continue
            if entry.committed is _UNSET:
                continue
            snapshot[widget_id] = encode(entry.kind, entry.committed)

        if consume_triggers:
            for entry in self._entries.values():
                if entry.kind in TRIGGER_KINDS and self._has_pulse(entry):
                    self._clear_pulse(entry)
        return snapshot

    # ------------------------------------------------------------------
    # Forms
    # ------------------------------------------------------------------

    def flush_form(self, data: FormsData) -> list[str]:
        """
        Commit every buffered value in the form. Runs as the aggregator's
        submit listener; the aggregator resets the dirty count itself.
        """
        flushed: list[str] = []
        for entry in self._entries.values():
            if entry.form_id != data.form_id or not entry.dirty:
                continue
            entry.dirty = False
            if entry.kind in TRIGGER_KINDS:
                continue
            entry.committed = entry.value
            flushed.append(entry.widget_id)
            self._notify(entry)
        return flushed

    def reset_form_to_defaults(self, form_id: str) -> list[str]:
        """
        Put every widget in the form back to its backend default, for
        forms declared with clear_on_submit. Call after the submitted values
        have been sent.
        """
        reset: list[str] = []
        for entry in self._entries.values():
            if entry.form_id != form_id or entry.kind in TRIGGER_KINDS:
                continue
            if entry.default is _UNSET:
                continue
            self._mark_clean(entry)
            entry.value = entry.default
            entry.committed = entry.default
            reset.append(entry.widget_id)
            self._notify(entry)
        return reset

    # ------------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------------

    def sweep_unseen(
        self,
        seen_widget_ids: Iterable[str],
        seen_element_ids: Iterable[str] | None = None,
    ) -> list[str]:
        """
        Delete entries whose id is not in `seen_widget_ids`.

        Idempotent: a second call with the same set removes nothing.
        Element states are kept for ids in `seen_element_ids` (defaults to
        the widget ids) and dropped for everything else.
        """
        seen = set(seen_widget_ids)
        seen_elements = seen if seen_element_ids is None else set(seen_element_ids)
        removed = sorted(widget_id for widget_id in self._entries if widget_id not in seen)
        for widget_id in removed:
            entry = self._entries.pop(widget_id)
            self._mark_clean(entry)
            self._notify_removed(widget_id)

        for element_id in [e for e in self._element_states if e not in seen_elements]:
            del self._element_states[element_id]
        return removed

    # ------------------------------------------------------------------
    # Element state (frontend-only state, never sent to the backend)
    # ------------------------------------------------------------------

    def set_element_state(self, element_id: str, key: str, value: Any) -> None:
        self._element_states.setdefault(element_id, {})[key] = value

    def get_element_state(self, element_id: str, key: str) -> Any:
        return self._element_states.get(element_id, {}).get(key)

    def delete_element_state(self, element_id: str, key: str | None = None) -> None:
        if key is None:
            self._element_states.pop(element_id, None)
            return
        states = self._element_states.get(element_id)
        if states is not None:
            states.pop(key, None)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, widget_id: str, listener: ValueListener) -> Callable[[], None]:
        """Call `listener(widget_id, value)` whenever the widget's value is applied."""
        self._listeners.setdefault(widget_id, []).append(listener)

        def unsubscribe() -> None:
            listeners = self._listeners.get(widget_id, [])
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    def _notify(self, entry: _Entry) -> None:
        listeners = self._listeners.get(entry.widget_id)
        if not listeners:
            return
        value = WidgetValue(kind=entry.kind, value=entry.value)
        for listener in list(listeners):
            listener(entry.widget_id, value)

    def _notify_removed(self, widget_id: str) -> None:
        for listener in list(self._listeners.get(widget_id, [])):
            listener(widget_id, None)
