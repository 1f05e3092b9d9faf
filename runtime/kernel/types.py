"""
Runtime Kernel — Shared Types

Data classes and constants used across the codec, widget store, forms
aggregator, output tree and reconciler. These are the contracts that bind
the kernel together.

Kernel operations never raise for expected failures. They return a result
object whose `reason` is a "CODE: detail" string, the same way a reducer
reports a rejected event.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

# ---------------------------------------------------------------------------
# Value kinds
# ---------------------------------------------------------------------------

ValueKind = Literal[
    "bool",
    "int",
    "double",
    "string",
    "string_array",
    "int_array",
    "double_array",
    "bytes",
    "json",
    "trigger",
    "string_trigger",
]

VALUE_KINDS: set[str] = {
    "bool",
    "int",
    "double",
    "string",
    "string_array",
    "int_array",
    "double_array",
    "bytes",
    "json",
    "trigger",
    "string_trigger",
}

# Fire-once kinds: cleared after the backend has seen them once
TRIGGER_KINDS: set[str] = {"trigger", "string_trigger"}

ARRAY_KINDS: set[str] = {"string_array", "int_array", "double_array"}

# Sentinel form id for widgets that commit on every change
NO_FORM = ""

# ---------------------------------------------------------------------------
# Reason codes
# ---------------------------------------------------------------------------

STALE_RUN_DELTA = "STALE_RUN_DELTA"
STALE_RUN_FINISH = "STALE_RUN_FINISH"
UNKNOWN_RUN = "UNKNOWN_RUN"
NO_ACTIVE_RUN = "NO_ACTIVE_RUN"
MALFORMED_DELTA = "MALFORMED_DELTA"
PARENT_NOT_FOUND = "PARENT_NOT_FOUND"
PARENT_NOT_BLOCK = "PARENT_NOT_BLOCK"
NODE_NOT_FOUND = "NODE_NOT_FOUND"
SUBMIT_WHILE_BLOCKED = "SUBMIT_WHILE_BLOCKED"
UNKNOWN_WIDGET = "UNKNOWN_WIDGET"
NOT_A_FORM = "NOT_A_FORM"
MALFORMED_VALUE = "MALFORMED_VALUE"
NOT_A_TRIGGER = "NOT_A_TRIGGER"

# Script finished statuses. Only "success" prunes and sweeps.
RunStatus = Literal["success", "compile_error", "early_for_rerun"]

RUN_STATUSES: set[str] = {"success", "compile_error", "early_for_rerun"}

FormState = Literal["idle", "dirty", "blocked"]

TreeChange = Literal["mounted", "restamped", "replaced", "removed"]


class MalformedValue(ValueError):
    """A wire value (or native value) does not match its declared kind."""


# ---------------------------------------------------------------------------
# Widget values
# ---------------------------------------------------------------------------


@dataclass
class WidgetValue:
    """
    One widget's value, tagged with its kind.

    `value` holds the native Python value:
      bool → bool, int → int, double → float, string → str,
      *_array → list, bytes → bytes, json → dict/list/scalar,
      trigger → bool, string_trigger → str
    """

    kind: str
    value: Any

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "value": self.value}


@dataclass
class FormsData:
    """Per-form aggregate tracked by the forms aggregator."""

    form_id: str
    dirty_count: int = 0
    pending_requests: set[str] = field(default_factory=set)
    submit_count: int = 0
    submit_buttons: list[str] = field(default_factory=list)
    clear_on_submit: bool = False
    enter_to_submit: bool = True

    @property
    def state(self) -> FormState:
        if self.pending_requests:
            return "blocked"
        if self.dirty_count > 0:
            return "dirty"
        return "idle"

    def copy(self) -> FormsData:
        return FormsData(
            form_id=self.form_id,
            dirty_count=self.dirty_count,
            pending_requests=set(self.pending_requests),
            submit_count=self.submit_count,
            submit_buttons=list(self.submit_buttons),
            clear_on_submit=self.clear_on_submit,
            enter_to_submit=self.enter_to_submit,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "form_id": self.form_id,
            "state": self.state,
            "dirty_count": self.dirty_count,
            "pending_requests": sorted(self.pending_requests),
            "submit_count": self.submit_count,
            "submit_buttons": list(self.submit_buttons),
            "clear_on_submit": self.clear_on_submit,
            "enter_to_submit": self.enter_to_submit,
        }


# ---------------------------------------------------------------------------
# Output tree nodes
# ---------------------------------------------------------------------------

Path = tuple[int, ...]


@dataclass(eq=False)
class BlockNode:
    """
    Container node. Children live in the tree's arena at path + (index,);
    `children` keeps their indices in order.

    Compared by identity: the rendering layer mounts against the object.
    """

    node_id: int
    path: Path
    run_id: str | None
    fingerprint: str
    layout: dict[str, Any] = field(default_factory=dict)
    children: list[int] = field(default_factory=list)
    form_id: str | None = None
    fragment_id: str | None = None

    node_type = "block"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "block",
            "path": list(self.path),
            "run_id": self.run_id,
            "layout": self.layout,
            "children": list(self.children),
            "form_id": self.form_id,
            "fragment_id": self.fragment_id,
        }


@dataclass(eq=False)
class ElementNode:
    """Leaf node holding one rendered element payload."""

    node_id: int
    path: Path
    run_id: str | None
    fingerprint: str
    element: dict[str, Any] = field(default_factory=dict)
    widget_id: str | None = None
    form_id: str | None = None
    fragment_id: str | None = None

    node_type = "element"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "element",
            "path": list(self.path),
            "run_id": self.run_id,
            "element": self.element,
            "widget_id": self.widget_id,
            "form_id": self.form_id,
            "fragment_id": self.fragment_id,
        }


OutputNode = BlockNode | ElementNode


# ---------------------------------------------------------------------------
# Operation results
# ---------------------------------------------------------------------------


class SetResult:
    """
    Result of writing a widget value into the store.
    Never throws; always returns one of these.
    """

    __slots__ = ("widget_id", "accepted", "reason", "deferred", "rerun_needed", "dirty")

    def __init__(
        self,
        widget_id: str,
        accepted: bool = True,
        reason: str | None = None,
        deferred: bool = False,
        rerun_needed: bool = False,
        dirty: bool = False,
    ) -> None:
        self.widget_id = widget_id
        self.accepted = accepted
        self.reason = reason
        self.deferred = deferred  # Buffered in a form until submit
        self.rerun_needed = rerun_needed  # Caller should send a rerun request now
        self.dirty = dirty

    def __repr__(self) -> str:  # pragma: no cover
        if self.accepted:
            return f"SetResult({self.widget_id!r}, deferred={self.deferred}, rerun_needed={self.rerun_needed})"
        return f"SetResult({self.widget_id!r}, accepted=False, reason={self.reason!r})"


class SubmitResult:
    """Result of a form submission attempt."""

    __slots__ = ("form_id", "accepted", "reason", "submit_count")

    def __init__(self, form_id: str, accepted: bool, reason: str | None = None, submit_count: int = 0) -> None:
        self.form_id = form_id
        self.accepted = accepted
        self.reason = reason
        self.submit_count = submit_count

    def __repr__(self) -> str:  # pragma: no cover
        if self.accepted:
            return f"SubmitResult({self.form_id!r}, submit_count={self.submit_count})"
        return f"SubmitResult({self.form_id!r}, accepted=False, reason={self.reason!r})"


class TreeResult:
    """
    Result of one reconciler operation.

    `change` is the tree change that happened at `path` ("mounted",
    "restamped", "replaced", "removed") or None when nothing changed.
    `removed` lists every path deleted by the operation.
    """

    __slots__ = ("accepted", "reason", "path", "change", "removed", "swept_widgets")

    def __init__(
        self,
        accepted: bool,
        reason: str | None = None,
        path: Path | None = None,
        change: str | None = None,
        removed: list[Path] | None = None,
        swept_widgets: list[str] | None = None,
    ) -> None:
        self.accepted = accepted
        self.reason = reason
        self.path = path
        self.change = change
        self.removed = removed or []
        self.swept_widgets = swept_widgets or []

    def __repr__(self) -> str:  # pragma: no cover
        if self.accepted:
            return f"TreeResult(accepted=True, change={self.change!r}, removed={len(self.removed)})"
        return f"TreeResult(accepted=False, reason={self.reason!r})"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def is_form(form_id: str | None) -> bool:
    """True if form_id names a real form (not None and not NO_FORM)."""
    return bool(form_id)


def path_key(path: Path) -> str:
    """
    Arena key for a path.

    Examples:
      ()        → ""
      (0,)      → "0"
      (0, 3, 1) → "0/3/1"
    """
    return "/".join(str(i) for i in path)


def parse_path(key: str) -> Path:
    """Inverse of path_key."""
    if not key:
        return ()
    return tuple(int(seg) for seg in key.split("/"))


def reason_code(reason: str | None) -> str | None:
    """Return the CODE part of a "CODE: detail" reason string."""
    if reason is None:
        return None
    return reason.split(":", 1)[0]
