"""
Runtime Kernel — Message Construction

Factory functions for well-formed inbound and outbound message dicts.
Used by the replay tooling and by tests to build backend streams concisely.
The client validates these dicts into models before dispatching them.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from runtime.kernel.codec import encode


def run_started(run_id: str, fragment_ids: Sequence[str] | None = None) -> dict[str, Any]:
    msg: dict[str, Any] = {"type": "run_started", "run_id": run_id}
    if fragment_ids:
        msg["fragment_ids"] = list(fragment_ids)
    return msg


def tree_delta(
    path: Sequence[int],
    run_id: str,
    payload: dict[str, Any],
    *,
    fragment_id: str | None = None,
) -> dict[str, Any]:
    msg: dict[str, Any] = {"type": "tree_delta", "path": list(path), "run_id": run_id, "payload": payload}
    if fragment_id is not None:
        msg["fragment_id"] = fragment_id
    return msg


def block_delta(path: Sequence[int], run_id: str, *, fragment_id: str | None = None, **layout: Any) -> dict[str, Any]:
    """tree_delta carrying a block payload; keyword args become the layout."""
    return tree_delta(path, run_id, {"block": layout}, fragment_id=fragment_id)


def element_delta(
    path: Sequence[int],
    run_id: str,
    element_type: str,
    *,
    widget_id: str | None = None,
    form_id: str | None = None,
    fragment_id: str | None = None,
    **props: Any,
) -> dict[str, Any]:
    """tree_delta carrying an element payload."""
    element: dict[str, Any] = {"type": element_type, **props}
    if widget_id is not None:
        element["widget_id"] = widget_id
    if form_id is not None:
        element["form_id"] = form_id
    return tree_delta(path, run_id, {"element": element}, fragment_id=fragment_id)


def run_finished(run_id: str, status: str = "success") -> dict[str, Any]:
    return {"type": "run_finished", "run_id": run_id, "status": status}


def widget_default(widget_id: str, kind: str, value: Any, *, form_id: str = "") -> dict[str, Any]:
    """
    widget_default message. `value` is the native value; it is encoded here
    so callers never hand-write wire values.
    """
    msg: dict[str, Any] = {"type": "widget_default", "id": widget_id, "kind": kind, "value": encode(kind, value)}
    if form_id:
        msg["form_id"] = form_id
    return msg
