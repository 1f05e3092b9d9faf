"""
Replay a captured inbound stream into a fresh session.

Used by scripts/replay_session.py to inspect what tree and widget state a
recorded backend stream produces.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from client.models.messages import RerunRequested
from client.services.session import AppSession
from client.services.stream_parser import InboundStreamParser

logger = logging.getLogger(__name__)


def replay_lines(lines: Iterable[str], *, sweep_widgets: bool | None = None) -> tuple[AppSession, list[RerunRequested]]:
    """
    Feed newline-delimited JSON lines into a new session.

    Returns the session and every rerun request it emitted (replayed streams
    normally emit none, since only UI interaction requests reruns).
    """
    sent: list[RerunRequested] = []
    session = AppSession(sent.append, sweep_widgets=sweep_widgets)
    parser = InboundStreamParser()

    applied = 0
    for line in lines:
        for msg in parser.feed(line if line.endswith("\n") else line + "\n"):
            if session.handle_message(msg):
                applied += 1
    for msg in parser.flush():
        if session.handle_message(msg):
            applied += 1

    logger.info("replay: applied %d message(s), skipped %d malformed line(s)", applied, parser.skipped)
    return session, sent


def describe_session(session: AppSession) -> dict[str, Any]:
    """JSON-ready summary of a session's tree, widget values and forms."""
    widgets: dict[str, Any] = {}
    for widget_id in sorted(session.store.widget_ids()):
        value = session.store.get_value(widget_id)
        if value is not None:
            widgets[widget_id] = {"kind": value.kind, "value": repr(value.value)}

    return {
        "active_run_id": session.reconciler.active_run_id,
        "tree": session.tree.to_dict(),
        "widgets": widgets,
        "forms": {form_id: data.to_dict() for form_id, data in session.forms.all().items()},
    }
