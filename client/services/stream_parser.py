"""
Inbound stream parser.

Buffers text chunks from the transport until newlines, validates each
complete line into an inbound message model, and skips malformed lines with
a warning.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import ValidationError

from client.models.messages import RunFinished, RunStarted, TreeDelta, WidgetDefault, parse_inbound

logger = logging.getLogger(__name__)

InboundModel = RunStarted | TreeDelta | RunFinished | WidgetDefault


class InboundStreamParser:
    """
    Parses newline-delimited JSON messages from the backend.

    Accumulates partial chunks in a buffer, emits complete parsed messages
    as they become available. Malformed JSON and messages that fail
    validation are dropped with a warning; the stream continues.
    """

    def __init__(self) -> None:
        self.buffer = ""
        self.skipped = 0

    def feed(self, chunk: str) -> list[InboundModel]:
        """
        Feed a text chunk (may be partial), return any complete parsed messages.

        Args:
            chunk: Raw text from the transport

        Returns:
            List of validated inbound messages for each complete line
        """
        self.buffer += chunk
        messages: list[InboundModel] = []
        while "\n" in self.buffer:
            line, self.buffer = self.buffer.split("\n", 1)
            msg = self._parse_line(line)
            if msg is not None:
                messages.append(msg)
        return messages

    def flush(self) -> list[InboundModel]:
        """
        Parse whatever is left in the buffer as a final line.

        Call this after the stream ends to handle input with no trailing newline.
        """
        line = self.buffer
        self.buffer = ""
        msg = self._parse_line(line)
        return [msg] if msg is not None else []

    def _parse_line(self, line: str) -> InboundModel | None:
        stripped = line.strip()
        if not stripped:
            return None
        try:
            data: Any = json.loads(stripped)
        except json.JSONDecodeError:
            self.skipped += 1
            logger.warning("InboundStreamParser: skipping malformed line: %r", stripped[:200])
            return None
        if not isinstance(data, dict):
            self.skipped += 1
            logger.warning("InboundStreamParser: skipping non-object line: %r", stripped[:200])
            return None
        try:
            return parse_inbound(data)
        except ValidationError as e:
            self.skipped += 1
            logger.warning("InboundStreamParser: skipping invalid message: %s", e.errors()[:3])
            return None
