"""
Transport pump for a client session.

Connects an AppSession to an async text channel: any object with
`async receive_text() -> str | None` and `async send_text(str)`, such as a
websocket wrapper. receive_text returning None means the stream ended.

Each frame carries whole messages: one bare JSON object, or several
newline-delimited ones with an optional trailing newline. A message split
across two frames is not reassembled.

The session core never awaits. Outbound rerun requests are queued by the
bridge's transport callable and delivered by a separate send loop, so
suspension only happens here, at the transport boundary.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any

from client.config import settings
from client.models.messages import RerunRequested
from client.services.session import AppSession
from client.services.stream_parser import InboundStreamParser

logger = logging.getLogger(__name__)


class SessionConnection:
    """Owns one session and pumps messages between it and a text channel."""

    def __init__(self, channel: Any, *, max_outbox: int | None = None, sweep_widgets: bool | None = None) -> None:
        self.channel = channel
        self.outbox: asyncio.Queue[RerunRequested] = asyncio.Queue(maxsize=max_outbox or settings.OUTBOX_MAX_SIZE)
        self.parser = InboundStreamParser()
        self.session = AppSession(self._enqueue, sweep_widgets=sweep_widgets)
        self.received = 0

    def _enqueue(self, msg: RerunRequested) -> None:
        """Bridge transport callable. Never blocks."""
        if self.outbox.full():
            # Each request carries the full snapshot, so the newest one supersedes the oldest
            dropped = self.outbox.get_nowait()
            self.outbox.task_done()
            logger.warning("connection: outbox full, dropping oldest rerun request form_id=%s", dropped.form_id)
        self.outbox.put_nowait(msg)

    async def receive_loop(self) -> None:
        """Feed inbound text into the session until the channel ends."""
        while True:
            text = await self.channel.receive_text()
            if text is None:
                break
            # Frames end on a message boundary
            if not text.endswith("\n"):
                text += "\n"
            for msg in self.parser.feed(text):
                self.received += 1
                self.session.handle_message(msg)

        for msg in self.parser.flush():
            self.received += 1
            self.session.handle_message(msg)
        logger.info("connection: inbound stream ended after %d message(s)", self.received)

    async def send_loop(self) -> None:
        """Deliver queued rerun requests in order."""
        while True:
            msg = await self.outbox.get()
            try:
                await self.channel.send_text(msg.model_dump_json(exclude_none=True))
            finally:
                self.outbox.task_done()

    async def run(self) -> None:
        """Pump both directions until the inbound stream ends, then drain the outbox."""
        sender = asyncio.create_task(self.send_loop())
        try:
            await self.receive_loop()
            drained = asyncio.create_task(self.outbox.join())
            done, _ = await asyncio.wait({drained, sender}, return_when=asyncio.FIRST_COMPLETED)
            if sender in done:
                # send_loop only returns by raising; surface the transport error
                drained.cancel()
                sender.result()
        finally:
            if not sender.done():
                sender.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await sender
