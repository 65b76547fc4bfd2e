"""Correlate inbound Telegram messages with flows awaiting a reply.

A flow registers a slot for a conversation and awaits the returned future;
the event feed calls dispatch() for every inbound message. All three
primitives are synchronous, so each one runs atomically on the event loop
that owns the slot map and no message can resolve a slot twice.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from core.models import InboundMessage

LOGGER = logging.getLogger(__name__)


class SlotBusyError(RuntimeError):
    """Raised when a conversation already has a pending slot."""


class InputBroker:
    """Map conversation ids to a single pending reply future."""

    def __init__(self) -> None:
        self._slots: dict[int, asyncio.Future] = {}

    def wait_for(self, conversation_id: int) -> asyncio.Future:
        """Register a slot and return the future resolved by the next message."""

        existing = self._slots.get(conversation_id)
        if existing is not None and not existing.done():
            raise SlotBusyError(f"Conversation {conversation_id} is already awaiting input")

        future = asyncio.get_running_loop().create_future()
        self._slots[conversation_id] = future
        return future

    def cancel(self, conversation_id: int) -> bool:
        """Drop a pending slot without resolving it."""

        future = self._slots.pop(conversation_id, None)
        if future is None or future.done():
            return False
        future.cancel()
        return True

    def dispatch(self, conversation_id: int, message: InboundMessage) -> bool:
        """Resolve the slot for conversation_id, if any.

        Returns False when nothing was waiting so other handlers can take
        the message.
        """

        future = self._slots.pop(conversation_id, None)
        if future is None or future.done():
            return False
        future.set_result(message)
        LOGGER.debug("Input received for conversation %s", conversation_id)
        return True

    def is_waiting(self, conversation_id: int) -> bool:
        future = self._slots.get(conversation_id)
        return future is not None and not future.done()

    async def wait(self, conversation_id: int, timeout: Optional[float] = None) -> InboundMessage:
        """Await the next message, cancelling the slot if the deadline passes."""

        future = self.wait_for(conversation_id)
        if timeout is None:
            return await future
        try:
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            self.cancel(conversation_id)
            raise
