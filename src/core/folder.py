"""Telegram folder (dialog filter) that collects every created chat.

The folder is a per-deployment singleton bootstrapped on first use. If
creating it fails, folder assignment stays disabled until restart.
"""

from __future__ import annotations

import asyncio
import html
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional

from core.config import FolderConfig
from core.models import FolderState
from core.ports import TelegramPort

LOGGER = logging.getLogger(__name__)


class FolderStatus(Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    DISABLED = "disabled"


class OrganizationalFolder:
    """Lazily created folder with serialized membership updates."""

    def __init__(
        self,
        telegram: TelegramPort,
        config: FolderConfig,
        pinned_chat_id: int,
        report: Callable[[str], Awaitable[None]],
    ) -> None:
        self._telegram = telegram
        self._config = config
        self._pinned_chat_id = pinned_chat_id
        self._report = report
        self._state: Optional[FolderState] = None
        self._status = FolderStatus.UNINITIALIZED
        self._lock = asyncio.Lock()

    @property
    def status(self) -> FolderStatus:
        return self._status

    async def ensure(self) -> bool:
        """Find or create the folder; return whether it can be used."""

        async with self._lock:
            return await self._ensure_locked()

    async def _ensure_locked(self) -> bool:
        if self._status is FolderStatus.READY:
            return True
        if self._status is FolderStatus.DISABLED:
            return False

        existing = await self._telegram.get_folder(self._config.id)
        if existing is not None:
            self._state = existing
            self._status = FolderStatus.READY
            return True

        LOGGER.info("Creating Telegram folder %s", self._config.title)
        state = FolderState(
            id=self._config.id,
            title=self._config.title,
            emoticon=self._config.emoticon,
            pinned=[self._pinned_chat_id],
            included=[],
        )
        error_text = "Failed to set up the Telegram folder"
        try:
            created = await self._telegram.save_folder(state)
        except Exception as exc:
            LOGGER.exception(error_text)
            self._status = FolderStatus.DISABLED
            await self._report_safely(f"{error_text}\n<code>{html.escape(str(exc))}</code>")
            return False
        if not created:
            LOGGER.error(error_text)
            self._status = FolderStatus.DISABLED
            await self._report_safely(error_text)
            return False

        self._state = state
        self._status = FolderStatus.READY
        return True

    async def add_chat(self, chat_id: int) -> bool:
        """Add chat_id to the folder. Returns False when the folder is disabled.

        The update is a read-modify-write of remote state, so it runs under
        the folder lock; the local copy is reverted if the update fails.
        """

        async with self._lock:
            if not await self._ensure_locked():
                return False
            if chat_id in self._state.included:
                return True
            self._state.included.append(chat_id)
            try:
                await self._telegram.save_folder(self._state)
            except Exception:
                self._state.included.remove(chat_id)
                raise
        return True

    async def _report_safely(self, text: str) -> None:
        try:
            await self._report(text)
        except Exception:
            LOGGER.exception("Failed to report folder error to the owner")
