"""Propagate deletions and recalls between Telegram and QQ.

Both directions consume the stored message record, so a round trip deletes
each message at most once and a missing record is a silent no-op.
"""

from __future__ import annotations

import html
import logging
from typing import Optional

from core.config import NoticeConfig, WorkMode
from core.models import Pair, QQRecallEvent, RemoveCommand
from core.permissions import is_delete_permitted, needs_rights_lookup
from core.ports import MessageStore, QQClientPort, TelegramPort

LOGGER = logging.getLogger(__name__)


class RecallFailedError(RuntimeError):
    """The QQ client reported that a recall did not happen."""


class DeletionReconciler:
    """Map delete/recall events from one platform onto the other."""

    def __init__(
        self,
        telegram: TelegramPort,
        qq: QQClientPort,
        messages: MessageStore,
        work_mode: WorkMode,
        notices: NoticeConfig,
    ) -> None:
        self._telegram = telegram
        self._qq = qq
        self._messages = messages
        self._work_mode = work_mode
        self._notices = notices

    async def reconcile_from_tg(
        self, tg_chat_id: int, tg_msg_id: int, pair: Pair, is_others_message: bool = False
    ) -> bool:
        """Recall on QQ the message forwarded as tg_msg_id.

        Returns False only when a recall was attempted and failed; the
        failure is also reported in the chat with a short-lived notice.
        """

        try:
            record = self._messages.pop_by_tg(tg_chat_id, tg_msg_id)
        except Exception:
            LOGGER.exception("Failed to look up message %s in chat %s", tg_msg_id, tg_chat_id)
            return False
        if record is None:
            return True

        try:
            recalled = await self._qq.recall(
                pair.qq_room_id, record.seq, record.rand, record.recall_marker(pair.kind)
            )
            if not recalled:
                raise RecallFailedError()
        except Exception as exc:
            LOGGER.warning("Recall on QQ failed for chat %s message %s", tg_chat_id, tg_msg_id, exc_info=True)
            await self._notice(pair.tg_chat_id, self._recall_failure_text(exc, is_others_message))
            return False
        return True

    def _recall_failure_text(self, exc: Exception, is_others_message: bool) -> str:
        text = "Failed to recall the corresponding QQ message"
        if self._work_mode is WorkMode.GROUP:
            text += ", the QQ account needs to be an admin"
        if is_others_message:
            text += ", and messages from other admins cannot be recalled"
        if str(exc):
            text += f"\n{html.escape(str(exc))}"
        return text

    async def reconcile_from_qq(self, event: QQRecallEvent, pair: Pair) -> bool:
        """Delete on Telegram the message a QQ recall refers to. Logs failures only."""

        try:
            record = self._messages.pop_by_qq(pair.qq_room_id, event.seq, event.rand)
            if record is None:
                return True
            await self._telegram.delete_messages(pair.tg_chat_id, [record.tg_msg_id])
        except Exception:
            LOGGER.exception("Failed to handle QQ recall in room %s", pair.qq_room_id)
            return False
        return True

    async def handle_remove_command(self, command: RemoveCommand, pair: Pair) -> None:
        """Delete the replied-to message on both platforms, then the command itself."""

        if await self._is_permitted(command):
            is_others = command.target_sender_id == self._telegram.bot_id
            await self.reconcile_from_tg(command.tg_chat_id, command.target_msg_id, pair, is_others)
            try:
                await self._telegram.delete_messages(command.tg_chat_id, [command.target_msg_id])
            except Exception as exc:
                LOGGER.warning("Failed to delete message %s", command.target_msg_id, exc_info=True)
                await self._notice(
                    command.tg_chat_id,
                    f"Failed to delete the message: {html.escape(str(exc))}",
                    expires=False,
                )
        else:
            await self._notice(command.tg_chat_id, "You cannot recall other people's messages")

        try:
            await self._telegram.delete_messages(command.tg_chat_id, [command.command_msg_id])
        except Exception:
            LOGGER.warning("Failed to delete /rm command %s", command.command_msg_id, exc_info=True)
            await self._notice(
                command.tg_chat_id,
                "The bot cannot delete messages from other users yet. "
                "Grant it the \"Delete messages\" admin right.",
                reply_to=command.command_msg_id,
            )

    async def _is_permitted(self, command: RemoveCommand) -> bool:
        if not needs_rights_lookup(self._work_mode, command.issuer_id, command.target_sender_id):
            return True
        # Only supergroups expose per-participant admin rights.
        if not command.is_supergroup:
            return False
        try:
            rights = await self._telegram.get_participant_rights(command.tg_chat_id, command.issuer_id)
        except Exception:
            LOGGER.warning("Failed to fetch rights of %s", command.issuer_id, exc_info=True)
            return False
        return is_delete_permitted(
            self._work_mode, command.issuer_id, command.target_sender_id, rights
        )

    async def _notice(
        self, chat_id: int, text: str, expires: bool = True, reply_to: Optional[int] = None
    ) -> None:
        ttl = self._notices.ttl_seconds if expires else None
        try:
            await self._telegram.send_notice(chat_id, text, ttl=ttl, reply_to=reply_to)
        except Exception:
            LOGGER.exception("Failed to send notice to chat %s", chat_id)
