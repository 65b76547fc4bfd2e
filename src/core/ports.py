"""Ports (interfaces) used by the core.

Ports define the minimal contracts for Telegram, QQ, storage and config
adapters so that the core can be exercised with fakes and reused with
different backends.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Protocol, Sequence

from core.config import UserConfig
from core.models import (
    FolderState,
    MessageRecord,
    Pair,
    ParticipantRights,
    QQEntity,
    QQFriend,
    QQGroup,
    QQMember,
    QQRecallEvent,
)


class StatusSink(Protocol):
    """A single status message edited in place as a workflow advances."""

    async def update(self, text: str) -> None:
        ...

    async def complete(self, text: str, link: str) -> None:
        ...


class TelegramPort(Protocol):
    """Telegram operations consumed by the core.

    Chat ids are Telethon "marked" peer ids. Group creation and folder edits
    run on the user account; everything else runs as the bridge bot.
    """

    bot_username: str
    bot_id: int

    async def send_message(
        self, chat_id: int, text: str, choices: Optional[Sequence[str]] = None
    ) -> int:
        ...

    async def send_photo(
        self,
        chat_id: int,
        image: bytes,
        caption: str,
        choices: Optional[Sequence[str]] = None,
    ) -> int:
        ...

    async def send_notice(
        self,
        chat_id: int,
        text: str,
        ttl: Optional[float] = None,
        reply_to: Optional[int] = None,
    ) -> None:
        ...

    async def open_status(self, chat_id: int, text: str) -> StatusSink:
        ...

    async def create_group(self, title: str) -> int:
        ...

    async def promote_bot(self, chat_id: int) -> None:
        ...

    async def resolve_for_bot(self, chat_id: int) -> int:
        ...

    async def hide_add_members_bar(self, chat_id: int) -> None:
        ...

    async def unmute(self, chat_id: int) -> None:
        ...

    async def set_photo(self, chat_id: int, image: bytes) -> None:
        ...

    async def set_about(self, chat_id: int, text: str) -> None:
        ...

    async def export_invite_link(self, chat_id: int) -> str:
        ...

    async def get_chat_title(self, chat_id: int) -> str:
        ...

    async def get_folder(self, folder_id: int) -> Optional[FolderState]:
        ...

    async def save_folder(self, folder: FolderState) -> bool:
        ...

    async def delete_messages(self, chat_id: int, message_ids: Sequence[int]) -> None:
        ...

    async def get_participant_rights(self, chat_id: int, user_id: int) -> ParticipantRights:
        ...


class QQClientPort(Protocol):
    """QQ client operations consumed by the core."""

    uin: int

    async def get_entity(self, qq_room_id: int) -> QQEntity:
        ...

    async def get_member(self, group_id: int, user_id: int) -> QQMember:
        ...

    async def recall(self, qq_room_id: int, seq: int, rand: int, marker: int) -> bool:
        ...

    async def list_groups(self) -> list[QQGroup]:
        ...

    async def list_friends(self) -> list[QQFriend]:
        ...

    async def list_friend_classes(self) -> dict[int, str]:
        ...

    def add_private_message_handler(self, handler: Callable[[QQFriend], Awaitable[None]]) -> None:
        ...

    def add_recall_handler(self, handler: Callable[[QQRecallEvent], Awaitable[None]]) -> None:
        ...


class AvatarSource(Protocol):
    async def fetch(self, qq_room_id: int) -> bytes:
        ...


class PairStore(Protocol):
    def list_pairs(self) -> list[Pair]:
        ...

    def insert_pair(self, qq_room_id: int, tg_chat_id: int) -> Pair:
        ...

    def update_pair_chat(self, pair_id: int, tg_chat_id: int) -> None:
        ...


class MessageStore(Protocol):
    def save_message(self, record: MessageRecord) -> None:
        ...

    def pop_by_tg(self, tg_chat_id: int, tg_msg_id: int) -> Optional[MessageRecord]:
        ...

    def pop_by_qq(self, qq_room_id: int, seq: int, rand: int) -> Optional[MessageRecord]:
        ...


class AvatarCache(Protocol):
    def save_avatar_hash(self, pair_id: int, avatar_hash: str) -> None:
        ...

    def get_avatar_hash(self, pair_id: int) -> Optional[str]:
        ...


class ConfigStore(Protocol):
    def load(self) -> UserConfig:
        ...

    def save(self, config: UserConfig) -> None:
        ...


@dataclass(frozen=True)
class ChallengeHandlers:
    """Callbacks the QQ client invokes when the login needs the owner.

    on_slider returns an empty ticket when the owner asks to switch to QR
    login; the QQ client is expected to restart the login under QR.
    """

    on_password: Callable[[Optional[str]], Awaitable[str]]
    on_device_code: Callable[[str], Awaitable[str]]
    on_qr_code: Callable[[bytes], Awaitable[None]]
    on_slider: Callable[[str], Awaitable[str]]


# Signature of the configured QQ client factory: (uin, password, platform, handlers).
QQClientFactory = Callable[[int, str, int, ChallengeHandlers], Awaitable[QQClientPort]]
