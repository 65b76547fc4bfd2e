"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to Telethon or QQ-client types.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union


class RoomKind(Enum):
    """QQ conversation kind, derived from the sign of the room id."""

    DIRECT = "direct"
    GROUP = "group"


def room_kind(qq_room_id: int) -> RoomKind:
    """Negative room ids are groups, positive ones are friends."""

    if qq_room_id < 0:
        return RoomKind.GROUP
    return RoomKind.DIRECT


@dataclass
class Pair:
    """Link between one QQ conversation and one Telegram chat.

    Only the ids are durable. tg_chat_id is replaced in place when Telegram
    migrates a basic group to a supergroup; qq_room_id never changes.
    """

    id: int
    qq_room_id: int
    tg_chat_id: int

    @property
    def kind(self) -> RoomKind:
        return room_kind(self.qq_room_id)


@dataclass(frozen=True)
class QQFriend:
    user_id: int
    nickname: str
    remark: str = ""
    class_id: int = 0

    @property
    def room_id(self) -> int:
        return self.user_id

    @property
    def kind(self) -> RoomKind:
        return RoomKind.DIRECT

    @property
    def display_name(self) -> str:
        return self.remark or self.nickname


@dataclass(frozen=True)
class QQGroup:
    group_id: int
    name: str
    member_count: int
    owner_id: int
    is_admin: bool = False
    is_owner: bool = False

    @property
    def room_id(self) -> int:
        return -self.group_id

    @property
    def kind(self) -> RoomKind:
        return RoomKind.GROUP

    @property
    def display_name(self) -> str:
        return self.name


# Resolved once by the QQ client; callers branch on the variant type.
QQEntity = Union[QQFriend, QQGroup]


@dataclass(frozen=True)
class QQMember:
    """Group member details used for the chat description."""

    user_id: int
    nickname: str
    card: str = ""
    title: str = ""


@dataclass(frozen=True)
class MessageRecord:
    """Correlation row between a Telegram message and a QQ message.

    QQ friend messages are recalled by send time, group messages by the
    internal packet counter, so both are kept.
    """

    tg_chat_id: int
    tg_msg_id: int
    qq_room_id: int
    seq: int
    rand: int
    time: int = 0
    pktnum: int = 0

    def recall_marker(self, kind: RoomKind) -> int:
        if kind is RoomKind.DIRECT:
            return self.time
        return self.pktnum


@dataclass(frozen=True)
class QQRecallEvent:
    """A recall reported by the QQ client."""

    qq_room_id: int
    seq: int
    rand: int


@dataclass(frozen=True)
class InboundMessage:
    """Minimal Telegram message context used by the input broker."""

    chat_id: int
    sender_id: Optional[int]
    message_id: int
    text: str


@dataclass(frozen=True)
class ParticipantRights:
    """Telegram participant rights relevant to deleting messages."""

    is_creator: bool = False
    is_admin: bool = False
    can_delete_messages: bool = False


@dataclass(frozen=True)
class RemoveCommand:
    """An operator-issued /rm replying to a forwarded message."""

    tg_chat_id: int
    command_msg_id: int
    issuer_id: int
    target_msg_id: int
    target_sender_id: Optional[int]
    is_supergroup: bool = True


@dataclass
class FolderState:
    """Local copy of the Telegram dialog filter holding linked chats."""

    id: int
    title: str
    emoticon: str
    pinned: list[int]
    included: list[int]
