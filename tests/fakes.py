"""In-memory stand-ins for the ports used by core tests."""

from __future__ import annotations

import asyncio
from typing import Optional, Sequence

from core.config import UserConfig
from core.models import (
    FolderState,
    MessageRecord,
    Pair,
    ParticipantRights,
    QQFriend,
    QQGroup,
    QQMember,
)


class FakeStatus:
    def __init__(self, fail: bool = False) -> None:
        self.updates: list[str] = []
        self.completed: Optional[tuple[str, str]] = None
        self.fail = fail

    async def update(self, text: str) -> None:
        if self.fail:
            raise RuntimeError("message to edit not found")
        self.updates.append(text)

    async def complete(self, text: str, link: str) -> None:
        if self.fail:
            raise RuntimeError("message to edit not found")
        self.completed = (text, link)


class FakeTelegram:
    """Records every call; methods listed in fail_on raise RuntimeError."""

    bot_username = "bridge_bot"
    bot_id = 999

    def __init__(self, fail_on: Sequence[str] = (), status_fails: bool = False) -> None:
        self.fail_on = set(fail_on)
        self.calls: list[tuple] = []
        self.sent: list[tuple[int, str, Optional[Sequence[str]]]] = []
        self.photos: list[tuple[int, bytes, str, Optional[Sequence[str]]]] = []
        self.notices: list[dict] = []
        self.deleted: list[tuple[int, list[int]]] = []
        self.folders: dict[int, FolderState] = {}
        self.saved_folders: list[FolderState] = []
        self.rights: dict[tuple[int, int], ParticipantRights] = {}
        self.status = FakeStatus(fail=status_fails)
        self.save_folder_result = True
        self.create_delay = 0.0
        self._next_chat = -1000

    def _call(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        if name in self.fail_on:
            raise RuntimeError(f"{name} failed")

    def called(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]

    async def send_message(self, chat_id: int, text: str, choices=None) -> int:
        self._call("send_message", chat_id)
        self.sent.append((chat_id, text, choices))
        return len(self.sent)

    async def send_photo(self, chat_id: int, image: bytes, caption: str, choices=None) -> int:
        self._call("send_photo", chat_id)
        self.photos.append((chat_id, image, caption, choices))
        return len(self.photos)

    async def send_notice(self, chat_id: int, text: str, ttl=None, reply_to=None) -> None:
        self._call("send_notice", chat_id)
        self.notices.append({"chat_id": chat_id, "text": text, "ttl": ttl, "reply_to": reply_to})

    async def open_status(self, chat_id: int, text: str) -> FakeStatus:
        self._call("open_status", chat_id)
        return self.status

    async def create_group(self, title: str) -> int:
        self._call("create_group", title)
        if self.create_delay:
            await asyncio.sleep(self.create_delay)
        self._next_chat -= 1
        return self._next_chat

    async def promote_bot(self, chat_id: int) -> None:
        self._call("promote_bot", chat_id)

    async def resolve_for_bot(self, chat_id: int) -> int:
        self._call("resolve_for_bot", chat_id)
        return chat_id

    async def hide_add_members_bar(self, chat_id: int) -> None:
        self._call("hide_add_members_bar", chat_id)

    async def unmute(self, chat_id: int) -> None:
        self._call("unmute", chat_id)

    async def set_photo(self, chat_id: int, image: bytes) -> None:
        self._call("set_photo", chat_id)

    async def set_about(self, chat_id: int, text: str) -> None:
        self._call("set_about", chat_id, text)

    async def export_invite_link(self, chat_id: int) -> str:
        self._call("export_invite_link", chat_id)
        return f"https://t.me/+invite{abs(chat_id)}"

    async def get_chat_title(self, chat_id: int) -> str:
        self._call("get_chat_title", chat_id)
        return f"Chat {chat_id}"

    async def get_folder(self, folder_id: int) -> Optional[FolderState]:
        self._call("get_folder", folder_id)
        return self.folders.get(folder_id)

    async def save_folder(self, folder: FolderState) -> bool:
        self._call("save_folder", folder.id)
        self.saved_folders.append(
            FolderState(folder.id, folder.title, folder.emoticon, list(folder.pinned), list(folder.included))
        )
        return self.save_folder_result

    async def delete_messages(self, chat_id: int, message_ids) -> None:
        self._call("delete_messages", chat_id)
        self.deleted.append((chat_id, list(message_ids)))

    async def get_participant_rights(self, chat_id: int, user_id: int) -> ParticipantRights:
        self._call("get_participant_rights", chat_id, user_id)
        return self.rights.get((chat_id, user_id), ParticipantRights())


class FakeQQ:
    uin = 10001

    def __init__(self, recall_result: bool = True, recall_error: Optional[Exception] = None) -> None:
        self.entities: dict[int, object] = {
            12345: QQFriend(user_id=12345, nickname="Alice", remark="Ally"),
            -67890: QQGroup(group_id=67890, name="Book club", member_count=42, owner_id=20002),
        }
        self.members: dict[tuple[int, int], QQMember] = {
            (67890, 20002): QQMember(user_id=20002, nickname="Bob", card="Bobby"),
            (67890, 10001): QQMember(user_id=10001, nickname="Me", title="Reader"),
        }
        self.recall_result = recall_result
        self.recall_error = recall_error
        self.recalls: list[tuple[int, int, int, int]] = []

    async def get_entity(self, qq_room_id: int):
        return self.entities[qq_room_id]

    async def get_member(self, group_id: int, user_id: int) -> Optional[QQMember]:
        return self.members.get((group_id, user_id))

    async def recall(self, qq_room_id: int, seq: int, rand: int, marker: int) -> bool:
        self.recalls.append((qq_room_id, seq, rand, marker))
        if self.recall_error is not None:
            raise self.recall_error
        return self.recall_result

    async def list_groups(self) -> list[QQGroup]:
        return [entity for entity in self.entities.values() if isinstance(entity, QQGroup)]

    async def list_friends(self) -> list[QQFriend]:
        return [entity for entity in self.entities.values() if isinstance(entity, QQFriend)]

    async def list_friend_classes(self) -> dict[int, str]:
        return {0: "My friends"}

    def add_private_message_handler(self, handler) -> None:
        pass

    def add_recall_handler(self, handler) -> None:
        pass


class FakeAvatars:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail

    async def fetch(self, qq_room_id: int) -> bytes:
        if self.fail:
            raise RuntimeError("avatar download failed")
        return b"avatar-" + str(qq_room_id).encode()


class FakeStorage:
    """PairStore, MessageStore and AvatarCache in one object."""

    def __init__(self) -> None:
        self.pairs: list[Pair] = []
        self.messages: list[MessageRecord] = []
        self.avatar_hashes: dict[int, str] = {}

    def list_pairs(self) -> list[Pair]:
        return [Pair(p.id, p.qq_room_id, p.tg_chat_id) for p in self.pairs]

    def insert_pair(self, qq_room_id: int, tg_chat_id: int) -> Pair:
        pair = Pair(id=len(self.pairs) + 1, qq_room_id=qq_room_id, tg_chat_id=tg_chat_id)
        self.pairs.append(Pair(pair.id, qq_room_id, tg_chat_id))
        return pair

    def update_pair_chat(self, pair_id: int, tg_chat_id: int) -> None:
        for pair in self.pairs:
            if pair.id == pair_id:
                pair.tg_chat_id = tg_chat_id

    def save_message(self, record: MessageRecord) -> None:
        self.messages.append(record)

    def pop_by_tg(self, tg_chat_id: int, tg_msg_id: int) -> Optional[MessageRecord]:
        for record in self.messages:
            if record.tg_chat_id == tg_chat_id and record.tg_msg_id == tg_msg_id:
                self.messages.remove(record)
                return record
        return None

    def pop_by_qq(self, qq_room_id: int, seq: int, rand: int) -> Optional[MessageRecord]:
        for record in self.messages:
            if (record.qq_room_id, record.seq, record.rand) == (qq_room_id, seq, rand):
                self.messages.remove(record)
                return record
        return None

    def save_avatar_hash(self, pair_id: int, avatar_hash: str) -> None:
        self.avatar_hashes[pair_id] = avatar_hash

    def get_avatar_hash(self, pair_id: int) -> Optional[str]:
        return self.avatar_hashes.get(pair_id)


class FakeConfigStore:
    def __init__(self) -> None:
        self.saved: list[UserConfig] = []

    def load(self) -> UserConfig:
        return self.saved[-1] if self.saved else UserConfig()

    def save(self, config: UserConfig) -> None:
        self.saved.append(config)
