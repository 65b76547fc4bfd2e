"""Route Telegram and QQ events to the core workflows.

Handlers are registered once the bridge is set up. Every handler catches
and logs its own failures so one bad event never stops the clients.
"""

from __future__ import annotations

import html
import logging
import re
from typing import Callable, Sequence

from telethon import Button, events, types

from adapters.telegram_mapper import inbound_from_message, migration_from_message, remove_command_from_message
from adapters.telegram_primary import TelegramPrimary
from core.config import UserConfig, WorkMode
from core.deletion import DeletionReconciler
from core.input_broker import InputBroker
from core.models import QQFriend, QQRecallEvent
from core.pair_registry import PairRegistry
from core.ports import AvatarSource, QQClientPort
from core.provisioning import ProvisioningOrchestrator

LOGGER = logging.getLogger(__name__)

PERSONAL_COMMANDS = [
    ("addfriend", "Link a QQ friend"),
    ("addgroup", "Link a QQ group"),
]
GROUP_COMMANDS = [
    ("add", "Link a QQ group"),
]

PAGE_SIZE = 10
ROOM_ID = re.compile(r"^-?\d+$")
QQ_NUMBER = re.compile(r"^\d{5,12}$")


def _command_name(text: str) -> str:
    # "/addgroup@SomeBot" -> "/addgroup"
    return text.split("@", 1)[0]


def paginate(rows: list, page: int, nav_data: Callable[[int], str]) -> list:
    """Return one page of button rows plus a navigation row when needed."""

    start = page * PAGE_SIZE
    chunk = rows[start : start + PAGE_SIZE]
    nav = []
    if page > 0:
        nav.append(Button.inline("< Prev", nav_data(page - 1)))
    if start + PAGE_SIZE < len(rows):
        nav.append(Button.inline("Next >", nav_data(page + 1)))
    if nav:
        chunk = chunk + [nav]
    return chunk


class BridgeController:
    """Dispatcher between platform events and the core."""

    def __init__(
        self,
        telegram: TelegramPrimary,
        qq: QQClientPort,
        registry: PairRegistry,
        orchestrator: ProvisioningOrchestrator,
        reconciler: DeletionReconciler,
        broker: InputBroker,
        avatars: AvatarSource,
        config: UserConfig,
    ) -> None:
        self._telegram = telegram
        self._qq = qq
        self._registry = registry
        self._orchestrator = orchestrator
        self._reconciler = reconciler
        self._broker = broker
        self._avatars = avatars
        self._config = config

    @property
    def commands(self) -> Sequence[tuple[str, str]]:
        if self._config.work_mode is WorkMode.PERSONAL:
            return PERSONAL_COMMANDS
        return GROUP_COMMANDS

    def register(self) -> None:
        bot = self._telegram.bot
        bot.add_event_handler(self._on_new_message, events.NewMessage(incoming=True))
        bot.add_event_handler(self._on_deleted, events.MessageDeleted())
        bot.add_event_handler(self._on_service_update, events.Raw(types.UpdateNewMessage))
        bot.add_event_handler(self._on_callback, events.CallbackQuery())
        self._qq.add_private_message_handler(self._on_qq_private_message)
        self._qq.add_recall_handler(self._on_qq_recall)

    def _associate_link(self, qq_room_id: int) -> str:
        return f"https://t.me/{self._telegram.bot_username}?startgroup={qq_room_id}"

    # Telegram events

    async def _on_new_message(self, event) -> None:
        try:
            message = event.message
            if self._broker.dispatch(event.chat_id, inbound_from_message(message)):
                return
            if event.is_private:
                if event.sender_id != self._config.owner:
                    return
                await self._handle_owner_command(message.raw_text or "")
            elif event.is_group:
                await self._handle_group_message(event)
        except Exception:
            LOGGER.exception("Error while processing Telegram message")

    async def _handle_owner_command(self, text: str) -> None:
        parts = text.split()
        if not parts:
            return
        command = _command_name(parts[0])

        if self._config.work_mode is WorkMode.PERSONAL:
            if command == "/addfriend":
                await self._show_friend_classes()
            elif command == "/addgroup":
                await self._send_group_page(0)
            return

        if command != "/add":
            return
        # Group numbers are always given as positive QQ numbers.
        if len(parts) == 3 and QQ_NUMBER.match(parts[1]) and ROOM_ID.match(parts[2]):
            await self._orchestrator.link_existing_chat(-int(parts[1]), int(parts[2]))
        elif len(parts) >= 2 and QQ_NUMBER.match(parts[1]):
            await self._show_group_card(int(parts[1]))
        else:
            await self._send_group_page(0)

    async def _handle_group_message(self, event) -> None:
        message = event.message
        parts = (message.raw_text or "").split()
        if not parts:
            return
        command = _command_name(parts[0])

        if command == "/start" and len(parts) == 2 and ROOM_ID.match(parts[1]):
            if event.sender_id == self._config.owner:
                await self._orchestrator.link_existing_chat(int(parts[1]), event.chat_id)
            return

        if command != "/rm":
            return
        pair = self._registry.find_by_tg(event.chat_id)
        if pair is None:
            return
        reply = await message.get_reply_message()
        if reply is None:
            await self._telegram.send_notice(
                event.chat_id, "Reply to a message with /rm to recall it", ttl=5
            )
            return
        await message.get_chat()
        await self._reconciler.handle_remove_command(remove_command_from_message(message, reply), pair)

    async def _on_deleted(self, event) -> None:
        try:
            # Deletions in basic groups and private chats carry no chat id.
            if event.chat_id is None:
                return
            pair = self._registry.find_by_tg(event.chat_id)
            if pair is None:
                return
            for message_id in event.deleted_ids:
                await self._reconciler.reconcile_from_tg(event.chat_id, message_id, pair)
        except Exception:
            LOGGER.exception("Error while processing Telegram deletion")

    async def _on_service_update(self, update) -> None:
        try:
            migration = migration_from_message(update.message)
            if migration is None:
                return
            await self._registry.migrate(*migration)
        except Exception:
            LOGGER.exception("Error while processing Telegram service message")

    async def _on_callback(self, event) -> None:
        try:
            if event.sender_id != self._config.owner:
                await event.answer()
                return
            data = event.data.decode("utf-8")
            kind, _, arg = data.partition(":")
            if kind == "link":
                await self._link_from_menu(event, int(arg))
            elif kind == "groups":
                await event.edit(buttons=await self._group_rows(int(arg)))
            elif kind == "class":
                class_id, _, page = arg.partition(":")
                await event.edit(buttons=await self._friend_rows(int(class_id), int(page or 0)))
            else:
                await event.answer()
        except Exception:
            LOGGER.exception("Error while processing callback query")

    async def _link_from_menu(self, event, qq_room_id: int) -> None:
        if self._registry.find_by_qq(qq_room_id) is not None:
            await event.answer("Already linked")
            return
        await event.answer()
        await self._orchestrator.ensure_linked(qq_room_id, silent=False)

    # Selection menus

    async def _group_rows(self, page: int) -> list:
        groups = await self._qq.list_groups()
        rows = []
        for group in groups:
            label = f"{group.name} ({group.group_id})"
            if self._config.work_mode is WorkMode.PERSONAL:
                rows.append([Button.inline(label, f"link:{group.room_id}")])
            else:
                rows.append([Button.url(label, self._associate_link(group.room_id))])
        return paginate(rows, page, lambda p: f"groups:{p}")

    async def _send_group_page(self, page: int) -> None:
        text = "Choose a QQ group"
        if self._config.work_mode is WorkMode.GROUP:
            text += "\nthen choose the Telegram group to link it with"
        await self._telegram.bot.send_message(
            self._config.owner, text, buttons=await self._group_rows(page)
        )

    async def _show_friend_classes(self) -> None:
        classes = await self._qq.list_friend_classes()
        rows = [
            [Button.inline(name, f"class:{class_id}:0")]
            for class_id, name in sorted(classes.items(), key=lambda item: item[1])
        ]
        await self._telegram.bot.send_message(self._config.owner, "Choose a friend category", buttons=rows)

    async def _friend_rows(self, class_id: int, page: int) -> list:
        friends = [friend for friend in await self._qq.list_friends() if friend.class_id == class_id]
        rows = [
            [Button.inline(f"{friend.display_name} ({friend.user_id})", f"link:{friend.room_id}")]
            for friend in friends
        ]
        return paginate(rows, page, lambda p: f"class:{class_id}:{p}")

    async def _show_group_card(self, group_id: int) -> None:
        entity = await self._qq.get_entity(-group_id)
        caption = f"{html.escape(entity.display_name)}\n{group_id}\n{entity.member_count} members"
        button = Button.url("Link a Telegram group", self._associate_link(-group_id))
        try:
            avatar = await self._avatars.fetch(-group_id)
        except Exception:
            LOGGER.exception("Failed to load avatar of group %s", group_id)
            avatar = None
        if avatar:
            await self._telegram.send_photo_with_buttons(self._config.owner, avatar, caption, button)
        else:
            await self._telegram.bot.send_message(self._config.owner, caption, buttons=button, parse_mode="html")

    # QQ events

    async def _on_qq_private_message(self, friend: QQFriend) -> None:
        if self._config.work_mode is not WorkMode.PERSONAL:
            return
        try:
            # Creates the chat on first contact; concurrent arrivals share one run.
            await self._orchestrator.ensure_linked(friend.user_id, friend.display_name, silent=True)
        except Exception:
            LOGGER.exception("Failed to link QQ friend %s", friend.user_id)

    async def _on_qq_recall(self, event: QQRecallEvent) -> None:
        pair = self._registry.find_by_qq(event.qq_room_id)
        if pair is None:
            return
        await self._reconciler.reconcile_from_qq(event, pair)
