"""Telethon adapter for the core TelegramPort.

Two clients are involved: the bridge bot, which serves linked chats, and
the operator's user account, which is the only one allowed to create
groups, manage folders and hide the peer settings bar.
"""

from __future__ import annotations

import asyncio
import io
import logging
from typing import Optional, Sequence

from telethon import Button, TelegramClient, functions, types, utils

from adapters.telegram_mapper import participant_rights
from core.models import FolderState, ParticipantRights

LOGGER = logging.getLogger(__name__)


def _named_file(data: bytes, name: str) -> io.BytesIO:
    # Telethon infers the upload type from the file name.
    handle = io.BytesIO(data)
    handle.name = name
    return handle


def _reply_keyboard(choices: Optional[Sequence[str]]):
    if not choices:
        return Button.clear()
    return [[Button.text(choice, resize=True, single_use=True)] for choice in choices]


def _folder_title(text: str):
    # Newer layers wrap folder titles in TextWithEntities.
    annotation = types.DialogFilter.__init__.__annotations__.get("title")
    if annotation is str or annotation == "str":
        return text
    return types.TextWithEntities(text=text, entities=[])


class MessageStatusSink:
    """Status sink that edits one bot message in place."""

    def __init__(self, message) -> None:
        self._message = message

    async def update(self, text: str) -> None:
        await self._message.edit(text)

    async def complete(self, text: str, link: str) -> None:
        await self._message.edit(text, buttons=Button.url("Open", link))


class TelegramPrimary:
    """Implements the core TelegramPort on top of two Telethon clients."""

    def __init__(self, bot: TelegramClient, user: Optional[TelegramClient], bot_me) -> None:
        self.bot = bot
        self.user = user
        self.bot_id: int = bot_me.id
        self.bot_username: str = bot_me.username
        self._expiring: set[asyncio.Task] = set()

    def _require_user(self) -> TelegramClient:
        if self.user is None:
            raise RuntimeError("This operation needs the Telegram user account (personal mode)")
        return self.user

    # Messages

    async def send_message(
        self, chat_id: int, text: str, choices: Optional[Sequence[str]] = None
    ) -> int:
        message = await self.bot.send_message(
            chat_id,
            text,
            buttons=_reply_keyboard(choices),
            parse_mode="html",
            link_preview=False,
        )
        return message.id

    async def send_photo(
        self,
        chat_id: int,
        image: bytes,
        caption: str,
        choices: Optional[Sequence[str]] = None,
    ) -> int:
        message = await self.bot.send_file(
            chat_id,
            _named_file(image, "qrcode.png"),
            caption=caption,
            buttons=_reply_keyboard(choices),
            parse_mode="html",
        )
        return message.id

    async def send_photo_with_buttons(self, chat_id: int, image: bytes, caption: str, buttons) -> int:
        message = await self.bot.send_file(
            chat_id,
            _named_file(image, "avatar.jpg"),
            caption=caption,
            buttons=buttons,
            parse_mode="html",
        )
        return message.id

    async def send_notice(
        self,
        chat_id: int,
        text: str,
        ttl: Optional[float] = None,
        reply_to: Optional[int] = None,
    ) -> None:
        message = await self.bot.send_message(
            chat_id, text, reply_to=reply_to, silent=True, parse_mode="html"
        )
        if ttl:
            task = asyncio.ensure_future(self._expire(message, ttl))
            # Keep a reference until the deletion ran.
            self._expiring.add(task)
            task.add_done_callback(self._expiring.discard)

    async def _expire(self, message, ttl: float) -> None:
        await asyncio.sleep(ttl)
        try:
            await message.delete(revoke=True)
        except Exception:
            LOGGER.warning("Failed to delete expired notice %s", message.id, exc_info=True)

    async def open_status(self, chat_id: int, text: str) -> MessageStatusSink:
        message = await self.bot.send_message(chat_id, text)
        return MessageStatusSink(message)

    async def delete_messages(self, chat_id: int, message_ids: Sequence[int]) -> None:
        await self.bot.delete_messages(chat_id, list(message_ids), revoke=True)

    # Chat provisioning

    async def create_group(self, title: str) -> int:
        user = self._require_user()
        result = await user(
            functions.messages.CreateChatRequest(users=[self.bot_username], title=title)
        )
        # Newer layers return InvitedUsers wrapping the Updates object.
        updates = getattr(result, "updates", result)
        chat = updates.chats[0]
        LOGGER.info("Created Telegram group %s (%s)", title, chat.id)
        return utils.get_peer_id(chat)

    async def promote_bot(self, chat_id: int) -> None:
        await self._require_user().edit_admin(chat_id, self.bot_username, is_admin=True)

    async def resolve_for_bot(self, chat_id: int) -> int:
        real_id, peer_type = utils.resolve_id(chat_id)
        entity = await self.bot.get_entity(peer_type(real_id))
        return utils.get_peer_id(entity)

    async def hide_add_members_bar(self, chat_id: int) -> None:
        await self._require_user()(functions.messages.HidePeerSettingsBarRequest(peer=chat_id))

    async def unmute(self, chat_id: int) -> None:
        user = self._require_user()
        peer = await user.get_input_entity(chat_id)
        await user(
            functions.account.UpdateNotifySettingsRequest(
                peer=types.InputNotifyPeer(peer=peer),
                settings=types.InputPeerNotifySettings(
                    silent=False, show_previews=True, mute_until=0
                ),
            )
        )

    async def set_photo(self, chat_id: int, image: bytes) -> None:
        uploaded = await self.bot.upload_file(_named_file(image, "avatar.jpg"))
        photo = types.InputChatUploadedPhoto(file=uploaded)
        real_id, peer_type = utils.resolve_id(chat_id)
        if peer_type is types.PeerChannel:
            await self.bot(functions.channels.EditPhotoRequest(channel=chat_id, photo=photo))
        else:
            await self.bot(functions.messages.EditChatPhotoRequest(chat_id=real_id, photo=photo))

    async def set_about(self, chat_id: int, text: str) -> None:
        await self.bot(functions.messages.EditChatAboutRequest(peer=chat_id, about=text))

    async def export_invite_link(self, chat_id: int) -> str:
        result = await self._require_user()(functions.messages.ExportChatInviteRequest(peer=chat_id))
        return result.link

    async def get_chat_title(self, chat_id: int) -> str:
        entity = await self.bot.get_entity(chat_id)
        return utils.get_display_name(entity)

    # Folder

    async def get_folder(self, folder_id: int) -> Optional[FolderState]:
        user = self._require_user()
        result = await user(functions.messages.GetDialogFiltersRequest())
        filters = getattr(result, "filters", result)
        for dialog_filter in filters:
            if isinstance(dialog_filter, types.DialogFilter) and dialog_filter.id == folder_id:
                title = getattr(dialog_filter.title, "text", dialog_filter.title)
                return FolderState(
                    id=dialog_filter.id,
                    title=title,
                    emoticon=dialog_filter.emoticon or "",
                    pinned=[utils.get_peer_id(peer) for peer in dialog_filter.pinned_peers],
                    included=[utils.get_peer_id(peer) for peer in dialog_filter.include_peers],
                )
        return None

    async def save_folder(self, folder: FolderState) -> bool:
        user = self._require_user()
        pinned = [await user.get_input_entity(peer_id) for peer_id in folder.pinned]
        # Pinned peers are implicitly part of the folder.
        included = [
            await user.get_input_entity(peer_id)
            for peer_id in folder.included
            if peer_id not in folder.pinned
        ]
        dialog_filter = types.DialogFilter(
            id=folder.id,
            title=_folder_title(folder.title),
            pinned_peers=pinned,
            include_peers=included,
            exclude_peers=[],
            emoticon=folder.emoticon,
        )
        return bool(
            await user(functions.messages.UpdateDialogFilterRequest(id=folder.id, filter=dialog_filter))
        )

    # Permissions

    async def get_participant_rights(self, chat_id: int, user_id: int) -> ParticipantRights:
        result = await self.bot(
            functions.channels.GetParticipantRequest(channel=chat_id, participant=user_id)
        )
        return participant_rights(result.participant)

    # Bot commands

    async def configure_commands(self, owner_id: int, commands: Sequence[tuple[str, str]]) -> None:
        """Show commands only in the owner's private chat."""

        await self.bot(
            functions.bots.SetBotCommandsRequest(
                scope=types.BotCommandScopeUsers(), lang_code="", commands=[]
            )
        )
        await self.bot(
            functions.bots.SetBotCommandsRequest(
                scope=types.BotCommandScopePeer(peer=await self.bot.get_input_entity(owner_id)),
                lang_code="",
                commands=[types.BotCommand(command=name, description=text) for name, text in commands],
            )
        )
