"""Telegram-to-core mapping adapter.

This keeps Telethon-specific details out of the core.
"""

from __future__ import annotations

from typing import Optional

from telethon import utils
from telethon.tl.custom import Message
from telethon.tl.types import (
    Channel,
    ChannelParticipantAdmin,
    ChannelParticipantCreator,
    MessageActionChatMigrateTo,
    MessageService,
    PeerChannel,
)

from core.models import InboundMessage, ParticipantRights, RemoveCommand


def inbound_from_message(message: Message) -> InboundMessage:
    """Build the broker's message context from a Telethon Message."""

    return InboundMessage(
        chat_id=message.chat_id,
        sender_id=message.sender_id,
        message_id=message.id,
        text=message.raw_text or "",
    )


def participant_rights(participant) -> ParticipantRights:
    """Map a ChannelParticipant* object to the rights the core checks."""

    if isinstance(participant, ChannelParticipantCreator):
        return ParticipantRights(is_creator=True, is_admin=True, can_delete_messages=True)
    if isinstance(participant, ChannelParticipantAdmin):
        admin_rights = getattr(participant, "admin_rights", None)
        return ParticipantRights(
            is_admin=True,
            can_delete_messages=bool(getattr(admin_rights, "delete_messages", False)),
        )
    return ParticipantRights()


def migration_from_message(message) -> Optional[tuple[int, int]]:
    """Return (old_chat_id, new_chat_id) for a basic group upgrade notice."""

    if not isinstance(message, MessageService):
        return None
    action = message.action
    if not isinstance(action, MessageActionChatMigrateTo):
        return None
    old_chat_id = utils.get_peer_id(message.peer_id)
    new_chat_id = utils.get_peer_id(PeerChannel(action.channel_id))
    return old_chat_id, new_chat_id


def is_supergroup(chat) -> bool:
    # Basic groups are Chat objects; only Channel exposes participant rights.
    return isinstance(chat, Channel)


def remove_command_from_message(message: Message, reply: Message) -> RemoveCommand:
    """Describe a /rm command replying to reply."""

    return RemoveCommand(
        tg_chat_id=message.chat_id,
        command_msg_id=message.id,
        issuer_id=message.sender_id,
        target_msg_id=reply.id,
        target_sender_id=reply.sender_id,
        is_supergroup=is_supergroup(message.chat),
    )
