"""Chat description text for linked Telegram chats."""

from __future__ import annotations

from typing import Optional

from core.models import QQEntity, QQFriend, QQMember

# Telegram rejects chat descriptions longer than this.
ABOUT_MAX_CHARS = 255


def _member_label(member: QQMember) -> str:
    title = f"[{member.title}]" if member.title else ""
    return f"{title}{member.card or member.nickname}"


def format_about_text(
    entity: QQEntity,
    bot_username: str,
    owner: Optional[QQMember] = None,
    me: Optional[QQMember] = None,
) -> str:
    """Summarize the QQ profile behind a linked chat."""

    if isinstance(entity, QQFriend):
        lines = [
            f"Remark: {entity.remark}",
            f"Nickname: {entity.nickname}",
            f"QQ: {entity.user_id}",
        ]
    else:
        lines = [
            f"Group name: {entity.name}",
            f"{entity.member_count} members",
            f"Group number: {entity.group_id}",
        ]
        if me is not None:
            lines.append(f"My card: {_member_label(me)}")
        if owner is not None:
            lines.append(f"Owner: {_member_label(owner)} ({owner.user_id})")
        if entity.is_admin or entity.is_owner:
            lines.append("Manageable")

    footer = f"\n\nManaged by @{bot_username}"
    body = "\n".join(lines)
    # Keep the footer intact and clip the profile part.
    room = ABOUT_MAX_CHARS - len(footer)
    if len(body) > room:
        body = body[: max(0, room - 1)] + "…"
    return body + footer
