"""Permission decisions for operator commands (core domain)."""

from __future__ import annotations

from typing import Optional

from core.config import WorkMode
from core.models import ParticipantRights


def is_delete_permitted(
    work_mode: WorkMode,
    issuer_id: int,
    target_sender_id: Optional[int],
    rights: Optional[ParticipantRights] = None,
) -> bool:
    """Return whether issuer may delete the targeted message on both sides.

    - personal mode: the single operator may delete anything.
    - anyone may delete their own message.
    - otherwise the issuer must be the chat creator or an admin holding
      the "delete messages" right.
    """

    if work_mode is WorkMode.PERSONAL:
        return True
    if target_sender_id is not None and target_sender_id == issuer_id:
        return True
    if rights is None:
        return False
    return rights.is_creator or (rights.is_admin and rights.can_delete_messages)


def needs_rights_lookup(work_mode: WorkMode, issuer_id: int, target_sender_id: Optional[int]) -> bool:
    """True when only the participant rights can decide the outcome."""

    return not is_delete_permitted(work_mode, issuer_id, target_sender_id)
