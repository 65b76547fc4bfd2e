"""Create a Telegram group for a QQ conversation and link the two.

The workflow is an explicit ordered list of steps against two uncoordinated
remote systems. Registering the pair is the pivot: failures before it leave
no registry state behind ("failed"), failures after it keep the pair and are
reported as "linked but incomplete". Nothing is retried automatically.
"""

from __future__ import annotations

import asyncio
import html
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Optional

from core.about_text import format_about_text
from core.dedup import InflightTasks, avatar_hash
from core.folder import OrganizationalFolder
from core.models import Pair, QQEntity, QQGroup, RoomKind, room_kind
from core.pair_registry import PairRegistry
from core.ports import AvatarCache, AvatarSource, QQClientPort, StatusSink, TelegramPort

LOGGER = logging.getLogger(__name__)


class ProvisioningOutcome(Enum):
    LINKED = "linked"
    INCOMPLETE = "incomplete"
    FAILED = "failed"


class NullStatusSink:
    """Status sink for silent runs."""

    async def update(self, text: str) -> None:
        return None

    async def complete(self, text: str, link: str) -> None:
        return None


@dataclass
class ProvisioningRun:
    """Mutable state threaded through the steps of one run."""

    qq_room_id: int
    title: Optional[str]
    silent: bool
    status: StatusSink = field(default_factory=NullStatusSink)
    entity: Optional[QQEntity] = None
    tg_chat_id: Optional[int] = None
    bot_chat_id: Optional[int] = None
    pair: Optional[Pair] = None
    linked: bool = False

    @property
    def kind(self) -> RoomKind:
        return room_kind(self.qq_room_id)


def _always(run: ProvisioningRun) -> bool:
    return True


@dataclass(frozen=True)
class ProvisioningStep:
    name: str
    status_text: Optional[str]
    action: Callable[[ProvisioningRun], Awaitable[None]]
    applies: Callable[[ProvisioningRun], bool] = _always


class ProvisioningOrchestrator:
    """Runs the create + link + configure workflow."""

    def __init__(
        self,
        telegram: TelegramPort,
        qq: QQClientPort,
        registry: PairRegistry,
        avatars: AvatarSource,
        avatar_cache: AvatarCache,
        owner_id: int,
        folder: Optional[OrganizationalFolder] = None,
    ) -> None:
        self._telegram = telegram
        self._qq = qq
        self._registry = registry
        self._avatars = avatars
        self._avatar_cache = avatar_cache
        self._owner_id = owner_id
        self._folder = folder
        self._inflight: InflightTasks[ProvisioningOutcome] = InflightTasks()

    def steps(self) -> list[ProvisioningStep]:
        return [
            ProvisioningStep("resolve QQ entity", None, self._resolve_entity),
            ProvisioningStep("open status", None, self._open_status),
            ProvisioningStep("create group", None, self._create_group),
            ProvisioningStep("promote bot", "Setting up the bot as admin…", self._promote_bot),
            ProvisioningStep("resolve bot chat", None, self._resolve_for_bot),
            ProvisioningStep(
                "add to folder",
                "Adding the group to the folder…",
                self._add_to_folder,
                lambda run: self._folder is not None,
            ),
            ProvisioningStep("hide add members bar", "Hiding the add members bar…", self._hide_bar),
            ProvisioningStep(
                "unmute",
                "Unmuting notifications…",
                self._unmute,
                lambda run: run.kind is RoomKind.DIRECT,
            ),
            ProvisioningStep("register pair", "Writing the link to the database…", self._register),
            ProvisioningStep("set avatar", "Updating the avatar…", self._set_avatar),
            ProvisioningStep("set about", "Updating the description…", self._set_about),
            ProvisioningStep(
                "invite link",
                "Fetching the invite link…",
                self._finish_with_link,
                lambda run: not run.silent,
            ),
        ]

    async def link_new_channel(
        self, qq_room_id: int, title: Optional[str] = None, silent: bool = False
    ) -> ProvisioningOutcome:
        """Create a Telegram group for qq_room_id and link it."""

        LOGGER.info("Creating group and linking QQ room %s", qq_room_id)
        run = ProvisioningRun(qq_room_id=qq_room_id, title=title, silent=silent)
        try:
            for step in self.steps():
                if not step.applies(run):
                    continue
                if step.status_text:
                    await self._set_status(run, step.status_text)
                LOGGER.debug("QQ room %s: %s", qq_room_id, step.name)
                await step.action(run)
        except Exception as exc:
            LOGGER.exception("Failed to create and link group for QQ room %s", qq_room_id)
            if run.linked:
                outcome = ProvisioningOutcome.INCOMPLETE
                text = "Group linked, but setup did not fully complete"
            else:
                outcome = ProvisioningOutcome.FAILED
                text = "Failed to create and link group"
            await self._inform_owner(f"{text}\n<code>{html.escape(str(exc))}</code>")
            return outcome

        LOGGER.info("QQ room %s linked with Telegram chat %s", qq_room_id, run.bot_chat_id)
        return ProvisioningOutcome.LINKED

    async def ensure_linked(
        self, qq_room_id: int, title: Optional[str] = None, silent: bool = True
    ) -> Optional[Pair]:
        """Return the pair for qq_room_id, provisioning it at most once at a time.

        Callers arriving while a run for the same room is in flight join it
        and share its outcome instead of starting another.
        """

        pair = self._registry.find_by_qq(qq_room_id)
        if pair is not None:
            return pair

        # Joiners share the outcome of the run in flight, including a failure.
        task = self._inflight.start(
            qq_room_id, lambda: self.link_new_channel(qq_room_id, title, silent)
        )
        await asyncio.shield(task)
        return self._registry.find_by_qq(qq_room_id)

    async def link_existing_chat(self, qq_room_id: int, tg_chat_id: int) -> Optional[Pair]:
        """Link an existing Telegram group with a QQ room and tell the owner."""

        pair = None
        try:
            entity = await self._qq.get_entity(qq_room_id)
            chat_title = await self._telegram.get_chat_title(tg_chat_id)
            pair = await self._registry.add(qq_room_id, tg_chat_id)
            message = (
                f"QQ {html.escape(entity.display_name)} (<code>{abs(qq_room_id)}</code>) "
                f"is now linked with Telegram group {html.escape(chat_title)} "
                f"(<code>{tg_chat_id}</code>)"
            )
        except Exception as exc:
            LOGGER.exception("Failed to link QQ room %s with chat %s", qq_room_id, tg_chat_id)
            message = f"Error: <code>{html.escape(str(exc))}</code>"
        await self._inform_owner(message)
        return pair

    # Steps

    async def _resolve_entity(self, run: ProvisioningRun) -> None:
        run.entity = await self._qq.get_entity(run.qq_room_id)
        if not run.title:
            run.title = run.entity.display_name

    async def _open_status(self, run: ProvisioningRun) -> None:
        if run.silent:
            return
        try:
            run.status = await self._telegram.open_status(
                self._owner_id, "Creating the Telegram group…"
            )
        except Exception:
            LOGGER.exception("Failed to send status message, continuing without it")

    async def _create_group(self, run: ProvisioningRun) -> None:
        run.tg_chat_id = await self._telegram.create_group(run.title or str(run.qq_room_id))

    async def _promote_bot(self, run: ProvisioningRun) -> None:
        await self._telegram.promote_bot(run.tg_chat_id)

    async def _resolve_for_bot(self, run: ProvisioningRun) -> None:
        # The group was created by the user account; the bot needs its own handle.
        run.bot_chat_id = await self._telegram.resolve_for_bot(run.tg_chat_id)

    async def _add_to_folder(self, run: ProvisioningRun) -> None:
        added = await self._folder.add_chat(run.tg_chat_id)
        if not added:
            LOGGER.info("Folder disabled, chat %s was not added", run.tg_chat_id)

    async def _hide_bar(self, run: ProvisioningRun) -> None:
        await self._telegram.hide_add_members_bar(run.tg_chat_id)

    async def _unmute(self, run: ProvisioningRun) -> None:
        await self._telegram.unmute(run.tg_chat_id)

    async def _register(self, run: ProvisioningRun) -> None:
        run.pair = await self._registry.add(run.qq_room_id, run.bot_chat_id)
        run.linked = True

    async def _set_avatar(self, run: ProvisioningRun) -> None:
        image = await self._avatars.fetch(run.qq_room_id)
        await self._telegram.set_photo(run.bot_chat_id, image)
        self._avatar_cache.save_avatar_hash(run.pair.id, avatar_hash(image))

    async def _set_about(self, run: ProvisioningRun) -> None:
        entity = run.entity
        owner = me = None
        if isinstance(entity, QQGroup):
            owner = await self._qq.get_member(entity.group_id, entity.owner_id)
            me = await self._qq.get_member(entity.group_id, self._qq.uin)
        text = format_about_text(entity, self._telegram.bot_username, owner=owner, me=me)
        await self._telegram.set_about(run.bot_chat_id, text)

    async def _finish_with_link(self, run: ProvisioningRun) -> None:
        link = await self._telegram.export_invite_link(run.tg_chat_id)
        try:
            await run.status.complete("Done!", link)
        except Exception:
            LOGGER.exception("Failed to update status for QQ room %s", run.qq_room_id)

    # Reporting

    async def _set_status(self, run: ProvisioningRun, text: str) -> None:
        try:
            await run.status.update(text)
        except Exception:
            LOGGER.exception("Failed to update status for QQ room %s", run.qq_room_id)

    async def _inform_owner(self, text: str) -> None:
        try:
            await self._telegram.send_message(self._owner_id, text)
        except Exception:
            LOGGER.exception("Failed to inform the owner")
