"""Conversation that walks the first /start user through setup.

The wizard only sequences questions; every state transition goes through
core.setup.SetupProtocol.
"""

from __future__ import annotations

import asyncio
import html
import logging
from typing import Optional

from telethon import TelegramClient

from core.config import UserConfig, WorkMode
from core.ports import QQClientFactory, QQClientPort
from core.setup import SetupProtocol, SetupProtocolError
from login import authorize_user

LOGGER = logging.getLogger(__name__)

WORK_MODES = {
    "Personal mode": WorkMode.PERSONAL,
    "Group mode": WorkMode.GROUP,
}

# QQ protocol platforms as numbered by the QQ client libraries.
QQ_PLATFORMS = {
    "Android phone": 1,
    "Android pad": 2,
    "Android watch": 3,
    "macOS": 4,
    "iPad": 5,
}


class SetupWizard:
    """Runs the setup dialog once the owner has been claimed."""

    def __init__(
        self,
        setup: SetupProtocol,
        user_client: Optional[TelegramClient],
        qq_factory: QQClientFactory,
    ) -> None:
        self._setup = setup
        self._user_client = user_client
        self._qq_factory = qq_factory
        self._result: Optional[asyncio.Future] = None
        self._task: Optional[asyncio.Task] = None

    def _result_future(self) -> asyncio.Future:
        if self._result is None:
            self._result = asyncio.get_running_loop().create_future()
        return self._result

    async def wait_finished(self) -> tuple[UserConfig, QQClientPort]:
        return await self._result_future()

    async def handle_start(self, sender_id: int) -> bool:
        """Claim ownership for sender_id and start the dialog if it won."""

        if not self._setup.claim_owner(sender_id):
            return False
        self._task = asyncio.ensure_future(self._run_to_result())
        return True

    async def _run_to_result(self) -> None:
        result = self._result_future()
        try:
            outcome = await self.run()
        except Exception as exc:
            LOGGER.exception("Setup aborted")
            result.set_exception(exc)
            return
        result.set_result(outcome)

    async def run(self) -> tuple[UserConfig, QQClientPort]:
        await self._setup.inform_owner("You are now the owner of this bot. Let's set it up.")

        mode = await self._choose(
            "Choose the work mode.\n"
            "<b>Personal mode</b>: one Telegram group per QQ chat, created for you.\n"
            "<b>Group mode</b>: link QQ groups with existing Telegram groups.",
            WORK_MODES,
        )
        self._setup.set_work_mode(mode)

        if mode is WorkMode.PERSONAL:
            await self._authorize_user_account()

        qq = await self._login_qq()
        config = self._setup.finish()
        await self._setup.inform_owner("Setup finished, the bridge is starting.")
        return config, qq

    async def _choose(self, text: str, options: dict):
        labels = list(options)
        while True:
            reply = await self._setup.prompt_owner(text, labels)
            if reply in options:
                return options[reply]
            text = "Please use one of the buttons below"

    async def _ask_int(self, text: str) -> int:
        while True:
            reply = (await self._setup.prompt_owner(text)).strip()
            if reply.isdigit():
                return int(reply)
            text = "Please send digits only"

    async def _authorize_user_account(self) -> None:
        if self._user_client is None:
            raise SetupProtocolError("Personal mode needs a Telegram user client")
        if not self._user_client.is_connected():
            await self._user_client.connect()
        while True:
            try:
                await authorize_user(self._user_client, self._setup)
                return
            except SetupProtocolError:
                raise
            except Exception as exc:
                LOGGER.exception("Telegram user login failed")
                await self._setup.inform_owner(
                    f"Telegram login failed, let's try again\n<code>{html.escape(str(exc))}</code>"
                )

    async def _login_qq(self) -> QQClientPort:
        while True:
            uin = await self._ask_int("Please send the QQ account number")
            password = await self._setup.prompt_owner("Please send the QQ password")
            platform = await self._choose("Choose the QQ login platform", QQ_PLATFORMS)
            self._setup.begin_qq_login(uin, password, platform)
            try:
                qq = await self._qq_factory(uin, password, platform, self._setup.challenge_handlers())
            except SetupProtocolError:
                raise
            except Exception as exc:
                LOGGER.exception("QQ login failed")
                await self._setup.inform_owner(
                    f"QQ login failed, let's try again\n<code>{html.escape(str(exc))}</code>"
                )
                continue
            self._setup.mark_authenticated()
            LOGGER.info("QQ account %s logged in", uin)
            return qq
