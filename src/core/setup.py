"""One-time setup protocol: claim ownership and authenticate the QQ account.

The protocol is a strictly sequential state machine owned by a single
SetupProtocol instance. Ownership is claimed with a compare-and-set so the
first /start wins even if several arrive at once.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from core.config import UserConfig, WorkMode
from core.input_broker import InputBroker
from core.ports import ChallengeHandlers, ConfigStore, TelegramPort

LOGGER = logging.getLogger(__name__)

SCANNED_QR = "I have scanned it"
SWITCH_TO_QR = "Switch to QR login"


class SetupPhase(Enum):
    UNCLAIMED = 0
    OWNER_CLAIMED = 1
    AWAITING_QQ_CREDENTIALS = 2
    AWAITING_QQ_CHALLENGE = 3
    AUTHENTICATED = 4
    FINISHED = 5


class ChallengeKind(Enum):
    PASSWORD = "password"
    DEVICE_CODE = "device_code"
    QR_CODE = "qr_code"
    SLIDER = "slider"


class SetupProtocolError(RuntimeError):
    """A setup step was invoked out of order. This is a programming error."""


@dataclass
class SetupState:
    owner_id: Optional[int] = None
    work_mode: WorkMode = WorkMode.PERSONAL
    phase: SetupPhase = SetupPhase.UNCLAIMED
    challenge: Optional[ChallengeKind] = None
    qq_uin: Optional[int] = None
    qq_password: Optional[str] = None
    qq_platform: int = 1


class SetupProtocol:
    """Drives ownership claim, owner prompts and QQ login challenges."""

    def __init__(
        self,
        state: SetupState,
        telegram: TelegramPort,
        broker: InputBroker,
        config_store: ConfigStore,
    ) -> None:
        self.state = state
        self._telegram = telegram
        self._broker = broker
        self._config_store = config_store
        self._claim_lock = threading.Lock()

    @property
    def phase(self) -> SetupPhase:
        return self.state.phase

    def claim_owner(self, candidate_id: int) -> bool:
        """Make candidate_id the owner. Only the first call succeeds."""

        with self._claim_lock:
            if self.state.phase is not SetupPhase.UNCLAIMED:
                return False
            self.state.owner_id = candidate_id
            self.state.phase = SetupPhase.OWNER_CLAIMED
        LOGGER.info("User %s is now the bot owner", candidate_id)
        return True

    def _require(self, *phases: SetupPhase) -> None:
        if self.state.phase not in phases:
            raise SetupProtocolError(
                f"Setup step not allowed in phase {self.state.phase.name}"
            )

    def _require_owner(self) -> int:
        if self.state.owner_id is None or self.state.phase is SetupPhase.UNCLAIMED:
            raise SetupProtocolError("The owner has not been claimed yet")
        return self.state.owner_id

    async def inform_owner(self, text: str, choices: Optional[Sequence[str]] = None) -> None:
        owner_id = self._require_owner()
        await self._telegram.send_message(owner_id, text, choices)

    async def prompt_owner(
        self, text: Optional[str] = None, choices: Optional[Sequence[str]] = None
    ) -> str:
        """Optionally send text, then return the owner's next message text."""

        owner_id = self._require_owner()
        # Register before sending so a fast reply cannot slip past the slot.
        reply = self._broker.wait_for(owner_id)
        try:
            if text:
                await self._telegram.send_message(owner_id, text, choices)
        except Exception:
            self._broker.cancel(owner_id)
            raise
        message = await reply
        return message.text

    def set_work_mode(self, mode: WorkMode) -> None:
        self._require(SetupPhase.OWNER_CLAIMED)
        self.state.work_mode = mode

    def begin_qq_login(self, uin: int, password: str, platform: int) -> None:
        # A failed login may be retried with new credentials.
        self._require(
            SetupPhase.OWNER_CLAIMED,
            SetupPhase.AWAITING_QQ_CREDENTIALS,
            SetupPhase.AWAITING_QQ_CHALLENGE,
        )
        self.state.qq_uin = uin
        self.state.qq_password = password
        self.state.qq_platform = platform
        self.state.challenge = None
        self.state.phase = SetupPhase.AWAITING_QQ_CREDENTIALS

    def _enter_challenge(self, kind: ChallengeKind) -> None:
        self._require(SetupPhase.AWAITING_QQ_CREDENTIALS, SetupPhase.AWAITING_QQ_CHALLENGE)
        self.state.phase = SetupPhase.AWAITING_QQ_CHALLENGE
        self.state.challenge = kind
        LOGGER.info("QQ login requested a %s challenge", kind.value)

    async def on_password(self, hint: Optional[str] = None) -> str:
        self._enter_challenge(ChallengeKind.PASSWORD)
        text = "Please enter the QQ password"
        if hint:
            text += f"\nHint: {hint}"
        return await self.prompt_owner(text)

    async def on_device_code(self, phone: str) -> str:
        self._enter_challenge(ChallengeKind.DEVICE_CODE)
        return await self.prompt_owner(f"Please enter the verification code sent to {phone}")

    async def send_owner_photo(
        self, image: bytes, caption: str, choices: Optional[Sequence[str]] = None
    ) -> None:
        owner_id = self._require_owner()
        await self._telegram.send_photo(owner_id, image, caption, choices)

    async def on_qr_code(self, image: bytes) -> None:
        self._enter_challenge(ChallengeKind.QR_CODE)
        owner_id = self._require_owner()
        reply = self._broker.wait_for(owner_id)
        try:
            await self.send_owner_photo(
                image,
                "Scan this QR code with a phone already logged in to this QQ account",
                [SCANNED_QR],
            )
        except Exception:
            self._broker.cancel(owner_id)
            raise
        await reply

    async def on_slider(self, url: str) -> str:
        self._enter_challenge(ChallengeKind.SLIDER)
        reply = await self.prompt_owner(
            f"Slider captcha received: <code>{url}</code>\n"
            "Solve it with a captcha helper and send the ticket, "
            "or use the button below to switch to QR login",
            [SWITCH_TO_QR],
        )
        if reply == SWITCH_TO_QR:
            return ""
        return reply

    def challenge_handlers(self) -> ChallengeHandlers:
        return ChallengeHandlers(
            on_password=self.on_password,
            on_device_code=self.on_device_code,
            on_qr_code=self.on_qr_code,
            on_slider=self.on_slider,
        )

    def mark_authenticated(self) -> None:
        self._require(SetupPhase.AWAITING_QQ_CREDENTIALS, SetupPhase.AWAITING_QQ_CHALLENGE)
        self.state.phase = SetupPhase.AUTHENTICATED
        self.state.challenge = None

    def finish(self) -> UserConfig:
        """Persist the configuration and close the protocol for good."""

        self._require(SetupPhase.AUTHENTICATED)
        config = UserConfig(
            owner=self.state.owner_id,
            work_mode=self.state.work_mode,
            is_setup=True,
            qq_uin=self.state.qq_uin,
            qq_password=self.state.qq_password,
            qq_platform=self.state.qq_platform,
        )
        self._config_store.save(config)
        self.state.phase = SetupPhase.FINISHED
        LOGGER.info("Setup finished in %s mode", self.state.work_mode.value)
        return config
