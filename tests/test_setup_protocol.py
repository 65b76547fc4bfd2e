from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor

import pytest

from core.config import WorkMode
from core.input_broker import InputBroker
from core.models import InboundMessage
from core.setup import (
    SCANNED_QR,
    SWITCH_TO_QR,
    ChallengeKind,
    SetupPhase,
    SetupProtocol,
    SetupProtocolError,
    SetupState,
)

from fakes import FakeConfigStore, FakeTelegram

OWNER = 42


def _protocol():
    telegram = FakeTelegram()
    broker = InputBroker()
    store = FakeConfigStore()
    return SetupProtocol(SetupState(), telegram, broker, store), telegram, broker, store


async def _answer(broker: InputBroker, text: str) -> None:
    # Let the prompt register its slot first.
    while not broker.is_waiting(OWNER):
        await asyncio.sleep(0)
    broker.dispatch(OWNER, InboundMessage(chat_id=OWNER, sender_id=OWNER, message_id=1, text=text))


def test_only_first_claim_wins() -> None:
    protocol, *_ = _protocol()

    assert protocol.claim_owner(OWNER) is True
    assert protocol.claim_owner(OWNER) is False
    assert protocol.claim_owner(7) is False
    assert protocol.state.owner_id == OWNER
    assert protocol.phase is SetupPhase.OWNER_CLAIMED


def test_prompt_before_claim_is_rejected() -> None:
    protocol, *_ = _protocol()

    with pytest.raises(SetupProtocolError):
        asyncio.run(protocol.prompt_owner("hello"))


def test_prompt_returns_owner_reply() -> None:
    protocol, telegram, broker, _ = _protocol()
    protocol.claim_owner(OWNER)

    async def scenario():
        reply, _ = await asyncio.gather(
            protocol.prompt_owner("Pick one", ["a", "b"]), _answer(broker, "b")
        )
        return reply

    assert asyncio.run(scenario()) == "b"
    assert telegram.sent == [(OWNER, "Pick one", ["a", "b"])]


def test_failed_send_releases_the_slot() -> None:
    protocol, telegram, broker, _ = _protocol()
    protocol.claim_owner(OWNER)
    telegram.fail_on.add("send_message")

    async def scenario():
        with pytest.raises(RuntimeError):
            await protocol.prompt_owner("hello")
        return broker.is_waiting(OWNER)

    assert asyncio.run(scenario()) is False


def test_challenges_require_a_login_in_progress() -> None:
    protocol, *_ = _protocol()
    protocol.claim_owner(OWNER)

    with pytest.raises(SetupProtocolError):
        asyncio.run(protocol.on_device_code("+86 138****0000"))


def test_slider_switch_returns_empty_ticket() -> None:
    protocol, telegram, broker, _ = _protocol()
    protocol.claim_owner(OWNER)
    protocol.begin_qq_login(10001, "secret", 1)

    async def scenario():
        ticket, _ = await asyncio.gather(
            protocol.on_slider("https://captcha.example/slider"), _answer(broker, SWITCH_TO_QR)
        )
        return ticket

    assert asyncio.run(scenario()) == ""
    assert protocol.state.challenge is ChallengeKind.SLIDER
    assert telegram.sent[-1][2] == [SWITCH_TO_QR]


def test_qr_challenge_sends_photo_and_waits_for_confirmation() -> None:
    protocol, telegram, broker, _ = _protocol()
    protocol.claim_owner(OWNER)
    protocol.begin_qq_login(10001, "secret", 5)

    async def scenario():
        await asyncio.gather(protocol.on_qr_code(b"png"), _answer(broker, SCANNED_QR))

    asyncio.run(scenario())

    (chat_id, image, _, choices), = telegram.photos
    assert (chat_id, image, choices) == (OWNER, b"png", [SCANNED_QR])
    assert protocol.phase is SetupPhase.AWAITING_QQ_CHALLENGE


def test_finish_persists_config() -> None:
    protocol, _, _, store = _protocol()
    protocol.claim_owner(OWNER)
    protocol.set_work_mode(WorkMode.GROUP)
    protocol.begin_qq_login(10001, "secret", 3)
    protocol.mark_authenticated()

    config = protocol.finish()

    assert store.saved == [config]
    assert config.owner == OWNER
    assert config.work_mode is WorkMode.GROUP
    assert config.is_setup is True
    assert (config.qq_uin, config.qq_password, config.qq_platform) == (10001, "secret", 3)
    assert protocol.phase is SetupPhase.FINISHED
    with pytest.raises(SetupProtocolError):
        protocol.finish()


def test_finish_before_authentication_is_rejected() -> None:
    protocol, _, _, store = _protocol()
    protocol.claim_owner(OWNER)

    with pytest.raises(SetupProtocolError):
        protocol.finish()
    assert store.saved == []


def test_concurrent_claims_have_one_winner() -> None:
    protocol, *_ = _protocol()
    candidates = list(range(100, 132))

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(protocol.claim_owner, candidates))

    assert results.count(True) == 1
    assert protocol.state.owner_id == candidates[results.index(True)]


def test_password_challenge_shows_hint() -> None:
    protocol, telegram, broker, _ = _protocol()
    protocol.claim_owner(OWNER)
    protocol.begin_qq_login(10001, "", 1)

    async def scenario():
        password, _ = await asyncio.gather(protocol.on_password("hint!"), _answer(broker, "secret"))
        return password

    assert asyncio.run(scenario()) == "secret"
    assert telegram.sent[-1][1] == "Please enter the QQ password\nHint: hint!"
    assert protocol.state.challenge is ChallengeKind.PASSWORD


def test_device_code_challenge_names_phone() -> None:
    protocol, telegram, broker, _ = _protocol()
    protocol.claim_owner(OWNER)
    protocol.begin_qq_login(10001, "secret", 1)

    async def scenario():
        code, _ = await asyncio.gather(
            protocol.on_device_code("+86 138****0000"), _answer(broker, "123456")
        )
        return code

    assert asyncio.run(scenario()) == "123456"
    assert telegram.sent[-1][1] == "Please enter the verification code sent to +86 138****0000"
    assert protocol.state.challenge is ChallengeKind.DEVICE_CODE
