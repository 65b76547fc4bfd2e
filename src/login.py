"""Authorize the operator's Telegram user account through the owner chat.

The user account creates groups and manages the folder in personal mode.
Its login prompts are relayed to the bot owner instead of the terminal.
"""

from __future__ import annotations

import io
import logging

import qrcode
from telethon import TelegramClient, errors, functions

from core.setup import SetupProtocol

LOGGER = logging.getLogger(__name__)

QR_LOGIN = "QR code"
PHONE_LOGIN = "Phone code"


def render_qr_png(url: str) -> bytes:
    """Render a login URL as a PNG QR code."""

    qr = qrcode.QRCode(border=1)
    qr.add_data(url)
    qr.make(fit=True)
    buffer = io.BytesIO()
    qr.make_image().save(buffer)
    return buffer.getvalue()


async def _resolve_2fa_password(client: TelegramClient, setup: SetupProtocol) -> str:
    text = "Please enter the two-step verification password of the Telegram account"
    try:
        hint = (await client(functions.account.GetPasswordRequest())).hint
    except Exception:
        LOGGER.debug("Could not fetch the 2FA hint", exc_info=True)
        hint = None
    if hint:
        text += f"\nHint: {hint}"
    return await setup.prompt_owner(text)


async def _authorize_with_qr(client: TelegramClient, setup: SetupProtocol) -> None:
    qr = await client.qr_login()
    await setup.send_owner_photo(
        render_qr_png(qr.url),
        "Scan this QR code in Telegram: Settings > Devices > Link Desktop Device",
    )
    await qr.wait(timeout=120)


async def _authorize_with_phone(client: TelegramClient, setup: SetupProtocol) -> None:
    phone = (await setup.prompt_owner("Phone number of the Telegram account (international format)")).strip()
    await client.send_code_request(phone)
    # Telegram invalidates a login code that is sent verbatim in a chat.
    raw_code = await setup.prompt_owner(
        "Enter the login code with spaces between the digits, for example 1 2 3 4 5"
    )
    code = "".join(ch for ch in raw_code if ch.isdigit())
    await client.sign_in(phone=phone, code=code)


async def authorize_user(client: TelegramClient, setup: SetupProtocol) -> None:
    if await client.is_user_authorized():
        return

    try:
        method = await setup.prompt_owner(
            "How should the Telegram user account log in?", [QR_LOGIN, PHONE_LOGIN]
        )
        if method == PHONE_LOGIN:
            await _authorize_with_phone(client, setup)
        else:
            await _authorize_with_qr(client, setup)
    except errors.SessionPasswordNeededError:
        await client.sign_in(password=await _resolve_2fa_password(client, setup))

    me = await client.get_me()
    LOGGER.info("User account logged in as %s", me.first_name)
