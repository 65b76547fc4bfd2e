"""Telegram client factories for the bridge.

The bridge runs two Telethon sessions: the bot that serves linked chats and
the operator's user account that creates groups. Lifecycles are managed
explicitly by app.py.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv
from telethon import TelegramClient


def _api_credentials() -> tuple[int, str]:
    load_dotenv()

    api_id = os.getenv("API_ID")
    api_hash = os.getenv("API_HASH")

    # Fail fast on missing credentials to avoid an ambiguous login prompt.
    if not api_id or not api_hash:
        raise RuntimeError("Missing API_ID or API_HASH in environment")
    return int(api_id), api_hash


def bot_token() -> str:
    load_dotenv()
    token = os.getenv("BOT_TOKEN")
    if not token:
        raise RuntimeError("Missing BOT_TOKEN in environment")
    return token


def build_bot_client() -> TelegramClient:
    """Create the bot client. Call start(bot_token=...) before use."""

    api_id, api_hash = _api_credentials()
    session_name = os.getenv("BOT_SESSION", "bot")
    logging.getLogger(__name__).info("Initializing Telegram bot client")
    return TelegramClient(session_name, api_id, api_hash)


def build_user_client() -> TelegramClient:
    """Create the user-account client used for group creation and folders."""

    api_id, api_hash = _api_credentials()
    session_name = os.getenv("USER_SESSION", "user")
    logging.getLogger(__name__).info("Initializing Telegram user client")
    return TelegramClient(session_name, api_id, api_hash)
