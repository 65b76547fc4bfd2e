"""Application entry point for the QQ / Telegram bridge."""

from __future__ import annotations

import argparse
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

from art import tprint
from dotenv import load_dotenv
from telethon import events

import settings
from adapters.avatars import QLogoAvatarSource
from adapters.json_config_store import JsonConfigStore
from adapters.qq_loader import load_qq_factory
from adapters.sqlite_storage import SQLiteStorage
from adapters.telegram_mapper import inbound_from_message
from adapters.telegram_primary import TelegramPrimary
from client import bot_token, build_bot_client, build_user_client
from controller import BridgeController
from core.config import UserConfig, WorkMode
from core.deletion import DeletionReconciler
from core.folder import OrganizationalFolder
from core.input_broker import InputBroker
from core.pair_registry import PairRegistry
from core.ports import QQClientFactory, QQClientPort
from core.provisioning import ProvisioningOrchestrator
from core.setup import SetupPhase, SetupProtocol, SetupState
from setup_wizard import SetupWizard

NAME = "QQ-TG"
FONT = "tarty-1"

LOGGER = logging.getLogger(__name__)


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", False):
        return []
    values = []
    for name in redact_cfg.get("patterns", []):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", False):
        return

    load_dotenv()
    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    formatter = _RedactingFormatter(_collect_redaction_values(config), fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/bridge.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        file_handler = RotatingFileHandler(
            path,
            maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
            backupCount=int(file_cfg.get("backup_count", 5)),
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)


def _bootstrap_handler(broker: InputBroker, wizard: Optional[SetupWizard]):
    """Handler active until the controller takes over.

    It feeds owner replies to pending prompts and, before setup, lets the
    first /start in a private chat claim the bot.
    """

    async def handler(event) -> None:
        try:
            if broker.dispatch(event.chat_id, inbound_from_message(event.message)):
                return
            if wizard is None or not event.is_private:
                return
            if (event.message.raw_text or "").split()[:1] != ["/start"]:
                return
            if not await wizard.handle_start(event.sender_id):
                await event.respond("This bot already has an owner")
        except Exception:
            LOGGER.exception("Error while processing setup message")

    return handler


async def _run_setup(
    telegram: TelegramPrimary,
    broker: InputBroker,
    config_store: JsonConfigStore,
    qq_factory: QQClientFactory,
) -> tuple[UserConfig, QQClientPort]:
    setup = SetupProtocol(SetupState(), telegram, broker, config_store)
    wizard = SetupWizard(setup, telegram.user, qq_factory)
    handler = _bootstrap_handler(broker, wizard)
    telegram.bot.add_event_handler(handler, events.NewMessage(incoming=True))
    LOGGER.info("Waiting for the first /start to claim the bot")
    try:
        return await wizard.wait_finished()
    finally:
        telegram.bot.remove_event_handler(handler)


async def _relogin_qq(
    telegram: TelegramPrimary,
    broker: InputBroker,
    config_store: JsonConfigStore,
    config: UserConfig,
    qq_factory: QQClientFactory,
) -> QQClientPort:
    # Challenges after setup are still answered by the owner.
    state = SetupState(
        owner_id=config.owner,
        work_mode=config.work_mode,
        phase=SetupPhase.AWAITING_QQ_CREDENTIALS,
        qq_uin=config.qq_uin,
        qq_password=config.qq_password,
        qq_platform=config.qq_platform,
    )
    setup = SetupProtocol(state, telegram, broker, config_store)
    handler = _bootstrap_handler(broker, None)
    telegram.bot.add_event_handler(handler, events.NewMessage(incoming=True))
    try:
        return await qq_factory(
            config.qq_uin, config.qq_password or "", config.qq_platform, setup.challenge_handlers()
        )
    finally:
        telegram.bot.remove_event_handler(handler)


async def _serve(bot, user) -> None:
    await bot.start(bot_token=bot_token())
    bot_me = await bot.get_me()
    LOGGER.info("Bot started as @%s", bot_me.username)

    storage = SQLiteStorage(settings.DB_PATH)
    storage.init_db()
    config_store = JsonConfigStore(settings.USER_CONFIG_PATH)
    qq_factory = load_qq_factory(settings.QQ_CLIENT_FACTORY)

    telegram = TelegramPrimary(bot, user, bot_me)
    broker = InputBroker()

    config = config_store.load()
    if not config.is_setup:
        config, qq = await _run_setup(telegram, broker, config_store, qq_factory)
    else:
        qq = await _relogin_qq(telegram, broker, config_store, config, qq_factory)
    LOGGER.info("QQ account %s is online", qq.uin)

    registry = PairRegistry(storage)
    LOGGER.info("Loaded %s linked pairs", registry.load())

    folder = None
    if config.work_mode is WorkMode.PERSONAL:
        if not user.is_connected():
            await user.connect()
        # The folder pins the bot chat, so its peer must be cached first.
        await user.get_input_entity(bot_me.username)

        async def report(text: str) -> None:
            await telegram.send_message(config.owner, text)

        folder = OrganizationalFolder(telegram, settings.FOLDER, bot_me.id, report)
    else:
        telegram.user = None

    avatars = QLogoAvatarSource()
    orchestrator = ProvisioningOrchestrator(
        telegram, qq, registry, avatars, storage, config.owner, folder
    )
    reconciler = DeletionReconciler(telegram, qq, storage, config.work_mode, settings.NOTICES)
    controller = BridgeController(
        telegram, qq, registry, orchestrator, reconciler, broker, avatars, config
    )
    controller.register()
    await telegram.configure_commands(config.owner, controller.commands)

    LOGGER.info("Bridge running in %s mode", config.work_mode.value)
    await bot.run_until_disconnected()


def _run() -> None:
    _configure_logging()
    _print_banner()
    bot = build_bot_client()
    user = build_user_client()
    try:
        bot.loop.run_until_complete(_serve(bot, user))
    finally:
        if user.is_connected():
            bot.loop.run_until_complete(user.disconnect())


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="qqtg")
    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("run", help="Start the bridge")

    parser.parse_args(argv)
    _run()


if __name__ == "__main__":
    main()
