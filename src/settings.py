"""Static configuration for the bridge.

Deployment settings (database, folder, notices, QQ client factory, logging)
live in a single JSON file for quick edits without touching Python. Secrets
come from .env; the mutable user config is written by the setup flow.
"""

import json
import os

from core.config import FolderConfig, NoticeConfig

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

CONFIG_PATH = os.path.join(PROJECT_ROOT, "config.json")


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _project_path(path: str) -> str:
    if os.path.isabs(path):
        return path
    return os.path.join(PROJECT_ROOT, path)


_CONFIG = _load_json_config()

# Where to store the SQLite database with pairs and message records.
DB_PATH = _project_path(_CONFIG.get("database", {}).get("path", "data/bridge.db"))

# Owner, work mode and QQ credentials written by the setup flow.
USER_CONFIG_PATH = _project_path(
    _CONFIG.get("user_config", {}).get("path", "data/user_config.json")
)

# Telegram folder collecting the chats created in personal mode.
_folder = _CONFIG.get("folder", {})
FOLDER = FolderConfig(
    id=int(_folder.get("id", 114)),
    title=_folder.get("title", "QQ"),
    emoticon=_folder.get("emoticon", "🐧"),
)

# Transient notices (failed recall, denied /rm) are deleted after this delay.
NOTICES = NoticeConfig(ttl_seconds=float(_CONFIG.get("notices", {}).get("ttl_seconds", 5)))

# Dotted path "module:callable" of the QQ client factory.
QQ_CLIENT_FACTORY = _CONFIG.get("qq", {}).get("client_factory", "")

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
