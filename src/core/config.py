"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class WorkMode(str, Enum):
    """personal: one operator owns every linked chat; group: shared chats."""

    PERSONAL = "personal"
    GROUP = "group"


@dataclass(frozen=True)
class FolderConfig:
    """Telegram dialog filter that collects every created chat."""

    id: int = 114
    title: str = "QQ"
    emoticon: str = "🐧"


@dataclass(frozen=True)
class NoticeConfig:
    """Lifetime of transient notices posted into linked chats."""

    ttl_seconds: float = 5.0


@dataclass
class UserConfig:
    """Durable process-wide record written by the setup flow."""

    owner: Optional[int] = None
    work_mode: WorkMode = WorkMode.PERSONAL
    is_setup: bool = False
    qq_uin: Optional[int] = None
    qq_password: Optional[str] = None
    qq_platform: int = 1
