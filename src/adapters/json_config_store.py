"""JSON file adapter for the mutable user config.

The file holds owner, work mode and QQ credentials written by the setup
flow. Writes go through a temp file and os.replace so a crash never leaves
a truncated config behind.
"""

from __future__ import annotations

import json
import os
from pathlib import Path

from core.config import UserConfig, WorkMode


class JsonConfigStore:
    """ConfigStore backed by a single JSON document."""

    def __init__(self, path: str) -> None:
        self._path = Path(path)

    def load(self) -> UserConfig:
        """Return the stored config, or defaults when the file does not exist."""

        if not self._path.exists():
            return UserConfig()

        with open(self._path, "r", encoding="utf-8") as handle:
            raw = json.load(handle)

        qq = raw.get("qq", {})
        return UserConfig(
            owner=raw.get("owner"),
            work_mode=WorkMode(raw.get("work_mode", WorkMode.PERSONAL.value)),
            is_setup=bool(raw.get("is_setup", False)),
            qq_uin=qq.get("uin"),
            qq_password=qq.get("password"),
            qq_platform=int(qq.get("platform", 1)),
        )

    def save(self, config: UserConfig) -> None:
        payload = {
            "owner": config.owner,
            "work_mode": config.work_mode.value,
            "is_setup": config.is_setup,
            "qq": {
                "uin": config.qq_uin,
                "password": config.qq_password,
                "platform": config.qq_platform,
            },
        }
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp, self._path)
