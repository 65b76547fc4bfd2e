from __future__ import annotations

import json

from adapters.json_config_store import JsonConfigStore
from core.config import UserConfig, WorkMode


def test_missing_file_yields_defaults(tmp_path) -> None:
    config = JsonConfigStore(str(tmp_path / "user_config.json")).load()

    assert config == UserConfig()
    assert config.is_setup is False


def test_save_then_load(tmp_path) -> None:
    path = tmp_path / "data" / "user_config.json"
    store = JsonConfigStore(str(path))
    config = UserConfig(
        owner=42, work_mode=WorkMode.GROUP, is_setup=True, qq_uin=10001, qq_password="pw", qq_platform=5
    )

    store.save(config)

    assert store.load() == config
    assert json.loads(path.read_text(encoding="utf-8"))["qq"]["uin"] == 10001
    assert not (tmp_path / "data" / "user_config.json.tmp").exists()
