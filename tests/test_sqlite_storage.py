from __future__ import annotations

import sqlite3

import pytest

from adapters.sqlite_storage import SQLiteStorage
from core.models import MessageRecord


@pytest.fixture
def storage(tmp_path) -> SQLiteStorage:
    storage = SQLiteStorage(str(tmp_path / "bridge.db"))
    storage.init_db()
    return storage


def _record(tg_msg_id: int, seq: int) -> MessageRecord:
    return MessageRecord(
        tg_chat_id=-1002, tg_msg_id=tg_msg_id, qq_room_id=-67890, seq=seq, rand=seq * 7, time=0, pktnum=seq + 1
    )


def test_pairs_round_trip_and_migration(storage: SQLiteStorage) -> None:
    pair = storage.insert_pair(-67890, -1002)
    storage.update_pair_chat(pair.id, -1009999)

    (loaded,) = storage.list_pairs()
    assert (loaded.id, loaded.qq_room_id, loaded.tg_chat_id) == (pair.id, -67890, -1009999)


def test_pair_ids_are_unique_on_both_sides(storage: SQLiteStorage) -> None:
    storage.insert_pair(-67890, -1002)

    with pytest.raises(sqlite3.IntegrityError):
        storage.insert_pair(-67890, -1003)
    with pytest.raises(sqlite3.IntegrityError):
        storage.insert_pair(12345, -1002)


def test_pop_by_tg_consumes_record(storage: SQLiteStorage) -> None:
    storage.save_message(_record(20, 2))

    assert storage.pop_by_tg(-1002, 20) == _record(20, 2)
    assert storage.pop_by_tg(-1002, 20) is None
    assert storage.pop_by_qq(-67890, 2, 14) is None


def test_pop_by_qq_consumes_record(storage: SQLiteStorage) -> None:
    storage.save_message(_record(20, 2))
    storage.save_message(_record(21, 3))

    assert storage.pop_by_qq(-67890, 3, 21).tg_msg_id == 21
    assert storage.pop_by_tg(-1002, 21) is None
    assert storage.pop_by_tg(-1002, 20) is not None


def test_avatar_hash_upsert(storage: SQLiteStorage) -> None:
    assert storage.get_avatar_hash(1) is None
    storage.save_avatar_hash(1, "old")
    storage.save_avatar_hash(1, "new")

    assert storage.get_avatar_hash(1) == "new"
