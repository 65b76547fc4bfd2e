from __future__ import annotations

import asyncio

import pytest

from core.pair_registry import DuplicatePairError, PairRegistry

from fakes import FakeStorage


def test_load_indexes_both_sides() -> None:
    storage = FakeStorage()
    storage.insert_pair(12345, -1001)
    storage.insert_pair(-67890, -1002)
    registry = PairRegistry(storage)

    assert registry.load() == 2
    assert registry.find_by_qq(-67890).tg_chat_id == -1002
    assert registry.find_by_tg(-1001).qq_room_id == 12345


def test_add_rejects_either_duplicate_key() -> None:
    registry = PairRegistry(FakeStorage())

    async def scenario():
        await registry.add(12345, -1001)
        with pytest.raises(DuplicatePairError):
            await registry.add(12345, -1002)
        with pytest.raises(DuplicatePairError):
            await registry.add(54321, -1001)

    asyncio.run(scenario())
    assert len(registry.all()) == 1


def test_migrate_rewrites_chat_id_in_place() -> None:
    storage = FakeStorage()
    registry = PairRegistry(storage)

    async def scenario():
        pair = await registry.add(-67890, -1001)
        migrated = await registry.migrate(-1001, -1009999)
        return pair, migrated

    pair, migrated = asyncio.run(scenario())

    assert migrated is pair
    assert pair.tg_chat_id == -1009999
    assert registry.find_by_tg(-1001) is None
    assert registry.find_by_tg(-1009999) is pair
    assert storage.pairs[0].tg_chat_id == -1009999


def test_migrate_unknown_chat_is_ignored() -> None:
    registry = PairRegistry(FakeStorage())

    assert asyncio.run(registry.migrate(-1, -2)) is None
