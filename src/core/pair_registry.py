"""In-memory index of linked pairs backed by a PairStore."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from core.models import Pair
from core.ports import PairStore

LOGGER = logging.getLogger(__name__)


class DuplicatePairError(RuntimeError):
    """Raised when a QQ room or Telegram chat is already linked."""


class PairRegistry:
    """Lookup pairs by either side and serialize writes."""

    def __init__(self, store: PairStore) -> None:
        self._store = store
        self._by_qq: dict[int, Pair] = {}
        self._by_tg: dict[int, Pair] = {}
        self._lock = asyncio.Lock()

    def load(self) -> int:
        """Populate the index from the store and return the pair count."""

        self._by_qq.clear()
        self._by_tg.clear()
        for pair in self._store.list_pairs():
            self._index(pair)
        return len(self._by_qq)

    def _index(self, pair: Pair) -> None:
        self._by_qq[pair.qq_room_id] = pair
        self._by_tg[pair.tg_chat_id] = pair

    def find_by_qq(self, qq_room_id: int) -> Optional[Pair]:
        return self._by_qq.get(qq_room_id)

    def find_by_tg(self, tg_chat_id: int) -> Optional[Pair]:
        return self._by_tg.get(tg_chat_id)

    def all(self) -> list[Pair]:
        return list(self._by_qq.values())

    async def add(self, qq_room_id: int, tg_chat_id: int) -> Pair:
        async with self._lock:
            if qq_room_id in self._by_qq:
                raise DuplicatePairError(f"QQ room {qq_room_id} is already linked")
            if tg_chat_id in self._by_tg:
                raise DuplicatePairError(f"Telegram chat {tg_chat_id} is already linked")
            pair = self._store.insert_pair(qq_room_id, tg_chat_id)
            self._index(pair)
        LOGGER.info("Linked QQ room %s with Telegram chat %s", qq_room_id, tg_chat_id)
        return pair

    async def migrate(self, old_tg_chat_id: int, new_tg_chat_id: int) -> Optional[Pair]:
        """Point a pair at the supergroup its basic group was upgraded to."""

        async with self._lock:
            pair = self._by_tg.get(old_tg_chat_id)
            if pair is None:
                return None
            self._store.update_pair_chat(pair.id, new_tg_chat_id)
            del self._by_tg[old_tg_chat_id]
            pair.tg_chat_id = new_tg_chat_id
            self._by_tg[new_tg_chat_id] = pair
        LOGGER.info("Telegram chat %s migrated to %s", old_tg_chat_id, new_tg_chat_id)
        return pair
