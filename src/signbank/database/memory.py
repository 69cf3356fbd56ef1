import asyncio
import logging
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from signbank.database.base import ContentStore, CounterTable, LabelIndex, rank
from signbank.errors import NotFound
from signbank.models import Clip, new_clip_id

logger = logging.getLogger(__name__)


class KeyedLocks:
    """One asyncio.Lock per key, so writers only contend on the same key."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def __call__(self, key: str) -> asyncio.Lock:
        return self._locks[key]


class MemoryContentStore(ContentStore):

    name = "memory"

    def __init__(self):
        self._clips: Dict[str, Clip] = {}

    async def put(self, payload: bytes, mime_type: str, *,
                  owner_username: str, label: str,
                  clip_id: Optional[str] = None) -> str:
        clip_id = clip_id or new_clip_id()
        self._clips[clip_id] = Clip(
            clip_id=clip_id,
            payload=bytes(payload),
            mime_type=mime_type,
            owner_username=owner_username,
            label=label,
            created_at=datetime.now(),
        )
        return clip_id

    async def get(self, clip_id: str) -> Clip:
        clip = self._clips.get(clip_id)
        if clip is None:
            raise NotFound(f"Clip {clip_id} not found")
        return clip

    async def discard(self, clip_id: str) -> None:
        self._clips.pop(clip_id, None)

    async def count(self) -> int:
        return len(self._clips)


class MemoryLabelIndex(LabelIndex):

    def __init__(self):
        self._entries: Dict[str, List[str]] = {}
        self._locks = KeyedLocks()

    async def record(self, label: str, clip_id: str) -> None:
        async with self._locks(label):
            self._entries.setdefault(label, []).append(clip_id)

    async def lookup(self, label: str) -> List[str]:
        return list(self._entries.get(label, ()))

    async def labels(self) -> List[Tuple[str, int]]:
        return sorted((label, len(ids)) for label, ids in self._entries.items())


class MemoryCounterTable(CounterTable):

    def __init__(self):
        self._counts: Dict[str, int] = {}
        self._locks = KeyedLocks()

    async def increment(self, username: str) -> int:
        async with self._locks(username):
            count = self._counts.get(username, 0) + 1
            self._counts[username] = count
            return count

    async def get(self, username: str) -> int:
        return self._counts.get(username, 0)

    async def snapshot(self) -> List[Tuple[str, int]]:
        return rank(list(self._counts.items()))
