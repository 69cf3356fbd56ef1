"""
Redis storage for SignBank.

Data Structure:
- clip:<clipId> -> Clip record, payload base64 encoded (hash)
- label:<label>:clips -> Clip ids in recording order (list)
- labels -> Every recorded label (set)
- user_counts -> Upload count per username (sorted set)
"""

import base64
import binascii
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import redis.asyncio as redis
from redis.exceptions import RedisError

from signbank.config import RedisConfig
from signbank.database.base import ContentStore, CounterTable, LabelIndex, rank
from signbank.errors import NotFound, StorageFailure
from signbank.models import Clip, new_clip_id

logger = logging.getLogger(__name__)

LABELS_KEY = "labels"
USER_COUNTS_KEY = "user_counts"


def clip_key(clip_id: str) -> str:
    return f"clip:{clip_id}"


def label_key(label: str) -> str:
    return f"label:{label}:clips"


class RedisManager:
    """
    Owns the asyncio Redis client shared by the Redis-backed stores.
    """

    def __init__(self, config: Optional[RedisConfig] = None,
                 client: Optional[redis.Redis] = None):
        """
        Args:
            config: Connection settings, ignored when client is given
            client: Pre-built client (tests pass a fakeredis instance)
        """
        config = config or RedisConfig()
        self.client = client or redis.Redis(
            host=config.host,
            port=config.port,
            db=config.db,
            password=config.password,
            decode_responses=True,
        )

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except RedisError as e:
            logger.error(f"Failed to connect to Redis: {e}")
            raise StorageFailure(f"Redis unavailable: {e}") from e

    async def health_check(self) -> Dict[str, Any]:
        info = await self.client.info()
        return {
            "connected_clients": info.get("connected_clients", 0),
            "used_memory": info.get("used_memory_human", "unknown"),
            "total_keys": await self.client.dbsize(),
        }

    async def close(self) -> None:
        await self.client.aclose()


class RedisContentStore(ContentStore):

    name = "redis"

    def __init__(self, manager: RedisManager):
        self.manager = manager

    async def put(self, payload: bytes, mime_type: str, *,
                  owner_username: str, label: str,
                  clip_id: Optional[str] = None) -> str:
        clip_id = clip_id or new_clip_id()
        clip_data = {
            "clipId": clip_id,
            "payload": base64.b64encode(payload).decode("ascii"),
            "mimeType": mime_type,
            "ownerUsername": owner_username,
            "label": label,
            "createdAt": datetime.now().isoformat(),
        }
        try:
            await self.manager.client.hset(clip_key(clip_id), mapping=clip_data)
        except RedisError as e:
            raise StorageFailure(f"Could not store clip: {e}") from e
        return clip_id

    async def get(self, clip_id: str) -> Clip:
        try:
            data = await self.manager.client.hgetall(clip_key(clip_id))
        except RedisError as e:
            raise StorageFailure(f"Could not read clip {clip_id}: {e}") from e
        if not data:
            raise NotFound(f"Clip {clip_id} not found")

        try:
            payload = base64.b64decode(data["payload"])
        except (KeyError, binascii.Error) as e:
            raise StorageFailure(f"Corrupt clip record {clip_id}") from e

        return Clip(
            clip_id=data.get("clipId", clip_id),
            payload=payload,
            mime_type=data.get("mimeType", ""),
            owner_username=data.get("ownerUsername", ""),
            label=data.get("label", ""),
            created_at=datetime.fromisoformat(data["createdAt"]),
        )

    async def discard(self, clip_id: str) -> None:
        try:
            await self.manager.client.delete(clip_key(clip_id))
        except RedisError as e:
            raise StorageFailure(f"Could not discard clip {clip_id}: {e}") from e

    async def count(self) -> int:
        total = 0
        async for _ in self.manager.client.scan_iter(match="clip:*"):
            total += 1
        return total


class RedisLabelIndex(LabelIndex):

    def __init__(self, manager: RedisManager):
        self.manager = manager

    async def record(self, label: str, clip_id: str) -> None:
        # RPUSH is atomic per key, concurrent appends never drop an id
        try:
            async with self.manager.client.pipeline(transaction=True) as pipe:
                pipe.rpush(label_key(label), clip_id)
                pipe.sadd(LABELS_KEY, label)
                await pipe.execute()
        except RedisError as e:
            raise StorageFailure(f"Could not index label {label!r}: {e}") from e

    async def lookup(self, label: str) -> List[str]:
        try:
            return list(await self.manager.client.lrange(label_key(label), 0, -1))
        except RedisError as e:
            raise StorageFailure(f"Could not read label {label!r}: {e}") from e

    async def labels(self) -> List[Tuple[str, int]]:
        try:
            names = sorted(await self.manager.client.smembers(LABELS_KEY))
            result = []
            for name in names:
                result.append((name, await self.manager.client.llen(label_key(name))))
        except RedisError as e:
            raise StorageFailure(f"Could not list labels: {e}") from e
        return result


class RedisCounterTable(CounterTable):

    def __init__(self, manager: RedisManager):
        self.manager = manager

    async def increment(self, username: str) -> int:
        try:
            score = await self.manager.client.zincrby(USER_COUNTS_KEY, 1, username)
        except RedisError as e:
            raise StorageFailure(f"Could not count upload for {username!r}: {e}") from e
        return int(score)

    async def get(self, username: str) -> int:
        try:
            score = await self.manager.client.zscore(USER_COUNTS_KEY, username)
        except RedisError as e:
            raise StorageFailure(f"Could not read count for {username!r}: {e}") from e
        return int(score) if score is not None else 0

    async def snapshot(self) -> List[Tuple[str, int]]:
        try:
            entries = await self.manager.client.zrange(
                USER_COUNTS_KEY, 0, -1, withscores=True)
        except RedisError as e:
            raise StorageFailure(f"Could not read user counts: {e}") from e
        return rank([(username, int(score)) for username, score in entries])
