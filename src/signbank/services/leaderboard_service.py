import logging
from typing import Any, Dict, List, Optional

from signbank.database import CounterTable

logger = logging.getLogger(__name__)


class LeaderboardService:

    def __init__(self, counters: CounterTable) -> None:
        self.counters = counters

    async def snapshot(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        ranked = await self.counters.snapshot()
        if limit is not None:
            ranked = ranked[:max(limit, 0)]
        return [{"username": username, "count": count} for username, count in ranked]

    async def count_for(self, username: str) -> int:
        return await self.counters.get(username.strip())
