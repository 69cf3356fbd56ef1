from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple

from signbank.models import Clip


class ContentStore(ABC):
    """Write-once clip storage keyed by an opaque clip id."""

    name = "abstract"

    @abstractmethod
    async def put(self, payload: bytes, mime_type: str, *,
                  owner_username: str, label: str,
                  clip_id: Optional[str] = None) -> str:
        """Persist a clip and return its id. Raises StorageFailure.

        Writing the same clip_id twice overwrites the first write.
        """

    @abstractmethod
    async def get(self, clip_id: str) -> Clip:
        """Return the stored clip. Raises NotFound."""

    @abstractmethod
    @abstractmethod
    async def discard(self, clip_id: str) -> None:
        """Remove a clip that was never indexed. Missing ids are ignored."""

    async def count(self) -> int:
        pass

    async def close(self) -> None:
        pass


class LabelIndex(ABC):

    @abstractmethod
    async def record(self, label: str, clip_id: str) -> None:
        """Append clip_id to the entry for an already normalized label."""

    @abstractmethod
    async def lookup(self, label: str) -> List[str]:
        """Clip ids recorded for label in insertion order, empty if none."""

    @abstractmethod
    async def labels(self) -> List[Tuple[str, int]]:
        """Every recorded label with its clip count, sorted by label."""

    async def close(self) -> None:
        pass


class CounterTable(ABC):

    @abstractmethod
    async def increment(self, username: str) -> int:
        pass

    @abstractmethod
    async def get(self, username: str) -> int:
        pass

    @abstractmethod
    async def snapshot(self) -> List[Tuple[str, int]]:
        """(username, count) pairs, count descending then username ascending."""

    async def close(self) -> None:
        pass


def rank(counts: Sequence[Tuple[str, int]]) -> List[Tuple[str, int]]:
    return sorted(counts, key=lambda item: (-item[1], item[0]))
