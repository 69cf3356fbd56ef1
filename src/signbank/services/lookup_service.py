import base64
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from signbank.database import ContentStore, LabelIndex
from signbank.errors import InvalidInput, NotFound, SignBankError, StorageFailure
from signbank.models import Clip, normalize_label

logger = logging.getLogger(__name__)

PRACTICE_WORDS = (
    "hello",
    "orange",
    "banana",
    "strawberry",
    "please",
    "good",
    "bad",
    "sorry",
    "pear",
    "peach",
    "pineapple",
    "watermelon",
    "grape",
)


@dataclass(frozen=True)
class LookupResult:
    status: str
    word: str
    clip_id: Optional[str] = None
    video_data: Optional[str] = None
    mime_type: Optional[str] = None
    error: Optional[str] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "success"

    @property
    def not_found(self) -> bool:
        return self.error == NotFound.__name__

    @classmethod
    def from_clip(cls, word: str, clip: Clip) -> "LookupResult":
        return cls(
            status="success",
            word=word,
            clip_id=clip.clip_id,
            video_data=base64.b64encode(clip.payload).decode("ascii"),
            mime_type=clip.mime_type,
        )

    @classmethod
    def failure(cls, word: str, exc: SignBankError) -> "LookupResult":
        return cls(status="error", word=word, error=type(exc).__name__,
                   message=exc.message)

    def to_dict(self) -> Dict[str, Any]:
        if self.ok:
            return {
                "status": self.status,
                "videoData": self.video_data,
                "mimeType": self.mime_type,
                "id": self.clip_id,
            }
        return {"status": self.status, "message": self.message, "error": self.error}


class LookupService:

    def __init__(self, content: ContentStore, index: LabelIndex) -> None:
        self.content = content
        self.index = index

    async def find(self, word_raw: Optional[str]) -> LookupResult:
        word = normalize_label(word_raw or "")
        if not word:
            return LookupResult.failure(word, InvalidInput("word required"))

        try:
            clip_ids = await self.index.lookup(word)
            if not clip_ids:
                raise NotFound(f'No video found for sign "{word}"')
            clip = await self._latest(word, clip_ids)
        except NotFound as e:
            logger.info(f"Lookup miss: {word!r}")
            return LookupResult.failure(word, e)
        except SignBankError as e:
            logger.error(f"Lookup failed for {word!r}: {e.message}")
            return LookupResult.failure(word, e)
        except Exception as e:
            logger.exception(f"Lookup failed for {word!r}: {e}")
            return LookupResult.failure(word, StorageFailure(str(e)))

        logger.info(f"Lookup hit: {word!r} -> {clip.clip_id}")
        return LookupResult.from_clip(word, clip)

    async def _latest(self, word: str, clip_ids: List[str]) -> Clip:
        # Newest first; skip ids the content store no longer resolves
        for clip_id in reversed(clip_ids):
            try:
                return await self.content.get(clip_id)
            except NotFound:
                logger.warning(f"Label {word!r} references missing clip {clip_id}")
        raise NotFound(f'No video found for sign "{word}"')

    async def vocabulary(self) -> List[Dict[str, Any]]:
        counts = dict(await self.index.labels())
        words = sorted(set(PRACTICE_WORDS) | set(counts))
        return [{"word": word, "count": counts.get(word, 0)} for word in words]
