import asyncio
import base64
import binascii
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from signbank.database import ContentStore, CounterTable, LabelIndex
from signbank.errors import DecodeError, InvalidInput, SignBankError, StorageFailure
from signbank.models import new_clip_id, normalize_label

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "video/mp4"
DEFAULT_UPLOAD_TIMEOUT = 30.0

_DATA_URL = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+(?:;(?!base64,)[^;]+)*)?;base64,")


@dataclass(frozen=True)
class UploadResult:
    status: str
    clip_id: Optional[str] = None
    count: Optional[int] = None
    error: Optional[str] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "success"

    @classmethod
    def success(cls, clip_id: str, count: int) -> "UploadResult":
        return cls(status="success", clip_id=clip_id, count=count)

    @classmethod
    def failure(cls, exc: SignBankError) -> "UploadResult":
        return cls(status="error", error=type(exc).__name__, reason=exc.message)

    def to_dict(self) -> Dict[str, Any]:
        if self.ok:
            return {
                "status": self.status,
                "message": "Video uploaded successfully",
                "id": self.clip_id,
                "count": self.count,
            }
        return {"status": self.status, "message": self.reason, "error": self.error}


def decode_media(media_base64: Optional[str]) -> Tuple[bytes, Optional[str]]:
    """Decode a base64 payload, accepting an optional data URL prefix.

    Returns the bytes and the mime type named by the prefix, if any.
    """
    if not isinstance(media_base64, str):
        raise DecodeError("video data must be a base64 string")

    text = media_base64.strip()
    mime_type = None
    match = _DATA_URL.match(text)
    if match:
        mime_type = match.group("mime")
        text = text[match.end():]

    text = "".join(text.split())
    try:
        payload = base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"invalid base64 video data: {e}") from e
    if not payload:
        raise DecodeError("video data is empty")
    return payload, mime_type


class UploadService:
    """Accepts clip submissions: store, then index, then count."""

    def __init__(
        self,
        content: ContentStore,
        index: LabelIndex,
        counters: CounterTable,
        timeout: float = DEFAULT_UPLOAD_TIMEOUT,
        store_retries: int = 1,
    ) -> None:
        self.content = content
        self.index = index
        self.counters = counters
        self.timeout = timeout
        self.store_retries = store_retries

    def validate(
        self,
        username_raw: Optional[str],
        label_raw: Optional[str],
        media_base64: Optional[str],
        mime_type: Optional[str],
    ) -> Tuple[str, str, bytes, str]:
        username = (username_raw or "").strip()
        if not username:
            raise InvalidInput("username required")

        label = normalize_label(label_raw or "")
        if not label:
            raise InvalidInput("label required")

        payload, prefix_mime = decode_media(media_base64)
        mime = (mime_type or "").strip() or prefix_mime or DEFAULT_MIME_TYPE
        return username, label, payload, mime

    async def submit(
        self,
        username_raw: Optional[str],
        label_raw: Optional[str],
        media_base64: Optional[str],
        mime_type: Optional[str] = None,
    ) -> UploadResult:
        try:
            username, label, payload, mime = self.validate(
                username_raw, label_raw, media_base64, mime_type)
        except SignBankError as e:
            logger.info(f"Upload rejected: {e.message}")
            return UploadResult.failure(e)

        clip_id = new_clip_id()
        try:
            await asyncio.wait_for(
                self._store(clip_id, payload, mime, username, label),
                timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(
                f"Upload timed out after {self.timeout}s: {username}/{label}")
            await self._discard(clip_id)
            return UploadResult.failure(StorageFailure("upload timed out"))
        except SignBankError as e:
            await self._discard(clip_id)
            return UploadResult.failure(e)
        except Exception as e:
            logger.exception(f"Unexpected content store error: {e}")
            await self._discard(clip_id)
            return UploadResult.failure(StorageFailure(str(e)))

        try:
            await self.index.record(label, clip_id)
        except Exception as e:
            logger.error(f"Could not index clip {clip_id}: {e}")
            await self._discard(clip_id)
            if not isinstance(e, SignBankError):
                e = StorageFailure(str(e))
            return UploadResult.failure(e)

        try:
            count = await self.counters.increment(username)
        except SignBankError as e:
            logger.error(f"Clip {clip_id} indexed but not counted: {e.message}")
            return UploadResult.failure(e)
        except Exception as e:
            logger.exception(f"Clip {clip_id} indexed but not counted: {e}")
            return UploadResult.failure(StorageFailure(str(e)))

        logger.info(
            f"Stored clip {clip_id}: label={label!r} user={username!r} "
            f"{len(payload)} bytes, count={count}")
        return UploadResult.success(clip_id, count)

    async def _store(self, clip_id: str, payload: bytes, mime: str,
                     username: str, label: str) -> str:
        # Retries reuse clip_id so a half-finished first write is overwritten
        attempt = 0
        while True:
            try:
                return await self.content.put(
                    payload, mime, owner_username=username, label=label,
                    clip_id=clip_id)
            except StorageFailure as e:
                if attempt >= self.store_retries:
                    logger.error(f"Content store write failed: {e.message}")
                    raise
                attempt += 1
                logger.warning(f"Content store write failed, retrying: {e.message}")

    async def _discard(self, clip_id: str) -> None:
        try:
            await asyncio.wait_for(self.content.discard(clip_id), timeout=self.timeout)
        except Exception as e:
            logger.error(f"Could not discard unrecorded clip {clip_id}: {e}")
