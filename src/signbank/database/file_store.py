import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from signbank.database.base import ContentStore
from signbank.errors import NotFound, StorageFailure
from signbank.models import Clip, new_clip_id
from signbank.utils.file_manager import FileManager

logger = logging.getLogger(__name__)


class FileContentStore(ContentStore):
    """Clip bytes on disk, one payload file plus a JSON sidecar per clip."""

    name = "file"

    def __init__(self, base_dir: Optional[Path] = None,
                 file_manager: Optional[FileManager] = None):
        self.file_manager = file_manager or FileManager(base_dir)

    async def put(self, payload: bytes, mime_type: str, *,
                  owner_username: str, label: str,
                  clip_id: Optional[str] = None) -> str:
        clip_id = clip_id or new_clip_id()
        metadata = {
            "clipId": clip_id,
            "mimeType": mime_type,
            "ownerUsername": owner_username,
            "label": label,
            "createdAt": datetime.now().isoformat(),
        }
        loop = asyncio.get_running_loop()
        staged = loop.run_in_executor(
            None, self.file_manager.stage_file, clip_id, payload, metadata)
        try:
            # The executor thread outlives a cancelled await, shield it so
            # the staged files can be removed once it finishes
            await asyncio.shield(staged)
        except asyncio.CancelledError:
            staged.add_done_callback(lambda _: self._discard_later(clip_id))
            raise
        except OSError as e:
            raise StorageFailure(f"Could not write clip {clip_id}: {e}") from e

        try:
            self.file_manager.commit_file(clip_id)
        except OSError as e:
            self.file_manager.discard_file(clip_id)
            raise StorageFailure(f"Could not write clip {clip_id}: {e}") from e
        return clip_id

    def _discard_later(self, clip_id: str) -> None:
        asyncio.get_running_loop().run_in_executor(
            None, self.file_manager.discard_file, clip_id)
        logger.warning(f"Discarding clip {clip_id} after cancelled write")

    async def discard(self, clip_id: str) -> None:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self.file_manager.discard_file, clip_id)
        except OSError as e:
            raise StorageFailure(f"Could not discard clip {clip_id}: {e}") from e

    async def get(self, clip_id: str) -> Clip:
        loop = asyncio.get_running_loop()
        try:
            loaded = await loop.run_in_executor(
                None, self.file_manager.load_file, clip_id)
        except ValueError as e:
            raise NotFound(f"Clip {clip_id} not found") from e
        except OSError as e:
            raise StorageFailure(f"Could not read clip {clip_id}: {e}") from e
        if loaded is None:
            raise NotFound(f"Clip {clip_id} not found")

        payload, metadata = loaded
        return Clip(
            clip_id=clip_id,
            payload=payload,
            mime_type=metadata.get("mimeType", ""),
            owner_username=metadata.get("ownerUsername", ""),
            label=metadata.get("label", ""),
            created_at=datetime.fromisoformat(metadata["createdAt"]),
        )

    async def count(self) -> int:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.file_manager.count_files)
