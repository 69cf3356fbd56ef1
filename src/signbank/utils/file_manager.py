import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

PART_SUFFIX = ".part"


class FileManager:
    """
    Payload file plus JSON sidecar per id.

    Writes go to ``.part`` files first and only become visible to
    ``load_file`` and ``count_files`` once ``commit_file`` renames them.
    """

    def __init__(self, base_dir: Optional[Path] = None):
        if base_dir is None:
            base_dir = Path.home() / ".signbank" / "media"
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _paths(self, file_id: str) -> Tuple[Path, Path]:
        if not file_id or "/" in file_id or "\\" in file_id or file_id.startswith("."):
            raise ValueError(f"Invalid file id: {file_id!r}")
        return self.base_dir / f"{file_id}.bin", self.base_dir / f"{file_id}.json"

    @staticmethod
    def _part(path: Path) -> Path:
        return path.with_name(path.name + PART_SUFFIX)

    def stage_file(self, file_id: str, payload: bytes, metadata: Dict[str, Any]) -> None:
        data_path, meta_path = self._paths(file_id)
        try:
            self._part(data_path).write_bytes(payload)
            with self._part(meta_path).open("w", encoding="utf-8") as handle:
                json.dump(metadata, handle)
        except OSError:
            self.discard_file(file_id)
            raise

    def commit_file(self, file_id: str) -> Path:
        data_path, meta_path = self._paths(file_id)
        # Sidecar first: a visible .bin always has its metadata
        os.replace(self._part(meta_path), meta_path)
        os.replace(self._part(data_path), data_path)
        logger.debug(f"Saved file to {data_path}")
        return data_path

    def discard_file(self, file_id: str) -> None:
        data_path, meta_path = self._paths(file_id)
        for path in (data_path, meta_path, self._part(data_path), self._part(meta_path)):
            path.unlink(missing_ok=True)

    def load_file(self, file_id: str) -> Optional[Tuple[bytes, Dict[str, Any]]]:
        data_path, meta_path = self._paths(file_id)
        if not data_path.exists() or not meta_path.exists():
            return None
        with meta_path.open("r", encoding="utf-8") as handle:
            metadata = json.load(handle)
        return data_path.read_bytes(), metadata

    def count_files(self) -> int:
        return sum(1 for _ in self.base_dir.glob("*.bin"))
