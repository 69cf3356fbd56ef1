from dataclasses import dataclass, field
from datetime import datetime

from ulid import ULID


def normalize_label(label: str) -> str:
    return label.strip().lower()


def new_clip_id() -> str:
    return f"c_{ULID()}"


@dataclass(frozen=True)
class Clip:
    """Immutable stored clip, owned by a content store."""
    clip_id: str
    payload: bytes = field(repr=False)
    mime_type: str
    owner_username: str
    label: str
    created_at: datetime
