"""Service layer for SignBank."""

from .leaderboard_service import LeaderboardService
from .lookup_service import LookupResult, LookupService
from .upload_service import UploadResult, UploadService

__all__ = [
    "LeaderboardService",
    "LookupResult",
    "LookupService",
    "UploadResult",
    "UploadService",
]
