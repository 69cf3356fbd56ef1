from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class UploadVideo(BaseModel):
    # Presence and emptiness are checked by the upload pipeline so its
    # username/label/payload order decides which error the client sees.
    model_config = ConfigDict(extra="ignore")

    video_data: Optional[str] = None
    username: Optional[str] = None
    label: Optional[str] = None
    mime_type: Optional[str] = None


class SearchSign(BaseModel):
    model_config = ConfigDict(extra="ignore")

    word: Optional[str] = None


class AccelerationIn(BaseModel):
    x: float
    y: float
    z: float
    timestamp: Optional[int] = Field(None, ge=0, description="Milliseconds since epoch")


class UserCount(BaseModel):
    username: str
    count: int = Field(..., ge=0)


class UserCounts(BaseModel):
    status: str = "success"
    users: List[UserCount]
