from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SortOrder(str, Enum):
    asc = "asc"
    desc = "desc"


# ---------- stock clips ----------

class StockClipCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    url: str = Field(..., min_length=1)
    genre: str = Field(..., min_length=1)
    duration: str = Field(..., min_length=1, description="Free-form, e.g. '30s'")
    tags: List[str] = Field(...)


class StockClipOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: Optional[str]
    url: str
    genre: str
    duration: str
    tags: List[str]
    has_embedding: bool
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


class StockClipHit(StockClipOut):
    distance: float = Field(description="L2 distance to the query embedding (lower is closer)")


# ---------- stock images ----------

class StockImageCreate(BaseModel):
    channel_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    url: str = Field(..., min_length=1)
    tags: List[str] = Field(...)


class StockImageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    channel_id: str
    name: str
    description: Optional[str]
    url: str
    tags: List[str]
    has_embedding: bool
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


class StockImageHit(StockImageOut):
    distance: float = Field(description="L2 distance to the query embedding (lower is closer)")


# ---------- pagination ----------

class PageMeta(BaseModel):
    totalCount: int
    page: int
    limit: int
    totalPages: int


class StockClipPage(BaseModel):
    items: List[StockClipOut]
    meta: PageMeta


class StockImagePage(BaseModel):
    items: List[StockImageOut]
    meta: PageMeta


# ---------- transcription ----------

class TranscribeRequest(BaseModel):
    audioUrl: str = Field(..., min_length=1)


class Caption(BaseModel):
    text: str
    startMs: int
    endMs: int


class TranscribeResponse(BaseModel):
    captions: List[Caption]
    durationInSeconds: float
    durationInFrames: int
