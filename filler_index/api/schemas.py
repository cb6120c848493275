"""
Request and response models for the filler query service.
"""

from pydantic import BaseModel, Field, field_validator
from typing import Dict, List, Optional


class FillerRequest(BaseModel):
    text: str
    k: Optional[int] = Field(default=None, ge=1)

    @field_validator('text')
    @classmethod
    def text_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('text cannot be empty')
        return v


class FillerResponse(BaseModel):
    """Nearest corpus entries for a query, nearest first."""
    neighbors: List[int]
    distances: List[float]
    fillers: List[str]
    timings_ms: Dict[str, float]


class IndexInfo(BaseModel):
    dimension: int
    capacity: int
    metric: str
    index_type: str
    count: int
    embedding_model: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    version: str
    index_loaded: bool
    index: Optional[IndexInfo] = None
    filler_categories: int


class ReloadResponse(BaseModel):
    success: bool
    index: IndexInfo
