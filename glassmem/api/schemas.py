"""
Request and response models for the inspection API.
"""

from pydantic import BaseModel, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime


class HealthResponse(BaseModel):
    status: str
    version: str
    state: str
    capabilities: Dict[str, bool]
    output_count: int
    memory_count: int
    store_health: Optional[bool] = None


class AgentOutputResponse(BaseModel):
    id: str
    kind: str
    text: str
    confidence: float
    produced_at: Optional[datetime] = None
    correlated_timestamps: List[datetime] = []
    metadata: Dict[str, Any] = {}


class AgentOutputListResponse(BaseModel):
    outputs: List[AgentOutputResponse]
    count: int


class ClearResponse(BaseModel):
    success: bool
    cleared: int


class MemorySearchRequest(BaseModel):
    query: str
    top_k: int = 5
    threshold: Optional[float] = None

    @field_validator('query')
    @classmethod
    def query_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('query cannot be empty')
        return v

    @field_validator('top_k')
    @classmethod
    def top_k_must_be_valid(cls, v):
        if v < 0 or v > 100:
            raise ValueError('top_k must be between 0 and 100')
        return v


class MemoryHit(BaseModel):
    id: int
    text: str
    score: float
    metadata: Dict[str, str] = {}


class MemorySearchResponse(BaseModel):
    query: str
    results: List[MemoryHit]
    count: int


class MemoryStoreRequest(BaseModel):
    content: str
    metadata: Dict[str, str] = {}

    @field_validator('content')
    @classmethod
    def content_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('content cannot be empty')
        return v


class MemoryStoreResponse(BaseModel):
    success: bool
    record_id: Optional[int] = None
