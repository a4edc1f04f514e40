from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Literal, Optional, List, Union
from datetime import datetime
from enum import Enum

class SourceKind(str, Enum):
    QUERY = "query"
    LIST = "list"

class Source(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: SourceKind
    identifier: str

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.identifier}"

class RawItem(BaseModel):
    """A post as returned by the X read endpoints."""
    platform_id: str = Field(min_length=1)
    text: str
    like_count: int = Field(default=0, ge=0)
    repost_count: int = Field(default=0, ge=0)
    created_at: Optional[datetime] = None
    hashtags: List[str] = []

    @field_validator("like_count", "repost_count", mode="before")
    @classmethod
    def _missing_metric_is_zero(cls, v):
        return 0 if v is None else v

    @field_validator("hashtags", mode="before")
    @classmethod
    def _missing_hashtags_is_empty(cls, v):
        return [] if v is None else v

class StoredRecord(BaseModel):
    id: Optional[int] = None
    platform_id: str = Field(min_length=1)
    text: str
    like_count: int = 0
    repost_count: int = 0
    created_at: datetime
    hashtags: List[str] = []
    ingested_at: datetime

class FailureReason(str, Enum):
    RATE_LIMIT_EXHAUSTED = "rate_limit_exhausted"
    OTHER_ERROR = "other_error"

class Items(BaseModel):
    kind: Literal["items"] = "items"
    items: List[RawItem]
    attempts: int = 1

class Empty(BaseModel):
    kind: Literal["empty"] = "empty"
    attempts: int = 1

class RateLimited(BaseModel):
    kind: Literal["rate_limited"] = "rate_limited"
    retry_after: float  # seconds
    attempts: int = 1

class Failed(BaseModel):
    kind: Literal["failed"] = "failed"
    reason: FailureReason
    detail: str = ""
    attempts: int = 1

FetchOutcome = Union[Items, Empty, RateLimited, Failed]
# What Fetcher.fetch hands back once retries are settled
FetchResult = Union[Items, Empty, Failed]

class PersistResult(BaseModel):
    status: Literal["inserted", "duplicate", "failed"]
    record_id: Optional[int] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status != "failed"

class SourceReport(BaseModel):
    source: Source
    status: Literal["stored", "empty", "failed"]
    attempts: int = 1
    fetched: int = 0
    stored: int = 0
    duplicates: int = 0
    persist_errors: int = 0
    failure_reason: Optional[FailureReason] = None
    detail: Optional[str] = None

class IngestReport(BaseModel):
    started_at: datetime
    finished_at: Optional[datetime] = None
    sources: List[SourceReport] = []

    @property
    def failed_sources(self) -> List[SourceReport]:
        return [s for s in self.sources if s.status == "failed"]

    @property
    def total_fetched(self) -> int:
        return sum(s.fetched for s in self.sources)

    @property
    def total_stored(self) -> int:
        return sum(s.stored for s in self.sources)

    def summary(self) -> dict:
        return {
            "sources": len(self.sources),
            "failed_sources": len(self.failed_sources),
            "fetched": self.total_fetched,
            "stored": self.total_stored,
            "duplicates": sum(s.duplicates for s in self.sources),
            "persist_errors": sum(s.persist_errors for s in self.sources),
        }
