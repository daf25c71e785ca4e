"""Data classes for the listing resolver."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

STATUS_OK = "ok"
STATUS_DEGRADED = "degraded"


@dataclass
class ListingRecord:
    """A resolved listing as persisted by the record store."""
    id: str
    url: str
    title: str
    image: Optional[str] = None
    views: int = 0
    created_at: Optional[datetime] = None
    approximate: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "url": self.url,
            "title": self.title,
            "image": self.image,
            "views": self.views,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "approximate": self.approximate,
        }


@dataclass
class ExtractionResult:
    """Outcome of turning a listing page into a title/image pair."""
    status: str
    title: Optional[str] = None
    image: Optional[str] = None
    reason: Optional[str] = None
    warnings: list[str] = field(default_factory=list)
    source: Optional[str] = None

    @classmethod
    def success(cls, title: str, image: Optional[str] = None,
                source: Optional[str] = None) -> "ExtractionResult":
        return cls(status=STATUS_OK, title=title, image=image, source=source)

    @classmethod
    def failure(cls, reason: str, warnings: Optional[list[str]] = None) -> "ExtractionResult":
        return cls(status=STATUS_DEGRADED, reason=reason, warnings=list(warnings or []))

    @property
    def is_ok(self) -> bool:
        return self.status == STATUS_OK


@dataclass
class ResolveResult:
    record: ListingRecord
    degraded: bool = False
    warnings: list[str] = field(default_factory=list)
    created: bool = False


@dataclass
class RefreshResult:
    record: ListingRecord
    refreshed: bool = False
    degraded: bool = False
    warnings: list[str] = field(default_factory=list)


@dataclass
class ListingPage:
    records: list[ListingRecord]
    total: int
    limit: int
    offset: int
