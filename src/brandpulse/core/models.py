"""
Domain records for batch items and their analysis results.

All records are frozen: the item store replaces a BatchItem wholesale on every
transition, so readers never see a half-updated item.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from .image_encoder import PreviewHandle


class Platform(str, Enum):
    """Stock platforms a keyword can be tagged for."""
    ADOBE_STOCK = "Adobe Stock"
    SHUTTERSTOCK = "Shutterstock"
    FREEPIK = "Freepik"


class ItemStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def eligible(self) -> bool:
        """Whether a batch run may pick up an item in this state."""
        return self in (ItemStatus.PENDING, ItemStatus.ERROR)


@dataclass(frozen=True)
class KeywordMetadata:
    word: str
    relevance: int
    platforms: Tuple[Platform, ...] = ()

    def has_platform(self, platform: Platform) -> bool:
        return platform in self.platforms


@dataclass(frozen=True)
class AnalysisResult:
    """Immutable snapshot of one successful analysis."""
    taglines: Tuple[str, ...]
    keywords: Tuple[KeywordMetadata, ...]
    description: str
    suggested_platforms: Tuple[str, ...] = ()

    @property
    def keyword_words(self) -> Tuple[str, ...]:
        return tuple(kw.word for kw in self.keywords)

    def to_dict(self) -> dict:
        return {
            "taglines": list(self.taglines),
            "keywords": [
                {
                    "word": kw.word,
                    "relevance": kw.relevance,
                    "platforms": [p.value for p in kw.platforms],
                }
                for kw in self.keywords
            ],
            "description": self.description,
            "suggested_platforms": list(self.suggested_platforms),
        }


@dataclass(frozen=True)
class BatchItem:
    """One submitted image plus its analysis lifecycle.

    The encoded payload is not part of the record; the item store keeps it in a
    side map keyed by ``id``.
    """
    id: str
    preview: "PreviewHandle" = field(compare=False, repr=False)
    status: ItemStatus = ItemStatus.PENDING
    result: Optional[AnalysisResult] = None
    error: Optional[str] = None
    name: str = ""

    def __post_init__(self):
        if (self.result is not None) != (self.status is ItemStatus.COMPLETED):
            raise ValueError(f"item {self.id}: result must be set iff status is completed")
        if (self.error is not None) != (self.status is ItemStatus.ERROR):
            raise ValueError(f"item {self.id}: error must be set iff status is error")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "error": self.error,
            "result": self.result.to_dict() if self.result else None,
        }
