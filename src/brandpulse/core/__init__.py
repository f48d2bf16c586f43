"""
Core functionality for batch intake, scheduling and keyword selection.
"""

from .engine import BatchEngine
from .batch_store import BatchItemStore
from .config import EngineConfig, CONCURRENCY_LIMIT
from .image_encoder import RawImage, PreviewHandle, normalize_image, normalize_capture
from .keywords import KeywordSelection, filter_keywords, preview_keywords, format_keywords
from .models import AnalysisResult, BatchItem, ItemStatus, KeywordMetadata, Platform
from .workers import AsyncWorkerPool
from .errors import (
    BrandPulseError,
    InvalidInputError,
    DecodeError,
    PayloadLostError,
    ProviderError,
    MalformedResponseError,
    TransportError,
)

__all__ = [
    "BatchEngine",
    "BatchItemStore",
    "EngineConfig",
    "CONCURRENCY_LIMIT",
    "RawImage",
    "PreviewHandle",
    "normalize_image",
    "normalize_capture",
    "KeywordSelection",
    "filter_keywords",
    "preview_keywords",
    "format_keywords",
    "AnalysisResult",
    "BatchItem",
    "ItemStatus",
    "KeywordMetadata",
    "Platform",
    "AsyncWorkerPool",
    "BrandPulseError",
    "InvalidInputError",
    "DecodeError",
    "PayloadLostError",
    "ProviderError",
    "MalformedResponseError",
    "TransportError",
]
