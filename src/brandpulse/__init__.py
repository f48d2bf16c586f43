"""
BrandPulse

Batch engine that turns images into marketing metadata (taglines, scored
keywords, mood description, suggested platforms) using vision AI APIs.
"""

__version__ = "0.1.0"

# Allow loading slightly truncated images from phone uploads
try:
    from PIL import ImageFile
    ImageFile.LOAD_TRUNCATED_IMAGES = True
except ImportError:
    pass

from .core import (
    BatchEngine,
    EngineConfig,
    RawImage,
    BatchItem,
    ItemStatus,
    AnalysisResult,
    KeywordMetadata,
    Platform,
)
from .api import APIClient, GeminiClient, OpenAIClient, ClaudeClient, get_client


def main():
    """Entry point for the brandpulse command."""
    from .cli import main as cli_main
    cli_main()


__all__ = [
    "BatchEngine",
    "EngineConfig",
    "RawImage",
    "BatchItem",
    "ItemStatus",
    "AnalysisResult",
    "KeywordMetadata",
    "Platform",
    "APIClient",
    "GeminiClient",
    "OpenAIClient",
    "ClaudeClient",
    "get_client",
]
