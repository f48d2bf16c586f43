"""
Shared fixtures: synthetic images and a controllable fake analysis provider.
"""
import asyncio
import io
from typing import Callable, Optional

import pytest
from PIL import Image

from brandpulse.core.image_encoder import RawImage
from brandpulse.core.models import AnalysisResult, KeywordMetadata, Platform


def make_image_bytes(width: int = 32, height: int = 24, fmt: str = "PNG", mode: str = "RGB") -> bytes:
    color = (200, 80, 40, 255)[:len(mode)] if mode in ("RGB", "RGBA") else 128
    img = Image.new(mode, (width, height), color)
    buffer = io.BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


def make_raw(name: str = "photo.png", width: int = 32, height: int = 24) -> RawImage:
    return RawImage(data=make_image_bytes(width, height), content_type="image/png", name=name)


def make_result(words=("sunset", "beach", "Beach", "ocean")) -> AnalysisResult:
    platforms = [
        (Platform.ADOBE_STOCK, Platform.SHUTTERSTOCK),
        (Platform.FREEPIK,),
        (Platform.SHUTTERSTOCK,),
        (Platform.ADOBE_STOCK, Platform.FREEPIK),
    ]
    keywords = tuple(
        KeywordMetadata(word=w, relevance=90 - i * 10, platforms=platforms[i % len(platforms)])
        for i, w in enumerate(words)
    )
    return AnalysisResult(
        taglines=("Chase the light", "Golden hour, every hour"),
        keywords=keywords,
        description="Warm, calm evening glow",
        suggested_platforms=("Instagram", "Pinterest"),
    )


class FakeProvider:
    """Async provider double that records concurrency and can be paused."""

    def __init__(self, handler: Optional[Callable[[bytes], AnalysisResult]] = None, delay: float = 0.0):
        self.handler = handler or (lambda payload: make_result())
        self.delay = delay
        self.calls = 0
        self.active = 0
        self.max_active = 0
        self.gate: Optional[asyncio.Event] = None
        self.started: Optional[asyncio.Event] = None

    def pause(self) -> None:
        """Block calls until ``gate.set()``; must be called inside the running loop."""
        self.gate = asyncio.Event()
        self.started = asyncio.Event()

    async def analyze_async(self, payload: bytes) -> AnalysisResult:
        self.calls += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.started is not None:
                self.started.set()
            if self.gate is not None:
                await self.gate.wait()
            elif self.delay:
                await asyncio.sleep(self.delay)
            else:
                await asyncio.sleep(0)
            return self.handler(payload)
        finally:
            self.active -= 1


@pytest.fixture
def provider():
    return FakeProvider()
