#!/usr/bin/env python3
"""
image_encoder.py: Normalize submitted images into transport-efficient JPEG payloads.

Each input is decoded with Pillow, rotated according to its EXIF orientation,
scaled down so its longest side fits MAX_IMAGE_DIMENSION (never upscaled) and
re-encoded as JPEG. A small thumbnail is kept as the item's preview.

Supports JPEG, PNG, WebP and any other format Pillow can open; HEIC/HEIF
requires pillow-heif.

Usage:
    python3 -m brandpulse.core.image_encoder <image> [--quality 70] [-o out.jpg]
"""

import argparse
import base64
import io
import logging
import mimetypes
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

try:
    from pillow_heif import register_heif_opener
    register_heif_opener()
except ImportError:
    pass

from PIL import Image, ImageOps, UnidentifiedImageError

from .config import BATCH_JPEG_QUALITY, MAX_IMAGE_DIMENSION, PREVIEW_SIZE
from .errors import DecodeError, InvalidInputError
from ..utils.log_utils import configure_logging, get_logger

logger = get_logger(__name__)

try:
    RESAMPLE_FILTER = Image.Resampling.LANCZOS
except AttributeError:
    RESAMPLE_FILTER = Image.LANCZOS


@dataclass(frozen=True)
class RawImage:
    """Raw bytes of a submitted file plus its declared content type."""
    data: bytes
    content_type: str
    name: str = ""

    @classmethod
    def from_path(cls, path) -> "RawImage":
        path = Path(path)
        content_type, _ = mimetypes.guess_type(path.name)
        if content_type is None and path.suffix.lower() in (".heic", ".heif"):
            content_type = "image/heic"
        return cls(data=path.read_bytes(), content_type=content_type or "", name=path.name)


class PreviewHandle:
    """
    Revocable reference to a displayable thumbnail.

    The owning batch item releases it exactly once, when the item is removed
    or the batch is cleared.
    """

    def __init__(self, data: bytes, size: Tuple[int, int], mime_type: str = "image/jpeg"):
        self._data: Optional[bytes] = data
        self.size = size
        self.mime_type = mime_type
        self._lock = threading.Lock()

    @classmethod
    def from_image(cls, img: Image.Image, max_size: int = PREVIEW_SIZE) -> "PreviewHandle":
        thumb = img.copy()
        thumb.thumbnail((max_size, max_size), RESAMPLE_FILTER)
        buffer = io.BytesIO()
        thumb.save(buffer, format="JPEG", quality=75)
        return cls(buffer.getvalue(), thumb.size)

    @property
    def released(self) -> bool:
        return self._data is None

    @property
    def data(self) -> bytes:
        if self._data is None:
            raise RuntimeError("preview has been released")
        return self._data

    @property
    def uri(self) -> str:
        """Return the preview as a data: URI."""
        return f"data:{self.mime_type};base64,{base64.b64encode(self.data).decode('ascii')}"

    def release(self) -> None:
        with self._lock:
            if self._data is None:
                raise RuntimeError("preview released twice")
            self._data = None

    def __repr__(self) -> str:
        state = "released" if self.released else f"{self.size[0]}x{self.size[1]}"
        return f"<PreviewHandle {state}>"


@dataclass(frozen=True)
class NormalizedImage:
    payload: bytes
    width: int
    height: int
    preview: PreviewHandle


def target_size(width: int, height: int, max_dimension: int = MAX_IMAGE_DIMENSION) -> Tuple[int, int]:
    """Scale (width, height) down so the larger side equals max_dimension, keeping aspect ratio."""
    longest = max(width, height)
    if longest <= max_dimension:
        return width, height
    scale = max_dimension / longest
    if width >= height:
        return max_dimension, max(1, round(height * scale))
    return max(1, round(width * scale)), max_dimension


def _decode(data: bytes) -> Image.Image:
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as err:
        raise DecodeError(f"Could not decode image: {err}") from err
    return ImageOps.exif_transpose(img)


def encode_image(
    img: Image.Image,
    quality: int = BATCH_JPEG_QUALITY,
    max_dimension: int = MAX_IMAGE_DIMENSION,
    preview_size: int = PREVIEW_SIZE,
) -> NormalizedImage:
    """Resize an already decoded image and re-encode it as JPEG with a preview."""
    new_w, new_h = target_size(img.width, img.height, max_dimension)
    if (new_w, new_h) != img.size:
        img = img.resize((new_w, new_h), resample=RESAMPLE_FILTER)
    if img.mode != "RGB":
        img = img.convert("RGB")

    buffer = io.BytesIO()
    img.save(buffer, format="JPEG", quality=quality)
    payload = buffer.getvalue()
    logger.debug("Encoded %dx%d image at quality %d (%d bytes)", new_w, new_h, quality, len(payload))
    # preview last so a failed encode never leaves a handle behind
    return NormalizedImage(payload, new_w, new_h, PreviewHandle.from_image(img, preview_size))


def normalize_image(
    raw: RawImage,
    quality: int = BATCH_JPEG_QUALITY,
    max_dimension: int = MAX_IMAGE_DIMENSION,
    preview_size: int = PREVIEW_SIZE,
) -> NormalizedImage:
    """
    Validate, decode, resize and re-encode one submitted image.

    Raises:
        InvalidInputError: if the content type is not image/*; nothing is decoded.
        DecodeError: if the bytes cannot be decoded; no preview is allocated.
    """
    if not raw.content_type or not raw.content_type.lower().startswith("image/"):
        raise InvalidInputError(
            f"{raw.name or 'input'} is not an image (content type {raw.content_type or 'unknown'!r})"
        )
    img = _decode(raw.data)
    try:
        return encode_image(img, quality, max_dimension, preview_size)
    except OSError as err:
        raise DecodeError(f"Could not re-encode {raw.name or 'image'}: {err}") from err


def normalize_capture(
    data: bytes,
    quality: int,
    max_dimension: int = MAX_IMAGE_DIMENSION,
    preview_size: int = PREVIEW_SIZE,
) -> NormalizedImage:
    """Normalize a live-capture frame; frames carry no declared content type."""
    img = _decode(data)
    try:
        return encode_image(img, quality, max_dimension, preview_size)
    except OSError as err:
        raise DecodeError(f"Could not re-encode capture: {err}") from err


def parse_args():
    # mainly used to test
    parser = argparse.ArgumentParser(
        description="Normalize an image the way batch intake does and write the JPEG payload."
    )
    parser.add_argument("input", help="Path to the input image file.")
    parser.add_argument("-o", "--output", help="Where to write the encoded JPEG (default: <input>_normalized.jpg).")
    parser.add_argument("--quality", type=int, default=BATCH_JPEG_QUALITY, help="JPEG quality 1-95.")
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical", "none"],
        default="none",
        help="Set logging level ('none' disables logging)"
    )
    return parser.parse_args()


def main():
    args = parse_args()
    if args.log_level.lower() != 'none':
        configure_logging(getattr(logging, args.log_level.upper()))
    source = Path(args.input)
    normalized = normalize_image(RawImage.from_path(source), quality=args.quality)
    out = Path(args.output) if args.output else source.with_name(f"{source.stem}_normalized.jpg")
    out.write_bytes(normalized.payload)
    normalized.preview.release()
    print(f"{out}: {normalized.width}x{normalized.height}, {len(normalized.payload)} bytes")


if __name__ == "__main__":
    main()
