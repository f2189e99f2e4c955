"""Canvas serialization into image files and packed e-paper bitmaps."""

from __future__ import annotations

import hashlib
from abc import ABC, abstractmethod
from enum import Enum
from io import BytesIO

import numpy as np

from .canvas import Canvas
from .errors import EncodeError
from .models import EncodedFrame


class OutputFormat(str, Enum):
    PNG = "png"
    BMP = "bmp"
    JPEG = "jpeg"
    PACKED = "packed"


def pack_levels(indices: np.ndarray, bit_depth: int) -> bytes:
    """Row-major, MSB-first, every row padded to a whole byte."""
    if bit_depth == 8:
        return indices.astype(np.uint8).tobytes()
    if bit_depth == 1:
        return np.packbits(indices.astype(np.uint8), axis=1).tobytes()

    height, width = indices.shape
    per_byte = 8 // bit_depth
    padded = np.zeros((height, -(-width // per_byte) * per_byte), dtype=np.uint8)
    padded[:, :width] = indices
    groups = padded.reshape(height, -1, per_byte).astype(np.uint16)
    shifts = np.arange(per_byte - 1, -1, -1, dtype=np.uint16) * bit_depth
    packed = np.bitwise_or.reduce(groups << shifts, axis=2)
    return packed.astype(np.uint8).tobytes()


def decode_packed(data: bytes, width: int, height: int, bit_depth: int) -> np.ndarray:
    """Inverse of the packed encoder; returns the luminance buffer."""
    per_byte = 8 // bit_depth
    row_bytes = -(-width // per_byte)
    if len(data) != row_bytes * height:
        raise ValueError(f"Packed frame must be {row_bytes * height} bytes, got {len(data)}")

    raw = np.frombuffer(data, dtype=np.uint8).reshape(height, row_bytes)
    if bit_depth == 8:
        indices = raw
    elif bit_depth == 1:
        indices = np.unpackbits(raw, axis=1)[:, :width]
    else:
        shifts = np.arange(per_byte - 1, -1, -1, dtype=np.uint8) * bit_depth
        mask = (1 << bit_depth) - 1
        indices = ((raw[:, :, None] >> shifts) & mask).reshape(height, -1)[:, :width]

    step = 255 // (2**bit_depth - 1)
    return (indices.astype(np.uint16) * step).astype(np.uint8)


class ImageEncoder(ABC):
    format = OutputFormat.PNG

    def encode(self, canvas: Canvas) -> EncodedFrame:
        if not canvas.quantized:
            raise EncodeError("Canvas has not been rasterized to its bit depth yet")
        try:
            data = self._encode(canvas)
        except (OSError, ValueError) as exc:
            raise EncodeError(f"Could not encode {canvas.width}x{canvas.height} canvas as {self.format.value}: {exc}") from exc
        return EncodedFrame(
            width=canvas.width,
            height=canvas.height,
            bit_depth=canvas.bit_depth,
            format=self.format.value,
            data=data,
            digest=hashlib.sha256(data).hexdigest(),
        )

    @abstractmethod
    def _encode(self, canvas: Canvas) -> bytes:
        ...


class PngEncoder(ImageEncoder):
    format = OutputFormat.PNG

    def _encode(self, canvas: Canvas) -> bytes:
        buf = BytesIO()
        canvas.to_image().save(buf, format="PNG", optimize=False)
        return buf.getvalue()


class BmpEncoder(ImageEncoder):
    format = OutputFormat.BMP

    def _encode(self, canvas: Canvas) -> bytes:
        buf = BytesIO()
        canvas.to_image().save(buf, format="BMP")
        return buf.getvalue()


class JpegEncoder(ImageEncoder):
    """What Open ePaper Link access points ingest. Lossy."""

    format = OutputFormat.JPEG

    def __init__(self, quality: int = 95) -> None:
        self.quality = quality

    def _encode(self, canvas: Canvas) -> bytes:
        buf = BytesIO()
        canvas.to_image().convert("RGB").save(buf, format="JPEG", quality=self.quality, subsampling=0)
        return buf.getvalue()


class PackedEncoder(ImageEncoder):
    format = OutputFormat.PACKED

    def _encode(self, canvas: Canvas) -> bytes:
        return pack_levels(canvas.level_indices(), canvas.bit_depth)


def encoder_for(fmt: str | OutputFormat) -> ImageEncoder:
    try:
        fmt = OutputFormat(fmt)
    except ValueError as exc:
        raise EncodeError(f"Unknown output format: {fmt}") from exc
    if fmt is OutputFormat.PNG:
        return PngEncoder()
    if fmt is OutputFormat.BMP:
        return BmpEncoder()
    if fmt is OutputFormat.JPEG:
        return JpegEncoder()
    return PackedEncoder()
