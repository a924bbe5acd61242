"""
    Container sniffing and dimension probing for uploaded images.
"""
from dataclasses import dataclass
from io import BytesIO
from typing import Optional
import logging
import struct

from PIL import Image

from imageflow.image_service.models import ImageFormat, Orientation
from imageflow.exceptions import UnsupportedFormatException, CorruptImageException

log = logging.getLogger(__name__)

AVIF_BRANDS = {b"avif", b"avis"}

@dataclass(frozen=True)
class ImageInfo:
    format: ImageFormat
    width: int
    height: int

    @property
    def orientation(self) -> Orientation:
        return Orientation.from_size(self.width, self.height)

def detect_format(data: bytes) -> Optional[ImageFormat]:
    """Returns the container format from the leading signature bytes, or None."""
    if data[:3] == b"\xff\xd8\xff":
        return ImageFormat.JPEG
    if data[:8] == b"\x89PNG\r\n\x1a\n":
        return ImageFormat.PNG
    if data[:6] in (b"GIF87a", b"GIF89a"):
        return ImageFormat.GIF
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return ImageFormat.WEBP
    if data[4:8] == b"ftyp" and _ftyp_brands(data) & AVIF_BRANDS:
        return ImageFormat.AVIF
    return None

def _ftyp_brands(data: bytes) -> set:
    box_size = struct.unpack(">I", data[:4])[0]
    if box_size < 16 or box_size > len(data):
        return set()
    # major brand, then minor version, then compatible brands
    brands = {data[8:12]}
    brands.update(data[i:i + 4] for i in range(16, box_size - 3, 4))
    return brands

def _avif_size(data: bytes):
    """Largest image spatial extent ('ispe') declared in the container."""
    best = None
    start = data.find(b"ispe")
    while start != -1:
        fields = data[start + 8:start + 16]
        if len(fields) == 8:
            width, height = struct.unpack(">II", fields)
            if best is None or width * height > best[0] * best[1]:
                best = (width, height)
        start = data.find(b"ispe", start + 4)
    return best

def inspect(data: bytes) -> ImageInfo:
    """Detects format and pixel dimensions. Side-effect free."""
    fmt = detect_format(data)
    if fmt is None:
        raise UnsupportedFormatException("Unsupported image format")

    if fmt is ImageFormat.AVIF:
        size = _avif_size(data)
    else:
        try:
            with Image.open(BytesIO(data)) as img:
                size = img.size
        except Exception as e:
            log.info("Could not read %s dimensions: %s", fmt.value, e)
            size = None

    if not size or size[0] <= 0 or size[1] <= 0:
        raise CorruptImageException(f"Could not read {fmt.value} dimensions")

    return ImageInfo(format=fmt, width=size[0], height=size[1])
