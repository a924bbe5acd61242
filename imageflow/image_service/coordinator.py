"""
    Decides per upload which webp/avif variants are pre-encoded, drives the
    object-store writes and resolves every variant slot.

    Policy, in order:

    1. gif/webp/avif sources are stored as uploaded. A webp (avif) source also
       fills the webp (avif) slot with the original's key, since those bytes
       already are that encoding. The transcoder is never called.
    2. Without a transcoder, or when the source is larger than the
       transcoder accepts, every wanted slot is deferred to the on-demand
       transform.
    3. Otherwise the original write and the transcode call run concurrently.
       Once both are done, each produced encoding is written to its own key;
       a wanted encoding that was not produced, or whose write failed, is
       deferred to the on-demand transform.

    Only a failed write of the original fails the upload, and then no
    derived encoding is written.
"""
import asyncio
import logging
from typing import Dict, Optional, Protocol

from imageflow.exceptions import S3UploadException
from imageflow.image_service.inspector import ImageInfo
from imageflow.image_service.models import (
    PASSTHROUGH_FORMATS,
    CompressionOptions,
    ImageFormat,
    Variant,
    VariantMap,
    VariantSlot,
)
from imageflow.image_service.paths import ImagePaths
from imageflow.image_service.transcoder import EncodedImage, TranscodeResult
from imageflow.storage.router import StorageRouter
from imageflow.storage.s3 import STORAGE_ERRORS

log = logging.getLogger(__name__)

DERIVED = (Variant.WEBP, Variant.AVIF)

class Transcoder(Protocol):
    async def transcode(
        self, data: bytes, source_format: ImageFormat, options: CompressionOptions
    ) -> TranscodeResult: ...

class TranscodingCoordinator:
    def __init__(
        self,
        storage: StorageRouter,
        transcoder: Optional[Transcoder],
        transcode_max_bytes: int,
    ):
        self.storage = storage
        self.transcoder = transcoder
        self.transcode_max_bytes = transcode_max_bytes

    async def store(
        self,
        data: bytes,
        info: ImageInfo,
        paths: ImagePaths,
        options: Optional[CompressionOptions] = None,
    ) -> VariantMap:
        options = options or CompressionOptions()
        original = VariantSlot.concrete(paths.original, len(data))

        if info.format in PASSTHROUGH_FORMATS:
            await self._put_original(paths.original, data, info.format)
            return VariantMap(
                original=original,
                webp=original if info.format is ImageFormat.WEBP else VariantSlot.unavailable(),
                avif=original if info.format is ImageFormat.AVIF else VariantSlot.unavailable(),
            )

        if self.transcoder is None or len(data) > self.transcode_max_bytes:
            log.info(
                "Skipping transcode for %s (%d bytes, transcoder %s)",
                paths.original, len(data), "configured" if self.transcoder else "not configured",
            )
            await self._put_original(paths.original, data, info.format)
            return self._resolve(original, options, {})

        original_write = asyncio.create_task(self._put_original(paths.original, data, info.format))
        result = await self._transcode(data, info.format, options)
        await original_write

        produced = {}
        for variant in DERIVED:
            encoded = result.get(variant)
            if encoded is not None and options.wants(variant):
                produced[variant] = encoded
        slots = await asyncio.gather(
            *(self._put_derived(variant, getattr(paths, variant.value), encoded)
              for variant, encoded in produced.items())
        )
        written = {v: s for v, s in zip(produced, slots) if s is not None}
        return self._resolve(original, options, written)

    def _resolve(
        self,
        original: VariantSlot,
        options: CompressionOptions,
        written: Dict[Variant, VariantSlot],
    ) -> VariantMap:
        slots = {}
        for variant in DERIVED:
            if not options.wants(variant):
                slots[variant.value] = VariantSlot.unavailable()
            else:
                slots[variant.value] = written.get(variant) or VariantSlot.transform()
        return VariantMap(original=original, **slots)

    async def _transcode(
        self, data: bytes, source_format: ImageFormat, options: CompressionOptions
    ) -> TranscodeResult:
        try:
            return await self.transcoder.transcode(data, source_format, options)
        except Exception as e:
            log.warning("Transcoding failed, deferring to on-demand transform: %s", e)
            return TranscodeResult()

    async def _put_original(self, key: str, data: bytes, fmt: ImageFormat):
        try:
            await self.storage.put(key, data, fmt.content_type)
        except STORAGE_ERRORS as e:
            log.error("S3 upload of original %s failed: %s", key, e)
            raise S3UploadException()

    async def _put_derived(
        self, variant: Variant, key: str, encoded: EncodedImage
    ) -> Optional[VariantSlot]:
        try:
            await self.storage.put(key, encoded.data, f"image/{variant.value}")
        except STORAGE_ERRORS as e:
            log.warning("S3 upload of %s variant %s failed: %s", variant.value, key, e)
            return None
        return VariantSlot.concrete(key, encoded.size)
