import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

import tinify

from imageflow.exceptions import TranscoderException
from imageflow.image_service.models import CompressionOptions, ImageFormat, Variant

log = logging.getLogger(__name__)

@dataclass(frozen=True)
class EncodedImage:
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

@dataclass
class TranscodeResult:
    webp: Optional[EncodedImage] = None
    avif: Optional[EncodedImage] = None

    def get(self, variant: Variant) -> Optional[EncodedImage]:
        return getattr(self, variant.value, None)

class TinifyTranscoder:
    """
        TinyPNG backed transcoder. The source is uploaded once and then
        converted to each wanted target concurrently.

        A target that fails to convert is left out of the result and the
        other target is kept. Only a failure to upload the source is a hard
        failure (tinify.ClientError there just means the source was declined).
    """
    def __init__(self, api_key: str, formats: Iterable[str] = ("webp", "avif")):
        # tinify only takes the key as module state; build one transcoder per process
        tinify.key = api_key
        self.formats = {Variant(f) for f in formats if f in (Variant.WEBP.value, Variant.AVIF.value)}

    async def transcode(
        self,
        data: bytes,
        source_format: ImageFormat,
        options: CompressionOptions,
    ) -> TranscodeResult:
        targets = [v for v in (Variant.WEBP, Variant.AVIF) if v in self.formats and options.wants(v)]
        if not targets:
            return TranscodeResult()

        try:
            source = await asyncio.to_thread(tinify.from_buffer, data)
        except tinify.ClientError as e:
            log.info("Transcoder declined %s source: %s", source_format.value, e)
            return TranscodeResult()
        except tinify.Error as e:
            raise TranscoderException(str(e)) from e

        outputs = await asyncio.gather(*(self._convert(source, v) for v in targets))
        encoded: Dict[str, EncodedImage] = {
            v.value: out for v, out in zip(targets, outputs) if out is not None
        }
        return TranscodeResult(**encoded)

    async def _convert(self, source, variant: Variant) -> Optional[EncodedImage]:
        def run() -> bytes:
            return source.convert(type=f"image/{variant.value}").result().to_buffer()

        try:
            return EncodedImage(await asyncio.to_thread(run))
        except tinify.ClientError as e:
            log.info("Transcoder did not produce %s: %s", variant.value, e)
            return None
        except tinify.Error as e:
            log.warning("Transcoder failed on %s: %s", variant.value, e)
            return None

def build_transcoder(api_key: Optional[str], formats: Iterable[str]) -> Optional[TinifyTranscoder]:
    if not api_key:
        return None
    return TinifyTranscoder(api_key, formats)
