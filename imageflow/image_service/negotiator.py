"""
    Picks the variant to serve for a record and how to serve it.

    A concrete slot is read straight from the object store. A slot deferred to
    the on-demand transform has no object of its own, so it is fetched through
    the transform endpoint. An unavailable slot falls back to the original.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional
import logging
import re

from imageflow.image_service.models import ImageFormat, ImageRecord, Orientation, SlotKind, Variant
from imageflow.image_service.urls import UrlBuilder

log = logging.getLogger(__name__)

MOBILE_UA = re.compile(r"Mobile|Android|iPhone|iPad|iPod|BlackBerry|IEMobile|Opera Mini|webOS", re.IGNORECASE)

def is_mobile_device(user_agent: Optional[str]) -> bool:
    return bool(user_agent and MOBILE_UA.search(user_agent))

def resolve_orientation(requested: Optional[str], user_agent: Optional[str]) -> Orientation:
    """An explicit orientation wins; otherwise phones get portrait, everything else landscape."""
    if requested in (Orientation.LANDSCAPE.value, Orientation.PORTRAIT.value):
        return Orientation(requested)
    return Orientation.PORTRAIT if is_mobile_device(user_agent) else Orientation.LANDSCAPE

def accepted_types(accept: Optional[str]) -> set:
    """Media types of an Accept header, leaving out ranges with q=0."""
    types = set()
    for part in (accept or "").lower().split(","):
        media, _, params = part.partition(";")
        q = 1.0
        for param in params.split(";"):
            name, _, value = param.strip().partition("=")
            if name == "q":
                try:
                    q = float(value)
                except ValueError:
                    q = 0.0
        if media.strip() and q > 0:
            types.add(media.strip())
    return types

def best_format(accept: Optional[str]) -> Variant:
    types = accepted_types(accept)
    if "image/avif" in types:
        return Variant.AVIF
    if "image/webp" in types:
        return Variant.WEBP
    return Variant.ORIGINAL

def parse_variant(value: Optional[str]) -> Optional[Variant]:
    try:
        return Variant(value) if value else None
    except ValueError:
        return None

class ServeMode(str, Enum):
    DIRECT = "direct"
    PROXY = "proxy"

@dataclass(frozen=True)
class ServePlan:
    variant: Variant
    content_type: str
    mode: ServeMode
    key: Optional[str] = None
    url: Optional[str] = None

class ContentNegotiator:
    def __init__(self, urls: UrlBuilder):
        self.urls = urls

    def negotiate(
        self,
        record: ImageRecord,
        requested: Optional[str] = None,
        accept: Optional[str] = None,
    ) -> ServePlan:
        if record.format is ImageFormat.GIF:
            return self._original(record)

        variant = parse_variant(requested) or best_format(accept)
        if variant is Variant.ORIGINAL:
            return self._original(record)

        slot = record.variants.slot(variant)
        if slot.kind is SlotKind.UNAVAILABLE:
            log.debug("%s has no %s variant, serving original", record.image_id, variant.value)
            return self._original(record)

        content_type = f"image/{variant.value}"
        if slot.kind is SlotKind.TRANSFORM:
            return ServePlan(
                variant=variant,
                content_type=content_type,
                mode=ServeMode.PROXY,
                url=self.urls.transform_url(record, variant),
            )
        return ServePlan(variant=variant, content_type=content_type, mode=ServeMode.DIRECT, key=slot.key)

    def _original(self, record: ImageRecord) -> ServePlan:
        return ServePlan(
            variant=Variant.ORIGINAL,
            content_type=record.format.content_type,
            mode=ServeMode.DIRECT,
            key=record.variants.original.key,
        )
