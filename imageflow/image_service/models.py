from enum import Enum
from typing import Any, Dict, List, Optional
from datetime import datetime
from pydantic import BaseModel, Field, model_validator
from uuid import uuid4

def new_image_id() -> str:
    """Generates a new unique image ID."""
    return str(uuid4())

class ImageFormat(str, Enum):
    JPEG = "jpeg"
    PNG = "png"
    GIF = "gif"
    WEBP = "webp"
    AVIF = "avif"

    @property
    def content_type(self) -> str:
        return f"image/{self.value}"

    @property
    def extension(self) -> str:
        return "jpg" if self is ImageFormat.JPEG else self.value

# Formats stored as uploaded, never sent to the transcoder
PASSTHROUGH_FORMATS = {ImageFormat.GIF, ImageFormat.WEBP, ImageFormat.AVIF}

class Orientation(str, Enum):
    LANDSCAPE = "landscape"
    PORTRAIT = "portrait"

    @classmethod
    def from_size(cls, width: int, height: int) -> "Orientation":
        return cls.PORTRAIT if height > width else cls.LANDSCAPE

class Variant(str, Enum):
    ORIGINAL = "original"
    WEBP = "webp"
    AVIF = "avif"

class SlotKind(str, Enum):
    CONCRETE = "concrete"        # bytes of this encoding live at `key`
    UNAVAILABLE = "unavailable"  # not produced
    TRANSFORM = "transform"      # derive on demand from the original

class VariantSlot(BaseModel):
    kind: SlotKind = SlotKind.UNAVAILABLE
    key: Optional[str] = None
    size: int = 0

    @model_validator(mode="after")
    def _check_kind(self):
        if self.kind is SlotKind.CONCRETE:
            if not self.key:
                raise ValueError("concrete slot requires a key")
        elif self.key is not None or self.size:
            raise ValueError(f"{self.kind.value} slot carries no key or size")
        return self

    @classmethod
    def concrete(cls, key: str, size: int) -> "VariantSlot":
        return cls(kind=SlotKind.CONCRETE, key=key, size=size)

    @classmethod
    def unavailable(cls) -> "VariantSlot":
        return cls(kind=SlotKind.UNAVAILABLE)

    @classmethod
    def transform(cls) -> "VariantSlot":
        return cls(kind=SlotKind.TRANSFORM)

    @property
    def is_concrete(self) -> bool:
        return self.kind is SlotKind.CONCRETE

class VariantMap(BaseModel):
    original: VariantSlot
    webp: VariantSlot = Field(default_factory=VariantSlot.unavailable)
    avif: VariantSlot = Field(default_factory=VariantSlot.unavailable)

    @model_validator(mode="after")
    def _original_is_concrete(self):
        if not self.original.is_concrete:
            raise ValueError("original slot must be concrete")
        return self

    def slot(self, variant: Variant) -> VariantSlot:
        return getattr(self, variant.value)

    def concrete_keys(self) -> List[str]:
        """Distinct object keys backing this record; a pass-through alias counts once."""
        keys = []
        for slot in (self.original, self.webp, self.avif):
            if slot.is_concrete and slot.key not in keys:
                keys.append(slot.key)
        return keys

class VariantSizes(BaseModel):
    original: int
    webp: int = 0
    avif: int = 0

class ImageUrls(BaseModel):
    original: str
    webp: Optional[str] = None
    avif: Optional[str] = None

class CompressionOptions(BaseModel):
    generate_webp: bool = True
    generate_avif: bool = True

    def wants(self, variant: Variant) -> bool:
        if variant is Variant.WEBP:
            return self.generate_webp
        if variant is Variant.AVIF:
            return self.generate_avif
        return True

class SelectionFilter(BaseModel):
    tags: List[str] = []
    exclude: List[str] = []
    orientation: Optional[Orientation] = None

class ImageRecord(BaseModel):
    image_id: str = Field(default_factory=new_image_id)
    original_name: str
    uploaded_at: datetime
    expires_at: Optional[datetime] = None
    orientation: Orientation
    tags: List[str] = []
    format: ImageFormat
    width: int
    height: int
    variants: VariantMap

    @property
    def sizes(self) -> VariantSizes:
        return VariantSizes(
            original=self.variants.original.size,
            webp=self.variants.webp.size,
            avif=self.variants.avif.size,
        )

    def to_item(self) -> Dict[str, Any]:
        # Dynamo needs datetimes as ISO strings; expiry is also kept as epoch seconds for the sweep
        item = self.model_dump(mode="json", exclude_none=True)
        if self.expires_at is not None:
            item["expiry_epoch"] = int(self.expires_at.timestamp())
        return item

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "ImageRecord":
        return cls.model_validate({k: v for k, v in item.items() if k != "expiry_epoch"})

class ImageItem(BaseModel):
    image_id: str
    original_name: str
    uploaded_at: datetime
    expires_at: Optional[datetime]
    orientation: Orientation
    tags: List[str]
    format: ImageFormat
    width: int
    height: int
    urls: ImageUrls
    sizes: VariantSizes

class UploadResponse(ImageItem):
    status: str = "success"
    # Object key of the stored original
    key: str

class ListImagesResponse(BaseModel):
    images: List[ImageItem]
    next_token: Optional[str] = None

class TagCount(BaseModel):
    tag: str
    count: int

class TagsResponse(BaseModel):
    tags: List[TagCount]

class CleanupResponse(BaseModel):
    deleted_count: int
