from typing import Optional

from imageflow.image_service.models import ImageRecord, ImageUrls, SlotKind, Variant

class UrlBuilder:
    def __init__(self, public_base_url: str, transform_url_template: str):
        self.public_base_url = public_base_url.rstrip("/")
        self.transform_url_template = transform_url_template

    def object_url(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"

    def transform_url(self, record: ImageRecord, variant: Variant) -> str:
        source = self.object_url(record.variants.original.key)
        return self.transform_url_template.format(format=variant.value, source=source)

    def variant_url(self, record: ImageRecord, variant: Variant) -> Optional[str]:
        slot = record.variants.slot(variant)
        if slot.kind is SlotKind.CONCRETE:
            return self.object_url(slot.key)
        if slot.kind is SlotKind.TRANSFORM:
            return self.transform_url(record, variant)
        return None

    def image_urls(self, record: ImageRecord) -> ImageUrls:
        return ImageUrls(
            original=self.object_url(record.variants.original.key),
            webp=self.variant_url(record, Variant.WEBP),
            avif=self.variant_url(record, Variant.AVIF),
        )
