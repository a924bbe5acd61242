from dataclasses import dataclass

from imageflow.image_service.models import ImageFormat, Orientation

@dataclass(frozen=True)
class ImagePaths:
    original: str
    webp: str
    avif: str

def allocate_paths(image_id: str, orientation: Orientation, fmt: ImageFormat) -> ImagePaths:
    """Object keys for an image. The webp/avif keys are only proposals until written."""
    return ImagePaths(
        original=f"original/{orientation.value}/{image_id}.{fmt.extension}",
        webp=f"webp/{orientation.value}/{image_id}.webp",
        avif=f"avif/{orientation.value}/{image_id}.avif",
    )
