import io
import struct

from PIL import Image
from botocore.exceptions import ClientError

from imageflow.image_service.transcoder import EncodedImage, TranscodeResult


def make_image_bytes(fmt="PNG", size=(10, 10), color="red"):
    """Generate a simple valid image in-memory."""
    img = Image.new("RGB", size, color=color)
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


def make_avif_bytes(width, height, with_ispe=True):
    """Minimal ISO-BMFF container: an avif ftyp box and a meta box holding one ispe."""
    ftyp = struct.pack(">I", 24) + b"ftyp" + b"avif" + struct.pack(">I", 0) + b"mif1" + b"miaf"
    ispe = struct.pack(">I", 20) + b"ispe" + struct.pack(">I", 0) + struct.pack(">II", width, height)
    body = ispe if with_ispe else b""
    meta = struct.pack(">I", 12 + len(body)) + b"meta" + struct.pack(">I", 0) + body
    return ftyp + meta + b"\x00" * 16


def storage_error(operation="PutObject"):
    return ClientError({"Error": {"Code": "500", "Message": "boom"}}, operation)


class FakeTranscoder:
    def __init__(self, webp=b"RIFF-fake-webp", avif=b"fake-avif-bytes", error=None):
        self.webp = webp
        self.avif = avif
        self.error = error
        self.calls = []

    async def transcode(self, data, source_format, options):
        self.calls.append((len(data), source_format, options))
        if self.error:
            raise self.error
        return TranscodeResult(
            webp=EncodedImage(self.webp) if self.webp and options.generate_webp else None,
            avif=EncodedImage(self.avif) if self.avif and options.generate_avif else None,
        )


class FakeStorage:
    """In-memory stand-in for StorageRouter."""

    def __init__(self, fail_keys=()):
        self.objects = {}
        self.fail_keys = set(fail_keys)
        self.deleted = []
        self.puts = []

    async def put(self, key, data, content_type):
        self.puts.append(key)
        if key in self.fail_keys or any(key.startswith(p) for p in self.fail_keys):
            raise storage_error()
        self.objects[key] = (data, content_type)

    async def get_stream(self, key):
        return None

    async def delete_many(self, keys):
        for key in keys:
            self.deleted.append(key)
            self.objects.pop(key, None)
