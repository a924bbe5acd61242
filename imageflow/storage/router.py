import asyncio
import logging
from typing import Iterable

from imageflow.storage.s3 import S3Service

log = logging.getLogger(__name__)

class StorageRouter:
    """
        Async front for the object store. Every call runs the blocking boto3
        request in a worker thread, so independent writes can be awaited together.
    """
    def __init__(self, s3: S3Service):
        self.s3 = s3

    async def put(self, key: str, data: bytes, content_type: str):
        await asyncio.to_thread(self.s3.upload, data, key, content_type)
        log.info("Stored %s (%d bytes, %s)", key, len(data), content_type)

    async def get_stream(self, key: str):
        """Streaming body for `key`, or None when the object does not exist."""
        return await asyncio.to_thread(self.s3.get_object, key)

    async def delete_many(self, keys: Iterable[str]):
        keys = list(dict.fromkeys(keys))
        await asyncio.to_thread(self.s3.delete_many, keys)
