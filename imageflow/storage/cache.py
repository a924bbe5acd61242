"""
    Key-value cache with TTL, kept in its own DynamoDB table.

    Entries are grouped by list kind ("images", "tags"). Each kind has a
    generation token that is part of every key of that kind; invalidating a
    kind rotates the token so all of its entries become unreachable and expire
    on their own.
"""
import json
import logging
import time
from typing import Any, Optional
from uuid import uuid4

from imageflow.storage.dynamodb import DynamoDBService

log = logging.getLogger(__name__)

IMAGES_LIST = "images"
TAGS_LIST = "tags"

class CacheService:
    def __init__(self, db: DynamoDBService, ttl_seconds: int):
        self.table = db.resource.Table(db.cache_table_name)
        self.ttl_seconds = ttl_seconds

    def _read(self, cache_key: str) -> Optional[dict]:
        item = self.table.get_item(Key={"cache_key": cache_key}).get("Item")
        if not item:
            return None
        expires_at = item.get("expires_at")
        # Dynamo TTL deletion is lazy, so expired rows can still be returned
        if expires_at is not None and int(expires_at) <= time.time():
            return None
        return item

    def _write(self, cache_key: str, value: str, ttl_seconds: Optional[int]):
        item = {"cache_key": cache_key, "value": value}
        if ttl_seconds:
            item["expires_at"] = int(time.time()) + ttl_seconds
        self.table.put_item(Item=item)

    def generation(self, kind: str) -> str:
        item = self._read(f"generation:{kind}")
        if item:
            return item["value"]
        token = uuid4().hex[:12]
        self._write(f"generation:{kind}", token, None)
        return token

    def key(self, kind: str, *parts: Any) -> str:
        return ":".join([kind, self.generation(kind)] + [str(p) for p in parts])

    def get(self, cache_key: str) -> Optional[Any]:
        item = self._read(cache_key)
        if item is None:
            return None
        return json.loads(item["value"])

    def set(self, cache_key: str, value: Any, ttl_seconds: Optional[int] = None):
        self._write(cache_key, json.dumps(value), ttl_seconds or self.ttl_seconds)

    def invalidate(self, kind: str):
        self._write(f"generation:{kind}", uuid4().hex[:12], None)
        log.debug("Invalidated cached %s lists", kind)

def invalidate_lists(cache: CacheService, *kinds: str):
    """Background task body: a failed invalidation is logged and dropped."""
    for kind in kinds:
        try:
            cache.invalidate(kind)
        except Exception as e:
            log.warning("Cache invalidation for %s failed: %s", kind, e)
