import time

import pytest

from imageflow.storage.cache import IMAGES_LIST, TAGS_LIST, invalidate_lists


# ------------------------------
# StorageRouter over S3
# ------------------------------

@pytest.mark.asyncio
async def test_put_then_stream(storage, s3_service):
    await storage.put("original/landscape/a.png", b"png-bytes", "image/png")

    body = await storage.get_stream("original/landscape/a.png")
    assert b"".join(body.iter_chunks()) == b"png-bytes"

    head = s3_service.client.head_object(Bucket=s3_service.bucket, Key="original/landscape/a.png")
    assert head["ContentType"] == "image/png"


@pytest.mark.asyncio
async def test_get_stream_of_missing_key_is_none(storage):
    assert await storage.get_stream("original/landscape/nope.png") is None


@pytest.mark.asyncio
async def test_delete_many_is_idempotent(storage):
    await storage.put("a", b"1", "image/png")
    await storage.put("b", b"2", "image/png")

    await storage.delete_many(["a", "b", "a"])
    await storage.delete_many(["a", "b"])
    await storage.delete_many([])

    assert await storage.get_stream("a") is None
    assert await storage.get_stream("b") is None


# ------------------------------
# CacheService
# ------------------------------

def test_cache_round_trip(cache):
    key = cache.key(IMAGES_LIST, "tag", 10)
    assert cache.get(key) is None

    cache.set(key, {"images": [1, 2]})
    assert cache.get(key) == {"images": [1, 2]}


def test_invalidate_hides_entries_of_that_kind_only(cache):
    images_key = cache.key(IMAGES_LIST, "all")
    tags_key = cache.key(TAGS_LIST, "all")
    cache.set(images_key, ["cached"])
    cache.set(tags_key, ["cached"])

    cache.invalidate(IMAGES_LIST)

    assert cache.get(cache.key(IMAGES_LIST, "all")) is None
    assert cache.get(cache.key(TAGS_LIST, "all")) == ["cached"]


def test_expired_entry_is_a_miss(cache):
    key = cache.key(TAGS_LIST, "all")
    # Dynamo's TTL sweep has not removed the row yet
    cache.table.put_item(Item={"cache_key": key, "value": '["old"]', "expires_at": int(time.time()) - 1})

    assert cache.get(key) is None


def test_invalidate_lists_swallows_failures(mocker):
    cache = mocker.Mock()
    cache.invalidate.side_effect = [RuntimeError("table gone"), None]

    invalidate_lists(cache, IMAGES_LIST, TAGS_LIST)

    assert cache.invalidate.call_count == 2
