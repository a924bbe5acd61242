from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, List, Optional, Union, AsyncIterator
import logging

import httpx
from starlette.concurrency import run_in_threadpool

from imageflow.storage.cache import CacheService
from imageflow.storage.dynamodb import DynamoDBService
from imageflow.storage.router import StorageRouter
from imageflow.storage.s3 import STORAGE_ERRORS
from imageflow.image_service.coordinator import TranscodingCoordinator
from imageflow.image_service.inspector import inspect
from imageflow.image_service.models import (
    CompressionOptions,
    ImageItem,
    ImageRecord,
    SelectionFilter,
    new_image_id,
)
from imageflow.image_service.negotiator import ContentNegotiator, ServeMode, ServePlan
from imageflow.image_service.paths import allocate_paths
from imageflow.image_service.repository import (
    delete_record,
    get_record,
    list_expired,
    save_record,
    select_random,
)
from imageflow.image_service.urls import UrlBuilder
from imageflow.exceptions import (
    APIException,
    DynamoDBException,
    NoMatchingImageException,
    ObjectMissingException,
    S3UploadException,
)

log = logging.getLogger(__name__)

async def save_image_and_meta(
    db: DynamoDBService,
    coordinator: TranscodingCoordinator,
    data: bytes,
    filename: str,
    tags: List[str],
    expiry_minutes: int = 0,
    options: Optional[CompressionOptions] = None,
) -> ImageRecord:
    """Stores the image bytes (and any derived variants), then its record."""
    info = inspect(data)
    image_id = new_image_id()
    paths = allocate_paths(image_id, info.orientation, info.format)
    log.info("Processing upload %s: %s, %d bytes, %s", image_id, filename, len(data), info.format.value)

    variants = await coordinator.store(data, info, paths, options)

    uploaded_at = datetime.now(timezone.utc)
    record = ImageRecord(
        image_id=image_id,
        original_name=filename,
        uploaded_at=uploaded_at,
        expires_at=uploaded_at + timedelta(minutes=expiry_minutes) if expiry_minutes > 0 else None,
        orientation=info.orientation,
        tags=tags,
        format=info.format,
        width=info.width,
        height=info.height,
        variants=variants,
    )
    # Only written once every referenced object exists
    try:
        await run_in_threadpool(save_record, db, record)
    except DynamoDBException:
        await _discard_objects(coordinator.storage, variants.concrete_keys())
        raise
    return record

async def _discard_objects(storage: StorageRouter, keys: List[str]):
    try:
        await storage.delete_many(keys)
    except STORAGE_ERRORS as e:
        log.warning("Could not remove objects %s of an unsaved upload: %s", keys, e)

def to_image_item(record: ImageRecord, urls: UrlBuilder, item_cls=ImageItem, **extra):
    return item_cls(
        image_id=record.image_id,
        original_name=record.original_name,
        uploaded_at=record.uploaded_at,
        expires_at=record.expires_at,
        orientation=record.orientation,
        tags=record.tags,
        format=record.format,
        width=record.width,
        height=record.height,
        urls=urls.image_urls(record),
        sizes=record.sizes,
        **extra,
    )

async def purge_image(db: DynamoDBService, storage: StorageRouter, record: ImageRecord):
    """Deletes the record's objects first; the record is only removed once they are gone."""
    try:
        await storage.delete_many(record.variants.concrete_keys())
    except STORAGE_ERRORS as e:
        log.error("S3 delete for %s failed: %s", record.image_id, e)
        raise S3UploadException("Delete failed")
    await run_in_threadpool(delete_record, db, record.image_id)
    log.info("Deleted image %s", record.image_id)

async def remove_image(db: DynamoDBService, storage: StorageRouter, image_id: str):
    record = await run_in_threadpool(get_record, db, image_id)
    await purge_image(db, storage, record)

async def cleanup_expired(
    db: DynamoDBService,
    storage: StorageRouter,
    now: Optional[datetime] = None,
) -> int:
    """Deletes every expired image; a failure on one image is logged and skipped."""
    now = now or datetime.now(timezone.utc)
    expired = await run_in_threadpool(list_expired, db, now)
    deleted = 0
    for record in expired:
        try:
            await purge_image(db, storage, record)
            deleted += 1
        except APIException as e:
            log.error("Failed to delete expired image %s: %s", record.image_id, e.detail)
    log.info("Cleanup removed %d of %d expired images", deleted, len(expired))
    return deleted

def cached_value(cache: CacheService, kind: str, key_parts: Iterable[Any], compute: Callable[[], Any]):
    """Returns the cached value for `key_parts`, computing and storing it on a miss.

    The cache is an optimisation only: its failures are logged and the value is
    computed directly.
    """
    try:
        key = cache.key(kind, *key_parts)
        hit = cache.get(key)
    except Exception as e:
        log.warning("Cache read failed: %s", e)
        return compute()
    if hit is not None:
        return hit
    value = compute()
    try:
        cache.set(key, value)
    except Exception as e:
        log.warning("Cache write failed: %s", e)
    return value

@dataclass
class ServedImage:
    plan: ServePlan
    body: Union[Iterable[bytes], AsyncIterator[bytes]]
    content_type: str
    close: Callable

async def pick_random_image(
    db: DynamoDBService,
    negotiator: ContentNegotiator,
    selection: SelectionFilter,
    requested_format: Optional[str],
    accept: Optional[str],
) -> ServePlan:
    record = await run_in_threadpool(select_random, db, selection)
    if record is None:
        raise NoMatchingImageException()
    plan = negotiator.negotiate(record, requested_format, accept)
    log.info("Serving %s of %s (%s)", plan.variant.value, record.image_id, plan.mode.value)
    return plan

async def open_image(plan: ServePlan, storage: StorageRouter, http: httpx.AsyncClient) -> ServedImage:
    """Opens the byte stream for a plan: an object-store read or a proxied transform fetch."""
    if plan.mode is ServeMode.DIRECT:
        stream = await storage.get_stream(plan.key)
        if stream is None:
            log.error("Object %s referenced by a record is missing", plan.key)
            raise ObjectMissingException(plan.key)
        return ServedImage(plan=plan, body=stream.iter_chunks(), content_type=plan.content_type, close=stream.close)

    try:
        upstream = await http.send(http.build_request("GET", plan.url), stream=True)
    except httpx.HTTPError as e:
        log.error("Transform fetch %s failed: %s", plan.url, e)
        raise ObjectMissingException(plan.url)
    if not upstream.is_success:
        log.error("Transform upstream returned %s for %s", upstream.status_code, plan.url)
        await upstream.aclose()
        raise ObjectMissingException(plan.url)
    return ServedImage(
        plan=plan,
        body=upstream.aiter_bytes(),
        content_type=upstream.headers.get("content-type") or plan.content_type,
        close=upstream.aclose,
    )
