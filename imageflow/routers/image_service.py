from fastapi import APIRouter, BackgroundTasks, Depends, UploadFile, File, Form, Header, Query, Response
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask
from typing import Optional
import httpx
import json
import logging

from imageflow.settings import Settings
from imageflow.storage.cache import CacheService, IMAGES_LIST, TAGS_LIST, invalidate_lists
from imageflow.storage.dynamodb import DynamoDBService
from imageflow.storage.router import StorageRouter
from imageflow.dependencies.dependencies import (
    get_cache,
    get_coordinator,
    get_dynamodb_service,
    get_http_client,
    get_negotiator,
    get_settings,
    get_storage_router,
    get_url_builder,
)
from imageflow.image_service.coordinator import TranscodingCoordinator
from imageflow.image_service.models import (
    CompressionOptions,
    ImageItem,
    ListImagesResponse,
    Orientation,
    SelectionFilter,
    TagCount,
    TagsResponse,
    UploadResponse,
)
from imageflow.image_service.negotiator import ContentNegotiator, resolve_orientation
from imageflow.image_service.repository import count_tags, fetch_images, get_record, normalize_tags
from imageflow.image_service.service import (
    cached_value,
    open_image,
    pick_random_image,
    remove_image,
    save_image_and_meta,
    to_image_item,
)
from imageflow.image_service.urls import UrlBuilder
from imageflow.exceptions import InvalidImageException, PayloadTooLargeException

log = logging.getLogger(__name__)

router = APIRouter(
    prefix="/images",
    tags=["image-service"]
)

NO_CACHE_HEADERS = {"Cache-Control": "no-cache, no-store, must-revalidate"}

@router.post("", response_model=UploadResponse, status_code=201)
async def upload_image(
    background_tasks: BackgroundTasks,
    response: Response,
    image: Optional[UploadFile] = File(None),
    tags: Optional[str] = Form(None),  # Comma Separated Values
    expiry_minutes: int = Form(0, alias="expiryMinutes", ge=0),
    generate_webp: bool = Form(True, alias="generateWebp"),
    generate_avif: bool = Form(True, alias="generateAvif"),
    settings: Settings = Depends(get_settings),
    db: DynamoDBService = Depends(get_dynamodb_service),
    coordinator: TranscodingCoordinator = Depends(get_coordinator),
    cache: CacheService = Depends(get_cache),
    urls: UrlBuilder = Depends(get_url_builder),
):
    """Uploads an image, derives its webp/avif variants and stores its record."""
    # Add security header
    response.headers["X-Content-Type-Options"] = "nosniff"

    if image is None:
        raise InvalidImageException("No file provided")

    contents = await image.read()
    if not contents:
        raise InvalidImageException("No file provided")
    if len(contents) > settings.max_upload_bytes:
        raise PayloadTooLargeException(settings.max_upload_bytes)

    record = await save_image_and_meta(
        db=db,
        coordinator=coordinator,
        data=contents,
        filename=image.filename or "upload",
        tags=normalize_tags(tags),
        expiry_minutes=expiry_minutes,
        options=CompressionOptions(generate_webp=generate_webp, generate_avif=generate_avif),
    )

    # Runs after the response is sent
    background_tasks.add_task(invalidate_lists, cache, IMAGES_LIST, TAGS_LIST)

    return to_image_item(record, urls, UploadResponse, key=record.variants.original.key)

@router.get("", response_model=ListImagesResponse)
def list_images_handler(
    tag: Optional[str] = Query(None),
    orientation: Optional[Orientation] = Query(None),
    limit: int = Query(50, ge=1, le=100),
    exclusive_start_key: Optional[str] = Query(None),
    db: DynamoDBService = Depends(get_dynamodb_service),
    cache: CacheService = Depends(get_cache),
    urls: UrlBuilder = Depends(get_url_builder),
):
    """Lists images with optional filters."""
    eks = None
    if exclusive_start_key:
        try:
            eks = json.loads(exclusive_start_key)
        except ValueError:
            raise InvalidImageException("invalid exclusive_start_key")

    tag = next(iter(normalize_tags(tag)), None)

    def compute():
        records, next_key = fetch_images(db, tag=tag, orientation=orientation, limit=limit, exclusive_start_key=eks)
        return ListImagesResponse(
            images=[to_image_item(r, urls) for r in records],
            next_token=json.dumps(next_key) if next_key else None,
        ).model_dump(mode="json")

    key_parts = [tag or "", orientation.value if orientation else "", limit, exclusive_start_key or ""]
    return cached_value(cache, IMAGES_LIST, key_parts, compute)

@router.get("/tags", response_model=TagsResponse)
def list_tags(
    db: DynamoDBService = Depends(get_dynamodb_service),
    cache: CacheService = Depends(get_cache),
):
    """Every tag in use with the number of images carrying it."""
    def compute():
        return TagsResponse(
            tags=[TagCount(tag=t, count=n) for t, n in count_tags(db)]
        ).model_dump(mode="json")

    return cached_value(cache, TAGS_LIST, ["all"], compute)

@router.get("/random")
async def random_image(
    tags: Optional[str] = Query(None),
    exclude: Optional[str] = Query(None),
    orientation: Optional[str] = Query(None),
    fmt: Optional[str] = Query(None, alias="format"),
    accept: Optional[str] = Header(None),
    user_agent: Optional[str] = Header(None),
    db: DynamoDBService = Depends(get_dynamodb_service),
    storage: StorageRouter = Depends(get_storage_router),
    http: httpx.AsyncClient = Depends(get_http_client),
    negotiator: ContentNegotiator = Depends(get_negotiator),
):
    """
    Serves the bytes of a random image matching the filters, in the best
    format the client accepts.

    Without an explicit orientation, phones get portrait images and
    everything else landscape.
    """
    selection = SelectionFilter(
        tags=normalize_tags(tags),
        exclude=normalize_tags(exclude),
        orientation=resolve_orientation(orientation, user_agent),
    )
    plan = await pick_random_image(db, negotiator, selection, fmt, accept)
    served = await open_image(plan, storage, http)
    return StreamingResponse(
        served.body,
        media_type=served.content_type,
        headers=NO_CACHE_HEADERS,
        background=BackgroundTask(served.close),
    )

@router.get("/{image_id}", response_model=ImageItem)
def get_image(
    image_id: str,
    db: DynamoDBService = Depends(get_dynamodb_service),
    urls: UrlBuilder = Depends(get_url_builder),
):
    """Gets image metadata."""
    return to_image_item(get_record(db, image_id), urls)

@router.delete("/{image_id}", status_code=204)
async def delete_image(
    image_id: str,
    background_tasks: BackgroundTasks,
    db: DynamoDBService = Depends(get_dynamodb_service),
    storage: StorageRouter = Depends(get_storage_router),
    cache: CacheService = Depends(get_cache),
):
    """Deletes an image's objects, then its metadata."""
    await remove_image(db, storage, image_id)
    background_tasks.add_task(invalidate_lists, cache, IMAGES_LIST, TAGS_LIST)
    return Response(status_code=204)
