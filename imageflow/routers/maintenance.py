from fastapi import APIRouter, BackgroundTasks, Depends
import logging

from imageflow.storage.cache import CacheService, IMAGES_LIST, TAGS_LIST, invalidate_lists
from imageflow.storage.dynamodb import DynamoDBService
from imageflow.storage.router import StorageRouter
from imageflow.dependencies.dependencies import get_cache, get_dynamodb_service, get_storage_router
from imageflow.image_service.models import CleanupResponse
from imageflow.image_service.service import cleanup_expired

log = logging.getLogger(__name__)

router = APIRouter(tags=["maintenance"])

@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup(
    background_tasks: BackgroundTasks,
    db: DynamoDBService = Depends(get_dynamodb_service),
    storage: StorageRouter = Depends(get_storage_router),
    cache: CacheService = Depends(get_cache),
):
    """Deletes expired images and reports how many were removed."""
    deleted = await cleanup_expired(db, storage)
    if deleted:
        background_tasks.add_task(invalidate_lists, cache, IMAGES_LIST, TAGS_LIST)
    return CleanupResponse(deleted_count=deleted)
