from typing import Optional

import httpx
from fastapi import Depends, Request

from imageflow.settings import Settings
from imageflow.storage.cache import CacheService
from imageflow.storage.dynamodb import DynamoDBService
from imageflow.storage.router import StorageRouter
from imageflow.image_service.coordinator import TranscodingCoordinator, Transcoder
from imageflow.image_service.negotiator import ContentNegotiator
from imageflow.image_service.urls import UrlBuilder

def get_settings(request: Request) -> Settings:
    """Dependency provider for the application Settings"""
    return request.app.state.settings

def get_dynamodb_service(request: Request) -> DynamoDBService:
    """Dependency provider for DynamoDBService"""
    return request.app.state.db

def get_storage_router(request: Request) -> StorageRouter:
    """Dependency provider for StorageRouter"""
    return request.app.state.storage

def get_cache(request: Request) -> CacheService:
    """Dependency provider for CacheService"""
    return request.app.state.cache

def get_http_client(request: Request) -> httpx.AsyncClient:
    """Dependency provider for the transform proxy client"""
    return request.app.state.http

def get_transcoder(request: Request) -> Optional[Transcoder]:
    """Dependency provider for the external transcoder (None when not configured)"""
    return request.app.state.transcoder

def get_url_builder(settings: Settings = Depends(get_settings)) -> UrlBuilder:
    return UrlBuilder(settings.public_base_url, settings.transform_url_template)

def get_coordinator(
    settings: Settings = Depends(get_settings),
    storage: StorageRouter = Depends(get_storage_router),
    transcoder: Optional[Transcoder] = Depends(get_transcoder),
) -> TranscodingCoordinator:
    return TranscodingCoordinator(storage, transcoder, settings.transcode_max_bytes)

def get_negotiator(urls: UrlBuilder = Depends(get_url_builder)) -> ContentNegotiator:
    return ContentNegotiator(urls)
