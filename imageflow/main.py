from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from contextlib import asynccontextmanager
from typing import Optional
import httpx
import uvicorn
import logging

from imageflow.storage.cache import CacheService
from imageflow.storage.dynamodb import DynamoDBService
from imageflow.storage.router import StorageRouter
from imageflow.storage.s3 import S3Service
from imageflow.settings import Settings
from imageflow.image_service.transcoder import build_transcoder
from imageflow.routers.image_service import router as image_router
from imageflow.routers.maintenance import router as maintenance_router
from imageflow.exceptions import PayloadTooLargeException, add_exception_handlers

log = logging.getLogger("image-service")

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
        Async context manager for FastAPI application lifecycle events.
        Initializes and closes resources (S3, DynamoDB, transcoder, HTTP client) for the application.
    """
    settings = app.state.settings
    # Initialize resources
    app.state.s3 = S3Service(settings)
    app.state.db = DynamoDBService(settings)
    app.state.storage = StorageRouter(app.state.s3)
    app.state.cache = CacheService(app.state.db, settings.cache_ttl_seconds)
    app.state.transcoder = build_transcoder(settings.tinify_api_key, settings.transcode_formats)
    app.state.http = httpx.AsyncClient(timeout=settings.http_timeout_seconds, follow_redirects=True)
    if app.state.transcoder is None:
        log.info("No transcoder configured, variants will use the on-demand transform")
    yield
    # Cleanup resources
    await app.state.http.aclose()
    app.state.s3.close()
    app.state.db.close()

class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        # Reject on the declared Content-Length before the body is read
        content_length = request.headers.get("content-length")
        if content_length is not None:
            max_bytes = request.app.state.settings.max_upload_bytes
            try:
                size = int(content_length)
            except ValueError:
                # Malformed header; the route still checks the size it reads
                size = 0
            if size > max_bytes:
                log.warning("Rejected request of %d bytes (max %d)", size, max_bytes)
                exc = PayloadTooLargeException(max_bytes)
                return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})
        return await call_next(request)

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings()
    logging.basicConfig(level=settings.log_level)

    # Initialize App
    app = FastAPI(
        title=settings.app_title,
        lifespan=lifespan,
        description="Image Service",
        root_path = "/api/v1"
    )
    app.state.settings = settings

    # Add exception handlers
    add_exception_handlers(app)

    app.add_middleware(RequestSizeLimitMiddleware)

    # CORS - Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=['*'],
        # allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add the routers
    app.include_router(image_router)
    app.include_router(maintenance_router)

    # Check Health
    @app.get("/")
    def read_root():
        """
            Default end point

        """
        return "Image Service is running."

    return app

app = create_app()

if __name__ == "__main__":
    uvicorn.run("imageflow.main:app", host="0.0.0.0", port=8000, reload=True)
