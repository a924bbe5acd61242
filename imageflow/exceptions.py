"""
    Centralized exception handling for the FastAPI application.
"""
from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse
import logging

log = logging.getLogger(__name__)

class APIException(Exception):
    """Base class for API exceptions."""
    def __init__(self, status_code: int, detail: str):
        self.status_code = status_code
        self.detail = detail
        super().__init__(self.detail)

class ImageNotFoundException(APIException):
    """Exception for when an image is not found."""
    def __init__(self, image_id: str):
        super().__init__(status_code=404, detail=f"Image with ID '{image_id}' not found.")

class NoMatchingImageException(APIException):
    """No record satisfies the tag/orientation/exclusion filters."""
    def __init__(self):
        super().__init__(status_code=404, detail="No images found matching criteria")

class ObjectMissingException(APIException):
    """A record points at bytes the object store (or transform proxy) cannot produce."""
    def __init__(self, key: str):
        self.key = key
        super().__init__(status_code=404, detail="Image file not found")

class InvalidImageException(APIException):
    """Exception for invalid image files."""
    def __init__(self, detail: str):
        super().__init__(status_code=400, detail=detail)

class UnsupportedFormatException(InvalidImageException):
    def __init__(self, detail: str = "Unsupported image format"):
        super().__init__(detail)

class CorruptImageException(InvalidImageException):
    def __init__(self, detail: str = "Could not read image dimensions"):
        super().__init__(detail)

class PayloadTooLargeException(APIException):
    def __init__(self, max_bytes: int):
        super().__init__(
            status_code=413,
            detail=f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB",
        )

class S3UploadException(APIException):
    """Exception for S3 write failures. The client only sees a generic message."""
    def __init__(self, detail: str = "Upload failed"):
        super().__init__(status_code=500, detail=detail)

class DynamoDBException(APIException):
    """Exception for DynamoDB failures. The client only sees a generic message."""
    def __init__(self, detail: str = "Metadata store unavailable"):
        super().__init__(status_code=500, detail=detail)

class TranscoderException(Exception):
    """Hard failure of the external transcoder. Never reaches the client."""

async def api_exception_handler(request: Request, exc: APIException):
    """Handles API exceptions."""
    if exc.status_code >= 500:
        log.error(f"API Exception: {exc.detail}", exc_info=exc)
    else:
        log.info(f"API Exception: {exc.status_code} {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
    )

async def http_exception_handler(request: Request, exc: HTTPException):
    """Handles FastAPI HTTP exceptions."""
    log.error(f"HTTP Exception: {exc.detail}", exc_info=exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
    )

async def generic_exception_handler(request: Request, exc: Exception):
    """Handles all other exceptions."""
    log.error(f"Unhandled Exception: {str(exc)}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "An unexpected error occurred."},
    )

def add_exception_handlers(app):
    """Adds exception handlers to the FastAPI app."""
    app.add_exception_handler(APIException, api_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
