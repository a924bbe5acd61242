from pydantic_settings import BaseSettings
from pydantic import Field
from typing import List, Optional

class Settings(BaseSettings):
    aws_region: str = Field("us-east-1", env="AWS_REGION")
    s3_bucket: str = Field("image-service-bucket", env="S3_BUCKET")
    dynamodb_table: str = Field("Images", env="DYNAMODB_TABLE")
    cache_table: str = Field("ImageCache", env="CACHE_TABLE")
    aws_endpoint_url: Optional[str] = Field(None, env="AWS_ENDPOINT_URL")

    aws_access_key_id: str = Field("test", env="AWS_ACCESS_KEY_ID")
    aws_secret_access_key: str = Field("test", env="AWS_SECRET_ACCESS_KEY")

    # Public read URL of the bucket, used to build the per-format URLs
    public_base_url: str = Field("http://localhost:4566/image-service-bucket", env="PUBLIC_BASE_URL")
    # On-demand transform endpoint; {format} is webp/avif, {source} the original's public URL
    transform_url_template: str = Field(
        "http://localhost:8787/cdn-cgi/image/format={format}/{source}",
        env="TRANSFORM_URL_TEMPLATE",
    )

    # TinyPNG; transcoding is skipped entirely when no key is configured
    tinify_api_key: Optional[str] = Field(None, env="TINIFY_API_KEY")
    transcode_formats: List[str] = Field(["webp", "avif"], env="TRANSCODE_FORMATS")

    max_upload_bytes: int = Field(70 * 1024 * 1024, env="MAX_UPLOAD_BYTES")
    transcode_max_bytes: int = Field(10 * 1024 * 1024, env="TRANSCODE_MAX_BYTES")

    cache_ttl_seconds: int = Field(300, env="CACHE_TTL_SECONDS")
    http_timeout_seconds: float = Field(30.0, env="HTTP_TIMEOUT_SECONDS")

    log_level: str = Field("INFO", env="LOG_LEVEL")
    app_title: str = Field("Image Service", env="APP_TITLE")

    class Config:
        env_file = ".env"
        extra = "allow"  # tolerate unknown vars if needed
