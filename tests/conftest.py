import os
import pytest
import httpx
from moto import mock_aws
from fastapi.testclient import TestClient

# Dummy AWS credentials for moto
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
os.environ["AWS_SECURITY_TOKEN"] = "testing"
os.environ["AWS_SESSION_TOKEN"] = "testing"
os.environ["AWS_REGION"] = "us-east-1"
# Clear the AWS_ENDPOINT_URL so moto mocks are used instead of localstack
os.environ.pop("AWS_ENDPOINT_URL", None)
os.environ.pop("TINIFY_API_KEY", None)

from imageflow.main import create_app
from imageflow.settings import Settings
from imageflow.storage.cache import CacheService
from imageflow.storage.dynamodb import DynamoDBService
from imageflow.storage.router import StorageRouter
from imageflow.storage.s3 import S3Service
from imageflow.dependencies.dependencies import get_http_client, get_transcoder

from helpers import FakeTranscoder

PUBLIC_BASE_URL = "https://cdn.example.com"
TRANSFORM_TEMPLATE = "https://transform.example.com/format={format}/{source}"


@pytest.fixture(scope="function")
def aws_credentials():
    """Mocked AWS Credentials for moto."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"


@pytest.fixture(scope="function")
def settings():
    return Settings(
        aws_region="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
        aws_endpoint_url=None,
        s3_bucket="image-service-bucket",
        dynamodb_table="Images",
        cache_table="ImageCache",
        public_base_url=PUBLIC_BASE_URL,
        transform_url_template=TRANSFORM_TEMPLATE,
        tinify_api_key=None,
        transcode_max_bytes=1024 * 1024,
    )


@pytest.fixture(scope="function")
def aws(aws_credentials):
    with mock_aws():
        yield


@pytest.fixture(scope="function")
def s3_service(aws, settings):
    return S3Service(settings)


@pytest.fixture(scope="function")
def db_service(aws, settings):
    return DynamoDBService(settings)


@pytest.fixture(scope="function")
def storage(s3_service):
    return StorageRouter(s3_service)


@pytest.fixture(scope="function")
def cache(db_service):
    return CacheService(db_service, ttl_seconds=60)


@pytest.fixture(scope="function")
def transcoder():
    return FakeTranscoder()


@pytest.fixture(scope="function")
def transform_proxy():
    """Records transform fetches; set `status` to make the upstream fail."""
    state = {"status": 200, "requests": []}

    def handler(request: httpx.Request):
        state["requests"].append(request)
        fmt = "avif" if "format=avif" in str(request.url) else "webp"
        return httpx.Response(
            state["status"],
            content=f"transformed-{fmt}".encode(),
            headers={"content-type": f"image/{fmt}"},
        )

    state["client"] = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return state


@pytest.fixture(scope="function")
def app(settings):
    return create_app(settings)


@pytest.fixture(scope="function")
def test_client(aws, app, transcoder, transform_proxy):
    app.dependency_overrides[get_transcoder] = lambda: transcoder
    app.dependency_overrides[get_http_client] = lambda: transform_proxy["client"]

    with TestClient(app) as client:
        yield client
