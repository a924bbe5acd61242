import boto3
from io import BytesIO
from typing import List
from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import BotoCoreError, ClientError
from imageflow.settings import Settings
import logging

log = logging.getLogger(__name__)

# upload_fileobj wraps ClientError in S3UploadFailedError
STORAGE_ERRORS = (BotoCoreError, ClientError, S3UploadFailedError)

MISSING_KEY_CODES = {"NoSuchKey", "404", "NotFound"}

# -------------------------
# S3 Service
# -------------------------
class S3Service:
    def __init__(self, settings: Settings):
        self.bucket = settings.s3_bucket
        session = boto3.session.Session(region_name=settings.aws_region)
        kwargs = {
            "aws_access_key_id": settings.aws_access_key_id,
            "aws_secret_access_key": settings.aws_secret_access_key,
        }
        if settings.aws_endpoint_url:
            kwargs["endpoint_url"] = settings.aws_endpoint_url

        self.client = session.client("s3", **kwargs)
        log.info("Initialized S3 client")

        # Ensure bucket exists at initialization
        self.ensure_bucket()

    def ensure_bucket(self):
        try:
            self.client.head_bucket(Bucket=self.bucket)
            log.debug("Bucket %s already exists", self.bucket)
        except ClientError as e:
            error_code = int(e.response["Error"]["Code"])
            if error_code == 404:
                self.client.create_bucket(Bucket=self.bucket)
                log.info("Created bucket %s", self.bucket)
            else:
                log.error("Failed to check/create bucket: %s", e)
                raise

    def upload(self, data: bytes, key: str, content_type: str):
        self.client.upload_fileobj(
            Fileobj=BytesIO(data),
            Bucket=self.bucket,
            Key=key,
            ExtraArgs={"ContentType": content_type},
        )
        log.debug("Uploaded %s to s3://%s/%s", key, self.bucket, key)

    def get_object(self, key: str):
        """Returns the streaming body for `key`, or None when the object is absent."""
        try:
            resp = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if e.response["Error"]["Code"] in MISSING_KEY_CODES:
                return None
            raise
        return resp["Body"]

    def delete_many(self, keys: List[str]):
        # S3 reports success for keys that are already gone
        if not keys:
            return
        resp = self.client.delete_objects(
            Bucket=self.bucket,
            Delete={"Objects": [{"Key": k} for k in keys], "Quiet": True},
        )
        errors = resp.get("Errors", [])
        if errors:
            raise ClientError(
                {"Error": {"Code": errors[0].get("Code", "DeleteFailed"), "Message": errors[0].get("Message", "")}},
                "DeleteObjects",
            )
        log.debug("Deleted %d objects from s3://%s", len(keys), self.bucket)

    def close(self):
        log.info("Closed S3 client")
