# eventvalidate/core/storage.py
"""
S3-compatible object storage for uploaded receipts and attendee photos.

The engine only ever stores object keys (paths); bytes are fetched here when
the photo scorer needs them.
"""
import logging

import boto3
from botocore.exceptions import ClientError

from eventvalidate.core.config import settings

logger = logging.getLogger(__name__)


def get_s3_client():
    """
    Initializes and returns an S3 client.
    Configures the endpoint_url for local development with MinIO when set.
    """
    kwargs = dict(
        aws_access_key_id=settings.AWS_ACCESS_KEY_ID or None,
        aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY or None,
        region_name=settings.AWS_S3_REGION,
    )
    if settings.AWS_S3_ENDPOINT_URL:
        kwargs["endpoint_url"] = settings.AWS_S3_ENDPOINT_URL
    return boto3.client("s3", **kwargs)


def read_object(path: str) -> bytes | None:
    """Fetch an uploaded object's bytes, or None when the key does not exist."""
    s3_client = get_s3_client()
    try:
        response = s3_client.get_object(Bucket=settings.AWS_S3_BUCKET_NAME, Key=path)
    except ClientError as e:
        code = e.response.get("Error", {}).get("Code")
        if code in ("NoSuchKey", "404"):
            logger.warning(f"Object {path} not found in {settings.AWS_S3_BUCKET_NAME}")
            return None
        raise
    return response["Body"].read()

