"""Object catalog for evidence photos, backed by S3.

A catalog pattern looks like ``s3://bucket/photos/2024/*.jpg``: the part
before the first wildcard is used as the listing prefix, the whole key
pattern is matched with fnmatch.
"""

import fnmatch
import logging
import mimetypes
from urllib.parse import urlparse

import boto3
from botocore.exceptions import ClientError

from civiclens.config import settings
from civiclens.core.types import ImageReference

logger = logging.getLogger(__name__)

_WILDCARDS = "*?["


def _s3_client():
    return boto3.client("s3", region_name=settings.aws_region)


def parse_pattern(pattern: str) -> tuple[str, str, str]:
    """Split ``s3://bucket/key-pattern`` into (bucket, list_prefix, key_pattern).

    Raises:
        ValueError: If the pattern is not an s3:// URI with a bucket.
    """
    parsed = urlparse(pattern)
    if parsed.scheme != "s3" or not parsed.netloc:
        raise ValueError(f"Catalog pattern must look like s3://bucket/prefix/*.jpg, got {pattern!r}")

    key_pattern = parsed.path.lstrip("/") or "*"
    cut = min((key_pattern.find(c) for c in _WILDCARDS if c in key_pattern), default=len(key_pattern))
    return parsed.netloc, key_pattern[:cut], key_pattern


def list_images(pattern: str, client=None) -> list[ImageReference]:
    """List image objects matching a catalog pattern, sorted by URI."""
    bucket, prefix, key_pattern = parse_pattern(pattern)
    client = client or _s3_client()

    refs: list[ImageReference] = []
    paginator = client.get_paginator("list_objects_v2")
    for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
        for obj in page.get("Contents", []):
            key = obj["Key"]
            if not fnmatch.fnmatchcase(key, key_pattern):
                continue
            content_type, _ = mimetypes.guess_type(key)
            if not content_type or not content_type.startswith("image/"):
                logger.debug("Skipping non-image object %s", key)
                continue
            refs.append(
                ImageReference(
                    uri=f"s3://{bucket}/{key}",
                    content_type=content_type,
                    size_bytes=obj.get("Size", 0),
                    updated_at=obj.get("LastModified"),
                )
            )

    refs.sort(key=lambda r: r.uri)
    logger.info("Catalog %s: %d images", pattern, len(refs))
    return refs


def read_object(uri: str, client=None) -> bytes:
    """Download one object's bytes.

    Raises:
        botocore.exceptions.ClientError: If the object cannot be read.
    """
    parsed = urlparse(uri)
    client = client or _s3_client()
    try:
        resp = client.get_object(Bucket=parsed.netloc, Key=parsed.path.lstrip("/"))
    except ClientError as e:
        logger.error("Failed to read %s: %s", uri, e.response.get("Error", {}).get("Code", e))
        raise
    return resp["Body"].read()
