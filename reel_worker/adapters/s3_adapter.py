"""
AWS S3 adapter for published assets.

Provides the durable object store for narration audio, backgrounds
and final videos.
"""

import boto3
import logging
from typing import Optional
from botocore.exceptions import BotoCoreError, ClientError

from .base import ObjectStore

logger = logging.getLogger("reel_worker")


class S3ObjectStore(ObjectStore):
    """AWS S3 implementation of the object store"""

    def __init__(self, bucket: str, region: str = "us-east-1", prefix: str = "",
                 public_base_url: Optional[str] = None):
        self.bucket = bucket
        self.region = region
        self.prefix = prefix
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None
        self.s3 = None

    def connect(self):
        """Initialize S3 client"""
        try:
            self.s3 = boto3.client('s3', region_name=self.region)
            logger.info(f"S3 object store connected to bucket: {self.bucket}")
        except Exception as e:
            logger.error(f"Failed to connect to S3: {e}")
            raise

    def put(self, data: bytes, key: str, content_type: str) -> str:
        """Upload bytes and return the object URL"""
        if not self.s3:
            raise RuntimeError("S3 client not initialized. Call connect() first.")

        full_key = f"{self.prefix}{key.lstrip('/')}"
        try:
            self.s3.put_object(
                Bucket=self.bucket,
                Key=full_key,
                Body=data,
                ContentType=content_type
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error uploading {full_key} to S3: {e}")
            raise

        logger.info(f"Uploaded {len(data)} bytes to s3://{self.bucket}/{full_key}")
        return self.url_for(full_key)

    def url_for(self, full_key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{full_key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{full_key}"

    def close(self):
        """Close S3 connection"""
        self.s3 = None
        logger.info("S3 object store connection closed")
