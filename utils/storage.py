import base64
import os
import re
import time
from typing import Any, Dict, Optional

import boto3
import requests
from botocore.exceptions import BotoCoreError, ClientError

from config import get_cover_image_config
from schemas import CoverImageResult
from utils.errors import StorageError
from utils.logger import get_logger

logger = get_logger("storage")

LOCAL_ROOT = "outputs"
LOCAL_URL_PREFIX = "/media"


def slugify_title(title: str) -> str:
    return re.sub(r"[^a-zA-Z0-9]", "-", title).lower()


class StorageManager:
    """
    Manages asset files on Cloudflare R2 (S3 compatible).

    Without R2 credentials files go to the local outputs/ directory, which
    the API server serves under /media.
    """

    def __init__(self, local_root: str = LOCAL_ROOT):
        self.account_id = os.getenv("R2_ACCOUNT_ID")
        self.access_key = os.getenv("R2_ACCESS_KEY_ID")
        self.secret_key = os.getenv("R2_SECRET_ACCESS_KEY")
        self.bucket_name = os.getenv("R2_BUCKET_NAME")
        self.public_base_url = (os.getenv("R2_PUBLIC_BASE_URL") or "").rstrip("/")
        self.local_root = local_root

        self.s3_client = None

        if all([self.account_id, self.access_key, self.secret_key, self.bucket_name]):
            try:
                self.s3_client = boto3.client(
                    service_name="s3",
                    endpoint_url=f"https://{self.account_id}.r2.cloudflarestorage.com",
                    aws_access_key_id=self.access_key,
                    aws_secret_access_key=self.secret_key,
                    region_name="auto",  # Must be 'auto' for Cloudflare R2
                )
                logger.info(f"Initialized R2 client for bucket: {self.bucket_name}")
            except (BotoCoreError, ClientError) as e:
                logger.error(f"Failed to initialize R2 client: {e}")
        else:
            logger.info(f"R2 credentials missing. Using local storage under {self.local_root}/")

    @property
    def is_remote(self) -> bool:
        return self.s3_client is not None

    def public_url(self, key: str) -> str:
        if self.is_remote:
            base = self.public_base_url or f"https://{self.bucket_name}.{self.account_id}.r2.dev"
            return f"{base}/{key}"
        return f"{LOCAL_URL_PREFIX}/{key}"

    def upload_bytes(self, data: bytes, key: str, content_type: str = "image/png") -> str:
        """
        Store bytes under a key.

        Returns:
            Public URL of the stored object

        Raises:
            StorageError: the upload failed
        """
        if self.is_remote:
            try:
                logger.info(f"Uploading {len(data):,} bytes to R2://{self.bucket_name}/{key}")
                self.s3_client.put_object(Bucket=self.bucket_name, Key=key, Body=data, ContentType=content_type)
            except (BotoCoreError, ClientError) as e:
                raise StorageError(f"Upload failed for {key}: {e}") from e
        else:
            path = os.path.join(self.local_root, key)
            try:
                os.makedirs(os.path.dirname(path), exist_ok=True)
                with open(path, "wb") as f:
                    f.write(data)
            except OSError as e:
                raise StorageError(f"Local write failed for {key}: {e}") from e
            logger.info(f"Saved {len(data):,} bytes to {path}")
        return self.public_url(key)

    def get_object(self, key: str) -> Optional[bytes]:
        """Object bytes, or None when missing."""
        if self.is_remote:
            try:
                response = self.s3_client.get_object(Bucket=self.bucket_name, Key=key)
                return response["Body"].read()
            except ClientError as e:
                logger.warning(f"Download failed: {e}")
                return None

        path = os.path.join(self.local_root, key)
        if not os.path.exists(path):
            return None
        with open(path, "rb") as f:
            return f.read()

    def delete_file(self, key: str) -> bool:
        if self.is_remote:
            try:
                self.s3_client.delete_object(Bucket=self.bucket_name, Key=key)
                return True
            except ClientError as e:
                logger.warning(f"Delete failed: {e}")
                return False

        path = os.path.join(self.local_root, key)
        if not os.path.exists(path):
            return False
        os.remove(path)
        return True

    def delete_prefix(self, prefix: str) -> int:
        """Delete every object under a prefix. Returns the number deleted."""
        deleted = 0
        if self.is_remote:
            try:
                paginator = self.s3_client.get_paginator("list_objects_v2")
                for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix):
                    for obj in page.get("Contents", []):
                        self.s3_client.delete_object(Bucket=self.bucket_name, Key=obj["Key"])
                        deleted += 1
            except ClientError as e:
                logger.warning(f"Bulk delete error: {e}")
            return deleted

        directory = os.path.join(self.local_root, prefix)
        if os.path.isdir(directory):
            for name in os.listdir(directory):
                os.remove(os.path.join(directory, name))
                deleted += 1
            os.rmdir(directory)
        return deleted

    def store_cover_image(self, image: CoverImageResult, story_id: str, story_title: str) -> Dict[str, Any]:
        """
        Persist a generated cover under story-covers/<story_id>/.

        Data URLs and base64 payloads are decoded; http(s) URLs (temporary
        provider links) are downloaded first.

        Returns:
            {"file_path", "public_url", "file_size", "original_url"}

        Raises:
            StorageError: fetching or uploading the image failed
        """
        data = self._read_image_bytes(image)

        prefix = get_cover_image_config().get("bucket_prefix", "story-covers")
        timestamp = int(time.time() * 1000)
        key = f"{prefix}/{story_id}/{slugify_title(story_title)}-{timestamp}.png"

        public_url = self.upload_bytes(data, key)
        logger.info(f"Cover stored permanently: {public_url}")
        return {
            "file_path": key,
            "public_url": public_url,
            "file_size": len(data),
            "original_url": None if image.image_url.startswith("data:") else image.image_url,
        }

    @staticmethod
    def _decode_base64(payload: str) -> bytes:
        try:
            return base64.b64decode(payload, validate=True)
        except ValueError as e:
            raise StorageError(f"Invalid base64 image data: {e}") from e

    def _read_image_bytes(self, image: CoverImageResult) -> bytes:
        if image.base64:
            return self._decode_base64(image.base64)

        url = image.image_url
        if url.startswith("data:"):
            _, sep, payload = url.partition(",")
            if not sep:
                raise StorageError("Malformed data URL: missing payload")
            return self._decode_base64(payload)

        try:
            response = requests.get(url, timeout=30)
            response.raise_for_status()
        except requests.RequestException as e:
            raise StorageError(f"Failed to fetch image: {e}") from e
        return response.content
