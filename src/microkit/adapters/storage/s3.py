"""
S3-compatible object storage client.
"""

import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any, BinaryIO, Dict, List, Optional, Union

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ...infrastructure.exceptions import StorageError

if TYPE_CHECKING:
    from ...framework.configuration.store import ConfigurationStore

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

_SDK_ERRORS = (BotoCoreError, ClientError)


class S3ObjectStorage:
    """
    Thin wrapper over the boto3 S3 client.

    Works against AWS or any S3-compatible endpoint (MinIO, R2): when
    ``address`` is set it replaces the default endpoint, and path-style
    addressing is always used. Every SDK failure surfaces as StorageError.
    """

    def __init__(
        self,
        address: str = "",
        region: str = "",
        timeout: float = DEFAULT_TIMEOUT,
        client: Any = None
    ):
        self.address = address
        self.region = region
        self.timeout = timeout

        if client is None:
            client = boto3.client(
                's3',
                endpoint_url=address or None,
                region_name=region or None,
                config=Config(
                    connect_timeout=timeout,
                    read_timeout=timeout,
                    s3={'addressing_style': 'path'}
                )
            )
        self.client = client

        logger.info(f"Initialized S3ObjectStorage (endpoint: {address or 'default'}, region: {region or 'default'})")

    @classmethod
    def from_config(cls, config: "ConfigurationStore") -> "S3ObjectStorage":
        """Build a client from ``s3_address``, ``s3_region`` and ``s3_timeout``."""
        timeout = config.get_duration("s3_timeout").total_seconds()
        return cls(
            address=config.get_string("s3_address"),
            region=config.get_string("s3_region"),
            timeout=timeout if timeout > 0 else DEFAULT_TIMEOUT
        )

    def create_bucket(self, bucket: str, region: Optional[str] = None) -> Dict[str, Any]:
        """
        Create a bucket.

        Args:
            bucket: Bucket name
            region: Location constraint; defaults to the client's region
        """
        region = region or self.region
        params: Dict[str, Any] = {'Bucket': bucket}
        # us-east-1 rejects an explicit location constraint
        if region and region != 'us-east-1':
            params['CreateBucketConfiguration'] = {'LocationConstraint': region}

        try:
            response = self.client.create_bucket(**params)
        except _SDK_ERRORS as e:
            raise StorageError(f"Failed to create bucket: {e}", operation="create_bucket", bucket=bucket, cause=e) from e

        logger.info(f"Created bucket {bucket}")
        return response

    def delete_bucket(self, bucket: str) -> None:
        """Delete a bucket. The bucket must be empty."""
        try:
            self.client.delete_bucket(Bucket=bucket)
        except _SDK_ERRORS as e:
            raise StorageError(f"Failed to delete bucket: {e}", operation="delete_bucket", bucket=bucket, cause=e) from e

        logger.info(f"Deleted bucket {bucket}")

    def upload_object(self, bucket: str, key: str, body: Union[bytes, BinaryIO]) -> None:
        try:
            if isinstance(body, (bytes, bytearray)):
                self.client.put_object(Bucket=bucket, Key=key, Body=bytes(body))
            else:
                self.client.upload_fileobj(body, bucket, key)
        except _SDK_ERRORS as e:
            raise StorageError(f"Failed to upload object: {e}", operation="upload_object", bucket=bucket, key=key, cause=e) from e

        logger.debug(f"Uploaded object {bucket}/{key}")

    def upload_folder(self, bucket: str, folder: Union[str, Path]) -> List[str]:
        """
        Upload every file below ``folder``.

        Object keys are the file paths relative to ``folder``, with ``/``
        separators.

        Returns:
            The uploaded keys
        """
        root = Path(folder)
        if not root.is_dir():
            raise StorageError(f"Not a directory: {root}", operation="upload_folder", bucket=bucket)

        keys = []
        for directory, _, files in os.walk(root):
            for name in sorted(files):
                path = Path(directory) / name
                key = path.relative_to(root).as_posix()
                try:
                    with open(path, 'rb') as body:
                        self.client.upload_fileobj(body, bucket, key)
                except OSError as e:
                    raise StorageError(f"Failed to open file {path}: {e}", operation="upload_folder", bucket=bucket, key=key, cause=e) from e
                except _SDK_ERRORS as e:
                    raise StorageError(f"Failed to upload: {e}", operation="upload_folder", bucket=bucket, key=key, cause=e) from e
                keys.append(key)

        logger.info(f"Uploaded {len(keys)} files from {root} to bucket {bucket}")
        return keys

    def download_object(self, bucket: str, key: str) -> bytes:
        try:
            response = self.client.get_object(Bucket=bucket, Key=key)
            data = response['Body'].read()
        except _SDK_ERRORS as e:
            raise StorageError(f"Failed to download object: {e}", operation="download_object", bucket=bucket, key=key, cause=e) from e

        logger.debug(f"Downloaded object {bucket}/{key} ({len(data)} bytes)")
        return data

    def delete_objects(self, bucket: str, keys: List[str]) -> Dict[str, Any]:
        """
        Delete several objects in one request.

        Returns:
            The SDK response; per-key failures are listed under ``Errors``
        """
        if not keys:
            return {'Deleted': [], 'Errors': []}

        try:
            response = self.client.delete_objects(
                Bucket=bucket,
                Delete={'Objects': [{'Key': key} for key in keys]}
            )
        except _SDK_ERRORS as e:
            raise StorageError(f"Failed to delete objects: {e}", operation="delete_objects", bucket=bucket, cause=e) from e

        for error in response.get('Errors', []):
            logger.warning(f"Failed to delete {bucket}/{error.get('Key')}: {error.get('Message')}")
        return response

    def list_bucket_objects(self, bucket: str) -> List[Dict[str, Any]]:
        """List every object in a bucket, following continuation tokens."""
        objects: List[Dict[str, Any]] = []
        try:
            paginator = self.client.get_paginator('list_objects_v2')
            for page in paginator.paginate(Bucket=bucket):
                objects.extend(page.get('Contents', []))
        except _SDK_ERRORS as e:
            raise StorageError(f"Failed to list bucket's objects: {e}", operation="list_bucket_objects", bucket=bucket, cause=e) from e
        return objects

    def list_buckets(self) -> List[Dict[str, Any]]:
        try:
            response = self.client.list_buckets()
        except _SDK_ERRORS as e:
            raise StorageError(f"Failed to list buckets: {e}", operation="list_buckets", cause=e) from e
        return response.get('Buckets', [])
