"""
Tests for the S3 object storage wrapper against a mocked boto3 client.
"""

import io
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from microkit.adapters.storage import S3ObjectStorage
from microkit.adapters.storage import s3 as s3_module
from microkit.infrastructure.exceptions import StorageError


def client_error(code="NoSuchBucket", operation="Operation"):
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def storage(client):
    return S3ObjectStorage(region="eu-south-1", client=client)


class TestClientConstruction:

    def test_custom_endpoint_and_path_style(self):
        with patch.object(s3_module.boto3, "client") as boto_client:
            S3ObjectStorage(address="http://minio:9000", region="eu-south-1", timeout=5.0)

        args, kwargs = boto_client.call_args
        assert args == ("s3",)
        assert kwargs["endpoint_url"] == "http://minio:9000"
        assert kwargs["region_name"] == "eu-south-1"
        config = kwargs["config"]
        assert config.connect_timeout == 5.0
        assert config.read_timeout == 5.0
        assert config.s3 == {"addressing_style": "path"}

    def test_default_endpoint(self):
        with patch.object(s3_module.boto3, "client") as boto_client:
            S3ObjectStorage()
        assert boto_client.call_args.kwargs["endpoint_url"] is None

    def test_from_config(self, store):
        store.merge({"s3_address": "http://minio:9000", "s3_region": "us-west-2", "s3_timeout": "10s"})
        with patch.object(s3_module.boto3, "client"):
            storage = S3ObjectStorage.from_config(store)
        assert storage.address == "http://minio:9000"
        assert storage.region == "us-west-2"
        assert storage.timeout == 10.0

    def test_from_config_default_timeout(self, store):
        with patch.object(s3_module.boto3, "client"):
            storage = S3ObjectStorage.from_config(store)
        assert storage.timeout == s3_module.DEFAULT_TIMEOUT


class TestBuckets:

    def test_create_bucket_with_location(self, storage, client):
        storage.create_bucket("media")
        client.create_bucket.assert_called_once_with(
            Bucket="media",
            CreateBucketConfiguration={"LocationConstraint": "eu-south-1"}
        )

    def test_create_bucket_in_us_east_1(self, storage, client):
        storage.create_bucket("media", region="us-east-1")
        client.create_bucket.assert_called_once_with(Bucket="media")

    def test_create_bucket_failure(self, storage, client):
        client.create_bucket.side_effect = client_error("BucketAlreadyExists")
        with pytest.raises(StorageError) as exc_info:
            storage.create_bucket("media")
        assert exc_info.value.context == {"operation": "create_bucket", "bucket": "media"}

    def test_delete_bucket(self, storage, client):
        storage.delete_bucket("media")
        client.delete_bucket.assert_called_once_with(Bucket="media")

    def test_list_buckets(self, storage, client):
        client.list_buckets.return_value = {"Buckets": [{"Name": "media"}, {"Name": "logs"}]}
        assert [b["Name"] for b in storage.list_buckets()] == ["media", "logs"]

    def test_connection_failure(self, storage, client):
        client.list_buckets.side_effect = EndpointConnectionError(endpoint_url="http://minio:9000")
        with pytest.raises(StorageError):
            storage.list_buckets()


class TestObjects:

    def test_upload_bytes(self, storage, client):
        storage.upload_object("media", "a.txt", b"hello")
        client.put_object.assert_called_once_with(Bucket="media", Key="a.txt", Body=b"hello")

    def test_upload_stream(self, storage, client):
        body = io.BytesIO(b"hello")
        storage.upload_object("media", "a.txt", body)
        client.upload_fileobj.assert_called_once_with(body, "media", "a.txt")

    def test_upload_failure(self, storage, client):
        client.put_object.side_effect = client_error("AccessDenied")
        with pytest.raises(StorageError) as exc_info:
            storage.upload_object("media", "a.txt", b"hello")
        assert exc_info.value.context["key"] == "a.txt"

    def test_upload_folder(self, storage, client, tmp_path):
        (tmp_path / "nested").mkdir()
        (tmp_path / "root.txt").write_text("root")
        (tmp_path / "nested" / "child.txt").write_text("child")

        keys = storage.upload_folder("media", tmp_path)

        assert sorted(keys) == ["nested/child.txt", "root.txt"]
        uploaded = sorted(call.args[2] for call in client.upload_fileobj.call_args_list)
        assert uploaded == ["nested/child.txt", "root.txt"]

    def test_upload_folder_requires_directory(self, storage, tmp_path):
        with pytest.raises(StorageError):
            storage.upload_folder("media", tmp_path / "missing")

    def test_download(self, storage, client):
        client.get_object.return_value = {"Body": io.BytesIO(b"payload")}
        assert storage.download_object("media", "a.txt") == b"payload"
        client.get_object.assert_called_once_with(Bucket="media", Key="a.txt")

    def test_download_missing(self, storage, client):
        client.get_object.side_effect = client_error("NoSuchKey")
        with pytest.raises(StorageError):
            storage.download_object("media", "missing.txt")

    def test_delete_objects(self, storage, client):
        client.delete_objects.return_value = {"Deleted": [{"Key": "a"}, {"Key": "b"}]}
        response = storage.delete_objects("media", ["a", "b"])
        client.delete_objects.assert_called_once_with(
            Bucket="media",
            Delete={"Objects": [{"Key": "a"}, {"Key": "b"}]}
        )
        assert len(response["Deleted"]) == 2

    def test_delete_no_objects(self, storage, client):
        assert storage.delete_objects("media", []) == {"Deleted": [], "Errors": []}
        client.delete_objects.assert_not_called()

    def test_list_objects_follows_pages(self, storage, client):
        paginator = client.get_paginator.return_value
        paginator.paginate.return_value = [
            {"Contents": [{"Key": "a"}, {"Key": "b"}]},
            {"Contents": [{"Key": "c"}]},
            {},
        ]

        objects = storage.list_bucket_objects("media")

        client.get_paginator.assert_called_once_with("list_objects_v2")
        paginator.paginate.assert_called_once_with(Bucket="media")
        assert [o["Key"] for o in objects] == ["a", "b", "c"]
