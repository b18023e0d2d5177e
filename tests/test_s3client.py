from boto3.s3.transfer import TransferConfig
from botocore.exceptions import ClientError
from moto import mock_aws
from s3_pipeline_cache.interfaces import IS3Client
from s3_pipeline_cache.s3client import S3Client

import boto3
import os
import pytest
import threading


@pytest.fixture
def s3_env():
    with mock_aws():
        boto3.client("s3", region_name="us-east-1").create_bucket(Bucket="test-bucket")
        yield


@pytest.fixture
def client(s3_env):
    return S3Client(bucket_name="test-bucket", region_name="us-east-1")


def _put(key, body=b"data", metadata=None):
    boto3.client("s3", region_name="us-east-1").put_object(
        Bucket="test-bucket", Key=key, Body=body, Metadata=metadata or {}
    )


class TestS3ClientInterface:
    def test_interface_provided(self, client):
        assert IS3Client.providedBy(client)


class TestLazyClient:
    def test_client_not_created_before_use(self, s3_env):
        client = S3Client(bucket_name="test-bucket", region_name="us-east-1")
        assert client._client is None
        client.head_bucket()
        assert client._client is not None

    def test_client_created_once_across_threads(self, s3_env, monkeypatch):
        created = []
        original = boto3.client

        def counting_client(*args, **kwargs):
            created.append(1)
            return original(*args, **kwargs)

        monkeypatch.setattr(boto3, "client", counting_client)
        client = S3Client(bucket_name="test-bucket", region_name="us-east-1")
        seen = []

        def worker():
            seen.append(client.client)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(created) == 1
        assert all(c is seen[0] for c in seen)

    def test_injected_client_is_used(self, s3_env):
        raw = boto3.client("s3", region_name="us-east-1")
        client = S3Client(bucket_name="test-bucket", client=raw)
        assert client.client is raw


class TestHeadObject:
    def test_head_object_exists(self, client):
        _put("head/key", b"head test")
        result = client.head_object("head/key")
        assert result is not None
        assert result["ContentLength"] == 9

    def test_head_object_missing(self, client):
        assert client.head_object("missing/key") is None


class TestPutAndGet:
    def test_put_object_with_metadata(self, client):
        client.put_object("put/key", b"payload", {"CREATION": "42"})
        head = client.head_object("put/key")
        assert head["ContentLength"] == 7
        assert {k.lower(): v for k, v in head["Metadata"].items()} == {
            "creation": "42"
        }

    def test_put_empty_object(self, client):
        client.put_object("empty", b"", {})
        assert client.head_object("empty")["ContentLength"] == 0

    def test_get_object_body(self, client):
        _put("get/key", b"streamed")
        body = client.get_object_body("get/key")
        try:
            assert body.read() == b"streamed"
        finally:
            body.close()

    def test_get_missing_raises(self, client):
        with pytest.raises(ClientError):
            client.get_object_body("missing")


class TestListPages:
    def test_follows_continuation_tokens(self, client):
        for i in range(5):
            _put(f"page/{i}")

        pages = list(client.list_pages("page/", page_size=2))

        assert [len(p) for p in pages] == [2, 2, 1]
        keys = [obj["Key"] for page in pages for obj in page]
        assert keys == [f"page/{i}" for i in range(5)]

    def test_empty_bucket_yields_one_empty_page(self, client):
        assert list(client.list_pages()) == [[]]

    def test_prefix_filters(self, client):
        _put("a/1")
        _put("b/1")
        keys = [obj["Key"] for page in client.list_pages("a/") for obj in page]
        assert keys == ["a/1"]


class TestDeleteObjects:
    def test_delete_objects(self, client):
        _put("del/1")
        _put("del/2")
        response = client.delete_objects(["del/1", "del/2"])
        assert len(response["Deleted"]) == 2
        assert client.head_object("del/1") is None


class TestReplaceMetadata:
    def test_replace_metadata_keeps_content(self, client):
        _put("meta/key", b"content", {"CREATION": "1"})
        client.replace_metadata("meta/key", {"CREATION": "1", "LAST_ACCESS": "2"})

        head = client.head_object("meta/key")
        meta = {k.lower(): v for k, v in head["Metadata"].items()}
        assert meta == {"creation": "1", "last_access": "2"}
        body = client.get_object_body("meta/key")
        assert body.read() == b"content"
        body.close()

    def test_replace_metadata_sets_content_type(self, client):
        _put("typed/key", b"content")
        client.replace_metadata(
            "typed/key", {"LAST_ACCESS": "2"}, content_type="application/x-tar"
        )
        assert client.head_object("typed/key")["ContentType"] == "application/x-tar"

    def test_replace_metadata_uses_managed_copy(self, client, monkeypatch):
        calls = []

        def recording_copy(copy_source, bucket, key, ExtraArgs=None, Config=None):
            calls.append((copy_source, bucket, key, ExtraArgs))

        monkeypatch.setattr(client.client, "copy", recording_copy)
        client.replace_metadata("k", {"LAST_ACCESS": "2"}, content_type="text/plain")
        assert calls == [
            (
                {"Bucket": "test-bucket", "Key": "k"},
                "test-bucket",
                "k",
                {
                    "Metadata": {"LAST_ACCESS": "2"},
                    "MetadataDirective": "REPLACE",
                    "ContentType": "text/plain",
                },
            )
        ]

    def test_replace_metadata_above_copy_threshold(self, s3_env):
        part = 5 * 1024 * 1024
        client = S3Client(
            bucket_name="test-bucket",
            region_name="us-east-1",
            transfer_config=TransferConfig(
                multipart_threshold=part, multipart_chunksize=part
            ),
        )
        data = os.urandom(part * 2 + 100)
        _put("big", data, {"CREATION": "1"})

        client.replace_metadata("big", {"CREATION": "1", "LAST_ACCESS": "2"})

        head = client.head_object("big")
        meta = {k.lower(): v for k, v in head["Metadata"].items()}
        assert meta == {"creation": "1", "last_access": "2"}
        body = client.get_object_body("big")
        try:
            assert body.read() == data
        finally:
            body.close()


class TestHeadBucket:
    def test_existing_bucket(self, client):
        assert client.head_bucket() is True

    def test_missing_bucket(self, s3_env):
        client = S3Client(bucket_name="no-such-bucket", region_name="us-east-1")
        assert client.head_bucket() is False

    def test_other_errors_propagate(self, client, monkeypatch):
        def forbidden(**kwargs):
            raise ClientError(
                {"Error": {"Code": "403", "Message": "Forbidden"}}, "HeadBucket"
            )

        monkeypatch.setattr(client.client, "head_bucket", forbidden)
        with pytest.raises(ClientError):
            client.head_bucket()
