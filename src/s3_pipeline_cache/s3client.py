from boto3.s3.transfer import TransferConfig
from botocore.config import Config
from botocore.exceptions import ClientError
from s3_pipeline_cache.interfaces import IS3Client
from zope.interface import implementer

import boto3
import logging
import threading


logger = logging.getLogger(__name__)

NOT_FOUND_CODES = frozenset(("404", "NoSuchKey", "NoSuchBucket", "NotFound"))


def is_not_found(error):
    """Return True if a ClientError reports a missing key or bucket."""
    return error.response.get("Error", {}).get("Code") in NOT_FOUND_CODES


@implementer(IS3Client)
class S3Client:
    """Thin boto3 wrapper for S3-compatible object storage.

    The boto3 client is created on first use. Creation is guarded by a
    lock so that threads sharing one instance never build two clients.
    """

    def __init__(
        self,
        bucket_name,
        endpoint_url=None,
        region_name=None,
        aws_access_key_id=None,
        aws_secret_access_key=None,
        use_ssl=True,
        addressing_style="path",
        connect_timeout=60,
        read_timeout=60,
        client=None,
        transfer_config=None,
    ):
        self.bucket_name = bucket_name
        self._transfer_config = transfer_config or TransferConfig()
        self._config = Config(
            s3={"addressing_style": addressing_style},
            connect_timeout=connect_timeout,
            read_timeout=read_timeout,
        )

        kwargs = {"config": self._config}
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
        if region_name:
            kwargs["region_name"] = region_name
        if aws_access_key_id:
            kwargs["aws_access_key_id"] = aws_access_key_id
        if aws_secret_access_key:
            kwargs["aws_secret_access_key"] = aws_secret_access_key
        kwargs["use_ssl"] = use_ssl
        if not use_ssl:
            logger.warning(
                "S3 SSL is disabled; data and credentials are transmitted in cleartext"
            )
        self._client_kwargs = kwargs
        self._client = client
        self._client_lock = threading.Lock()

    @property
    def client(self):
        if self._client is None:
            with self._client_lock:
                if self._client is None:
                    self._client = boto3.client("s3", **self._client_kwargs)
        return self._client

    def _log_client_error(self, e, operation, key):
        logger.debug("S3 %s failed for key=%s: %s", operation, key, e)

    def head_object(self, key):
        try:
            return self.client.head_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            if is_not_found(e):
                return None
            self._log_client_error(e, "head", key)
            raise

    def get_object_body(self, key):
        try:
            response = self.client.get_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            self._log_client_error(e, "get", key)
            raise
        return response["Body"]

    def put_object(self, key, body, metadata):
        try:
            self.client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=body,
                ContentLength=len(body),
                Metadata=metadata,
            )
        except ClientError as e:
            self._log_client_error(e, "put", key)
            raise

    def create_multipart_upload(self, key, metadata):
        try:
            response = self.client.create_multipart_upload(
                Bucket=self.bucket_name, Key=key, Metadata=metadata
            )
        except ClientError as e:
            self._log_client_error(e, "create multipart upload", key)
            raise
        return response["UploadId"]

    def upload_part(self, key, upload_id, part_number, body):
        try:
            response = self.client.upload_part(
                Bucket=self.bucket_name,
                Key=key,
                UploadId=upload_id,
                PartNumber=part_number,
                Body=body,
                ContentLength=len(body),
            )
        except ClientError as e:
            self._log_client_error(e, f"upload part {part_number}", key)
            raise
        return response["ETag"]

    def complete_multipart_upload(self, key, upload_id, parts):
        try:
            self.client.complete_multipart_upload(
                Bucket=self.bucket_name,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={"Parts": parts},
            )
        except ClientError as e:
            self._log_client_error(e, "complete multipart upload", key)
            raise

    def abort_multipart_upload(self, key, upload_id):
        try:
            self.client.abort_multipart_upload(
                Bucket=self.bucket_name, Key=key, UploadId=upload_id
            )
        except ClientError as e:
            self._log_client_error(e, "abort multipart upload", key)
            raise

    def list_pages(self, prefix="", page_size=None):
        """Yield the object summaries of every listing page.

        Pages are fetched one at a time by following the continuation
        token, so only a single page is held in memory.
        """
        kwargs = {"Bucket": self.bucket_name}
        if prefix:
            kwargs["Prefix"] = prefix
        if page_size:
            kwargs["MaxKeys"] = page_size
        while True:
            try:
                response = self.client.list_objects_v2(**kwargs)
            except ClientError as e:
                self._log_client_error(e, "list", prefix)
                raise
            yield response.get("Contents", [])
            if not response.get("IsTruncated"):
                return
            kwargs["ContinuationToken"] = response["NextContinuationToken"]

    def delete_objects(self, keys):
        try:
            return self.client.delete_objects(
                Bucket=self.bucket_name,
                Delete={"Objects": [{"Key": key} for key in keys], "Quiet": False},
            )
        except ClientError as e:
            self._log_client_error(e, "delete", f"<{len(keys)} keys>")
            raise

    def replace_metadata(self, key, metadata, content_type=None):
        # S3 has no metadata update, copying the object onto itself is the
        # only way to change it. The managed copy switches to a multipart
        # copy above the transfer threshold, CopyObject stops at 5 GiB.
        extra_args = {"Metadata": metadata, "MetadataDirective": "REPLACE"}
        if content_type:
            extra_args["ContentType"] = content_type
        try:
            self.client.copy(
                {"Bucket": self.bucket_name, "Key": key},
                self.bucket_name,
                key,
                ExtraArgs=extra_args,
                Config=self._transfer_config,
            )
        except ClientError as e:
            self._log_client_error(e, "copy", key)
            raise

    def head_bucket(self):
        """Return True if the bucket exists, False if it is not found."""
        try:
            self.client.head_bucket(Bucket=self.bucket_name)
        except ClientError as e:
            if is_not_found(e):
                return False
            self._log_client_error(e, "head bucket", self.bucket_name)
            raise
        return True
