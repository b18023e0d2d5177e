from s3_pipeline_cache import metadata
from s3_pipeline_cache.interfaces import ICacheRepository
from s3_pipeline_cache.uploader import DEFAULT_WINDOW_SIZE
from s3_pipeline_cache.uploader import StreamingUploader
from zope.interface import implementer

import collections
import logging


logger = logging.getLogger(__name__)

# S3 accepts at most this many keys per DeleteObjects request
MAX_DELETE_BATCH = 1000

CacheItem = collections.namedtuple("CacheItem", ["key", "content_length", "last_access"])
CacheItem.__doc__ = """One stored cache object, last_access in epoch milliseconds."""


class CacheItemNotFound(KeyError):
    """No object is stored under the requested key."""


class CacheItemExists(Exception):
    """An object is already stored under the key; objects are write-once."""


def _to_millis(dt):
    return int(dt.timestamp() * 1000)


@implementer(ICacheRepository)
class CacheRepository:
    """Cache items stored as objects in one bucket.

    The object key is the cache key. Every object carries CREATION and
    LAST_ACCESS user metadata.
    """

    def __init__(self, s3_client, window_size=DEFAULT_WINDOW_SIZE, page_size=None):
        self._s3_client = s3_client
        self.window_size = window_size
        self.page_size = page_size

    def __repr__(self):
        return f"<CacheRepository bucket={self._s3_client.bucket_name!r}>"

    def _summaries(self, prefix=""):
        for page in self._s3_client.list_pages(prefix, page_size=self.page_size):
            yield from page

    def exists(self, key):
        if not key:
            return False
        return self._s3_client.head_object(key) is not None

    def content_length(self, key):
        head = self._s3_client.head_object(key) if key else None
        if head is None:
            raise CacheItemNotFound(key)
        return head["ContentLength"]

    def creation_time(self, key):
        head = self._s3_client.head_object(key)
        if head is None:
            return 0
        return metadata.read_millis(head.get("Metadata"), metadata.CREATION)

    def total_size(self):
        return sum(obj["Size"] for obj in self._summaries())

    def find_all(self):
        # listings carry LastModified to the whole second only, LAST_ACCESS
        # keeps the millisecond order; objects without it fall back to
        # LastModified
        for obj in self._summaries():
            head = self._s3_client.head_object(obj["Key"])
            if head is None:
                # deleted since the listing page was fetched
                continue
            last_access = metadata.read_millis(
                head.get("Metadata"), metadata.LAST_ACCESS
            )
            yield CacheItem(
                obj["Key"],
                obj["Size"],
                last_access or _to_millis(obj["LastModified"]),
            )

    def find_keys(self, prefix):
        for obj in self._summaries(prefix):
            yield obj["Key"]

    def delete(self, keys):
        keys = list(keys)
        deleted = 0
        for start in range(0, len(keys), MAX_DELETE_BATCH):
            batch = keys[start : start + MAX_DELETE_BATCH]
            response = self._s3_client.delete_objects(batch)
            deleted += len(response.get("Deleted", []))
            for error in response.get("Errors", []):
                logger.warning(
                    "Failed to delete %s: %s %s",
                    error.get("Key"),
                    error.get("Code"),
                    error.get("Message"),
                )
        return deleted

    def create_write_sink(self, key):
        if not key:
            raise ValueError("cache key must not be empty")
        if self.exists(key):
            raise CacheItemExists(key)
        return StreamingUploader(self._s3_client, key, window_size=self.window_size)

    def download(self, key, sink, chunk_size=1024 * 1024):
        body = self._s3_client.get_object_body(key)
        written = 0
        try:
            for chunk in body.iter_chunks(chunk_size):
                sink.write(chunk)
                written += len(chunk)
        finally:
            body.close()
        return written

    def touch_last_access(self, key):
        head = self._s3_client.head_object(key)
        if head is None:
            raise CacheItemNotFound(key)
        self._s3_client.replace_metadata(
            key,
            metadata.with_last_access(head.get("Metadata")),
            content_type=head.get("ContentType"),
        )

    def bucket_exists(self):
        return self._s3_client.head_bucket()
