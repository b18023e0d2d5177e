from zope.interface import Attribute
from zope.interface import Interface


class IS3Client(Interface):
    """Abstraction over S3-compatible object storage."""

    def head_object(key):
        """Return metadata dict for an object, or None if not found."""

    def get_object_body(key):
        """Return the streaming body of an object."""

    def put_object(key, body, metadata):
        """Store body under key in a single request."""

    def create_multipart_upload(key, metadata):
        """Open a multipart session and return its upload id."""

    def upload_part(key, upload_id, part_number, body):
        """Upload one part and return its ETag."""

    def complete_multipart_upload(key, upload_id, parts):
        """Stitch the uploaded parts into the final object."""

    def abort_multipart_upload(key, upload_id):
        """Discard a multipart session and its uploaded parts."""

    def list_pages(prefix="", page_size=None):
        """Yield one list of object summaries per listing page."""

    def delete_objects(keys):
        """Delete keys in one batch request, return the raw response."""

    def replace_metadata(key, metadata, content_type=None):
        """Replace the user metadata of an existing object."""

    def head_bucket():
        """Probe the configured bucket."""


class ICacheRepository(Interface):
    """Cache items stored in an object store bucket."""

    def exists(key):
        """Return True if an object is stored under key."""

    def content_length(key):
        """Return the size in bytes, raise CacheItemNotFound if absent."""

    def total_size():
        """Return the sum of all stored object sizes."""

    def find_all():
        """Lazily yield a CacheItem for every stored object."""

    def find_keys(prefix):
        """Lazily yield every key starting with prefix."""

    def creation_time(key):
        """Return the CREATION timestamp in ms, 0 if unknown."""

    def delete(keys):
        """Delete keys and return the confirmed-deleted count."""

    def create_write_sink(key):
        """Return a writable sink for a new object, refuse existing keys."""

    def download(key, sink):
        """Copy the object body into sink, return the byte count."""

    def touch_last_access(key):
        """Refresh the LAST_ACCESS timestamp of an object."""

    def bucket_exists():
        """Return False if the bucket is not found."""


class IStreamingUploader(Interface):
    """Writable sink turning a byte stream into one or more store requests."""

    closed = Attribute("True once the upload was finalized or aborted.")

    def write(data):
        """Buffer data, uploading full windows as multipart parts."""

    def close():
        """Finalize the upload."""

    def abort():
        """Discard buffered data and any open multipart session."""


class IKeyResolver(Interface):
    """Finds the best existing key for a restore."""

    def resolve(primary_key, restore_keys=()):
        """Return the best matching stored key or None."""


class IEvictionPolicy(Interface):
    """Keeps the total cache size under a threshold."""

    threshold = Attribute("Maximum total size in bytes, <= 0 disables.")

    def run():
        """Delete least recently used items, return the deleted count."""
