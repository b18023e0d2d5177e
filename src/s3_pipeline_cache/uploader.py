from s3_pipeline_cache import metadata
from s3_pipeline_cache.interfaces import IStreamingUploader
from zope.interface import implementer

import logging
import threading


logger = logging.getLogger(__name__)

MIN_PART_SIZE = 5 * 1024 * 1024
DEFAULT_WINDOW_SIZE = 10 * 1024 * 1024


@implementer(IStreamingUploader)
class StreamingUploader:
    """Writable sink that uploads its content to one S3 object.

    Writes are buffered in a window of ``window_size`` bytes. Content that
    fits into one window is stored with a single put on close. As soon as
    the window overflows a multipart upload is started and every full
    window is sent as the next part; close uploads the remainder and
    completes the upload.

    Used as a context manager the upload is finalized on a clean exit and
    aborted when the block raises.
    """

    def __init__(self, s3_client, key, window_size=DEFAULT_WINDOW_SIZE):
        if window_size < MIN_PART_SIZE:
            raise ValueError(
                f"window_size must be at least {MIN_PART_SIZE} bytes, "
                f"got {window_size}"
            )
        self._s3_client = s3_client
        self.key = key
        self.window_size = window_size
        self._buffer = bytearray()
        self._lock = threading.Lock()
        self._upload_id = None
        self._parts = []
        self._closed = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None:
            self.close()
        else:
            self.abort()

    def __repr__(self):
        return f"<StreamingUploader key={self.key!r} parts={len(self._parts)}>"

    @property
    def closed(self):
        return self._closed

    @property
    def multipart(self):
        """True once a multipart session was opened."""
        return self._upload_id is not None

    @property
    def parts(self):
        return list(self._parts)

    def writable(self):
        return True

    def write(self, data):
        view = memoryview(data).cast("B")
        written = len(view)
        with self._lock:
            if self._closed:
                raise ValueError("write to closed uploader")
            try:
                while len(self._buffer) + len(view) > self.window_size:
                    room = self.window_size - len(self._buffer)
                    self._buffer += view[:room]
                    view = view[room:]
                    self._upload_part()
                self._buffer += view
            except BaseException:
                self._abort_locked()
                raise
        return written

    def flush(self):
        # parts are only sent when a window is full
        pass

    def close(self):
        with self._lock:
            if self._closed:
                return
            self._closed = True
            try:
                if self._upload_id is None:
                    body = bytes(self._buffer)
                    self._s3_client.put_object(
                        self.key, body, metadata.new_item_metadata()
                    )
                    logger.debug("Uploaded %s (%d bytes) at once", self.key, len(body))
                else:
                    self._upload_part()
                    self._s3_client.complete_multipart_upload(
                        self.key, self._upload_id, list(self._parts)
                    )
                    logger.debug(
                        "Completed multipart upload of %s (%d parts)",
                        self.key,
                        len(self._parts),
                    )
            except BaseException:
                self._abort_locked()
                raise
            finally:
                self._buffer = bytearray()

    def abort(self):
        with self._lock:
            self._abort_locked()

    def _abort_locked(self):
        self._closed = True
        self._buffer = bytearray()
        upload_id, self._upload_id = self._upload_id, None
        if upload_id is None:
            return
        try:
            self._s3_client.abort_multipart_upload(self.key, upload_id)
        except Exception:
            logger.warning(
                "Failed to abort multipart upload %s of %s",
                upload_id,
                self.key,
                exc_info=True,
            )

    def _upload_part(self):
        if not self._buffer:
            return
        if self._upload_id is None:
            self._upload_id = self._s3_client.create_multipart_upload(
                self.key, metadata.new_item_metadata()
            )
        part_number = len(self._parts) + 1
        etag = self._s3_client.upload_part(
            self.key, self._upload_id, part_number, bytes(self._buffer)
        )
        self._parts.append({"ETag": etag, "PartNumber": part_number})
        self._buffer = bytearray()
