from s3_pipeline_cache.repository import CacheItemExists
from s3_pipeline_cache.resolver import KeyResolver

import logging
import shutil


logger = logging.getLogger(__name__)

COPY_CHUNK_SIZE = 1024 * 1024


class Cache:
    """Backup and restore of packed folder snapshots.

    Archiving the folder is up to the caller: backup reads an already
    packed byte stream, restore writes the stored bytes into a sink.
    """

    def __init__(self, repository, resolver=None):
        self.repository = repository
        self.resolver = resolver if resolver is not None else KeyResolver(repository)

    def backup(self, key, stream, chunk_size=COPY_CHUNK_SIZE):
        """Store the content of stream under key, unless key exists.

        Returns True if a new cache item was saved.
        """
        try:
            sink = self.repository.create_write_sink(key)
        except CacheItemExists:
            logger.info("Cache already exists (%s), not saving cache.", key)
            return False

        with sink:
            shutil.copyfileobj(stream, sink, chunk_size)

        logger.info("Cache saved successfully")
        logger.info("Cache saved with key: %s", key)
        logger.info("Cache Size: %s B", self.repository.content_length(key))
        return True

    def restore(self, sink, primary_key, restore_keys=()):
        """Write the best matching cache item into sink.

        Returns the restored key or None if nothing matched.
        """
        key = self.resolver.resolve(primary_key, restore_keys)
        if key is None:
            logger.info("Cache not restored (no such key found)")
            return None

        size = self.repository.download(key, sink)
        self.repository.touch_last_access(key)

        logger.info("Cache restored successfully")
        logger.info("Cache restored from key: %s", key)
        logger.info("Cache Size: %s B", size)
        return key
