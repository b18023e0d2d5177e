import io
import logging
import os
import ZConfig


logger = logging.getLogger(__name__)

_SCHEMA_PATH = os.path.join(os.path.dirname(__file__), "schema.xml")


def _load_schema():
    with open(_SCHEMA_PATH) as f:
        return ZConfig.loadSchemaFile(f)


SCHEMA = _load_schema()


def get_schema():
    return SCHEMA


def load_config(path):
    """Load a cache configuration file."""
    with open(path) as f:
        config, _handler = ZConfig.loadConfigFile(get_schema(), f)
    return config


def config_from_string(text):
    config, _handler = ZConfig.loadConfigFile(get_schema(), io.StringIO(text))
    return config


class S3CacheFactory:
    """Builds the cache components from a loaded configuration."""

    def __init__(self, config):
        self.config = config
        self._s3_client = None

    def s3_client(self):
        from s3_pipeline_cache.s3client import S3Client

        if self._s3_client is None:
            config = self.config
            self._s3_client = S3Client(
                bucket_name=config.bucket_name,
                endpoint_url=config.s3_endpoint_url,
                region_name=config.s3_region,
                aws_access_key_id=config.s3_access_key,
                aws_secret_access_key=config.s3_secret_key,
                use_ssl=config.s3_use_ssl,
                addressing_style=config.s3_addressing_style,
            )
        return self._s3_client

    def repository(self):
        from s3_pipeline_cache.repository import CacheRepository

        return CacheRepository(self.s3_client())

    def eviction_policy(self):
        from s3_pipeline_cache.eviction import EvictionPolicy

        return EvictionPolicy(self.repository(), self.config.size_threshold)

    def cleanup_task(self):
        from s3_pipeline_cache.eviction import CacheCleanupTask

        interval = self.config.cleanup_interval
        return CacheCleanupTask(
            self.eviction_policy(), interval=interval, initial_delay=interval
        )

    def open(self):
        from s3_pipeline_cache.cache import Cache

        return Cache(self.repository())


def check_connection(config):
    """Probe the configured bucket.

    Returns (ok, message) for interactive validation instead of raising.
    """
    try:
        if S3CacheFactory(config).repository().bucket_exists():
            return True, "OK"
        return False, "Bucket not exists"
    except Exception as e:
        logger.debug("Connection test failed", exc_info=True)
        return False, str(e)
