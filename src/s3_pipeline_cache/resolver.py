from s3_pipeline_cache.interfaces import IKeyResolver
from zope.interface import implementer

import logging


logger = logging.getLogger(__name__)


@implementer(IKeyResolver)
class KeyResolver:
    """Finds the best matching key to restore a cache from.

    1. the primary key, if it exists
    2. for each restore key, in the given order:
       a. the restore key itself, if it exists
       b. the only key starting with the restore key
       c. the most recently created key starting with the restore key
    3. otherwise None

    The first restore key yielding a match wins, even if a later one would
    match a more recent object.
    """

    def __init__(self, repository):
        self._repository = repository

    def resolve(self, primary_key, restore_keys=()):
        if primary_key and self._repository.exists(primary_key):
            logger.debug("Exact match for primary key %s", primary_key)
            return primary_key

        if isinstance(restore_keys, str):
            restore_keys = (restore_keys,)
        for restore_key in restore_keys or ():
            if not restore_key:
                continue
            key = self._resolve_restore_key(restore_key)
            if key is not None:
                logger.debug("Restore key %s resolved to %s", restore_key, key)
                return key
        return None

    def _resolve_restore_key(self, restore_key):
        if self._repository.exists(restore_key):
            return restore_key

        candidates = list(self._repository.find_keys(restore_key))
        if not candidates:
            return None
        if len(candidates) == 1:
            return candidates[0]
        # equal creation times fall back to the greatest key
        return max(
            candidates, key=lambda key: (self._repository.creation_time(key), key)
        )
