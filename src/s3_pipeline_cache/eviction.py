from s3_pipeline_cache.interfaces import IEvictionPolicy
from zope.interface import implementer

import logging
import threading


logger = logging.getLogger(__name__)

HOUR = 60 * 60


@implementer(IEvictionPolicy)
class EvictionPolicy:
    """Removes least recently used items once the cache exceeds threshold.

    The threshold never blocks writes, it only decides how much is removed
    on the next run. Items created while a run enumerates the bucket are
    left for the following run.
    """

    def __init__(self, repository, threshold):
        self._repository = repository
        self.threshold = threshold

    def run(self):
        if self.threshold <= 0:
            return 0

        total_size = self._repository.total_size()
        if total_size <= self.threshold:
            logger.debug(
                "Cache size %d B is within threshold %d B", total_size, self.threshold
            )
            return 0

        excess = total_size - self.threshold
        # oldest first, same access time ordered by key
        items = sorted(
            self._repository.find_all(), key=lambda item: (item.last_access, item.key)
        )
        keys = []
        removed = 0
        for item in items:
            if removed >= excess:
                break
            keys.append(item.key)
            removed += item.content_length

        count = self._repository.delete(keys) if keys else 0
        logger.info("removed %s item(s)", count)
        return count


class CacheCleanupTask:
    """Runs an eviction policy periodically on a background thread."""

    def __init__(self, policy, interval=HOUR, initial_delay=HOUR):
        self.policy = policy
        self.interval = interval
        self.initial_delay = initial_delay
        self._lock = threading.Lock()
        self._stopped = threading.Event()
        self._thread = None

    def start(self):
        """Start the cleanup thread if not already running."""
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._stopped.clear()
            t = threading.Thread(
                target=self._loop, name="cache-cleanup", daemon=True
            )
            self._thread = t
            t.start()

    def stop(self, timeout=10):
        with self._lock:
            t = self._thread
            self._thread = None
        self._stopped.set()
        if t is not None:
            t.join(timeout=timeout)

    @property
    def running(self):
        t = self._thread
        return t is not None and t.is_alive()

    def run_once(self):
        try:
            return self.policy.run()
        except Exception:
            logger.exception("Error during cache cleanup")
            return 0

    def _loop(self):
        delay = self.initial_delay
        while not self._stopped.wait(delay):
            self.run_once()
            delay = self.interval
