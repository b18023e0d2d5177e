"""User metadata stored with every cache object."""

import time


CREATION = "CREATION"
LAST_ACCESS = "LAST_ACCESS"


def now_millis():
    return int(time.time() * 1000)


def new_item_metadata():
    """Metadata for a freshly created object."""
    now = str(now_millis())
    return {CREATION: now, LAST_ACCESS: now}


def read_millis(metadata, name):
    """Return a timestamp field as int, 0 if missing or malformed.

    S3 lower-cases user metadata names, so the lookup ignores case.
    """
    wanted = name.lower()
    for field, value in (metadata or {}).items():
        if field.lower() == wanted:
            try:
                return int(value)
            except ValueError:
                return 0
    return 0


def with_last_access(metadata):
    """Copy metadata with LAST_ACCESS refreshed, keeping the other fields."""
    updated = {
        field: value
        for field, value in (metadata or {}).items()
        if field.lower() != LAST_ACCESS.lower()
    }
    updated[LAST_ACCESS] = str(now_millis())
    return updated
