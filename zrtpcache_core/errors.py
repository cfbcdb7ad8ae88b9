from __future__ import annotations


class CacheError(Exception):
    pass


class StorageError(CacheError):
    """The backing engine refused or failed an operation."""
    pass


class StorageUnavailable(StorageError):
    """The cache file could not be created or opened read-write."""
    pass


class ConsistencyError(CacheError):
    """More than one row exists for a key that must be unique."""
    pass


class InvalidRecordError(CacheError, ValueError):
    pass
