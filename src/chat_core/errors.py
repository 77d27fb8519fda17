"""Chat store error taxonomy."""


class StoreError(Exception):
    """Base class for every chat store failure."""


class StorageIOError(StoreError, OSError):
    """Filesystem access failed (permissions, missing directory, disk errors)."""


class FormatError(StoreError, ValueError):
    """Bytes do not match the fixed header/record layout."""


class ValidationError(StoreError, ValueError):
    """Caller-supplied input rejected before any write."""


class NotFoundError(StoreError, LookupError):
    """The store file or the requested record does not exist."""
