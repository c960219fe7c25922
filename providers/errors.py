from __future__ import annotations

from typing import Optional


class StorageError(Exception):
    pass


class NotReadyError(StorageError):
    """Raised by file operations before open() succeeded, or after close()."""


class ValidationError(StorageError, ValueError):
    pass


class StorageConnectionError(StorageError, ConnectionError):
    """Client construction failed, or the bucket could be neither found nor created."""


class LocalIOError(StorageError, OSError):
    pass


class DriverNotFoundError(StorageError, KeyError):
    pass


class RemoteError(StorageError):
    """
    Failure surfaced by the object store client.

    The original botocore exception is kept as __cause__; `code` carries the
    service error code when the service returned one (e.g. "NoSuchKey").
    """

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code
