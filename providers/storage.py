from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Protocol, runtime_checkable, Optional, Dict, Any


@dataclass(frozen=True)
class File:
    """
    A stored object, addressed by (prefix, key, type).

    `type` is the file extension without the leading dot ("" when none).
    """
    prefix: str
    key: str
    type: str = ""
    size: int = 0


@dataclass
class Instance:
    """
    A configured storage backend.

    setting:
      Loosely-typed map handed to the driver as-is. Only the driver's own
      normalizer reads it.
    """
    name: str
    driver: str
    setting: Dict[str, Any] = field(default_factory=dict)

    def new_file(self, prefix: str, key: str, type: str, size: int) -> File:
        return File(prefix=prefix or "", key=key or "", type=type or "", size=int(size or 0))


@dataclass
class UploadOption:
    key: str = ""
    prefix: str = ""
    mimetype: str = ""
    expires: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    tags: Dict[str, Any] = field(default_factory=dict)


@dataclass
class FetchOption:
    # None = unset; 0 is a valid explicit start
    start: Optional[int] = None
    end: Optional[int] = None


@dataclass
class DownloadOption:
    target: str = ""


@dataclass
class RemoveOption:
    pass


@dataclass
class BrowseOption:
    expires: Optional[timedelta] = None


@dataclass(frozen=True)
class Health:
    # 0 = ready, 1 = not ready
    workload: int = 0


@runtime_checkable
class Stream(Protocol):
    """
    Seekable, randomly-readable byte stream handed to the caller by fetch().
    The caller owns it and must close it.
    """

    def read(self, size: int = -1) -> bytes: ...

    def seek(self, offset: int, whence: int = 0) -> int: ...

    def read_at(self, size: int, offset: int) -> bytes: ...

    def close(self) -> None: ...


@runtime_checkable
class StorageConnection(Protocol):
    """
    Backend-agnostic file storage connection.

    Lifecycle: driver.connect(instance) -> open() -> file operations -> close().
    """

    def open(self) -> None: ...

    def health(self) -> Health: ...

    def close(self) -> None: ...

    def upload(self, original: str, opt: UploadOption) -> File: ...

    def fetch(self, file: File, opt: FetchOption) -> Stream: ...

    def download(self, file: File, opt: DownloadOption) -> str: ...

    def remove(self, file: File, opt: RemoveOption) -> None: ...

    def browse(self, file: File, opt: BrowseOption) -> str: ...


@runtime_checkable
class StorageDriver(Protocol):
    def connect(self, instance: Instance) -> StorageConnection: ...
