from __future__ import annotations

import logging
import os
import tempfile
from typing import BinaryIO, IO, Optional

logger = logging.getLogger(__name__)

TEMP_PREFIX = "storage-s3-"


class TempStream:
    """
    Seekable stream over a disposable local file.

    Reads, seeks and positional reads go straight to the underlying file.
    close() releases the handle and deletes the backing path; calling it again
    is a no-op.
    """

    def __init__(self, file: IO[bytes], path: str):
        self._file = file
        self.path = path
        self._closed = False

    @classmethod
    def create(cls, prefix: str = TEMP_PREFIX) -> "TempStream":
        tmp = tempfile.NamedTemporaryFile(mode="w+b", prefix=prefix, delete=False)
        return cls(tmp, tmp.name)

    @property
    def closed(self) -> bool:
        return self._closed

    def fill(self, source: BinaryIO, chunk_size: int = 1024 * 1024) -> int:
        """Copy `source` to the end of the file, then rewind to offset 0."""
        total = 0
        while True:
            chunk = source.read(chunk_size)
            if not chunk:
                break
            self._file.write(chunk)
            total += len(chunk)
        self._file.flush()
        self._file.seek(0)
        return total

    def read(self, size: int = -1) -> bytes:
        return self._file.read(size)

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        return self._file.seek(offset, whence)

    def tell(self) -> int:
        return self._file.tell()

    def read_at(self, size: int, offset: int) -> bytes:
        """
        Positional read; the stream position is left untouched.
        Uses os.pread, so POSIX only (the service runs in Linux containers).
        """
        return os.pread(self._file.fileno(), size, offset)

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._file.close()
        finally:
            self._remove()

    def _remove(self) -> None:
        try:
            os.remove(self.path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("[Storage] could not remove temp file %s: %s", self.path, exc)

    def __enter__(self) -> "TempStream":
        return self

    def __exit__(self, exc_type, exc, tb) -> Optional[bool]:
        self.close()
        return None

    def __repr__(self) -> str:
        return f"TempStream(path={self.path!r}, closed={self._closed})"
