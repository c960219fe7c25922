from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Optional

from providers.errors import LocalIOError, NotReadyError, ValidationError
from providers.impl.temp_stream import TempStream
from providers.keys import file_ext, relative_path
from providers.storage import (
    BrowseOption,
    DownloadOption,
    FetchOption,
    File,
    Health,
    Instance,
    RemoveOption,
    StorageConnection,
    StorageDriver,
    UploadOption,
)

logger = logging.getLogger(__name__)


class _RangeReader:
    """Reads at most `remaining` bytes from an open file."""

    def __init__(self, f, remaining: Optional[int]):
        self._f = f
        self._remaining = remaining

    def read(self, size: int = -1) -> bytes:
        if self._remaining is None:
            return self._f.read(size)
        if self._remaining <= 0:
            return b""
        if size < 0 or size > self._remaining:
            size = self._remaining
        chunk = self._f.read(size)
        self._remaining -= len(chunk)
        return chunk


class LocalFilesDriver(StorageDriver):
    def connect(self, instance: Instance) -> "LocalFilesConnection":
        root = instance.setting.get("root")
        if not isinstance(root, str) or not root:
            root = "./data"
        return LocalFilesConnection(instance, root)


class LocalFilesConnection(StorageConnection):
    """
    Local filesystem StorageConnection rooted at instance.setting["root"].

    Objects are laid out under the root using the same object keys as the
    S3 driver, so data can be moved between backends as-is. Local dev only:
    browse() returns a file:// URI and ignores expiry.
    """

    def __init__(self, instance: Instance, root: str):
        self.instance = instance
        self.root = root
        self._ready = False

    def _path(self, file: File) -> str:
        safe = relative_path(file).replace("/", os.sep)
        return os.path.join(self.root, safe)

    def _require_ready(self) -> None:
        if not self._ready:
            raise NotReadyError("local storage not ready")

    def open(self) -> None:
        try:
            os.makedirs(self.root, exist_ok=True)
        except OSError as exc:
            raise LocalIOError(f"cannot create storage root {self.root}: {exc}") from exc
        self._ready = True
        logger.info("[LocalFiles] opened instance=%s root=%s", self.instance.name, self.root)

    def health(self) -> Health:
        return Health(workload=0 if self._ready else 1)

    def close(self) -> None:
        self._ready = False

    def upload(self, original: str, opt: UploadOption) -> File:
        self._require_ready()
        if not os.path.exists(original):
            raise ValidationError(f"upload source not found: {original}")
        if os.path.isdir(original):
            raise ValidationError("directory upload not supported")
        if not opt.key:
            raise ValidationError("missing upload key")

        try:
            size = os.path.getsize(original)
        except OSError as exc:
            raise LocalIOError(f"cannot stat {original}: {exc}") from exc
        file = self.instance.new_file(opt.prefix, opt.key, file_ext(original), size)
        path = self._path(file)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            shutil.copyfile(original, path)
        except OSError as exc:
            raise LocalIOError(f"cannot store {original}: {exc}") from exc
        return file

    def fetch(self, file: File, opt: FetchOption) -> TempStream:
        self._require_ready()
        path = self._path(file)
        start = opt.start or 0
        remaining = None
        if opt.end is not None:
            # byte ranges are inclusive
            remaining = max(0, opt.end - start + 1)

        try:
            src = open(path, "rb")
        except OSError as exc:
            raise LocalIOError(f"cannot open {path}: {exc}") from exc
        with src:
            try:
                stream = TempStream.create()
            except OSError as exc:
                raise LocalIOError(f"cannot create temp file: {exc}") from exc
            try:
                src.seek(start)
                stream.fill(_RangeReader(src, remaining))
            except OSError as exc:
                stream.close()
                raise LocalIOError(f"cannot buffer {path}: {exc}") from exc
            except BaseException:
                stream.close()
                raise
        return stream

    def download(self, file: File, opt: DownloadOption) -> str:
        self._require_ready()
        target = opt.target
        if not target:
            raise ValidationError("invalid target")
        if os.path.isfile(target):
            return target
        try:
            parent = os.path.dirname(target)
            if parent:
                os.makedirs(parent, exist_ok=True)
            shutil.copyfile(self._path(file), target)
        except OSError as exc:
            raise LocalIOError(f"cannot download to {target}: {exc}") from exc
        return target

    def remove(self, file: File, opt: Optional[RemoveOption] = None) -> None:
        self._require_ready()
        path = self._path(file)
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            raise LocalIOError(f"cannot remove {path}: {exc}") from exc

    def browse(self, file: File, opt: BrowseOption) -> str:
        self._require_ready()
        return Path(self._path(file)).resolve().as_uri()


def driver() -> LocalFilesDriver:
    return LocalFilesDriver()
