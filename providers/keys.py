from __future__ import annotations

import os
import posixpath

from providers.storage import File


def _join(*parts: str) -> str:
    joined = "/".join(p for p in parts if p)
    if not joined:
        return ""
    cleaned = posixpath.normpath(joined)
    # normpath keeps a leading "//" (POSIX); object keys do not
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    return cleaned


def object_path(file: File) -> str:
    """
    Object key for a file: "<prefix>/<key>.<type>", or "<prefix>/<key>" when the
    file has no type. Every driver derives keys through here.
    """
    name = file.key
    if file.type:
        name = f"{file.key}.{file.type}"
    return _join(file.prefix, name)


def file_ext(path: str) -> str:
    """
    Extension of a local path without the leading dot: the text after the last
    "." of the final path element. Dotfiles keep their name (".env" -> "env").
    """
    name = os.path.basename(path)
    i = name.rfind(".")
    if i < 0:
        return ""
    return name[i + 1:]


def relative_path(file: File) -> str:
    """
    Object key with leading "/" and "../" elements removed, for drivers that
    lay objects out under a root directory. Other characters are kept, so
    distinct keys stay distinct.
    """
    parts = object_path(file).lstrip("/").split("/")
    while parts and parts[0] in ("..", ""):
        parts.pop(0)
    return "/".join(parts)
