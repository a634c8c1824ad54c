"""File-store collaborators used by the compiler.

Paths handed to a file store are virtual POSIX-style absolute paths
(``/lib/util.obpi``). ``resolve_path`` turns an import literal into such a
path relative to the importing file's directory.
"""

from __future__ import annotations
import os
from typing import Dict, Optional, Protocol


class FileStore(Protocol):
    def read_file(self, path: str) -> Optional[str]:
        ...

    def write_file(self, path: str, data: bytes) -> bool:
        ...


def resolve_path(path: str, cwd: str = "/") -> str:
    if path.startswith("~"):
        # '~' names the sandbox root.
        path = path[1:]
    if path.startswith("/"):
        combined = path
    else:
        combined = f"{'' if cwd == '/' else cwd}/{path}"
    parts = []
    for part in combined.split("/"):
        if part in ("", "."):
            continue
        if part == "..":
            if parts:
                parts.pop()
            continue
        parts.append(part)
    return "/" + "/".join(parts)


def dirname(path: str) -> str:
    head = path.rsplit("/", 1)[0]
    return head or "/"


class MemoryFileStore:
    def __init__(self, files: Optional[Dict[str, str]] = None) -> None:
        self.files: Dict[str, str] = {}
        self.blobs: Dict[str, bytes] = {}
        for path, text in (files or {}).items():
            self.files[resolve_path(path)] = text

    def read_file(self, path: str) -> Optional[str]:
        return self.files.get(resolve_path(path))

    def write_file(self, path: str, data: bytes) -> bool:
        self.blobs[resolve_path(path)] = bytes(data)
        return True


class LocalFileStore:
    """Maps virtual paths onto a directory of the host filesystem."""

    def __init__(self, root: str) -> None:
        self.root = os.path.abspath(root)

    def host_path(self, path: str) -> str:
        relative = resolve_path(path).lstrip("/")
        return os.path.join(self.root, *relative.split("/")) if relative else self.root

    def read_file(self, path: str) -> Optional[str]:
        try:
            with open(self.host_path(path), "r", encoding="utf-8") as handle:
                return handle.read()
        except (OSError, UnicodeDecodeError):
            return None

    def write_file(self, path: str, data: bytes) -> bool:
        target = self.host_path(path)
        try:
            parent = os.path.dirname(target)
            if parent:
                os.makedirs(parent, exist_ok=True)
            with open(target, "wb") as handle:
                handle.write(data)
        except OSError:
            return False
        return True
