"""File primitives: hashing, MIME detection, archive types and tree walking."""
import hashlib
import logging
import mimetypes
import os
import posixpath
from enum import Enum
from pathlib import Path
from typing import Iterator
from urllib.parse import quote, urlparse

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024
DEFAULT_MIME = "application/octet-stream"

# Drive letters parse as one-character schemes; anything shorter than this
# is treated as a local path.
_MIN_SCHEME_LENGTH = 2


class ArchiveType(str, Enum):
    """Archive formats that can be expanded into a tree."""

    NONE = "none"
    ZIP = "zip"
    TAR_GZ = "tar.gz"

    @property
    def supported(self) -> bool:
        return self is not ArchiveType.NONE


def sha256_file(path: Path) -> str:
    """Return the hex-encoded SHA-256 of a file's bytes."""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for block in iter(lambda: f.read(CHUNK_SIZE), b""):
            h.update(block)
    return h.hexdigest()


def guess_mime(path: Path) -> str:
    """Guess a file's content type from its name."""
    mime, encoding = mimetypes.guess_type(str(path))
    if mime is None:
        return DEFAULT_MIME
    if encoding == "gzip" and mime == "application/x-tar":
        return "application/gzip"
    return mime


def get_archive_type(path) -> ArchiveType:
    """Determine the archive format of a file from its name."""
    name = str(path).lower()
    if name.endswith(".zip"):
        return ArchiveType.ZIP
    if name.endswith(".tar.gz") or name.endswith(".tgz"):
        return ArchiveType.TAR_GZ
    return ArchiveType.NONE


def walk_files(root: Path) -> Iterator[Path]:
    """Yield every regular file below root in lexical order.

    Files and subdirectories of a directory are visited together, sorted
    by name, so a.txt/ sub/ z.txt yields a.txt, sub/..., z.txt.
    Symlinked directories are not followed. Errors raised while listing a
    directory propagate to the caller.
    """
    with os.scandir(root) as it:
        entries = sorted(it, key=lambda e: e.name)

    for entry in entries:
        path = Path(entry.path)
        if entry.is_dir(follow_symlinks=False):
            yield from walk_files(path)
        elif path.is_file():
            yield path


def is_remote(root: str) -> bool:
    """Whether root is a URI rather than a local path."""
    return len(urlparse(str(root)).scheme) >= _MIN_SCHEME_LENGTH


def join_location(root: str, name: str) -> str:
    """Join a relative manifest name onto a local path or URI root.

    Examples:
        /srv/app + img/a.png -> /srv/app/img/a.png
        https://host/app/ + img/a.png -> https://host/app/img/a.png
        https://host/app + notes#1.txt -> https://host/app/notes%231.txt

    Names are percent-encoded for URI roots; backends unquote the path.
    """
    name = name.replace(os.sep, "/")
    if is_remote(root):
        parsed = urlparse(str(root))
        path = posixpath.join(parsed.path or "/", quote(name))
        return parsed._replace(path=path).geturl()
    return str(Path(root) / name)


def to_manifest_name(path: Path, root: Path) -> str:
    """Express path relative to root with POSIX separators."""
    return Path(os.path.relpath(path, root)).as_posix()
