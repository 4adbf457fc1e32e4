"""
Content checksums for addon packages and the index document.

The digest covers relative paths and file contents. Entries are sorted by
relative path before hashing, so directory traversal order never changes the
result, while renaming a file or changing any byte does. Each entry is framed
as an 8-byte big-endian length plus the UTF-8 path, then an 8-byte length plus
the content, so files can be streamed into the hasher without being held in
memory.
"""

from __future__ import annotations

import fnmatch
import hashlib
import logging
import os
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple

from addon_repo.domain.errors import UnreadableFile

logger = logging.getLogger(__name__)

DEFAULT_ALGORITHM = "sha256"

_CHUNK_SIZE = 8192


def _length_prefix(n: int) -> bytes:
    return n.to_bytes(8, "big")


def _new_hasher(algorithm: str):
    try:
        return hashlib.new(algorithm)
    except (ValueError, TypeError) as e:
        raise ValueError(f"Unsupported checksum algorithm {algorithm!r}") from e


def _encode_path(path: str) -> bytes:
    try:
        return path.encode("utf-8")
    except UnicodeEncodeError as e:
        raise ValueError(f"Path is not valid UTF-8: {path!r}") from e


class ChecksumBuilder:
    """
    Incremental package digest.

    Entries must be added in ascending UTF-8 path order; a repeated or
    out-of-order path raises ValueError.
    """

    def __init__(self, algorithm: str = DEFAULT_ALGORITHM):
        self._hasher = _new_hasher(algorithm)
        self._previous: Optional[bytes] = None

    def _start_entry(self, path: str, size: int) -> None:
        encoded = _encode_path(path)
        if self._previous is not None:
            if encoded == self._previous:
                raise ValueError(f"Duplicate path in checksum input: {path}")
            if encoded < self._previous:
                raise ValueError(f"Checksum input is not sorted at: {path}")
        self._previous = encoded
        self._hasher.update(_length_prefix(len(encoded)))
        self._hasher.update(encoded)
        self._hasher.update(_length_prefix(size))

    def add(self, path: str, content: bytes) -> None:
        self._start_entry(path, len(content))
        self._hasher.update(content)

    def add_file(self, path: str, file_path: Path) -> None:
        """Stream ``file_path`` into the digest under the relative ``path``."""
        try:
            with file_path.open("rb") as f:
                size = os.fstat(f.fileno()).st_size
                self._start_entry(path, size)
                read = 0
                for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
                    read += len(chunk)
                    self._hasher.update(chunk)
        except OSError as e:
            raise UnreadableFile(file_path, e.strerror or str(e)) from e
        if read != size:
            raise UnreadableFile(file_path, "file changed while it was being read")

    def digest(self) -> bytes:
        # shake_* digests need an explicit length
        if self._hasher.digest_size == 0:
            return self._hasher.digest(32)
        return self._hasher.digest()


def compute_checksum(
    files: Iterable[Tuple[str, bytes]],
    algorithm: str = DEFAULT_ALGORITHM,
) -> bytes:
    """
    Compute the digest of a set of (relative_path, content) pairs.

    Raises ValueError if the same relative path appears twice.
    """
    entries = sorted(files, key=lambda item: _encode_path(item[0]))
    builder = ChecksumBuilder(algorithm)
    for path, content in entries:
        builder.add(path, content)
    return builder.digest()


def is_excluded(relative: Path, patterns: Sequence[str]) -> bool:
    """True if any part of ``relative`` (or the whole path) matches a pattern."""
    if not patterns:
        return False
    candidates = list(relative.parts) + [relative.as_posix()]
    return any(fnmatch.fnmatch(c, p) for c in candidates for p in patterns)


def _raise(error: OSError) -> None:
    raise UnreadableFile(error.filename or "<unknown>", error.strerror or str(error))


def list_package_files(package_dir: Path, exclude: Sequence[str] = ()) -> List[str]:
    """
    Return the relative POSIX paths of all regular files under ``package_dir``,
    sorted the same way the checksum sorts them.

    Symlinked directories are followed. Raises UnreadableFile for a directory
    that cannot be listed, a symlink loop, a path that is not a regular file,
    or a file name that is not valid UTF-8.
    """
    top = os.fspath(package_dir)
    # real paths of each directory's ancestors, to detect symlink loops
    ancestors: Dict[str, Set[str]] = {top: {os.path.realpath(top)}}
    results: List[str] = []
    for dirpath, dirnames, filenames in os.walk(top, onerror=_raise, followlinks=True):
        chain = ancestors.pop(dirpath)
        dirnames.sort()
        for name in dirnames:
            child = os.path.join(dirpath, name)
            real = os.path.realpath(child)
            if real in chain:
                raise UnreadableFile(child, "symbolic link loop")
            ancestors[child] = chain | {real}

        base = Path(dirpath)
        for name in sorted(filenames):
            path = base / name
            relative = path.relative_to(package_dir)
            if is_excluded(relative, exclude):
                logger.debug(f"Excluding {path} from package file set")
                continue
            if not path.is_file():
                raise UnreadableFile(path, "not a regular file")
            try:
                relative.as_posix().encode("utf-8")
            except UnicodeEncodeError:
                raise UnreadableFile(path, "file name is not valid UTF-8") from None
            results.append(relative.as_posix())
    results.sort(key=lambda p: p.encode("utf-8"))
    return results


def _read_all(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as e:
        raise UnreadableFile(path, e.strerror or str(e)) from e


def iter_package_files(
    package_dir: Path,
    exclude: Sequence[str] = (),
) -> Iterator[Tuple[str, bytes]]:
    """Yield (relative_path, content) for every file of a package, one at a time."""
    for relative in list_package_files(package_dir, exclude):
        yield relative, _read_all(package_dir / relative)


def checksum_directory(
    package_dir: Path,
    algorithm: str = DEFAULT_ALGORITHM,
    exclude: Sequence[str] = (),
) -> bytes:
    """
    Checksum every file of a package directory, streaming each file.

    Raises UnreadableFile if any file cannot be read; nothing is skipped
    except paths matching ``exclude``.
    """
    builder = ChecksumBuilder(algorithm)
    for relative in list_package_files(package_dir, exclude):
        builder.add_file(relative, package_dir / relative)
    return builder.digest()
