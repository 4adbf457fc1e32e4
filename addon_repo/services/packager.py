"""
Build installable addon archives for the serving layer.

Archives live in a cache directory as ``<id>/<id>-<version>.zip``. Kodi
expects every entry under a top-level folder named after the addon id. Entry
order and timestamps are fixed, so rebuilding an unchanged addon yields the
same bytes. A sidecar ``.checksum`` file records the addon checksum the
archive was built from; a cached archive is reused only while it matches.
"""

from __future__ import annotations

import logging
import os
import tempfile
import zipfile
from pathlib import Path
from typing import Sequence

from addon_repo.domain.errors import PackageChanged
from addon_repo.domain.models import AddonDescriptor
from addon_repo.services.checksum import DEFAULT_ALGORITHM, ChecksumBuilder, iter_package_files

logger = logging.getLogger(__name__)

_FIXED_DATE_TIME = (1980, 1, 1, 0, 0, 0)


def archive_name(descriptor: AddonDescriptor) -> str:
    return f"{descriptor.id}-{descriptor.version.raw}.zip"


def archive_path(descriptor: AddonDescriptor, cache_dir: Path) -> Path:
    return cache_dir / descriptor.id / archive_name(descriptor)


def _sidecar(path: Path) -> Path:
    return path.with_name(path.name + ".checksum")


def is_cached(descriptor: AddonDescriptor, cache_dir: Path) -> bool:
    path = archive_path(descriptor, cache_dir)
    sidecar = _sidecar(path)
    if not path.is_file() or not sidecar.is_file():
        return False
    return sidecar.read_text(encoding="utf-8").strip() == descriptor.checksum_hex


def build_archive(
    descriptor: AddonDescriptor,
    cache_dir: Path,
    exclude: Sequence[str] = (),
    algorithm: str = DEFAULT_ALGORITHM,
) -> Path:
    """
    Return the path of the archive for ``descriptor``, building it if needed.

    The archived files are checksummed as they are written; if they no longer
    match the indexed checksum the archive is discarded and PackageChanged is
    raised, so a download never disagrees with the index.

    Raises ValueError if the descriptor has no source directory and
    UnreadableFile if a package file cannot be read.
    """
    target = archive_path(descriptor, cache_dir)
    if is_cached(descriptor, cache_dir):
        return target
    if descriptor.source_path is None:
        raise ValueError(f"Addon {descriptor.id} has no source directory")

    target.parent.mkdir(parents=True, exist_ok=True)
    logger.info(f"Building archive {target}")

    fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
    os.close(fd)
    tmp_path = Path(tmp_name)
    try:
        builder = ChecksumBuilder(algorithm)
        with zipfile.ZipFile(tmp_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for relative, content in iter_package_files(descriptor.source_path, exclude):
                builder.add(relative, content)
                info = zipfile.ZipInfo(f"{descriptor.id}/{relative}", date_time=_FIXED_DATE_TIME)
                info.compress_type = zipfile.ZIP_DEFLATED
                info.external_attr = 0o644 << 16
                zf.writestr(info, content)

        actual = builder.digest().hex()
        if actual != descriptor.checksum_hex:
            logger.warning(f"Not publishing archive for {descriptor.id}: files changed since indexing")
            raise PackageChanged(descriptor.id, descriptor.checksum_hex, actual)

        os.replace(tmp_path, target)
        _sidecar(target).write_text(descriptor.checksum_hex, encoding="utf-8")
    finally:
        tmp_path.unlink(missing_ok=True)
    return target
