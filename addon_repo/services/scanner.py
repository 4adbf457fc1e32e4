"""
RepositoryScanner: discover addon packages and extract their descriptors.

Each candidate directory is processed in a worker thread; at most
``max_workers`` run at the same time. Results come back per task and are only
merged (duplicate check + sort) after every task has finished.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

from addon_repo.domain.errors import AddonError, BuildFailed, DuplicateAddonId
from addon_repo.domain.models import AddonDescriptor, RepositoryConfig, ScanFailure, ScanReport
from addon_repo.services.checksum import checksum_directory
from addon_repo.services.extractor import extract_descriptor
from addon_repo.services.manifest import read_manifest

logger = logging.getLogger(__name__)

_Outcome = Union[AddonDescriptor, ScanFailure]


def find_candidates(root: Path, manifest_name: str = "addon.xml") -> List[Path]:
    """
    Return the immediate subdirectories of ``root`` that contain a manifest,
    sorted by name. Other entries are not addons and are skipped.
    """
    if not root.is_dir():
        raise FileNotFoundError(f"Addons directory not found: {root}")

    candidates: List[Path] = []
    for child in sorted(root.iterdir(), key=lambda p: p.name):
        if not child.is_dir():
            continue
        if child.name.startswith("."):
            logger.debug(f"Skipping hidden directory {child}")
            continue
        if not (child / manifest_name).is_file():
            logger.debug(f"Skipping {child}: no {manifest_name}")
            continue
        candidates.append(child)
    return candidates


def sort_descriptors(descriptors: List[AddonDescriptor]) -> List[AddonDescriptor]:
    """
    Sort by id (byte-wise) and reject duplicate ids.

    Raises DuplicateAddonId naming both package directories.
    """
    by_id: Dict[str, AddonDescriptor] = {}
    for descriptor in descriptors:
        existing = by_id.get(descriptor.id)
        if existing is not None:
            path_a, path_b = existing.source_path, descriptor.source_path
            if path_a is not None and path_b is not None and str(path_b) < str(path_a):
                path_a, path_b = path_b, path_a
            raise DuplicateAddonId(descriptor.id, path_a, path_b)
        by_id[descriptor.id] = descriptor
    return sorted(by_id.values(), key=lambda d: d.sort_key)


class RepositoryScanner:
    """Scans an addons directory into a :class:`ScanReport`."""

    def __init__(self, config: Optional[RepositoryConfig] = None):
        self.config = config or RepositoryConfig()

    def extract_one(self, package_dir: Path) -> AddonDescriptor:
        """Manifest -> tree, files -> checksum, both -> descriptor."""
        config = self.config
        tree = read_manifest(package_dir / config.manifest_name)
        checksum = checksum_directory(
            package_dir,
            algorithm=config.checksum_algorithm,
            exclude=config.exclude_patterns,
        )
        return extract_descriptor(tree, checksum, grammar=config.constraint_grammar)

    def _extract_or_fail(self, package_dir: Path) -> _Outcome:
        try:
            return self.extract_one(package_dir)
        except AddonError as e:
            logger.warning(f"Skipping addon {package_dir}: {e}")
            return ScanFailure(path=str(package_dir), kind=type(e).__name__, message=str(e))

    async def scan(self, root: Path) -> ScanReport:
        """
        Scan ``root`` and return the sorted descriptors plus per-addon failures.

        Raises:
            DuplicateAddonId: two packages declare the same id.
            BuildFailed: a package failed and ``fail_on_error`` is set.
        """
        root = Path(root)
        candidates = find_candidates(root, self.config.manifest_name)
        logger.info(
            f"Scanning {len(candidates)} addon candidate(s) in {root} "
            f"with {self.config.max_workers} worker(s)"
        )

        sem = asyncio.Semaphore(self.config.max_workers)

        async def _run(package_dir: Path) -> _Outcome:
            async with sem:
                return await asyncio.to_thread(self._extract_or_fail, package_dir)

        outcomes = await asyncio.gather(*(_run(c) for c in candidates))

        descriptors: List[AddonDescriptor] = []
        failures: List[ScanFailure] = []
        for outcome in outcomes:
            if isinstance(outcome, ScanFailure):
                failures.append(outcome)
            else:
                descriptors.append(outcome)

        descriptors = sort_descriptors(descriptors)
        failures.sort(key=lambda f: f.path)

        logger.info(f"Scan finished: {len(descriptors)} addon(s), {len(failures)} failure(s)")

        if failures and self.config.fail_on_error:
            raise BuildFailed(failures)

        return ScanReport(descriptors=descriptors, failures=failures)


def scan_repository(root: Path, config: Optional[RepositoryConfig] = None) -> ScanReport:
    """Synchronous wrapper around :meth:`RepositoryScanner.scan`."""
    return asyncio.run(RepositoryScanner(config).scan(root))
