from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from addon_repo.domain.models import BuildResult, RepositoryConfig, RepositoryIndex
from addon_repo.services.scanner import RepositoryScanner
from addon_repo.services.serializer import serialize_index
from addon_repo.storage.artifact_store import ArtifactStore
from addon_repo.storage.file_artifact_store import FileArtifactStore

logger = logging.getLogger(__name__)

DATA_ROOT_ENV_VAR = "ADDON_REPO_DATA_DIR"

# Resolve repository root (project root, not the Python package root)
_REPO_ROOT = Path(__file__).resolve().parents[2]
_DEFAULT_DATA_DIR = _REPO_ROOT / "data"


_data_dir: Optional[Path] = None
_repository_config: Optional[RepositoryConfig] = None
_repository_index: Optional[RepositoryIndex] = None
_last_result: Optional[BuildResult] = None

_INDEX_TASK: Optional[asyncio.Task] = None


def get_data_dir() -> Path:
    """
    Determine the data directory path.

    Priority:
    1. Environment variable ADDON_REPO_DATA_DIR
    2. '<project root>/data'
    """
    global _data_dir
    if _data_dir is None:
        env_path = os.environ.get(DATA_ROOT_ENV_VAR)
        if env_path:
            _data_dir = Path(env_path).expanduser()
        else:
            _data_dir = _DEFAULT_DATA_DIR

        _data_dir.mkdir(parents=True, exist_ok=True)
    return _data_dir


def reset_state() -> None:
    """Forget cached data dir, config and index (used when the env changes)."""
    global _data_dir, _repository_config, _repository_index, _last_result
    _data_dir = None
    _repository_config = None
    _repository_index = None
    _last_result = None


def get_repository_config() -> RepositoryConfig:
    """
    Return the current repository configuration, loading it on first use.
    """
    global _repository_config
    if _repository_config is None:
        _repository_config = load_repository_config(get_data_dir())
    return _repository_config


def get_repository_index() -> Optional[RepositoryIndex]:
    """
    Return the index of the last successful build, or None.
    """
    return _repository_index


def get_last_build_result() -> Optional[BuildResult]:
    return _last_result


def _config_path(data_dir: Path) -> Path:
    return data_dir / "repository.json"


def load_repository_config(data_dir: Path) -> RepositoryConfig:
    """
    Load repository.json, merging with defaults for any missing fields,
    and write it back so any new fields are persisted.

    An invalid file is left untouched on disk; the defaults are used in
    memory until it is fixed.
    """
    path = _config_path(data_dir)
    if path.exists():
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            config = RepositoryConfig(**raw)
        except (ValueError, TypeError, ValidationError) as e:
            logger.warning(f"Invalid {path}, using defaults and leaving the file unchanged: {e}")
            return RepositoryConfig()
    else:
        config = RepositoryConfig()

    # Persist with all fields populated (including any new defaults).
    data_dir.mkdir(parents=True, exist_ok=True)
    path.write_text(config.model_dump_json(indent=2), encoding="utf-8")
    return config


def resolve_addons_dir(config: RepositoryConfig, data_dir: Path) -> Path:
    return (data_dir / config.addons_dir).resolve()


def resolve_output_dir(config: RepositoryConfig, data_dir: Path) -> Path:
    return (data_dir / config.output_dir).resolve()


def resolve_zip_cache_dir(config: RepositoryConfig, data_dir: Path) -> Path:
    return (resolve_addons_dir(config, data_dir) / config.zip_cache_dir).resolve()


async def build_repository(
    addons_dir: Path,
    store: ArtifactStore,
    config: Optional[RepositoryConfig] = None,
) -> BuildResult:
    """
    Scan ``addons_dir``, serialize the index and publish it through ``store``.

    Nothing is published unless the scan and serialization both succeed, so a
    DuplicateAddonId (or an escalated BuildFailed) leaves earlier artifacts
    untouched.
    """
    config = config or RepositoryConfig()
    report = await RepositoryScanner(config).scan(addons_dir)
    index = serialize_index(report.descriptors, algorithm=config.checksum_algorithm)
    artifacts = await asyncio.to_thread(store.publish, index, config.write_md5)

    for failure in report.failures:
        logger.warning(f"Not indexed: {failure.path} [{failure.kind}] {failure.message}")
    logger.info(
        f"Built index with {len(index.descriptors)} addon(s), "
        f"{len(report.failures)} skipped, checksum {index.index_checksum.hex()}"
    )
    return BuildResult(index=index, failures=report.failures, artifacts=artifacts)


def build_repository_sync(
    addons_dir: Path,
    output_dir: Path,
    config: Optional[RepositoryConfig] = None,
) -> BuildResult:
    """Synchronous build into a directory on disk."""
    return asyncio.run(build_repository(addons_dir, FileArtifactStore(output_dir), config))


async def rebuild_index() -> BuildResult:
    """
    Rebuild the index from the configured data directory and make it current.
    """
    global _repository_index, _last_result

    data_dir = get_data_dir()
    config = get_repository_config()
    addons_dir = resolve_addons_dir(config, data_dir)
    addons_dir.mkdir(parents=True, exist_ok=True)
    store = FileArtifactStore(resolve_output_dir(config, data_dir))

    result = await build_repository(addons_dir, store, config)
    _repository_index = result.index
    _last_result = result
    return result


async def _periodic_rebuild_loop() -> None:
    """
    Background task that rebuilds the index every refresh_interval_seconds.
    A failed rebuild keeps the previous index.
    """
    while True:
        config = get_repository_config()
        await asyncio.sleep(config.refresh_interval_seconds)
        try:
            await rebuild_index()
        except Exception as e:
            logger.error(f"Periodic index rebuild failed: {e}", exc_info=True)


async def initialize_repository() -> None:
    """
    Called by FastAPI on startup.

    Responsibilities:
    * Resolve and create the data directory.
    * Load + persist repository.json (applying defaults where needed).
    * Build the initial index.
    * Start a background task that rebuilds the index periodically.
    """
    global _repository_config, _INDEX_TASK

    data_dir = get_data_dir()
    _repository_config = load_repository_config(data_dir)

    try:
        await rebuild_index()
    except Exception as e:
        logger.error(f"Initial index build failed: {e}", exc_info=True)

    if _INDEX_TASK is None:
        _INDEX_TASK = asyncio.create_task(_periodic_rebuild_loop())


async def shutdown_repository() -> None:
    global _INDEX_TASK
    if _INDEX_TASK is not None:
        _INDEX_TASK.cancel()
        try:
            await _INDEX_TASK
        except asyncio.CancelledError:
            pass
        _INDEX_TASK = None
