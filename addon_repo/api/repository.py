from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse

from addon_repo.core.dependencies import get_repository
from addon_repo.domain.entities import Repository
from addon_repo.domain.errors import AddonError
from addon_repo.services.serializer import (
    CHECKSUM_RECORD_FILENAME,
    INDEX_FILENAME,
    MD5_FILENAME,
)

logger = logging.getLogger(__name__)
router = APIRouter()

_MEDIA_TYPES = {
    INDEX_FILENAME: "application/xml",
    MD5_FILENAME: "text/plain",
    CHECKSUM_RECORD_FILENAME: "application/json",
}


def _serve_artifact(repo: Repository, name: str) -> FileResponse:
    path = repo.store.artifact_path(name)
    if not path.is_file():
        raise HTTPException(status_code=404, detail=f"{name} has not been built yet")
    return FileResponse(path=str(path), media_type=_MEDIA_TYPES[name])


# ---------------------------------------------------------------------------
# 1. Index artifacts
# ---------------------------------------------------------------------------


@router.get("/" + INDEX_FILENAME)
async def get_index(repo: Repository = Depends(get_repository)) -> FileResponse:
    """
    The repository index Kodi downloads to list addons.
    """
    return _serve_artifact(repo, INDEX_FILENAME)


@router.get("/" + MD5_FILENAME)
async def get_index_md5(repo: Repository = Depends(get_repository)) -> FileResponse:
    return _serve_artifact(repo, MD5_FILENAME)


@router.get("/" + CHECKSUM_RECORD_FILENAME)
async def get_checksum_record(repo: Repository = Depends(get_repository)) -> FileResponse:
    return _serve_artifact(repo, CHECKSUM_RECORD_FILENAME)


# ---------------------------------------------------------------------------
# 2. Addon lookup
# ---------------------------------------------------------------------------


@router.get("/addons/{addon_id}")
async def get_addon(addon_id: str, repo: Repository = Depends(get_repository)) -> dict:
    """
    Summary of a single indexed addon. Answered from the in-memory index only.
    """
    addon = repo.get_addon(addon_id)
    if addon is None:
        raise HTTPException(status_code=404, detail="Addon not found")
    return addon.summary()


# ---------------------------------------------------------------------------
# 3. Archive download
# ---------------------------------------------------------------------------


@router.get("/addons/{addon_id}/{filename}")
async def download_archive(
    addon_id: str,
    filename: str,
    repo: Repository = Depends(get_repository),
) -> FileResponse:
    """
    Serve ``<id>-<version>.zip`` for an indexed addon, building it on demand.
    Only the currently indexed version is available.
    """
    addon = repo.get_addon(addon_id)
    if addon is None:
        raise HTTPException(status_code=404, detail="Addon not found")
    if filename != addon.archive_name:
        raise HTTPException(status_code=404, detail="Version not found")

    try:
        path = await asyncio.to_thread(repo.get_archive_path, addon)
    except (AddonError, ValueError) as e:
        logger.error(f"Cannot build archive for {addon_id}: {e}")
        raise HTTPException(status_code=500, detail="Archive not available")

    return FileResponse(
        path=str(path),
        filename=path.name,
        media_type="application/zip",
    )
