from pathlib import Path
from typing import Any, Dict, List, Optional
import logging

from addon_repo.domain.models import AddonDescriptor, RepositoryConfig, RepositoryIndex
from addon_repo.services.packager import archive_name, build_archive
from addon_repo.storage.artifact_store import ArtifactStore

logger = logging.getLogger(__name__)


class Addon:
    def __init__(self, descriptor: AddonDescriptor):
        self.descriptor = descriptor

    @property
    def addon_id(self) -> str:
        return self.descriptor.id

    @property
    def version(self) -> str:
        return self.descriptor.version.raw

    @property
    def archive_name(self) -> str:
        return archive_name(self.descriptor)

    def summary(self) -> Dict[str, Any]:
        """
        JSON-friendly description of the addon for API responses.
        """
        d = self.descriptor
        return {
            "id": d.id,
            "version": d.version.raw,
            "name": d.name,
            "provider_name": d.provider_name,
            "dependencies": [dep.model_dump() for dep in d.dependencies],
            "extension_points": sorted(d.extension_points),
            "summary": d.metadata.get("summary"),
            "checksum": d.checksum_hex,
            "archive": f"{d.id}/{self.archive_name}",
        }


class Repository:
    """
    Read-only view over the current index and published artifacts.
    """

    def __init__(
        self,
        index: Optional[RepositoryIndex],
        store: ArtifactStore,
        zip_cache_dir: Path,
        config: RepositoryConfig,
    ):
        self.index = index
        self.store = store
        self.zip_cache_dir = zip_cache_dir
        self.config = config

    @property
    def is_built(self) -> bool:
        return self.index is not None

    def get_all_addons(self) -> List[Addon]:
        if self.index is None:
            return []
        return [Addon(d) for d in self.index.descriptors]

    def get_addon(self, addon_id: str) -> Optional[Addon]:
        if self.index is None:
            return None
        descriptor = self.index.get(addon_id)
        return Addon(descriptor) if descriptor else None

    def get_archive_path(self, addon: Addon) -> Path:
        """
        Path to the addon's zip archive, built into the cache on first request.
        """
        logger.debug(f"Archive requested for {addon.addon_id} {addon.version}")
        return build_archive(
            addon.descriptor,
            self.zip_cache_dir,
            exclude=self.config.exclude_patterns,
            algorithm=self.config.checksum_algorithm,
        )
