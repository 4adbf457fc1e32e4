from addon_repo.data.repository import (
    get_data_dir,
    get_repository_config,
    get_repository_index,
    resolve_output_dir,
    resolve_zip_cache_dir,
)
from addon_repo.domain.entities import Repository
from addon_repo.storage.file_artifact_store import FileArtifactStore


def get_repository() -> Repository:
    data_dir = get_data_dir()
    config = get_repository_config()
    return Repository(
        index=get_repository_index(),
        store=FileArtifactStore(resolve_output_dir(config, data_dir)),
        zip_cache_dir=resolve_zip_cache_dir(config, data_dir),
        config=config,
    )
