from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional

from addon_repo.domain.models import IndexChecksumRecord, RepositoryIndex


class ArtifactStore(ABC):
    """
    Abstract base class for where built index artifacts are published.
    """

    @abstractmethod
    def publish(self, index: RepositoryIndex, write_md5: bool = True) -> List[Path]:
        """
        Publish the index document and its checksum records.

        Either every artifact is replaced or, on error, none of the previously
        published ones are touched. Returns the paths written.
        """
        pass

    @abstractmethod
    def read_document(self) -> Optional[bytes]:
        """Return the published addons.xml bytes, or None if nothing is published."""
        pass

    @abstractmethod
    def read_checksum_record(self) -> Optional[IndexChecksumRecord]:
        """Return the published checksum record, or None."""
        pass

    @abstractmethod
    def artifact_path(self, name: str) -> Path:
        """Path of a named artifact (e.g. 'addons.xml.md5') for serving."""
        pass
