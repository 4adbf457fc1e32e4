import json
import logging
import os
import tempfile
from pathlib import Path
from typing import List, Optional, Tuple

from pydantic import ValidationError

from addon_repo.domain.models import IndexChecksumRecord, RepositoryIndex
from addon_repo.services.serializer import (
    CHECKSUM_RECORD_FILENAME,
    INDEX_FILENAME,
    MD5_FILENAME,
    render_checksum_record,
    render_md5,
)
from addon_repo.storage.artifact_store import ArtifactStore

logger = logging.getLogger(__name__)


class FileArtifactStore(ArtifactStore):
    """
    Publishes artifacts into a directory on local disk.

    Every artifact is first written to a temporary file in the output
    directory; only when all of them are written are they renamed into place.
    """

    def __init__(self, output_dir: Path):
        self._output_dir = output_dir

    @property
    def output_dir(self) -> Path:
        return self._output_dir

    def artifact_path(self, name: str) -> Path:
        return self._output_dir / name

    def publish(self, index: RepositoryIndex, write_md5: bool = True) -> List[Path]:
        self._output_dir.mkdir(parents=True, exist_ok=True)

        artifacts: List[Tuple[str, bytes]] = [(INDEX_FILENAME, index.document)]
        if write_md5:
            artifacts.append((MD5_FILENAME, render_md5(index.document)))
        # The checksum record goes last so readers never see a record for a
        # document that is not in place yet.
        artifacts.append((CHECKSUM_RECORD_FILENAME, render_checksum_record(index)))

        staged: List[Tuple[Path, Path]] = []
        try:
            for name, data in artifacts:
                staged.append((self._write_temp(name, data), self.artifact_path(name)))
            for tmp_path, final_path in staged:
                os.replace(tmp_path, final_path)
        finally:
            for tmp_path, _ in staged:
                if tmp_path.exists():
                    tmp_path.unlink(missing_ok=True)

        written = [final for _, final in staged]
        logger.info(f"Published {len(written)} artifact(s) to {self._output_dir}")
        return written

    def _write_temp(self, name: str, data: bytes) -> Path:
        with tempfile.NamedTemporaryFile(
            "wb",
            dir=self._output_dir,
            prefix=f".{name}.",
            suffix=".tmp",
            delete=False,
        ) as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
            return Path(f.name)

    def read_document(self) -> Optional[bytes]:
        path = self.artifact_path(INDEX_FILENAME)
        if not path.is_file():
            return None
        return path.read_bytes()

    def read_checksum_record(self) -> Optional[IndexChecksumRecord]:
        path = self.artifact_path(CHECKSUM_RECORD_FILENAME)
        if not path.is_file():
            return None
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            return IndexChecksumRecord(**raw)
        except (ValueError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable checksum record {path}: {e}")
            return None
