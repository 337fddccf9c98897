"""Run artifacts.

Stages register named byte blobs (scan reports, summaries) while they run.
Finalization publishes them into the reports directory together with an index
of the HTML reports. Publishing is idempotent: the same registered artifacts
always produce the same files and the same index bytes.
"""

from __future__ import annotations

import hashlib
import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from loguru import logger

from shipgate.config import OUTPUT
from shipgate.utils.schema_validation import validate_reports_index


_SAFE_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")

_RESERVED_NAMES = {
    OUTPUT.REPORTS_INDEX_FILENAME,
    OUTPUT.CONTEXT_FILENAME,
    OUTPUT.DEGRADATION_FILENAME,
}


def _guess_media_type(name: str) -> str:
    suffix = Path(name).suffix.lower()
    return {
        ".html": "text/html",
        ".htm": "text/html",
        ".json": "application/json",
        ".sarif": "application/sarif+json",
        ".txt": "text/plain",
        ".log": "text/plain",
        ".xml": "application/xml",
    }.get(suffix, "application/octet-stream")


@dataclass(frozen=True)
class Artifact:
    """A named byte blob produced by a stage.

    Either data is set, or path points to a file read at publication time.
    """

    name: str
    stage: str
    media_type: str
    data: Optional[bytes] = None
    path: Optional[Path] = None
    report: bool = False

    def read_bytes(self) -> Optional[bytes]:
        if self.data is not None:
            return self.data
        if self.path is None or not self.path.is_file():
            return None
        return self.path.read_bytes()


@dataclass(frozen=True)
class PublishedArtifact:
    name: str
    file: str
    stage: str
    media_type: str
    sha256: str
    size_bytes: int
    report: bool = False

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "file": self.file,
            "stage": self.stage,
            "media_type": self.media_type,
            "sha256": self.sha256,
            "size_bytes": self.size_bytes,
        }


class ArtifactStore:
    """Artifacts accumulated during one run, keyed by name."""

    def __init__(self) -> None:
        self._artifacts: Dict[str, Artifact] = {}

    def __len__(self) -> int:
        return len(self._artifacts)

    def __iter__(self) -> Iterator[Artifact]:
        for name in sorted(self._artifacts):
            yield self._artifacts[name]

    def __contains__(self, name: object) -> bool:
        return name in self._artifacts

    def get(self, name: str) -> Optional[Artifact]:
        return self._artifacts.get(name)

    def names(self) -> List[str]:
        return sorted(self._artifacts)

    def _add(self, artifact: Artifact) -> Artifact:
        if not _SAFE_NAME_RE.match(artifact.name):
            raise ValueError(f"Invalid artifact name: {artifact.name!r}")
        if artifact.name in _RESERVED_NAMES:
            raise ValueError(f"Artifact name is reserved for run metadata: {artifact.name!r}")
        if artifact.name in self._artifacts:
            logger.debug("Artifact '{}' re-registered by stage '{}'", artifact.name, artifact.stage)
        self._artifacts[artifact.name] = artifact
        return artifact

    def add_bytes(
        self,
        name: str,
        data: bytes,
        *,
        stage: str,
        media_type: Optional[str] = None,
        report: bool = False,
    ) -> Artifact:
        return self._add(
            Artifact(
                name=name,
                stage=stage,
                media_type=media_type or _guess_media_type(name),
                data=bytes(data),
                report=report,
            )
        )

    def add_json(self, name: str, payload: object, *, stage: str) -> Artifact:
        text = json.dumps(payload, indent=2, sort_keys=True) + "\n"
        return self.add_bytes(name, text.encode("utf-8"), stage=stage, media_type="application/json")

    def add_file(
        self,
        name: str,
        path: Path,
        *,
        stage: str,
        media_type: Optional[str] = None,
        report: bool = False,
    ) -> Artifact:
        return self._add(
            Artifact(
                name=name,
                stage=stage,
                media_type=media_type or _guess_media_type(name),
                path=Path(path),
                report=report,
            )
        )

    def publish(self, dest_dir: Path, *, run_id: str) -> List[PublishedArtifact]:
        """Write all artifacts and the reports index into dest_dir.

        Artifacts whose backing file never appeared are logged and left out.

        Returns:
            Published artifacts in name order.
        """

        dest_dir = Path(dest_dir)
        dest_dir.mkdir(parents=True, exist_ok=True)

        published: List[PublishedArtifact] = []
        for artifact in self:
            try:
                data = artifact.read_bytes()
            except OSError as e:
                logger.warning("Artifact '{}' could not be read: {}: {}", artifact.name, type(e).__name__, e)
                continue

            if data is None:
                logger.warning(
                    "Artifact '{}' from stage '{}' has no content (missing file: {}); not published",
                    artifact.name,
                    artifact.stage,
                    artifact.path,
                )
                continue

            out_path = dest_dir / artifact.name
            if artifact.path is None or artifact.path.resolve() != out_path.resolve():
                out_path.write_bytes(data)

            published.append(
                PublishedArtifact(
                    name=artifact.name,
                    file=artifact.name,
                    stage=artifact.stage,
                    media_type=artifact.media_type,
                    sha256=hashlib.sha256(data).hexdigest(),
                    size_bytes=len(data),
                    report=artifact.report,
                )
            )

        index = build_reports_index(run_id=run_id, published=published)
        index_path = dest_dir / OUTPUT.REPORTS_INDEX_FILENAME
        index_path.write_text(json.dumps(index, indent=2, sort_keys=True) + "\n", encoding="utf-8")

        logger.info(
            "Published {} artifact(s), {} report(s) to {}",
            len(published),
            len(index["reports"]),
            dest_dir,
        )
        return published


def build_reports_index(*, run_id: str, published: List[PublishedArtifact]) -> Dict[str, object]:
    payload: Dict[str, object] = {
        "schema_version": "1.0",
        "run_id": run_id,
        "artifacts": [p.to_dict() for p in published],
        "reports": [p.to_dict() for p in published if p.report],
    }
    validate_reports_index(payload)
    return payload
