"""Archive the source directory into a single zip artifact.

The archive's internal root is the destination folder, so importing it on
the server recreates ``<folder>/...`` exactly.
"""

import logging
import zipfile
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional

from neko_deploy.errors import ArtifactError


@dataclass(frozen=True)
class Artifact:
    path: Path
    size: int

    def read_range(self, start: int, end: int) -> bytes:
        """Read exactly ``[start, end)`` from the artifact."""
        try:
            with self.path.open("rb") as fh:
                fh.seek(start)
                data = fh.read(end - start)
        except OSError as exc:
            raise ArtifactError(f"Cannot read {self.path}: {exc}") from exc
        if len(data) != end - start:
            raise ArtifactError(
                f"Short read from {self.path}: wanted {end - start} bytes "
                f"at offset {start}, got {len(data)}."
            )
        return data


def collect_files(root: Path) -> List[Path]:
    """Return all files under root, sorted for deterministic order."""
    return sorted(f for f in root.rglob("*") if f.is_file())


def member_name(file: Path, root: Path, folder: str) -> str:
    """
    Compute the archive member name for a file.

    Example:
        root   = /site/dist
        file   = /site/dist/css/main.css
        folder = /public
        result = public/css/main.css
    """
    relative = file.relative_to(root).as_posix()
    prefix = folder.strip("/")
    return f"{prefix}/{relative}" if prefix else relative


class ZipArchiver:
    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger("neko_deploy")

    def build(self, source: Path, folder: str, dest: Path) -> Artifact:
        """Zip ``source`` into ``dest`` with ``folder`` as the internal root."""
        if not source.is_dir():
            raise ArtifactError(f"Source directory not found: {source}")
        files = collect_files(source)
        if not files:
            raise ArtifactError(f"Source directory is empty (no files found): {source}")

        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            # pre-1980 mtimes (SOURCE_DATE_EPOCH=0, Nix) are clamped to 1980-01-01
            with zipfile.ZipFile(
                dest, "w", compression=zipfile.ZIP_DEFLATED, strict_timestamps=False
            ) as zf:
                for file in files:
                    zf.write(file, arcname=member_name(file, source, folder))
            size = dest.stat().st_size
        except (OSError, ValueError) as exc:
            _remove(dest)
            raise ArtifactError(f"Cannot build archive {dest}: {exc}") from exc

        self.logger.info(
            f"Archived {len(files):,} file(s) from {source} -> {dest.name} ({size:,} bytes)"
        )
        return Artifact(path=dest, size=size)


@contextmanager
def artifact_scope(
    archiver: ZipArchiver,
    source: Path,
    folder: str,
    dest: Path,
    logger: Optional[logging.Logger] = None,
) -> Iterator[Artifact]:
    """Build the artifact and remove it on every exit path."""
    logger = logger or logging.getLogger("neko_deploy")
    artifact = archiver.build(source, folder, dest)
    try:
        yield artifact
    finally:
        if _remove(artifact.path):
            logger.info(f"Removed local artifact {artifact.path}.")
        else:
            logger.warning(f"Could not remove local artifact {artifact.path}.")


def _remove(path: Path) -> bool:
    try:
        path.unlink()
    except FileNotFoundError:
        return True
    except OSError:
        return False
    return True
