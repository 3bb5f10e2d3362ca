# =============================================================================
# Archive Extractor
# =============================================================================
# Unpacks uploaded zip archives (shapefile bundles) into a scoped working
# directory and locates the primary geometry file.
# =============================================================================

import io
import logging
import shutil
import tempfile
import zipfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Iterator, Optional

from ..errors import ArchiveError, MissingPrimaryFileError

__all__ = [
    "ExtractedFile",
    "ExtractedArchive",
    "extract_archive",
    "prepare_primary_file",
    "scoped_workdir",
]

logger = logging.getLogger(__name__)

_RESOURCE_FORK_PREFIX = "__MACOSX/"


@dataclass(frozen=True)
class ExtractedFile:
    """A single archive member written to disk."""

    name: str
    path: Path

    @property
    def extension(self) -> str:
        return self.path.suffix.lower()

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()


@dataclass
class ExtractedArchive:
    """
    Result of extracting an archive.

    Attributes:
        files: Every extracted member in archive order
        primary: The member carrying the primary geometry extension
    """

    files: list[ExtractedFile] = field(default_factory=list)
    primary: Optional[ExtractedFile] = None


def _safe_member_path(workdir: Path, member_name: str) -> Path:
    """Resolve an archive member inside workdir, rejecting traversal."""
    posix = PurePosixPath(member_name.replace("\\", "/"))
    if not posix.parts or posix.is_absolute() or ".." in posix.parts or ":" in posix.parts[0]:
        raise ArchiveError(f"Archive entry escapes the working directory: {member_name}")

    target = (workdir / Path(*posix.parts)).resolve()
    root = workdir.resolve()
    if target != root and root not in target.parents:
        raise ArchiveError(f"Archive entry escapes the working directory: {member_name}")
    return target


def extract_archive(
    archive_bytes: bytes,
    workdir: Path,
    primary_extension: str = ".shp",
) -> ExtractedArchive:
    """
    Extract a zip archive and locate its primary geometry file.

    Directory entries and ``__MACOSX/`` resource forks are skipped. When the
    archive holds several primary files the first one in archive order wins.

    Args:
        archive_bytes: Raw zip content
        workdir: Directory to extract into (must exist)
        primary_extension: Extension of the primary file, matched case-insensitively

    Returns:
        ExtractedArchive with every member and the primary file

    Raises:
        ArchiveError: If the bytes are not a readable zip or an entry escapes workdir
        MissingPrimaryFileError: If no member has the primary extension
    """
    workdir = Path(workdir)
    wanted = primary_extension.lower()

    try:
        archive = zipfile.ZipFile(io.BytesIO(archive_bytes))
    except (zipfile.BadZipFile, ValueError) as exc:
        raise ArchiveError(f"Failed to extract archive: {exc}") from exc

    result = ExtractedArchive()
    with archive:
        for info in archive.infolist():
            if info.is_dir() or info.filename.startswith(_RESOURCE_FORK_PREFIX):
                continue

            target = _safe_member_path(workdir, info.filename)
            target.parent.mkdir(parents=True, exist_ok=True)
            try:
                with archive.open(info) as src, open(target, "wb") as dst:
                    shutil.copyfileobj(src, dst)
            except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError) as exc:
                raise ArchiveError(f"Failed to extract '{info.filename}': {exc}") from exc

            extracted = ExtractedFile(name=info.filename, path=target)
            result.files.append(extracted)
            if result.primary is None and extracted.extension == wanted:
                result.primary = extracted

    if result.primary is None:
        raise MissingPrimaryFileError(wanted, [f.name for f in result.files])

    logger.debug(
        f"Extracted {len(result.files)} files; primary file is {result.primary.name}"
    )
    return result


def prepare_primary_file(
    data: bytes,
    file_name: str,
    workdir: Path,
    primary_extension: str = ".shp",
) -> Path:
    """
    Materialize a source object on disk and return the path to convert.

    Zip archives are extracted and their primary file returned. Anything else
    (GeoJSON, GeoPackage, KML) is written as-is and converted directly.
    """
    workdir = Path(workdir)
    if file_name.lower().endswith(".zip") or zipfile.is_zipfile(io.BytesIO(data)):
        return extract_archive(data, workdir, primary_extension).primary.path

    target = _safe_member_path(workdir, PurePosixPath(file_name.replace("\\", "/")).name)
    target.write_bytes(data)
    return target


@contextmanager
def scoped_workdir(prefix: str = "geoload_") -> Iterator[Path]:
    """
    Create a temporary directory that is removed on every exit path.

    Removal is retried once; a second failure is logged and not raised so it
    never masks the error that ended the block.
    """
    path = Path(tempfile.mkdtemp(prefix=prefix))
    try:
        yield path
    finally:
        try:
            shutil.rmtree(path)
        except OSError:
            try:
                shutil.rmtree(path)
            except FileNotFoundError:
                pass
            except OSError as exc:
                logger.warning(f"Failed to remove working directory {path}: {exc}")
