"""Archive expansion into a destination tree."""
import logging
import tarfile
import zlib
import zipfile
from pathlib import Path
from typing import List

from apppack.core.errors import ExtractionError
from apppack.core.files import ArchiveType, get_archive_type

logger = logging.getLogger(__name__)


def _check_member(dest_dir: Path, member: str) -> None:
    target = (dest_dir / member).resolve()
    if target != dest_dir and dest_dir not in target.parents:
        raise ExtractionError(f"member escapes destination: {member}")


def extract_archive(archive: Path, dest_dir: Path) -> List[str]:
    """Expand a zip or tar+gzip archive into dest_dir.

    Returns:
        Names of the members written

    Raises:
        ExtractionError: If the archive is unsupported, corrupt, or has
            members that would land outside dest_dir
    """
    archive = Path(archive)
    dest_dir = Path(dest_dir).resolve()
    kind = get_archive_type(archive)

    try:
        if kind is ArchiveType.ZIP:
            with zipfile.ZipFile(archive) as zf:
                names = zf.namelist()
                for name in names:
                    _check_member(dest_dir, name)
                zf.extractall(dest_dir)
        elif kind is ArchiveType.TAR_GZ:
            with tarfile.open(archive, "r:gz") as tf:
                members = tf.getmembers()
                for member in members:
                    _check_member(dest_dir, member.name)
                tf.extractall(dest_dir, filter="data")
                names = [m.name for m in members]
        else:
            raise ExtractionError(f"{archive.name}: not a supported archive")
    except (zipfile.BadZipFile, tarfile.TarError, EOFError, zlib.error, OSError) as e:
        raise ExtractionError(f"{archive.name}: {e}") from e

    logger.debug(f"extracted {len(names)} members from {archive.name} into {dest_dir}")
    return names
