"""Bundle archiver: fold a validated tree into a single tar+gzip file."""
import logging
import os
import tarfile
from pathlib import Path
from typing import Dict

from apppack.core.config import search_paths
from apppack.core.errors import BundleError, BundleNotFoundError, ValidationError
from apppack.manifest.schemas import Manifest

logger = logging.getLogger(__name__)

BUNDLE_SUFFIX = ".tar.gz"


def bundle_manifest(manifest: Manifest, out_file: Path) -> Dict[str, any]:
    """Write every tracked file under manifest.root_dir into out_file.

    Nested archives and files generated from a tracked module (X.qml next
    to module X.yaml) are left out. Each remaining entry is re-validated
    before it is written; any mismatch aborts the bundle. The archive is
    assembled under a temporary name and only moved into place once
    complete, so a failed call never leaves a usable bundle behind.

    Args:
        manifest: Manifest bound to the tree being bundled
        out_file: Destination .tar.gz path

    Returns:
        Dict with keys:
            - bundle_path: Path of the written archive
            - file_count: Number of files bundled
            - size: Uncompressed bytes bundled
            - excluded: Names left out of the archive

    Raises:
        BundleError: If the manifest is unbound, a file fails validation,
            or the archive cannot be written
    """
    if manifest.root_dir is None:
        raise BundleError("bundle: manifest is not bound to a root directory")

    root = manifest.root_dir
    out_file = Path(out_file)
    partial = out_file.with_name(out_file.name + ".partial")

    bundled = []
    excluded = []
    size = 0

    try:
        out_file.parent.mkdir(parents=True, exist_ok=True)
        with tarfile.open(partial, "w:gz", dereference=True) as tar:
            for entry in manifest.files():
                if entry.archive or manifest.is_autogenerated(entry):
                    excluded.append(entry.name)
                    continue

                try:
                    entry.verify(root)
                except ValidationError as e:
                    raise BundleError(f"bundle: invalid file {entry.name}: {e}") from e

                logger.info(f"bundling file: {entry.name}")
                tar.add(entry.path(root), arcname=entry.name, recursive=False)
                bundled.append(entry.name)
                size += entry.size

        os.replace(partial, out_file)
    except OSError as e:
        raise BundleError(f"bundle: {out_file}: {e}") from e
    finally:
        partial.unlink(missing_ok=True)

    logger.info(f"wrote bundle: {out_file} ({out_file.stat().st_size} bytes)")

    return {
        "bundle_path": str(out_file),
        "file_count": len(bundled),
        "size": size,
        "excluded": excluded,
    }


def locate_bundle(name: str) -> Path:
    """Find a bundle by path or by name on the search path.

    ``name`` itself is tried first, then ``<dir>/<name>.tar.gz`` for each
    directory in $APPPACK_PATH and the built-in defaults.

    Raises:
        BundleNotFoundError: If no candidate exists
    """
    candidates = [Path(name).expanduser()]
    for directory in search_paths():
        candidates.append(directory / f"{name}{BUNDLE_SUFFIX}")

    for candidate in candidates:
        if candidate.is_file():
            logger.info(f"find: matched {candidate}")
            return candidate
        logger.debug(f"find: trying {candidate}")

    raise BundleNotFoundError(f"bundle {name!r} not found")
