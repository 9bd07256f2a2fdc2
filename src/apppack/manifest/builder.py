"""Manifest builder: walk a source tree and record every distributable file."""
import logging
from pathlib import Path
from typing import Callable, Optional

from apppack.core.config import MODULE_SPEC_FILENAME
from apppack.core.errors import ModuleSpecError
from apppack.core.files import (
    get_archive_type,
    guess_mime,
    sha256_file,
    to_manifest_name,
    walk_files,
)
from apppack.manifest.modules import (
    ModuleClassifier,
    ModuleSpec,
    is_module_file,
    load_module_spec,
)
from apppack.manifest.schemas import Manifest, ManifestEntry

logger = logging.getLogger(__name__)

ModuleSpecLoader = Callable[[Path], ModuleSpec]


def make_entry(path: Path, root: Path) -> ManifestEntry:
    """Record a file's identity, hash, size and type."""
    path = Path(path)
    return ManifestEntry(
        name=to_manifest_name(path, root),
        size=path.stat().st_size,
        sha256=sha256_file(path),
        mime=guess_mime(path),
        archive=get_archive_type(path).supported,
    )


def append_path(
    manifest: Manifest,
    path: Path,
    is_module: ModuleClassifier = is_module_file,
    load_spec: ModuleSpecLoader = load_module_spec,
) -> Optional[ManifestEntry]:
    """Add one file to a manifest bound to a root directory.

    Returns the appended entry, or None when the file is a structural
    marker rather than distributable content.

    Raises:
        ModuleSpecError: If a module spec file cannot be parsed
        OSError: If the file cannot be read
    """
    path = Path(path)
    root = manifest.root_dir if manifest.root_dir is not None else path.parent
    rel = to_manifest_name(path, root)

    if path.name == MODULE_SPEC_FILENAME:
        try:
            spec = load_spec(path)
        except (ModuleSpecError, OSError):
            raise
        except Exception as e:
            raise ModuleSpecError(f"invalid module spec {path}: {e}") from e

        if spec.is_global:
            manifest.add_global_import(str(path.parent))
        return None

    if not manifest.should_append(rel):
        logger.debug(f"skip structural file: {rel}")
        return None

    entry = make_entry(path, root)
    module = is_module(path)
    manifest.add_entry(entry, module=module)

    kind = "module" if module else "asset"
    logger.debug(f"add {kind}: {entry.name} ({entry.size} bytes)")
    return entry


def build_manifest(
    source_dir: Path,
    is_module: ModuleClassifier = is_module_file,
    load_spec: ModuleSpecLoader = load_module_spec,
) -> Manifest:
    """Generate a manifest recursively from a source tree.

    Paths are recorded relative to source_dir. Global import directories
    are sorted and made relative once the walk completes.

    Args:
        source_dir: Root of the application tree
        is_module: Predicate deciding module vs. asset for a file
        load_spec: Parser for per-directory module spec files

    Returns:
        Finalized Manifest bound to source_dir

    Raises:
        ModuleSpecError: If a module spec cannot be parsed
        OSError: On any I/O failure during the walk
    """
    source_dir = Path(source_dir)
    if not source_dir.is_dir():
        raise NotADirectoryError(f"source_dir must be a directory: {source_dir}")

    manifest = Manifest().bind(source_dir)
    logger.info(f"Generating manifest recursively from path: {source_dir}")

    for path in walk_files(source_dir):
        append_path(manifest, path, is_module=is_module, load_spec=load_spec)

    manifest.finalize(source_dir)
    logger.info(
        f"Manifest ready: {manifest.file_count} files, "
        f"{len(manifest.modules)} modules, {manifest.total_size} bytes"
    )
    return manifest


def make_bundle_manifest(bundle_file: Path, source: Manifest) -> Manifest:
    """Manifest whose only asset is a bundle built from source.

    The entry records how many files the bundle holds and their combined
    size before compression.
    """
    bundle_file = Path(bundle_file)
    root = bundle_file.parent

    entry = make_entry(bundle_file, root).model_copy(
        update={
            "archive_file_count": source.file_count,
            "uncompressed_size": source.total_size,
        }
    )

    manifest = Manifest(global_imports=list(source.global_imports)).bind(root)
    manifest.add_entry(entry)
    manifest.generated_at = source.generated_at
    return manifest
