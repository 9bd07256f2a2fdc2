"""Reconcile a destination tree against a manifest.

Every entry is checked in the destination first; anything missing or
corrupted is fetched from the source root, archives are expanded in
place, and the whole tree is validated again before returning.
"""
import logging
import shutil
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional

from apppack.core.config import FetchOptions
from apppack.core.errors import ExtractionError, FetchError, ValidationError
from apppack.manifest.schemas import Manifest, ManifestEntry, total_size
from apppack.sync.extract import extract_archive
from apppack.sync.fetchers import Fetcher, get_fetcher

logger = logging.getLogger(__name__)

FetcherFactory = Callable[[str, Optional[FetchOptions]], Fetcher]


class EntryStatus(str, Enum):
    VALID = "valid"
    FETCHED = "fetched"
    EXTRACTED = "extracted"


@dataclass
class ReconcileResult:
    """Per-entry outcome of one reconciliation, in manifest order.

    Extracted archives are exempt from the final validation pass; this
    replaces mutating the (immutable) manifest entries.
    """

    statuses: Dict[str, EntryStatus] = field(default_factory=dict)

    @property
    def fetched(self) -> List[str]:
        return [n for n, s in self.statuses.items() if s is not EntryStatus.VALID]

    @property
    def extracted(self) -> List[str]:
        return [n for n, s in self.statuses.items() if s is EntryStatus.EXTRACTED]

    @property
    def skipped(self) -> List[str]:
        return [n for n, s in self.statuses.items() if s is EntryStatus.VALID]

    def skip_validate(self, name: str) -> bool:
        return self.statuses.get(name) is EntryStatus.EXTRACTED


def _is_valid(entry: ManifestEntry, root: Path) -> bool:
    try:
        entry.verify(root)
    except ValidationError as e:
        logger.debug(f"needs fetch: {e}")
        return False
    return True


def fetch_entry(fetcher: Fetcher, entry: ManifestEntry, dest_dir: Path) -> EntryStatus:
    """Retrieve one entry into dest_dir, expanding it if it is an archive.

    Raises:
        FetchError: If the entry cannot be retrieved or written
        ExtractionError: If an archive entry cannot be expanded
    """
    dest = entry.path(dest_dir)
    logger.debug(f"fetching file: {fetcher.root} -> {dest}")

    try:
        stream = fetcher.open(entry.name)
    except FetchError as e:
        raise type(e)(f"{entry.name}: retrieve: {e}") from e

    try:
        with stream:
            dest.parent.mkdir(parents=True, exist_ok=True)
            with open(dest, "wb") as out:
                shutil.copyfileobj(stream, out)
    except OSError as e:
        raise FetchError(f"{entry.name}: write: {e}") from e

    if not entry.archive:
        return EntryStatus.FETCHED

    try:
        extract_archive(dest, dest_dir)
    except ExtractionError as e:
        raise ExtractionError(f"{entry.name}: extract: {e}") from e
    return EntryStatus.EXTRACTED


def _fetch_isolated(
    factory: FetcherFactory,
    source_root: str,
    options: Optional[FetchOptions],
    entry: ManifestEntry,
    dest_dir: Path,
) -> EntryStatus:
    with factory(source_root, options) as fetcher:
        return fetch_entry(fetcher, entry, dest_dir)


def _fetch_all(
    entries: List[ManifestEntry],
    source_root: str,
    dest_dir: Path,
    options: Optional[FetchOptions],
    factory: FetcherFactory,
    workers: int,
) -> List[EntryStatus]:
    if workers <= 1:
        with factory(source_root, options) as fetcher:
            return [fetch_entry(fetcher, entry, dest_dir) for entry in entries]

    # One backend per task; FTP and SFTP sessions are not thread-safe.
    executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="apppack-fetch")
    futures = [
        executor.submit(_fetch_isolated, factory, source_root, options, entry, dest_dir)
        for entry in entries
    ]
    try:
        return [f.result() for f in futures]
    except BaseException:
        executor.shutdown(wait=True, cancel_futures=True)
        raise
    finally:
        executor.shutdown(wait=True)


def reconcile(
    manifest: Manifest,
    source_root: str,
    dest_dir: Path,
    options: Optional[FetchOptions] = None,
    fetcher_factory: FetcherFactory = get_fetcher,
    workers: int = 1,
) -> ReconcileResult:
    """Make dest_dir hold verified copies of every manifest entry.

    Entries are processed assets first, then modules. Only entries that
    are missing or fail their checksum are fetched. The first failure
    aborts the call; files already written stay on disk.

    Args:
        manifest: Manifest to reconcile against (never modified)
        source_root: Local path or http/https/ftp/sftp/file URI
        dest_dir: Destination tree
        options: Options for the retrieval backend
        fetcher_factory: Builds a backend for source_root
        workers: Number of concurrent fetches; 1 is strictly sequential

    Returns:
        ReconcileResult with a status for every entry

    Raises:
        FetchError: If an entry cannot be retrieved
        ExtractionError: If an archive entry cannot be expanded
        ValidationError: If an entry is still invalid after fetching
    """
    dest_dir = Path(dest_dir)
    entries = manifest.files()
    result = ReconcileResult(statuses={e.name: EntryStatus.VALID for e in entries})

    to_fetch = [e for e in entries if not _is_valid(e, dest_dir)]

    if to_fetch:
        logger.info(
            f"fetching {len(to_fetch)} files ({total_size(to_fetch)} bytes) into {dest_dir}"
        )
        dest_dir.mkdir(parents=True, exist_ok=True)
        statuses = _fetch_all(to_fetch, str(source_root), dest_dir, options, fetcher_factory, workers)
        for entry, status in zip(to_fetch, statuses):
            result.statuses[entry.name] = status
    else:
        logger.info(f"all {len(entries)} files valid in {dest_dir}")

    for entry in entries:
        if result.skip_validate(entry.name):
            continue
        try:
            entry.verify(dest_dir)
        except ValidationError as e:
            entry.path(dest_dir).unlink(missing_ok=True)
            logger.error(f"invalid file after fetch: {entry.path(dest_dir)}: {e}")
            raise

    return result


def verify_tree(manifest: Manifest, root: Path) -> Dict[str, str]:
    """Check every entry under root without fetching.

    Returns:
        Mapping of invalid entry name -> reason, in manifest order
    """
    invalid = {}
    for entry in manifest.files():
        try:
            entry.verify(root)
        except ValidationError as e:
            invalid[entry.name] = str(e)
    return invalid
