"""Retrieval backends: fetch a tracked file's bytes from a source root.

Each backend handles one or more URI schemes and is selected through a
registry keyed on the scheme string. Local paths and ``file://`` roots
use the filesystem; ``http``, ``https``, ``ftp`` and ``sftp`` roots are
downloaded into a spooled temporary file before being handed back, so
transport errors surface from ``open`` rather than midway through a read.
"""
import ftplib
import logging
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import BinaryIO, Dict, Iterable, Optional, Type
from urllib.parse import unquote, urlparse
from urllib.request import url2pathname

import paramiko
import requests

from apppack.core.config import FetchOptions
from apppack.core.errors import FetchError, SourceNotFoundError, UnsupportedSchemeError
from apppack.core.files import is_remote, join_location

logger = logging.getLogger(__name__)

SPOOL_MAX_MEMORY = 8 * 1024 * 1024
LOCAL_SCHEME = ""


def _spool(chunks: Iterable[bytes]) -> BinaryIO:
    spool = tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_MEMORY)
    for chunk in chunks:
        spool.write(chunk)
    spool.seek(0)
    return spool


class Fetcher(ABC):
    """Abstract base for retrieval backends."""

    def __init__(self, root: str, options: Optional[FetchOptions] = None):
        self.root = str(root)
        self.options = options or FetchOptions()

    @abstractmethod
    def open(self, name: str) -> BinaryIO:
        """Return a readable binary stream for a manifest-relative name.

        Raises:
            SourceNotFoundError: If the root does not hold the file
            FetchError: On any other retrieval failure
        """
        pass

    def close(self) -> None:
        """Release any connection held by the backend."""
        pass

    def __enter__(self) -> "Fetcher":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class LocalFetcher(Fetcher):
    """Reads from a local directory or a ``file://`` URI."""

    def __init__(self, root: str, options: Optional[FetchOptions] = None):
        super().__init__(root, options)
        parsed = urlparse(self.root)
        if parsed.scheme == "file":
            self.base = Path(url2pathname(parsed.path))
        else:
            self.base = Path(self.root)

    def open(self, name: str) -> BinaryIO:
        path = self.base / name
        try:
            return open(path, "rb")
        except FileNotFoundError as e:
            raise SourceNotFoundError(f"{path}: not found") from e
        except OSError as e:
            raise FetchError(f"{path}: {e}") from e


class HTTPFetcher(Fetcher):
    """Downloads over HTTP(S) with requests."""

    def __init__(self, root: str, options: Optional[FetchOptions] = None):
        super().__init__(root, options)
        self.session = requests.Session()
        self.session.headers["User-Agent"] = self.options.user_agent

    def open(self, name: str) -> BinaryIO:
        url = join_location(self.root, name)
        try:
            with self.session.get(url, stream=True, timeout=self.options.timeout) as r:
                if r.status_code == 404:
                    raise SourceNotFoundError(f"{url}: HTTP 404")
                r.raise_for_status()
                return _spool(r.iter_content(chunk_size=64 * 1024))
        except requests.RequestException as e:
            raise FetchError(f"{url}: {e}") from e

    def close(self) -> None:
        self.session.close()


class FTPFetcher(Fetcher):
    """Downloads over FTP, anonymously unless the URI carries credentials."""

    def __init__(self, root: str, options: Optional[FetchOptions] = None):
        super().__init__(root, options)
        self.url = urlparse(self.root)
        self._ftp: Optional[ftplib.FTP] = None

    def _connect(self) -> ftplib.FTP:
        if self._ftp is None:
            ftp = ftplib.FTP(timeout=self.options.timeout)
            ftp.connect(self.url.hostname, self.url.port or 21)
            ftp.login(unquote(self.url.username or "anonymous"), unquote(self.url.password or ""))
            self._ftp = ftp
        return self._ftp

    def open(self, name: str) -> BinaryIO:
        remote = unquote(urlparse(join_location(self.root, name)).path)
        spool = tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_MEMORY)
        try:
            self._connect().retrbinary(f"RETR {remote}", spool.write)
        except ftplib.error_perm as e:
            spool.close()
            if str(e).startswith("550"):
                raise SourceNotFoundError(f"ftp://{self.url.hostname}{remote}: {e}") from e
            raise FetchError(f"ftp://{self.url.hostname}{remote}: {e}") from e
        except (ftplib.Error, OSError) as e:
            spool.close()
            raise FetchError(f"ftp://{self.url.hostname}{remote}: {e}") from e
        spool.seek(0)
        return spool

    def close(self) -> None:
        if self._ftp is not None:
            try:
                self._ftp.quit()
            except (ftplib.Error, OSError):
                self._ftp.close()
            self._ftp = None


class SFTPFetcher(Fetcher):
    """Downloads over SFTP with paramiko."""

    def __init__(self, root: str, options: Optional[FetchOptions] = None):
        super().__init__(root, options)
        self.url = urlparse(self.root)
        self._client: Optional[paramiko.SSHClient] = None
        self._sftp: Optional[paramiko.SFTPClient] = None

    def _connect(self) -> paramiko.SFTPClient:
        if self._sftp is None:
            client = paramiko.SSHClient()
            client.load_system_host_keys()
            client.set_missing_host_key_policy(paramiko.WarningPolicy())
            client.connect(
                self.url.hostname,
                port=self.url.port or self.options.sftp_port,
                username=unquote(self.url.username) if self.url.username else self.options.sftp_username,
                password=unquote(self.url.password) if self.url.password else None,
                key_filename=self.options.sftp_key_file,
                timeout=self.options.timeout,
            )
            self._client = client
            self._sftp = client.open_sftp()
        return self._sftp

    def open(self, name: str) -> BinaryIO:
        remote = unquote(urlparse(join_location(self.root, name)).path)
        spool = tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_MEMORY)
        try:
            self._connect().getfo(remote, spool)
        except FileNotFoundError as e:
            spool.close()
            raise SourceNotFoundError(f"sftp://{self.url.hostname}{remote}: not found") from e
        except (paramiko.SSHException, OSError) as e:
            spool.close()
            raise FetchError(f"sftp://{self.url.hostname}{remote}: {e}") from e
        spool.seek(0)
        return spool

    def close(self) -> None:
        if self._sftp is not None:
            self._sftp.close()
            self._sftp = None
        if self._client is not None:
            self._client.close()
            self._client = None


_REGISTRY: Dict[str, Type[Fetcher]] = {
    LOCAL_SCHEME: LocalFetcher,
    "file": LocalFetcher,
    "http": HTTPFetcher,
    "https": HTTPFetcher,
    "ftp": FTPFetcher,
    "sftp": SFTPFetcher,
}


def register_fetcher(scheme: str, cls: Type[Fetcher]) -> None:
    """Register (or replace) the backend used for a URI scheme."""
    _REGISTRY[scheme.lower()] = cls


def scheme_of(root: str) -> str:
    return urlparse(str(root)).scheme.lower() if is_remote(root) else LOCAL_SCHEME


def get_fetcher(root: str, options: Optional[FetchOptions] = None) -> Fetcher:
    """Instantiate the backend registered for root's scheme.

    Raises:
        UnsupportedSchemeError: If no backend handles the scheme
    """
    scheme = scheme_of(root)
    try:
        cls = _REGISTRY[scheme]
    except KeyError:
        raise UnsupportedSchemeError(f"unsupported source scheme '{scheme}': {root}")
    return cls(str(root), options)
