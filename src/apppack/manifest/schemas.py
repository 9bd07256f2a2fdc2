"""Manifest schemas: tracked entries, the manifest itself, and its envelope."""
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    ValidationError,
    field_validator,
    model_serializer,
)

from apppack.core.config import (
    COMPOSITION_FILENAME,
    DIRECTORY_DESCRIPTOR_FILENAME,
    MANIFEST_FILENAME,
    MODULE_SYSTEM_FILENAME,
)
from apppack.core.errors import ChecksumMismatchError, ManifestError, MissingFileError
from apppack.core.files import sha256_file

logger = logging.getLogger(__name__)

STDIO_SENTINEL = "-"


class ManifestEntry(BaseModel):
    """One tracked file.

    Entries are immutable; per-call reconciliation state lives in
    ``ReconcileResult`` rather than on the entry.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Path relative to the manifest root (POSIX)")
    size: int = Field(..., ge=0, description="Byte length at record time")
    sha256: str = Field(..., description="Hex-encoded SHA-256 of the content")
    mime: str = Field(default="application/octet-stream", description="Detected content type")
    archive: bool = Field(default=False, description="Expanded into the tree once fetched")
    archive_file_count: Optional[int] = Field(default=None, ge=0)
    uncompressed_size: Optional[int] = Field(default=None, ge=0)

    @field_validator("sha256")
    @classmethod
    def validate_sha256(cls, v: str) -> str:
        """Ensure sha256 is 64 lowercase hex characters."""
        v = v.lower()
        if len(v) != 64 or not all(c in "0123456789abcdef" for c in v):
            raise ValueError(f"sha256 must be 64 hex characters; got '{v}'")
        return v

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Ensure name is relative and stays inside the root."""
        v = v.replace("\\", "/")
        if not v or v.startswith("/") or ".." in v.split("/"):
            raise ValueError(f"name must be a relative path inside the root; got '{v}'")
        return v

    @model_serializer(mode="wrap")
    def _omit_unset(self, handler):
        data = handler(self)
        if not data.get("archive"):
            data.pop("archive", None)
        return data

    def path(self, root) -> Path:
        return Path(root) / self.name

    def verify(self, root) -> None:
        """Check the file under root against this entry.

        Raises:
            MissingFileError: If the file does not exist
            ChecksumMismatchError: If its SHA-256 differs
        """
        path = self.path(root)
        if not path.is_file():
            raise MissingFileError(self.name)

        actual = sha256_file(path)
        if actual != self.sha256:
            raise ChecksumMismatchError(self.name, self.sha256, actual)


def total_size(entries: Iterable[ManifestEntry]) -> int:
    return sum(entry.size for entry in entries)


class Manifest(BaseModel):
    """Authoritative record of the files making up an application tree.

    ``root_dir`` is runtime-only: it is never serialized and must be bound
    by the caller (see ``bind``) before entries can be checked or bundled.
    """

    model_config = ConfigDict(populate_by_name=True)

    assets: List[ManifestEntry] = Field(default_factory=list)
    modules: List[ManifestEntry] = Field(default_factory=list)
    global_imports: List[str] = Field(default_factory=list, alias="globals")
    generated_at: Optional[datetime] = Field(default=None)
    total_size: int = Field(default=0, alias="size", ge=0)
    file_count: int = Field(default=0, ge=0)

    _root_dir: Optional[Path] = PrivateAttr(default=None)

    @field_validator("assets", "modules", "global_imports", mode="before")
    @classmethod
    def null_as_empty(cls, v):
        return [] if v is None else v

    @property
    def root_dir(self) -> Optional[Path]:
        return self._root_dir

    def bind(self, root_dir) -> "Manifest":
        """Bind the directory entries are relative to."""
        self._root_dir = Path(root_dir)
        return self

    def files(self) -> List[ManifestEntry]:
        """All entries, assets first."""
        return list(self.assets) + list(self.modules)

    def add_entry(self, entry: ManifestEntry, module: bool = False) -> None:
        if module:
            self.modules.append(entry)
        else:
            self.assets.append(entry)
        self.file_count += 1
        self.total_size += entry.size

    def add_global_import(self, path: str) -> None:
        if path not in self.global_imports:
            self.global_imports.append(path)

    def should_append(self, rel: str) -> bool:
        """Whether a file (manifest-relative) is distributable content."""
        if rel in (MANIFEST_FILENAME, COMPOSITION_FILENAME):
            return False
        return Path(rel).name not in (DIRECTORY_DESCRIPTOR_FILENAME, MODULE_SYSTEM_FILENAME)

    def is_autogenerated(self, entry: ManifestEntry) -> bool:
        """Whether entry is X.qml generated from a tracked module X.yaml."""
        stem, ext = os.path.splitext(entry.name)
        if ext != ".qml":
            return False
        source = f"{stem}.yaml"
        return any(module.name == source for module in self.modules)

    def finalize(self, source_dir) -> None:
        """Stamp the build time and normalize global imports."""
        self.generated_at = datetime.now(timezone.utc)
        imports = []
        for path in sorted(self.global_imports):
            rel = Path(os.path.relpath(path, source_dir)).as_posix()
            logger.debug(f"global import: {rel}")
            imports.append(rel)
        self.global_imports = imports

    def clean(self, dest_dir) -> List[str]:
        """Remove every module file from dest_dir; returns removed names."""
        removed = []
        for module in self.modules:
            path = module.path(dest_dir)
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            removed.append(module.name)
            logger.debug(f"removed module: {module.name}")
        return removed

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)

    def save(self, path, name: Optional[str] = None, source: Optional[str] = None) -> None:
        """Write this manifest wrapped in an Application envelope.

        A path of ``-`` writes to standard output.
        """
        Application(name=name, source=source, manifest=self).save(path)

    @classmethod
    def load(cls, path) -> "Manifest":
        """Load a manifest from an Application document (``-`` reads stdin)."""
        return Application.load(path).manifest


class Application(BaseModel):
    """Envelope persisted around a manifest."""

    name: Optional[str] = Field(default=None, description="Application display name")
    source: Optional[str] = Field(default=None, description="Default source location (path or URI)")
    manifest: Manifest

    def to_yaml(self) -> str:
        data = self.model_dump(by_alias=True, mode="json", exclude_none=True)
        return yaml.safe_dump(data, sort_keys=False, default_flow_style=False)

    def save(self, path) -> None:
        text = self.to_yaml()
        if str(path) == STDIO_SENTINEL:
            sys.stdout.write(text)
            sys.stdout.flush()
            return

        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        logger.info(f"Manifest saved to {path}")

    @classmethod
    def from_yaml(cls, text: str) -> "Application":
        """Parse an Application document.

        Raises:
            ManifestError: If the document is not valid YAML or fails validation
        """
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ManifestError(f"malformed manifest document: {e}") from e

        if not isinstance(data, dict):
            raise ManifestError("malformed manifest document: expected a mapping")

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ManifestError(f"invalid manifest document: {e}") from e

    @classmethod
    def load(cls, path) -> "Application":
        if str(path) == STDIO_SENTINEL:
            return cls.from_yaml(sys.stdin.read())
        return cls.from_yaml(Path(path).read_text(encoding="utf-8"))
