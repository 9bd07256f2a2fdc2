"""Well-known filenames, defaults and fetch options."""
import logging
import os
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "manifest.yaml"
MODULE_SPEC_FILENAME = "module.yaml"
BUNDLE_FILENAME = "app.tar.gz"

# Structural markers consumed downstream, never distributed
DIRECTORY_DESCRIPTOR_FILENAME = "qmldir"
MODULE_SYSTEM_FILENAME = "Root.qml"
COMPOSITION_FILENAME = "app.yaml"

DEFAULT_TIMEOUT = 30.0

SEARCH_PATH_ENV = "APPPACK_PATH"
DEFAULT_SEARCH_PATHS = [
    ".",
    "~/.cache/apppack/bundles",
    "/opt/apppack",
]


class FetchOptions(BaseModel):
    """Options handed to retrieval backends."""

    model_config = ConfigDict(extra="forbid")

    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0, description="Per-connection timeout in seconds")
    user_agent: str = Field(default="apppack/0.1.0", description="User-Agent for HTTP requests")
    sftp_username: Optional[str] = Field(default=None, description="Fallback SFTP user")
    sftp_key_file: Optional[str] = Field(default=None, description="Private key for SFTP")
    sftp_port: int = Field(default=22, ge=1, le=65535)

    @field_validator("sftp_key_file")
    @classmethod
    def expand_key_file(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return str(Path(v).expanduser())

    @classmethod
    def load(cls, path: Path) -> "FetchOptions":
        """Load options from a YAML mapping."""
        data = yaml.safe_load(Path(path).read_text()) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path}: expected a mapping, got {type(data).__name__}")
        return cls.model_validate(data)


def search_paths() -> List[Path]:
    """Directories searched for named bundles.

    Entries from $APPPACK_PATH (colon-separated) come first, followed by
    the built-in defaults.
    """
    head = []
    for part in os.environ.get(SEARCH_PATH_ENV, "").split(":"):
        part = part.strip()
        if part:
            head.append(part)

    return [Path(p).expanduser() for p in head + DEFAULT_SEARCH_PATHS]
