"""Module classification and module spec parsing.

Modules are YAML documents describing UI components; they are compiled
into markup downstream. Every other tracked file is an asset.
"""
import logging
from pathlib import Path
from typing import Callable, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from apppack.core.errors import ModuleSpecError

logger = logging.getLogger(__name__)

MODULE_EXTENSIONS = {".yaml", ".yml"}

ModuleClassifier = Callable[[Path], bool]


class ModuleSpec(BaseModel):
    """Per-directory module descriptor."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    name: Optional[str] = Field(default=None, description="Module namespace")
    version: Optional[str] = Field(default=None)
    is_global: bool = Field(
        default=False,
        alias="global",
        description="Register the containing directory as a global import path",
    )


def load_module_spec(path: Path) -> ModuleSpec:
    """Parse a module spec file.

    An empty document is a valid spec with all defaults.

    Raises:
        ModuleSpecError: If the file is not a YAML mapping or has bad fields
    """
    path = Path(path)
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (yaml.YAMLError, UnicodeDecodeError) as e:
        raise ModuleSpecError(f"invalid module spec {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ModuleSpecError(
            f"invalid module spec {path}: expected a mapping, got {type(data).__name__}"
        )

    try:
        return ModuleSpec.model_validate(data)
    except ValidationError as e:
        raise ModuleSpecError(f"invalid module spec {path}: {e}") from e


def is_module_file(path: Path) -> bool:
    """Whether a file holds a module definition.

    A module is a YAML mapping carrying a ``type`` key naming the
    component it defines. Unreadable or non-mapping YAML is an asset.
    """
    path = Path(path)
    if path.suffix.lower() not in MODULE_EXTENSIONS:
        return False

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (yaml.YAMLError, UnicodeDecodeError):
        logger.debug(f"Not a module (unparseable): {path}")
        return False

    return isinstance(data, dict) and "type" in data
