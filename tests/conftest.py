"""Pytest fixtures for apppack tests."""
from pathlib import Path
from typing import Dict, List

import pytest

from apppack.sync.fetchers import LocalFetcher
from helpers import make_zip, write


@pytest.fixture
def app_tree(tmp_path: Path) -> Dict[str, any]:
    """Create an application source tree.

    Returns dict with:
        - path: Path to the tree root
        - assets: names expected in manifest.assets
        - modules: names expected in manifest.modules
        - structural: names that must never be tracked
    """
    root = tmp_path / "app"

    write(root / "a.txt", "hello world")
    write(root / "img" / "logo.png", b"\x89PNG\r\n\x1a\n" + bytes(range(64)))
    write(root / "widget.yaml", "type: Rectangle\nwidth: 100\n")
    write(root / "widget.qml", "Rectangle { width: 100 }\n")
    write(root / "styles" / "theme.yaml", "colors:\n  primary: '#336699'\n")
    write(root / "mods" / "module.yaml", "name: mods\nglobal: true\n")
    write(root / "mods" / "Button.yaml", "type: Button\ntext: OK\n")
    write(root / "mods" / "qmldir", "module mods\n")
    write(root / "Root.qml", "Item {}\n")
    write(root / "app.yaml", "name: Demo\n")
    make_zip(root / "pkg.zip", {"pkg/readme.txt": "inside the archive\n"})

    return {
        "path": root,
        "assets": ["a.txt", "img/logo.png", "pkg.zip", "styles/theme.yaml", "widget.qml"],
        "modules": ["mods/Button.yaml", "widget.yaml"],
        "structural": ["mods/module.yaml", "mods/qmldir", "Root.qml", "app.yaml"],
    }


@pytest.fixture
def flat_source(tmp_path: Path) -> Path:
    """Create a source tree of plain assets and modules (no archives)."""
    root = tmp_path / "source"
    write(root / "a.txt", "hello world")
    write(root / "b.txt", "second file\n")
    write(root / "docs" / "guide.md", "# Guide\n")
    write(root / "screens" / "Main.yaml", "type: Page\ntitle: Main\n")
    return root


class RecordingFetcher(LocalFetcher):
    """LocalFetcher that records every name it opens."""

    opened: List[str] = []

    def open(self, name: str):
        RecordingFetcher.opened.append(name)
        return super().open(name)


@pytest.fixture
def recording_fetcher():
    """Factory for LocalFetcher that records opened names.

    Returns (factory, opened list).
    """
    RecordingFetcher.opened = []

    def factory(root, options=None):
        return RecordingFetcher(root, options)

    return factory, RecordingFetcher.opened
