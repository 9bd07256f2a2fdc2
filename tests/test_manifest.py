"""Tests for manifest schemas and YAML serialization."""
import hashlib
from datetime import datetime, timezone

import pytest
import yaml
from pydantic import ValidationError

from apppack.core.errors import ChecksumMismatchError, ManifestError, MissingFileError
from apppack.manifest import Application, Manifest, ManifestEntry

SHA_HELLO = hashlib.sha256(b"hello world").hexdigest()


def entry(name: str, size: int = 11, sha256: str = SHA_HELLO, **kwargs) -> ManifestEntry:
    return ManifestEntry(name=name, size=size, sha256=sha256, mime="text/plain", **kwargs)


class TestManifestEntry:
    """Tests for the ManifestEntry model."""

    def test_rejects_malformed_sha256(self):
        """Too short or non-hex digests are rejected."""
        with pytest.raises(ValidationError):
            entry("a.txt", sha256="abc123")
        with pytest.raises(ValidationError):
            entry("a.txt", sha256="z" * 64)

    def test_rejects_paths_outside_root(self):
        """Absolute names and parent traversal are rejected."""
        with pytest.raises(ValidationError):
            entry("/etc/passwd")
        with pytest.raises(ValidationError):
            entry("../escape.txt")

    def test_entries_are_immutable(self):
        """Entries cannot be mutated once created."""
        e = entry("a.txt")
        with pytest.raises(ValidationError):
            e.size = 12

    def test_verify_accepts_matching_file(self, tmp_path):
        (tmp_path / "a.txt").write_text("hello world")
        entry("a.txt").verify(tmp_path)

    def test_verify_missing_file(self, tmp_path):
        with pytest.raises(MissingFileError) as exc:
            entry("a.txt").verify(tmp_path)
        assert exc.value.name == "a.txt"

    def test_verify_checksum_mismatch(self, tmp_path):
        (tmp_path / "a.txt").write_text("hello w0rld")
        with pytest.raises(ChecksumMismatchError) as exc:
            entry("a.txt").verify(tmp_path)
        assert exc.value.expected == SHA_HELLO

    def test_archive_key_omitted_when_false(self):
        """archive is only serialized for archive entries."""
        assert "archive" not in entry("a.txt").model_dump()
        assert entry("p.zip", archive=True).model_dump()["archive"] is True


class TestManifestAggregates:
    """Tests for running totals and bookkeeping."""

    def test_add_entry_keeps_counts(self):
        """file_count and total_size track every append."""
        manifest = Manifest()
        manifest.add_entry(entry("a.txt", size=11))
        manifest.add_entry(entry("b.yaml", size=5), module=True)
        manifest.add_entry(entry("c.txt", size=7))

        assert manifest.file_count == len(manifest.assets) + len(manifest.modules) == 3
        assert manifest.total_size == 23
        assert [e.name for e in manifest.files()] == ["a.txt", "c.txt", "b.yaml"]

    def test_global_imports_deduplicated(self):
        manifest = Manifest()
        manifest.add_global_import("/src/mods")
        manifest.add_global_import("/src/mods")
        assert manifest.global_imports == ["/src/mods"]

    def test_finalize_sorts_and_relativizes(self, tmp_path):
        manifest = Manifest()
        manifest.add_global_import(str(tmp_path / "zeta"))
        manifest.add_global_import(str(tmp_path / "alpha" / "inner"))
        manifest.finalize(tmp_path)

        assert manifest.global_imports == ["alpha/inner", "zeta"]
        assert manifest.generated_at is not None

    def test_should_append_excludes_structural_files(self):
        manifest = Manifest()
        assert not manifest.should_append("manifest.yaml")
        assert not manifest.should_append("app.yaml")
        assert not manifest.should_append("mods/qmldir")
        assert not manifest.should_append("Root.qml")
        assert manifest.should_append("mods/app.yaml")
        assert manifest.should_append("a.txt")

    def test_is_autogenerated(self):
        """X.qml is generated only when module X.yaml is tracked."""
        manifest = Manifest()
        manifest.add_entry(entry("ui/widget.yaml"), module=True)
        manifest.add_entry(entry("ui/widget.qml"))
        manifest.add_entry(entry("ui/other.qml"))
        manifest.add_entry(entry("styles/widget.yaml"))

        assert manifest.is_autogenerated(manifest.assets[0])
        assert not manifest.is_autogenerated(manifest.assets[1])
        assert not manifest.is_autogenerated(manifest.modules[0])

    def test_clean_removes_module_files(self, tmp_path):
        manifest = Manifest()
        manifest.add_entry(entry("a.txt"))
        manifest.add_entry(entry("m/one.yaml"), module=True)
        manifest.add_entry(entry("m/gone.yaml"), module=True)
        (tmp_path / "m").mkdir()
        (tmp_path / "m" / "one.yaml").write_text("type: X\n")
        (tmp_path / "a.txt").write_text("hello world")

        removed = manifest.clean(tmp_path)

        assert removed == ["m/one.yaml"]
        assert not (tmp_path / "m" / "one.yaml").exists()
        assert (tmp_path / "a.txt").exists()


class TestManifestSerialization:
    """Tests for the Application envelope document."""

    def _sample(self) -> Manifest:
        manifest = Manifest()
        manifest.add_entry(entry("a.txt"))
        manifest.add_entry(entry("pkg.zip", size=40, archive=True))
        manifest.add_entry(entry("ui/Main.yaml", size=20), module=True)
        manifest.global_imports = ["mods"]
        manifest.generated_at = datetime(2026, 10, 19, 8, 30, 15, 123456, tzinfo=timezone.utc)
        return manifest

    def test_roundtrip_preserves_fields(self, tmp_path):
        """Test: save then load yields an identical manifest.

        Given: a manifest with assets, modules and globals
        When: it is saved and loaded again
        Then: entries, globals, counts and timestamp all match
        """
        path = tmp_path / "manifest.yaml"
        original = self._sample().bind(tmp_path)

        original.save(path, name="Demo")
        loaded = Manifest.load(path)

        assert loaded.assets == original.assets
        assert loaded.modules == original.modules
        assert loaded.global_imports == original.global_imports
        assert loaded.file_count == original.file_count == 3
        assert loaded.total_size == original.total_size == 71
        assert loaded.generated_at == original.generated_at
        assert loaded.root_dir is None

    def test_document_layout(self, tmp_path):
        """The manifest is nested under the envelope with documented keys."""
        path = tmp_path / "manifest.yaml"
        self._sample().save(path, name="Demo", source="https://example.com/app")

        doc = yaml.safe_load(path.read_text())
        assert doc["name"] == "Demo"
        assert doc["source"] == "https://example.com/app"

        body = doc["manifest"]
        assert set(body) == {"assets", "modules", "globals", "generated_at", "size", "file_count"}
        assert body["assets"][0] == {
            "name": "a.txt",
            "size": 11,
            "sha256": SHA_HELLO,
            "mime": "text/plain",
        }
        assert body["assets"][1]["archive"] is True

    def test_tolerates_absent_optional_fields(self):
        """Missing archive flags and empty globals load with defaults."""
        text = f"""
manifest:
  assets:
    - name: a.txt
      size: 11
      sha256: {SHA_HELLO}
      mime: text/plain
  modules:
  globals: []
  size: 11
  file_count: 1
"""
        app = Application.from_yaml(text)
        assert app.manifest.assets[0].archive is False
        assert app.manifest.modules == []
        assert app.manifest.global_imports == []
        assert app.manifest.generated_at is None

    def test_save_to_stdout(self, capsys):
        self._sample().save("-")
        out = capsys.readouterr().out
        assert yaml.safe_load(out)["manifest"]["file_count"] == 3

    def test_malformed_document_raises(self):
        with pytest.raises(ManifestError):
            Application.from_yaml("manifest: [unclosed")
        with pytest.raises(ManifestError):
            Application.from_yaml("- just\n- a list\n")
        with pytest.raises(ManifestError):
            Application.from_yaml("manifest:\n  assets:\n    - name: a.txt\n")
