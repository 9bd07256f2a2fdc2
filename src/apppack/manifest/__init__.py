"""Manifest model, module classification and tree walking."""
from apppack.manifest.builder import append_path, build_manifest, make_bundle_manifest
from apppack.manifest.modules import ModuleSpec, is_module_file, load_module_spec
from apppack.manifest.schemas import Application, Manifest, ManifestEntry

__all__ = [
    "Application",
    "Manifest",
    "ManifestEntry",
    "ModuleSpec",
    "append_path",
    "build_manifest",
    "is_module_file",
    "load_module_spec",
    "make_bundle_manifest",
]
