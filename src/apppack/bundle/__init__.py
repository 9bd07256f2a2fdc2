"""Bundling: single-file distributables built from a manifest."""
from apppack.bundle.archiver import bundle_manifest, locate_bundle

__all__ = [
    "bundle_manifest",
    "locate_bundle",
]
