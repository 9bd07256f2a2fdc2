#!/usr/bin/env python
"""CLI script to audit a directory tree against a saved manifest."""
import logging
import sys
from pathlib import Path

import click

from apppack.manifest import Manifest, build_manifest
from apppack.sync import verify_tree

logging.basicConfig(
    level=logging.INFO,
    format="%(name)s: %(message)s",
)
logger = logging.getLogger("verify_tree")


@click.command()
@click.option(
    "--manifest",
    type=click.Path(exists=True, file_okay=True, dir_okay=False, path_type=Path),
    required=True,
    help="Path to manifest.yaml file",
)
@click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, dir_okay=True, path_type=Path),
    default=Path("."),
    help="Directory to audit (default: current directory)",
)
@click.option(
    "--untracked/--no-untracked",
    default=True,
    help="Also list files in the tree that the manifest does not track",
)
def main(manifest: Path, root: Path, untracked: bool):
    """Audit ROOT against a manifest without fetching anything.

    Example:
        python scripts/verify_tree.py \\
            --manifest dist/manifest.yaml \\
            --root /opt/apppack/myapp

    Output:
        One line per invalid or untracked file; exit code 1 if any
        tracked file is invalid.
    """
    try:
        logger.info(f"Loading manifest from {manifest}")
        saved = Manifest.load(manifest)
        logger.info(f"Tracked: {saved.file_count} files, {saved.total_size} bytes")

        invalid = verify_tree(saved, root)
        for reason in invalid.values():
            click.echo(f"[INVALID] {reason}")

        if untracked:
            tracked = {entry.name for entry in saved.files()}
            current = build_manifest(root)
            for entry in current.files():
                if entry.name not in tracked:
                    click.echo(f"[UNTRACKED] {entry.name}")

        if invalid:
            click.echo(f"\n[ERROR] {len(invalid)} of {saved.file_count} files invalid", err=True)
            sys.exit(1)

        click.echo(f"\n[OK] {saved.file_count} files valid")
        sys.exit(0)

    except Exception as e:
        logger.error(f"Error: {str(e)}", exc_info=True)
        click.echo(f"[ERROR] {str(e)}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
