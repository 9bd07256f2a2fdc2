"""apppack CLI - Command line interface for apppack."""
import logging
import sys
from pathlib import Path

import click
from pydantic import ValidationError as PydanticValidationError

from apppack.bundle import bundle_manifest, locate_bundle
from apppack.core.config import BUNDLE_FILENAME, MANIFEST_FILENAME, FetchOptions
from apppack.core.errors import (
    BundleNotFoundError,
    ManifestError,
    ModuleSpecError,
    SourceNotFoundError,
    ValidationError,
)
from apppack.manifest import Application, build_manifest, make_bundle_manifest
from apppack.sync import reconcile, verify_tree

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(name)s: %(message)s",
)
logger = logging.getLogger("apppack")

EXIT_FAILURE = 1
EXIT_NOT_FOUND = 3
EXIT_INVALID = 4
EXIT_MALFORMED = 5
EXIT_CONFIG = 7


def _fail(action: str, e: Exception):
    """Log an error and exit with the code matching its kind.

    Exit codes:
        1: Generic runtime failure
        3: Source file or bundle not found
        4: Tracked file failed validation
        5: Malformed manifest or module spec
    """
    logger.error(f"{action} failed: {e}")
    if isinstance(e, (SourceNotFoundError, BundleNotFoundError)):
        sys.exit(EXIT_NOT_FOUND)
    if isinstance(e, ValidationError) or isinstance(e.__cause__, ValidationError):
        sys.exit(EXIT_INVALID)
    if isinstance(e, (ManifestError, ModuleSpecError)):
        sys.exit(EXIT_MALFORMED)
    sys.exit(EXIT_FAILURE)


def _load_options(config: Path, timeout: float) -> FetchOptions:
    try:
        options = FetchOptions.load(config) if config else FetchOptions()
        if timeout is not None:
            options = options.model_copy(update={"timeout": timeout})
        return options
    except (OSError, ValueError, PydanticValidationError) as e:
        logger.error(f"Invalid config file: {e}")
        sys.exit(EXIT_CONFIG)


@click.group()
@click.option(
    "--log-level",
    "-L",
    envvar="LOGLEVEL",
    default="info",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    help="Level of log output verbosity",
)
def main(log_level: str):
    """apppack - Package application trees into verifiable, portable bundles."""
    logging.getLogger().setLevel(log_level.upper())


@main.command()
@click.argument(
    "source_dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=Path("."),
)
@click.option(
    "--output",
    "-o",
    default=MANIFEST_FILENAME,
    help=f"File to write the manifest to, or - for stdout (default: {MANIFEST_FILENAME})",
)
@click.option(
    "--bundle",
    "-b",
    is_flag=True,
    help="Also write a compressed bundle and emit a manifest listing only the bundle",
)
@click.option("--name", default=None, help="Application name recorded in the manifest")
@click.option("--source", default=None, help="Default source location recorded in the manifest")
def generate(source_dir: Path, output: str, bundle: bool, name: str, source: str):
    """Generate a portable application manifest from SOURCE_DIR.

    Examples:
        apppack generate ./myapp -o myapp/manifest.yaml
        apppack generate ./myapp --bundle -o dist/manifest.yaml
    """
    try:
        manifest = build_manifest(source_dir)

        if bundle:
            out_dir = Path(".") if output == "-" else Path(output).parent
            result = bundle_manifest(manifest, out_dir / BUNDLE_FILENAME)
            click.echo(f"[OK] Bundle written: {result['bundle_path']}", err=output == "-")
            manifest = make_bundle_manifest(Path(result["bundle_path"]), manifest)

        Application(name=name, source=source, manifest=manifest).save(output)
    except Exception as e:
        _fail("Generate", e)

    if output != "-":
        click.echo(f"[OK] Manifest written: {output}")
        click.echo(f"  Files: {manifest.file_count}")
        click.echo(f"  Size: {manifest.total_size}")
        click.echo(f"  Globals: {', '.join(manifest.global_imports) or '-'}")


@main.command()
@click.argument("manifest_file", type=click.Path(allow_dash=True))
@click.option(
    "--source",
    "-s",
    envvar="APPPACK_SOURCE",
    default=None,
    help="Source root: local path or http/https/ftp/sftp/file URI (default: from manifest)",
)
@click.option(
    "--dest",
    "-d",
    envvar="APPPACK_DEST",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("."),
    help="Destination directory to reconcile",
)
@click.option(
    "--workers",
    type=click.IntRange(min=1),
    default=1,
    help="Concurrent fetches (default: 1, sequential)",
)
@click.option(
    "--timeout",
    envvar="APPPACK_TIMEOUT",
    type=float,
    default=None,
    help="Per-connection timeout in seconds",
)
@click.option(
    "--config",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="YAML file with fetch options",
)
def fetch(manifest_file: str, source: str, dest: Path, workers: int, timeout: float, config: Path):
    """Make DEST match MANIFEST_FILE, fetching missing or corrupt files.

    Exit codes:
        0: Success
        1: Generic runtime failure
        3: Source file not found
        4: File invalid after fetch
        5: Malformed manifest
        7: Configuration file error
    """
    options = _load_options(config, timeout)

    try:
        app = Application.load(manifest_file)
    except Exception as e:
        _fail("Load", e)

    source = source or app.source
    if not source:
        raise click.UsageError("no --source given and manifest records no source")

    try:
        result = reconcile(app.manifest, source, dest, options=options, workers=workers)
    except Exception as e:
        _fail("Fetch", e)

    click.echo(f"[OK] Tree reconciled: {dest}")
    click.echo(f"  Fetched: {len(result.fetched)}")
    click.echo(f"  Extracted: {len(result.extracted)}")
    click.echo(f"  Already valid: {len(result.skipped)}")


@main.command()
@click.argument("manifest_file", type=click.Path(allow_dash=True))
@click.option(
    "--root",
    "-r",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=Path("."),
    help="Directory the manifest entries are relative to",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    default=Path(BUNDLE_FILENAME),
    help=f"Bundle file to write (default: {BUNDLE_FILENAME})",
)
def bundle(manifest_file: str, root: Path, output: Path):
    """Write a tar+gzip bundle of the files listed in MANIFEST_FILE."""
    try:
        manifest = Application.load(manifest_file).manifest.bind(root)
        result = bundle_manifest(manifest, output)
    except Exception as e:
        _fail("Bundle", e)

    click.echo(f"[OK] Bundle written: {result['bundle_path']}")
    click.echo(f"  Files: {result['file_count']}")
    click.echo(f"  Excluded: {len(result['excluded'])}")


@main.command()
@click.argument("manifest_file", type=click.Path(allow_dash=True))
@click.option(
    "--root",
    "-r",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=Path("."),
    help="Directory to check",
)
def verify(manifest_file: str, root: Path):
    """Report every file under ROOT that does not match MANIFEST_FILE."""
    try:
        manifest = Application.load(manifest_file).manifest
    except Exception as e:
        _fail("Load", e)

    invalid = verify_tree(manifest, root)
    for name, reason in invalid.items():
        click.echo(f"[INVALID] {reason}")

    if invalid:
        logger.error(f"{len(invalid)} of {manifest.file_count} files invalid")
        sys.exit(EXIT_INVALID)

    click.echo(f"[OK] {manifest.file_count} files valid")


@main.command()
@click.argument("manifest_file", type=click.Path(allow_dash=True))
@click.option(
    "--dest",
    "-d",
    envvar="APPPACK_DEST",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=Path("."),
    help="Directory to remove module files from",
)
def clean(manifest_file: str, dest: Path):
    """Remove the module files listed in MANIFEST_FILE from DEST."""
    try:
        manifest = Application.load(manifest_file).manifest
    except Exception as e:
        _fail("Load", e)

    removed = manifest.clean(dest)
    click.echo(f"[OK] Removed {len(removed)} module files")


@main.command()
@click.argument("name")
def locate(name: str):
    """Find a bundle by path or NAME on $APPPACK_PATH."""
    try:
        path = locate_bundle(name)
    except BundleNotFoundError as e:
        _fail("Locate", e)

    click.echo(str(path))


if __name__ == "__main__":
    main()
