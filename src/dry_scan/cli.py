# DRY Scan - Index code elements and find near-duplicate code
# Copyright (C) 2025  Jonathan Louis
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.

"""
CLI entry point for dry-scan.

Usage:
    dry scan <path> [options]
    dry similar [options]
    dry search <query...> [options]
    dry discover [path]
    dry wipe
    dry serve
"""

import os
import sys
from pathlib import Path
from typing import Optional
import logging

import click

from . import __version__
from .client import DryClient
from .config import (
    CONFIG_FILE_NAME,
    DEFAULT_IGNORE,
    DEFAULT_IGNORE_FILES,
    DEFAULT_SEARCH_THRESHOLD,
    EXCEED_ACTIONS,
    find_config_file,
    load_ignore_files,
    resolve_config,
    write_config_file,
)
from .errors import DryScanError
from .extractor import compile_patterns
from .git import get_commit_hash
from .log import setup_logging
from .models import ElementData
from .scanner import (
    ScanPlan,
    collect_files,
    detect_extensions,
    excluded_directories,
    extract_from_file,
    ignore_patterns_for,
    submit_elements,
)


logger = logging.getLogger(__name__)


def fail(message: str) -> None:
    click.echo(f"❌ Error: {message}", err=True)
    sys.exit(1)


def _relative(path: Path) -> str:
    try:
        return os.path.relpath(path)
    except ValueError:
        return str(path)


def _snippet(element: ElementData, max_lines: int) -> str:
    text = element.preview(max_lines)
    if element.line_count > max_lines:
        text += "\n   ..."
    return text


def handle_exceed(count: int, limit: int, action: str = "warn") -> None:
    """Warn (or exit 1) when more matches exist than the limit allows."""
    if count <= limit:
        return
    click.echo(
        f"\n⚠️  WARNING: Found {count} similar matches, which exceeds the limit of {limit}.",
        err=True,
    )
    if action == "fail":
        click.echo('Action configured to "fail". Exiting with non-zero code.', err=True)
        sys.exit(1)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging")
@click.option("-q", "--quiet", is_flag=True, help="Only log errors")
@click.version_option(version=__version__)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, quiet: bool):
    """Extract elements and find similar code using embeddings."""
    level: Optional[int] = None
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    ctx.obj = {"log_level": level}

    # serve falls back to LOG_LEVEL and sets up logging itself
    if ctx.invoked_subcommand != "serve":
        setup_logging(level if level is not None else logging.WARNING)


# ---------------------------------------------------------------------------
# scan
# ---------------------------------------------------------------------------

def _init_config(root: Path, interactive: bool, force: bool) -> None:
    """Create dry-scan.toml in root, on request or after asking."""
    target = root / CONFIG_FILE_NAME

    if force:
        if target.exists():
            click.echo(f"Config file already exists at {target}")
            return
        if not root.is_dir():
            return
        detected = detect_extensions(root)
        if detected:
            click.echo(f"Detected potential source extensions: {', '.join(detected)}")
        else:
            click.echo("No source extensions detected. Creating a default config.")
            detected = ["ts", "js"]
        write_config_file(target, detected)
        click.echo(f"📝 Created {target}")
        return

    if not interactive or not root.is_dir() or find_config_file(root):
        return

    detected = detect_extensions(root)
    if not detected:
        return

    click.echo(
        f"No {CONFIG_FILE_NAME} found. Detected potential source extensions: {', '.join(detected)}"
    )
    if click.confirm(f"Would you like to create a {CONFIG_FILE_NAME} with these extensions?", default=False):
        write_config_file(target, detected)
        click.echo(f"📝 Created {target}")


def run_scan(
    path: Path,
    regex: Optional[str] = None,
    init: bool = False,
    wipe: bool = True,
    url: Optional[str] = None,
    batch: bool = True,
    interactive: bool = True,
) -> int:
    """
    Scan a file or directory and index its elements.

    Sub-scans run with their own config and never wipe. A url override
    still applies to them.

    Returns:
        Number of elements indexed, sub-scans included
    """
    root = Path(path).resolve()
    if not root.exists():
        raise DryScanError(f"Path does not exist: {root}")

    _init_config(root, interactive=interactive, force=init)

    if regex:
        compile_patterns([regex])

    config = resolve_config(root, url=url)
    scan_root = root if root.is_dir() else root.parent
    ignore_patterns = ignore_patterns_for(scan_root, config)

    total_indexed = 0

    with DryClient(config.server_url) as client:
        click.echo(f"Using server: {client.server_url}")

        if wipe:
            click.echo("🗑️  Wiping previous scans...")
            deleted = client.wipe_all_elements()
            click.echo(f"   Deleted {deleted} elements from previous scans.")
        else:
            click.echo("Skipping wipe (incremental scan).")

        if root.is_file():
            plan = ScanPlan(files=[root])
        else:
            click.echo(
                f"🔍 Searching for files in {root} with extensions: {', '.join(config.extensions)}..."
            )
            plan = collect_files(root, config.extensions, ignore_patterns)

        if not plan.files and not plan.sub_scans:
            click.echo("No files or sub-scans found.")
            return 0

        commit_hash = get_commit_hash(scan_root)

        if plan.files:
            click.echo(f"   Found {len(plan.files)} files to scan in this directory.")
            total_failed = 0

            for file_path in plan.files:
                click.echo(f"Scanning {_relative(file_path)}...")
                try:
                    elements = extract_from_file(file_path, scan_root, config, regex, commit_hash)
                except OSError as e:
                    logger.warning(f"Failed to read {file_path}: {e}")
                    continue

                if not elements:
                    continue

                click.echo(f"   Found {len(elements)} elements. Submitting...")
                report = submit_elements(client, elements, batch=batch)
                total_indexed += report.indexed
                total_failed += report.failed

            click.echo(
                f"\n✅ Done indexing current directory. Indexed {total_indexed} elements "
                f"from {len(plan.files)} files."
            )
            if total_failed:
                click.echo(f"   {total_failed} elements failed to index (see log).", err=True)

    if plan.sub_scans:
        click.echo(
            f"\nFound {len(plan.sub_scans)} directories with their own {CONFIG_FILE_NAME}. "
            "Running sub-scans..."
        )
        for sub_path in plan.sub_scans:
            click.echo(f"\n--- Sub-scan for {_relative(sub_path)} ---")
            try:
                total_indexed += run_scan(
                    sub_path,
                    regex=regex,
                    url=url,
                    wipe=False,
                    batch=batch,
                    interactive=False,
                )
            except (DryScanError, OSError) as e:
                raise DryScanError(f"Sub-scan for {sub_path} failed: {e}") from e

    return total_indexed


@cli.command()
@click.argument("path", type=click.Path(path_type=Path))
@click.option("-r", "--regex", default=None, help="Regex to match element signatures (overrides config)")
@click.option("--init", is_flag=True, help=f"Create a {CONFIG_FILE_NAME} in PATH")
@click.option("--wipe/--no-wipe", default=True, help="Wipe previous scans before indexing")
@click.option("-u", "--url", default=None, help="DRY server URL (overrides config)")
@click.option("--batch/--no-batch", default=True, help="Submit each file's elements in one request")
def scan(path: Path, regex: Optional[str], init: bool, wipe: bool, url: Optional[str], batch: bool):
    """Scan a file or directory for elements and index them."""
    try:
        run_scan(path, regex=regex, init=init, wipe=wipe, url=url, batch=batch)
    except (DryScanError, OSError) as e:
        fail(str(e))


# ---------------------------------------------------------------------------
# discover
# ---------------------------------------------------------------------------

@cli.command()
@click.argument("path", default=".", type=click.Path(path_type=Path))
@click.option(
    "--ignore-files",
    default=",".join(DEFAULT_IGNORE_FILES),
    show_default=True,
    help="Comma-separated list of ignore files to use",
)
def discover(path: Path, ignore_files: str):
    """Show source extensions in a directory and directories excluded by ignore files."""
    root = path.resolve()
    if not root.exists():
        fail(f"Path does not exist: {root}")
    if not root.is_dir():
        fail(f"Path is not a directory: {root}")

    names = [f.strip() for f in ignore_files.split(",") if f.strip()]

    extensions = detect_extensions(root, DEFAULT_IGNORE, names)
    excluded = excluded_directories(load_ignore_files(root, names))

    extensions_str = ", ".join(f"'{e}'" for e in extensions) if extensions else "(none)"
    excluded_str = ", ".join(f"'{d}'" for d in excluded) if excluded else "(none)"

    click.echo(f"DISCOVERED EXTENSIONS: {extensions_str}")
    click.echo(f"EXCLUDED DIRECTORIES: {excluded_str}")


# ---------------------------------------------------------------------------
# similar / search / wipe
# ---------------------------------------------------------------------------

@cli.command()
@click.option("-t", "--threshold", type=float, default=None, help="Similarity threshold (0-1)")
@click.option("-l", "--limit", type=int, default=None, help="Maximum number of results")
@click.option(
    "--on-exceed",
    type=click.Choice(EXCEED_ACTIONS),
    default=None,
    help="Action when similar matches exceed the limit",
)
@click.option("-u", "--url", default=None, help="DRY server URL (overrides config)")
def similar(threshold: Optional[float], limit: Optional[int], on_exceed: Optional[str], url: Optional[str]):
    """Find the most similar element pairs across all indexed elements."""
    try:
        config = resolve_config(Path.cwd(), url=url, threshold=threshold, limit=limit, on_exceed=on_exceed)

        with DryClient(config.server_url) as client:
            click.echo(f"Using server: {client.server_url}")
            click.echo(
                f"Finding most similar pairs (threshold: {config.threshold}, limit: {config.limit})..."
            )
            # One extra so an exceeded limit is detectable
            pairs = client.find_most_similar_pairs(config.threshold, config.limit + 1)
    except DryScanError as e:
        fail(str(e))
        return

    if not pairs:
        click.echo("No similar element pairs found.")
        return

    shown = pairs[:config.limit]
    more = "more than " if len(pairs) > config.limit else ""
    click.echo(f"Found {more}{len(shown)} similar element pairs:")

    for index, pair in enumerate(shown, 1):
        first, second = pair.element1, pair.element2
        click.echo(f"\n{index}. Similarity: {pair.similarity * 100:.1f}%")
        click.echo(f"   Element 1: {first.metadata.element_name} ({first.metadata.location})")
        click.echo(f"   Element 2: {second.metadata.element_name} ({second.metadata.location})")
        click.echo("   ---")
        click.echo("   Element 1 Snippet:")
        click.echo(_snippet(first, 3))
        click.echo("   Element 2 Snippet:")
        click.echo(_snippet(second, 3))

    handle_exceed(len(pairs), config.limit, config.on_exceed)


@cli.command()
@click.argument("query", nargs=-1, required=True)
@click.option(
    "-t", "--threshold",
    type=float,
    default=DEFAULT_SEARCH_THRESHOLD,
    show_default=True,
    help="Similarity threshold (0-1)",
)
@click.option("-l", "--limit", type=int, default=None, help="Maximum number of results")
@click.option("-u", "--url", default=None, help="DRY server URL (overrides config)")
def search(query, threshold: float, limit: Optional[int], url: Optional[str]):
    """Semantic search for code elements."""
    text = " ".join(query)
    try:
        config = resolve_config(Path.cwd(), url=url, limit=limit)

        with DryClient(config.server_url) as client:
            click.echo(f"Using server: {client.server_url}")
            click.echo(f'Searching for: "{text}" (threshold: {threshold}, limit: {config.limit})...')
            results = client.search(text, threshold, config.limit)
    except DryScanError as e:
        fail(str(e))
        return

    if not results:
        click.echo("No matching elements found.")
        return

    click.echo(f"\nFound {len(results)} results:")
    for index, result in enumerate(results, 1):
        element = result.element
        click.echo(
            f"\n{index}. {element.metadata.element_name} (Similarity: {result.similarity * 100:.1f}%)"
        )
        click.echo(f"   File: {element.metadata.location}")
        click.echo("   ---")
        click.echo(_snippet(element, 5))


@cli.command()
@click.option("-u", "--url", default=None, help="DRY server URL (overrides config)")
def wipe(url: Optional[str]):
    """Delete every indexed element."""
    try:
        config = resolve_config(Path.cwd(), url=url)
        with DryClient(config.server_url) as client:
            deleted = client.wipe_all_elements()
    except DryScanError as e:
        fail(str(e))
        return

    click.echo(f"🗑️  Deleted {deleted} elements.")


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------

@cli.command()
@click.option("--host", default=None, help="Bind address (default: HOST or 0.0.0.0)")
@click.option("--port", type=int, default=None, help="Port (default: PORT or 3000)")
@click.pass_context
def serve(ctx: click.Context, host: Optional[str], port: Optional[int]):
    """Run the indexing service."""
    from dotenv import load_dotenv

    from .config import ServerSettings
    from .server import run

    load_dotenv()
    try:
        settings = ServerSettings.from_env()
    except DryScanError as e:
        fail(str(e))
        return

    override = (ctx.obj or {}).get("log_level")
    setup_logging(override if override is not None else settings.log_level)
    run(settings, host=host, port=port)


def main():
    cli()


if __name__ == "__main__":
    main()
