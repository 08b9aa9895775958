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
Codebase walker - finds source files and turns them into elements.

Directories holding their own dry-scan.toml are not descended into; they
are reported as sub-scans and scanned separately with their own config.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Set
import fnmatch
import hashlib
import logging
import os
import re

from .client import DryClient
from .config import CONFIG_FILE_NAME, DEFAULT_IGNORE, ScanConfig, load_ignore_files
from .errors import DryScanError
from .extractor import extract_elements
from .languages import supported_extensions
from .models import ElementData


logger = logging.getLogger(__name__)

# Reported by detect_extensions even without built-in patterns
COMMON_SOURCE_EXTENSIONS = {"py", "go", "rs", "cpp", "c", "h", "java", "rb"}

_EXTENSION_RE = re.compile(r"^[a-z0-9]{1,4}$")


@dataclass
class ScanPlan:
    """Files to scan here, plus directories that carry their own config."""

    files: List[Path] = field(default_factory=list)
    sub_scans: List[Path] = field(default_factory=list)


@dataclass
class SubmitReport:
    indexed: int = 0
    failed: int = 0
    ids: List[str] = field(default_factory=list)


def _extension(path: Path) -> str:
    return path.suffix.lower().lstrip(".")


def is_ignored(relative_path: str, patterns: Iterable[str]) -> bool:
    """
    Match a root-relative path against ignore patterns.

    A pattern ending in '/' names a directory at any depth. A pattern
    without a slash also matches the bare file or directory name. Negated
    patterns ("!foo") are not supported and never match.
    """
    rel = relative_path.replace("\\", "/")
    name = rel.rsplit("/", 1)[-1]

    for pattern in patterns:
        if not pattern or pattern.startswith("!"):
            continue

        if pattern.endswith("/"):
            dir_pattern = pattern.strip("/")
            if not dir_pattern:
                continue
            if (fnmatch.fnmatch(rel, dir_pattern)
                    or fnmatch.fnmatch(rel, f"{dir_pattern}/*")
                    or fnmatch.fnmatch(rel, f"*/{dir_pattern}")
                    or fnmatch.fnmatch(rel, f"*/{dir_pattern}/*")):
                return True
            continue

        pattern = pattern.lstrip("/")
        if fnmatch.fnmatch(rel, pattern):
            return True
        if "/" not in pattern and fnmatch.fnmatch(name, pattern):
            return True

    return False


def collect_files(
    root_path: Path,
    extensions: Sequence[str],
    ignore_patterns: Sequence[str],
) -> ScanPlan:
    """
    Walk root_path for files with the given extensions.

    Args:
        root_path: Directory to walk
        extensions: Extensions without the dot
        ignore_patterns: Patterns matched against root-relative paths

    Returns:
        ScanPlan with files in sorted walk order
    """
    root_path = Path(root_path)
    wanted = {e.lower().lstrip(".") for e in extensions}
    plan = ScanPlan()

    def walk(directory: Path) -> None:
        try:
            entries = sorted(directory.iterdir())
        except OSError as e:
            logger.warning(f"Cannot read directory {directory}: {e}")
            return

        for entry in entries:
            rel = entry.relative_to(root_path).as_posix()
            if is_ignored(rel, ignore_patterns):
                continue

            if entry.is_dir():
                if (entry / CONFIG_FILE_NAME).is_file():
                    plan.sub_scans.append(entry)
                else:
                    walk(entry)
            elif entry.is_file() and _extension(entry) in wanted:
                plan.files.append(entry)

    walk(root_path)
    return plan


def detect_extensions(
    root_path: Path,
    ignore_patterns: Sequence[str] = DEFAULT_IGNORE,
    use_ignore_files: Sequence[str] = (),
) -> List[str]:
    """
    Extensions present under root_path that look like source code.

    Only extensions with built-in patterns, or common source extensions,
    are reported.
    """
    root_path = Path(root_path)
    patterns = list(ignore_patterns)
    if use_ignore_files:
        patterns.extend(load_ignore_files(root_path, use_ignore_files))

    found: Set[str] = set()
    for dirpath, dirnames, filenames in os.walk(root_path):
        current = Path(dirpath)
        # Prune ignored directories in place so os.walk skips them
        dirnames[:] = [
            d for d in dirnames
            if not is_ignored((current / d).relative_to(root_path).as_posix(), patterns)
        ]
        for name in filenames:
            path = current / name
            if is_ignored(path.relative_to(root_path).as_posix(), patterns):
                continue
            ext = _extension(path)
            if _EXTENSION_RE.match(ext):
                found.add(ext)

    supported = set(supported_extensions()) | COMMON_SOURCE_EXTENSIONS
    return sorted(ext for ext in found if ext in supported)


def excluded_directories(ignore_patterns: Iterable[str]) -> List[str]:
    """
    Directory names that ignore patterns appear to exclude.

    Heuristic: only patterns that clearly name a directory are reported.
    """
    excluded: Set[str] = set()

    for pattern in ignore_patterns:
        dir_name: Optional[str] = None

        if pattern.endswith("/"):
            dir_name = pattern[:-1]
        elif pattern.startswith("/"):
            dir_name = pattern[1:]
        elif "**/" in pattern:
            match = re.search(r"\*\*/([^/*?]+)", pattern)
            if match:
                dir_name = match.group(1)
        elif not any(c in pattern for c in "*?/"):
            # Bare names with a dot are more likely files
            if "." not in pattern:
                dir_name = pattern
        elif "/" in pattern and not any(c in pattern for c in "*?"):
            parts = [p for p in pattern.split("/") if p and "." not in p]
            if parts:
                dir_name = parts[-1]

        if dir_name and "." not in dir_name and 0 < len(dir_name) < 50:
            excluded.add(dir_name)

    return sorted(excluded)


def file_hash(path: Path) -> str:
    """sha256 of the file's bytes."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for block in iter(lambda: f.read(65536), b""):
            digest.update(block)
    return digest.hexdigest()


def extract_from_file(
    file_path: Path,
    root_path: Path,
    config: ScanConfig,
    regex: Optional[str] = None,
    commit_hash: Optional[str] = None,
) -> List[ElementData]:
    """
    Extract elements from one file using the configured patterns.

    A --regex override replaces the include patterns and drops the
    excludes. Paths in metadata are relative to root_path.
    """
    if regex:
        include, exclude = [regex], []
    else:
        include, exclude = config.patterns_for(_extension(file_path))

    content = Path(file_path).read_text(encoding="utf-8", errors="replace")
    try:
        display = Path(file_path).relative_to(root_path).as_posix()
    except ValueError:
        display = Path(file_path).name

    return extract_elements(
        content,
        include,
        exclude,
        file_path=display,
        file_hash=file_hash(file_path),
        commit_hash=commit_hash,
        base_path=str(root_path),
    )


def submit_elements(
    client: DryClient,
    elements: Sequence[ElementData],
    batch: bool = True,
) -> SubmitReport:
    """
    Submit elements to the indexing service, best effort.

    In batch mode the whole list goes in one request; a failed batch
    counts every element as failed. Otherwise each element is sent on its
    own and failures are skipped. Failures are logged, never raised.
    """
    report = SubmitReport()
    if not elements:
        return report

    if batch:
        try:
            report.ids = client.submit_batch(elements)
            report.indexed = len(report.ids)
        except DryScanError as e:
            logger.error(f"Failed to index batch of {len(elements)} elements: {e}")
            report.failed = len(elements)
        return report

    for element in elements:
        try:
            report.ids.append(client.submit_element(element))
            report.indexed += 1
        except DryScanError as e:
            logger.error(f"Failed to index {element.metadata.element_name}: {e}")
            report.failed += 1

    return report


def ignore_patterns_for(root_path: Path, config: ScanConfig) -> List[str]:
    """Config ignore patterns plus those read from ignore files."""
    return list(config.ignore) + load_ignore_files(root_path, config.use_ignore_files)
