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
Element extractor - finds element signatures and recovers their bodies.

Signatures are recognized by regex patterns rather than a parser. The body
is whatever brace-balanced block follows the signature. Comments only matter
for the signature position: braces inside comments in the body still count.
"""

import re
from pathlib import Path
from typing import Iterable, List, Optional, Pattern, Set, Union

from .errors import ValidationError
from .models import ElementData, ElementMetadata


PatternLike = Union[str, Pattern[str]]


def compile_patterns(patterns: Iterable[PatternLike]) -> List[Pattern[str]]:
    """
    Compile signature patterns (case-sensitive, multi-line).

    Raises:
        ValidationError: If a pattern is not a valid regular expression
    """
    compiled = []
    for pattern in patterns:
        if isinstance(pattern, re.Pattern):
            compiled.append(pattern)
            continue
        try:
            compiled.append(re.compile(pattern, re.MULTILINE))
        except re.error as e:
            raise ValidationError(f"Invalid signature pattern {pattern!r}: {e}") from e
    return compiled


def is_inside_comment(content: str, position: int) -> bool:
    """
    Check whether a position sits inside a // or /* */ comment.

    A // anywhere earlier on the same line counts. For block comments, the
    nearest /* before the position must not be closed before it.
    """
    line_start = content.rfind("\n", 0, position) + 1
    if "//" in content[line_start:position]:
        return True

    opener = content.rfind("/*", 0, position)
    if opener == -1:
        return False

    # A closer whose '/' lands exactly on the position still closes the comment
    closer = content.find("*/", opener + 2, position + 1)
    return closer == -1


def find_body_start(content: str, offset: int) -> int:
    """
    Find the first unescaped '{' at or after offset.

    Returns -1 when a ';' or a '}' shows up first (a declaration without a
    body) or when no brace follows at all.
    """
    for i in range(offset, len(content)):
        char = content[i]
        if char == "{":
            if i > 0 and content[i - 1] == "\\":
                continue
            return i
        if char == ";" or char == "}":
            return -1
    return -1


def find_body_end(content: str, body_start: int) -> int:
    """
    Balance braces from body_start. Returns the index just past the matching
    '}', or -1 if the block never closes.
    """
    depth = 0
    for i in range(body_start, len(content)):
        char = content[i]
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
        if depth == 0:
            return i + 1
    return -1


def extract_elements(
    content: str,
    include_patterns: Iterable[PatternLike],
    exclude_patterns: Optional[Iterable[PatternLike]] = None,
    file_path: str = "",
    file_hash: Optional[str] = None,
    commit_hash: Optional[str] = None,
    base_path: Optional[str] = None,
) -> List[ElementData]:
    """
    Extract elements from source text.

    Args:
        content: Full file content
        include_patterns: Signature patterns. Capture group 1, when present
            and non-empty, names the element.
        exclude_patterns: Signatures matching any of these are skipped
        file_path: Path recorded in each element's metadata
        file_hash: Content hash recorded in metadata (drives cache keys)
        commit_hash: Commit recorded in metadata
        base_path: Scan root recorded in metadata

    Returns:
        List of ElementData, in pattern order then match order
    """
    includes = compile_patterns(include_patterns)
    excludes = compile_patterns(exclude_patterns or [])

    elements: List[ElementData] = []
    claimed: Set[int] = set()

    for pattern in includes:
        for match in pattern.finditer(content):
            signature = match.group(0)

            if any(exclude.search(signature) for exclude in excludes):
                continue

            start = match.start()
            if start in claimed:
                continue

            if is_inside_comment(content, start):
                continue

            name = match.group(1) if pattern.groups >= 1 else None
            if not name:
                name = signature.strip()

            body_start = find_body_start(content, match.end())
            if body_start == -1:
                continue

            body_end = find_body_end(content, body_start)
            if body_end == -1:
                continue

            line_number = content.count("\n", 0, start) + 1

            elements.append(ElementData(
                metadata=ElementMetadata(
                    file_path=file_path,
                    line_number=line_number,
                    element_name=name,
                    commit_hash=commit_hash,
                    file_hash=file_hash,
                    base_path=base_path,
                ),
                element_string=content[start:body_end],
            ))
            claimed.add(start)

    return elements


def extract_file(
    file_path: Path,
    include_patterns: Iterable[PatternLike],
    exclude_patterns: Optional[Iterable[PatternLike]] = None,
    display_path: Optional[str] = None,
    file_hash: Optional[str] = None,
    commit_hash: Optional[str] = None,
    base_path: Optional[str] = None,
) -> List[ElementData]:
    """Read a file and extract its elements."""
    content = Path(file_path).read_text(encoding="utf-8", errors="replace")
    return extract_elements(
        content,
        include_patterns,
        exclude_patterns,
        file_path=display_path if display_path is not None else str(file_path),
        file_hash=file_hash,
        commit_hash=commit_hash,
        base_path=base_path,
    )
