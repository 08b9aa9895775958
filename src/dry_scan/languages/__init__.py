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
Default signature patterns per file extension.

Patterns only target brace-delimited languages, since element bodies are
recovered by brace balancing. Config files may override any extension.
"""

from typing import Dict, List, Optional

from .base import LanguagePatterns
from .javascript import PATTERNS as JAVASCRIPT
from .go import PATTERNS as GO
from .java import PATTERNS as JAVA
from .c import PATTERNS as C
from .csharp import PATTERNS as CSHARP
from .kotlin import PATTERNS as KOTLIN
from .php import PATTERNS as PHP
from .rust import PATTERNS as RUST
from .swift import PATTERNS as SWIFT


# Used when nothing is registered for an extension
FALLBACK_PATTERNS = [r"\bfunction\s+(\w+)\s*\("]

_REGISTRY: Dict[str, LanguagePatterns] = {}


def register_patterns(patterns: LanguagePatterns) -> None:
    """Register patterns for every extension they handle."""
    for ext in patterns.extensions:
        _REGISTRY[ext.lower()] = patterns


for _patterns in (JAVASCRIPT, GO, JAVA, C, CSHARP, KOTLIN, PHP, RUST, SWIFT):
    register_patterns(_patterns)


def get_patterns(extension: str) -> Optional[LanguagePatterns]:
    """Look up patterns for an extension like "ts" or ".ts"."""
    return _REGISTRY.get(extension.lower().lstrip("."))


def default_languages() -> Dict[str, List[str]]:
    """Extension -> include patterns, as written to dry-scan.toml."""
    return {ext: list(p.include) for ext, p in sorted(_REGISTRY.items())}


def supported_extensions() -> List[str]:
    return sorted(_REGISTRY)


__all__ = [
    "LanguagePatterns",
    "FALLBACK_PATTERNS",
    "register_patterns",
    "get_patterns",
    "default_languages",
    "supported_extensions",
]
