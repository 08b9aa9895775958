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
Data models for dry-scan.

Wire format uses the camelCase field names shared by the scanning client
and the indexing service.
"""

from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, Tuple


CacheKey = Tuple[str, str, int]


@dataclass(frozen=True)
class ElementMetadata:
    """Where an element was found."""

    file_path: str                     # Path as reported by the scanner
    line_number: int                   # Line of the signature match (1-indexed)
    element_name: str                  # Capture group 1, or the trimmed signature
    commit_hash: Optional[str] = None  # HEAD of the scanned repo, if any
    file_hash: Optional[str] = None    # sha256 of the file content
    base_path: Optional[str] = None    # Root the scan was started from

    @property
    def location(self) -> str:
        """Human-readable location string."""
        return f"{self.file_path}:{self.line_number}"

    @property
    def cache_key(self) -> Optional[CacheKey]:
        """Embedding cache key, or None when the file hash is unknown."""
        if not self.file_hash:
            return None
        return (self.file_hash, self.element_name, self.line_number)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "filePath": self.file_path,
            "lineNumber": self.line_number,
            "elementName": self.element_name,
        }
        if self.commit_hash is not None:
            data["commitHash"] = self.commit_hash
        if self.file_hash is not None:
            data["fileHash"] = self.file_hash
        if self.base_path is not None:
            data["basePath"] = self.base_path
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ElementMetadata":
        return cls(
            file_path=data.get("filePath", ""),
            line_number=int(data.get("lineNumber", 0)),
            element_name=data.get("elementName", ""),
            commit_hash=data.get("commitHash"),
            file_hash=data.get("fileHash"),
            base_path=data.get("basePath"),
        )


@dataclass(frozen=True)
class ElementData:
    """An extracted element: its metadata plus the exact source slice."""

    metadata: ElementMetadata
    element_string: str

    @property
    def line_count(self) -> int:
        """Number of lines in the element."""
        return self.element_string.count("\n") + 1

    def preview(self, max_lines: int = 3) -> str:
        """First few lines of the element."""
        return "\n".join(self.element_string.split("\n")[:max_lines])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metadata": self.metadata.to_dict(),
            "elementString": self.element_string,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ElementData":
        return cls(
            metadata=ElementMetadata.from_dict(data.get("metadata") or {}),
            element_string=data.get("elementString", ""),
        )


@dataclass(frozen=True)
class EmbeddingIndex:
    """A stored record. The id is the only external handle to it."""

    id: str
    element_data: ElementData
    embedding: List[float] = field(default_factory=list)

    @property
    def dimension(self) -> int:
        return len(self.embedding)


@dataclass(frozen=True)
class SimilarPair:
    """Two stored elements and their cosine similarity."""

    element1: ElementData
    element2: ElementData
    similarity: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "element1": self.element1.to_dict(),
            "element2": self.element2.to_dict(),
            "similarity": self.similarity,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SimilarPair":
        return cls(
            element1=ElementData.from_dict(data["element1"]),
            element2=ElementData.from_dict(data["element2"]),
            similarity=float(data["similarity"]),
        )


@dataclass(frozen=True)
class SearchResult:
    """A stored element scored against a query vector."""

    element: ElementData
    similarity: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "element": self.element.to_dict(),
            "similarity": self.similarity,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SearchResult":
        return cls(
            element=ElementData.from_dict(data["element"]),
            similarity=float(data["similarity"]),
        )
