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
DRY Scan - Index code elements and find near-duplicate code.

A scanning client extracts functions and similar elements from a codebase
with signature patterns and brace balancing. An indexing service embeds
them, stores the vectors and answers similarity queries.
"""

__version__ = "0.1.0"

from .models import ElementMetadata, ElementData, EmbeddingIndex, SimilarPair, SearchResult
from .extractor import extract_elements, extract_file
from .embedder import EmbeddingClient
from .store import VectorStore
from .similarity import cosine_similarity, SimilarityService
from .indexing import IndexingCoordinator
from .client import DryClient
from .config import ServerSettings, ScanConfig, load_config, find_config_file

__all__ = [
    "__version__",
    "ElementMetadata",
    "ElementData",
    "EmbeddingIndex",
    "SimilarPair",
    "SearchResult",
    "extract_elements",
    "extract_file",
    "EmbeddingClient",
    "VectorStore",
    "cosine_similarity",
    "SimilarityService",
    "IndexingCoordinator",
    "DryClient",
    "ServerSettings",
    "ScanConfig",
    "load_config",
    "find_config_file",
]
