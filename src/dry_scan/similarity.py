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
Similarity engine - exact cosine similarity over every stored vector.

No approximate index: each query scans the full working set. Vectors of
different dimensionality score 0 against each other.

Ties keep their input order (records come back in insertion order and
Python's sort is stable).
"""

from collections import defaultdict
from typing import Dict, List, Sequence
import logging

import numpy as np
from sklearn.metrics.pairwise import cosine_similarity as pairwise_cosine

from .errors import NotFoundError
from .models import ElementData, EmbeddingIndex, SearchResult, SimilarPair
from .store import VectorStore


logger = logging.getLogger(__name__)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine of the angle between two vectors, in [-1, 1].

    Returns 0.0 when the lengths differ or either vector has zero magnitude.
    """
    if len(a) != len(b):
        return 0.0

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)

    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    similarity = float(np.dot(va, vb) / (norm_a * norm_b))
    return max(-1.0, min(1.0, similarity))


def similarity_matrix(vectors: Sequence[Sequence[float]]) -> np.ndarray:
    """
    Pairwise cosine similarity for a list of vectors.

    Vectors are grouped by dimensionality; pairs across groups stay 0.
    """
    n = len(vectors)
    matrix = np.zeros((n, n), dtype=np.float64)

    groups: Dict[int, List[int]] = defaultdict(list)
    for idx, vector in enumerate(vectors):
        groups[len(vector)].append(idx)

    for dimension, indices in groups.items():
        if dimension == 0:
            continue
        block = pairwise_cosine(np.asarray([vectors[i] for i in indices], dtype=np.float64))
        matrix[np.ix_(indices, indices)] = block

    return np.clip(matrix, -1.0, 1.0)


def _rank(scored: list, limit: int) -> list:
    """Sort (similarity, item) pairs, best first, and truncate."""
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return scored[:max(limit, 0)]


class SimilarityService:
    """Similarity queries against the vector store."""

    def __init__(self, store: VectorStore):
        self.store = store

    def find_similar(self, target_id: str, threshold: float, limit: int) -> List[ElementData]:
        """
        Elements similar to a stored element, best first.

        The target itself is never returned.

        Raises:
            NotFoundError: If target_id is not stored
        """
        target = self.store.get(target_id)
        if target is None:
            raise NotFoundError(f"Element with ID {target_id} not found")

        scored = []
        for item in self.store.get_all():
            if item.id == target_id:
                continue
            similarity = cosine_similarity(target.embedding, item.embedding)
            if similarity >= threshold:
                scored.append((similarity, item.element_data))

        return [element for _, element in _rank(scored, limit)]

    def find_most_similar_pairs(self, threshold: float, limit: int) -> List[SimilarPair]:
        """
        The most similar unordered pairs across all stored elements.

        Every pair i < j is scored once, so (x, x) and mirrored pairs never
        appear.
        """
        records: List[EmbeddingIndex] = self.store.get_all()
        if len(records) < 2:
            return []

        matrix = similarity_matrix([r.embedding for r in records])
        rows, cols = np.triu_indices(len(records), k=1)

        scored = []
        for i, j in zip(rows.tolist(), cols.tolist()):
            similarity = float(matrix[i, j])
            if similarity >= threshold:
                scored.append((similarity, (i, j)))

        logger.debug(f"Scored {len(rows)} pairs, {len(scored)} above {threshold}")

        return [
            SimilarPair(
                element1=records[i].element_data,
                element2=records[j].element_data,
                similarity=similarity,
            )
            for similarity, (i, j) in _rank(scored, limit)
        ]

    def search_by_vector(
        self,
        query_embedding: Sequence[float],
        threshold: float,
        limit: int,
    ) -> List[SearchResult]:
        """Stored elements scored against an arbitrary query vector."""
        scored = []
        for item in self.store.get_all():
            similarity = cosine_similarity(query_embedding, item.embedding)
            if similarity >= threshold:
                scored.append((similarity, item.element_data))

        return [
            SearchResult(element=element, similarity=similarity)
            for similarity, element in _rank(scored, limit)
        ]
