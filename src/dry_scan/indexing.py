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
Indexing coordinator - cache-or-embed, then store.

Elements carrying a file hash are looked up in the embedding cache first;
only misses reach the embedding provider. A batch either stores every
element or none of them.
"""

import uuid
from typing import List, Optional, Sequence
import logging

from .embedder import EmbeddingClient
from .errors import ValidationError
from .models import ElementData, EmbeddingIndex
from .store import VectorStore


logger = logging.getLogger(__name__)


def _require_text(element: ElementData, position: Optional[int] = None) -> None:
    if not element.element_string:
        where = f" at index {position}" if position is not None else ""
        raise ValidationError(f"elementString is required{where}")


class IndexingCoordinator:
    """Turns submitted elements into stored records."""

    def __init__(self, store: VectorStore, embedder: EmbeddingClient):
        self.store = store
        self.embedder = embedder

    def index_element(self, element: ElementData) -> str:
        """
        Embed (or reuse a cached vector for) one element and store it.

        Returns:
            The new record id
        """
        _require_text(element)

        key = element.metadata.cache_key
        embedding = self.store.get_cached(*key) if key else None

        if embedding is None:
            embedding = self.embedder.embed(element.element_string)
            if key:
                self.store.set_cached(*key, embedding)
        else:
            logger.debug(f"Cache hit for {element.metadata.location}")

        record_id = str(uuid.uuid4())
        self.store.store(EmbeddingIndex(id=record_id, element_data=element, embedding=embedding))
        return record_id

    def index_batch(self, elements: Sequence[ElementData]) -> List[str]:
        """
        Index many elements with one provider batch and one store write.

        Returns:
            Record ids aligned with the input order

        Raises:
            ValidationError: If any element has no text (nothing is stored)
        """
        if not elements:
            return []

        for i, element in enumerate(elements):
            _require_text(element, i)

        keys = [element.metadata.cache_key for element in elements]
        embeddings = self.store.get_cached_batch(keys)

        uncached_indices = [i for i, emb in enumerate(embeddings) if emb is None]
        cache_hits = len(elements) - len(uncached_indices)
        logger.info(
            f"Batch of {len(elements)}: {cache_hits} cache hits, "
            f"{len(uncached_indices)} to embed"
        )

        if uncached_indices:
            fresh = self.embedder.embed_batch(
                [elements[i].element_string for i in uncached_indices]
            )

            to_cache = []
            for i, embedding in zip(uncached_indices, fresh):
                embeddings[i] = embedding
                if keys[i] is not None:
                    to_cache.append((keys[i], embedding))
            self.store.set_cached_batch(to_cache)

        records = [
            EmbeddingIndex(id=str(uuid.uuid4()), element_data=element, embedding=embedding)
            for element, embedding in zip(elements, embeddings)
        ]
        self.store.store_batch(records)

        return [record.id for record in records]
