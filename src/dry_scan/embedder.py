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
Embedding client - turns element text into vectors.

Talks to an OpenAI-compatible /embeddings endpoint. Text longer than the
chunk limit is split on line boundaries, each chunk is embedded separately
and the chunk vectors are averaged.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import List, Mapping, Optional, Sequence
import logging

import httpx
import numpy as np

from .config import ServerSettings, resolve_embedding_model
from .errors import ConfigurationError, ProviderError, ProviderTimeoutError


logger = logging.getLogger(__name__)

MIN_CHUNK_SIZE = 100
DEFAULT_CHUNK_SIZE = 1000
DEFAULT_TIMEOUT = 30.0
DEFAULT_CONCURRENCY = 5


def split_into_chunks(text: str, limit: int) -> List[str]:
    """
    Split text into chunks of at most `limit` characters.

    Lines are packed greedily. A line longer than the limit is cut at limit
    boundaries and its remainder starts the next chunk. Chunks are trimmed
    and empty ones dropped.
    """
    if len(text) <= limit:
        return [text]

    chunks: List[str] = []
    lines = text.split("\n")
    current = ""

    for i, raw_line in enumerate(lines):
        line = raw_line + ("\n" if i < len(lines) - 1 else "")

        if len(line) > limit:
            if current:
                chunks.append(current.strip())
                current = ""
            remaining = line
            while len(remaining) > limit:
                chunks.append(remaining[:limit])
                remaining = remaining[limit:]
            current = remaining
            continue

        if len(current) + len(line) > limit:
            if current:
                chunks.append(current.strip())
            current = line
        else:
            current += line

    if current.strip():
        chunks.append(current.strip())

    return [c for c in chunks if c.strip()]


def average_embeddings(embeddings: Sequence[Sequence[float]]) -> List[float]:
    """
    Element-wise mean of equally sized vectors.

    Raises:
        ProviderError: If the vectors differ in dimensionality
    """
    if not embeddings:
        return []

    dimensions = {len(e) for e in embeddings}
    if len(dimensions) > 1:
        raise ProviderError(
            f"Chunk embeddings have mismatched dimensions: {sorted(dimensions)}"
        )

    matrix = np.asarray(embeddings, dtype=np.float64)
    return matrix.mean(axis=0).tolist()


class EmbeddingClient:
    """Client for an OpenAI-compatible embeddings endpoint."""

    def __init__(
        self,
        api_url: Optional[str],
        api_key: str = "",
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        timeout: float = DEFAULT_TIMEOUT,
        concurrency: int = DEFAULT_CONCURRENCY,
        http_client: Optional[httpx.Client] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self.api_url = api_url
        self.api_key = api_key
        self.chunk_limit = max(MIN_CHUNK_SIZE, chunk_size or DEFAULT_CHUNK_SIZE)
        self.timeout = timeout
        self.concurrency = max(1, concurrency)
        self._environ = environ
        self._owns_client = http_client is None
        self._http = http_client or httpx.Client(
            limits=httpx.Limits(max_connections=self.concurrency * 2),
        )

    @classmethod
    def from_settings(
        cls,
        settings: ServerSettings,
        http_client: Optional[httpx.Client] = None,
    ) -> "EmbeddingClient":
        return cls(
            api_url=settings.embedding_api_url,
            api_key=settings.embedding_api_key,
            chunk_size=settings.embedding_chunk_size,
            timeout=settings.embedding_timeout,
            concurrency=settings.embedding_concurrency,
            http_client=http_client,
        )

    @property
    def model(self) -> str:
        # Resolved per call so a changed deployment override is picked up
        return resolve_embedding_model(self._environ)

    def close(self) -> None:
        if self._owns_client:
            self._http.close()

    def __enter__(self) -> "EmbeddingClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _require_endpoint(self) -> str:
        if not self.api_url:
            raise ConfigurationError("EMBEDDING_API_URL is not configured")
        return self.api_url

    def split_into_chunks(self, text: str) -> List[str]:
        return split_into_chunks(text, self.chunk_limit)

    def _request_embedding(self, url: str, chunk: str) -> List[float]:
        """Embed one chunk. One request, no retries."""
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            response = self._http.post(
                url,
                json={"input": chunk, "model": self.model},
                headers=headers,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(
                f"Embedding request timed out after {self.timeout}s"
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"Embedding request failed: {e}") from e

        if not response.is_success:
            raise ProviderError(
                f"Embedding API error ({response.status_code}): {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            data = response.json()
            embedding = data["data"][0]["embedding"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ProviderError(
                "Invalid response format from embedding API",
                status_code=response.status_code,
                body=response.text,
            ) from e

        if not isinstance(embedding, list):
            raise ProviderError(
                "Invalid response format from embedding API",
                status_code=response.status_code,
                body=response.text,
            )

        return [float(x) for x in embedding]

    def embed(self, text: str) -> List[float]:
        """
        Embed a single text, chunking and averaging when it is too long.

        Raises:
            ConfigurationError: If no endpoint is configured
            ProviderTimeoutError: If any chunk request times out
            ProviderError: On a failed or malformed provider response
        """
        url = self._require_endpoint()
        chunks = self.split_into_chunks(text)

        if len(chunks) > 1:
            logger.debug(f"Embedding {len(text)} chars as {len(chunks)} chunks")

        embeddings = [self._request_embedding(url, chunk) for chunk in chunks]

        if len(embeddings) == 1:
            return embeddings[0]

        return average_embeddings(embeddings)

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        """
        Embed many texts with at most `concurrency` requests in flight.

        Output order matches input order. Any failure fails the whole batch.
        """
        self._require_endpoint()

        if not texts:
            return []

        results: List[Optional[List[float]]] = [None] * len(texts)
        workers = min(self.concurrency, len(texts))

        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {
                executor.submit(self.embed, text): index
                for index, text in enumerate(texts)
            }

            for future in as_completed(futures):
                try:
                    results[futures[future]] = future.result()
                except Exception:
                    # Queued items are dropped; items already running finish on their own
                    for pending in futures:
                        pending.cancel()
                    raise

        return results  # type: ignore[return-value]
