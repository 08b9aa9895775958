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

"""Tests for chunking, averaging and the embedding client."""

import json
import threading
import time

import httpx
import pytest

from dry_scan.config import ServerSettings
from dry_scan.embedder import EmbeddingClient, average_embeddings, split_into_chunks
from dry_scan.errors import ConfigurationError, ProviderError, ProviderTimeoutError

from conftest import PROVIDER_URL, FakeProvider, make_embedder


def long_text(lines: int = 50, width: int = 49) -> str:
    """`lines` lines of `width` chars joined by newlines (lines*(width+1)-1 chars)."""
    return "\n".join(f"{i:0{width}d}" for i in range(lines))


class TestSplitIntoChunks:

    def test_short_text_is_one_chunk(self):
        assert split_into_chunks("abc", 1000) == ["abc"]

    def test_exact_limit_is_one_chunk(self):
        text = "x" * 1000
        assert split_into_chunks(text, 1000) == [text]

    def test_2500_chars_split_into_three_chunks_on_line_boundaries(self):
        text = long_text()  # 50 lines of 50 chars with newline = 2499 chars
        text += "\n"         # 2500
        assert len(text) == 2500

        chunks = split_into_chunks(text, 1000)

        assert len(chunks) == 3
        assert all(len(c) <= 1000 for c in chunks)
        original_lines = set(text.split("\n")) - {""}
        for chunk in chunks:
            for line in chunk.split("\n"):
                assert line in original_lines

    def test_overlong_line_is_force_split(self):
        text = "a" * 250 + "\nshort"
        chunks = split_into_chunks(text, 100)
        assert chunks[0] == "a" * 100
        assert chunks[1] == "a" * 100
        # Remainder of the long line starts the next chunk
        assert chunks[2].startswith("a" * 50)
        assert "short" in chunks[-1]

    def test_whitespace_only_chunks_are_dropped(self):
        text = " " * 150 + "\n" + "b" * 20
        chunks = split_into_chunks(text, 100)
        assert all(c.strip() for c in chunks)


class TestAverageEmbeddings:

    def test_element_wise_mean(self):
        assert average_embeddings([[1.0, 2.0], [3.0, 4.0], [5.0, 6.0]]) == [3.0, 4.0]

    def test_mismatched_dimensions_fail_fast(self):
        with pytest.raises(ProviderError, match="mismatched dimensions"):
            average_embeddings([[1.0, 2.0], [1.0, 2.0, 3.0]])


class TestEmbed:

    def test_single_request_payload(self, provider):
        client = make_embedder(provider, api_key="secret", environ={"EMBEDDING_MODEL": "my-model"})

        assert client.embed("function a() {}") == [15.0, 1.0, 0.0]

        assert provider.requests == [{"input": "function a() {}", "model": "my-model"}]
        assert provider.headers[0]["authorization"] == "Bearer secret"

    def test_no_authorization_header_without_key(self, provider, embedder):
        embedder.embed("x")
        assert "authorization" not in provider.headers[0]

    def test_model_resolution_order(self, provider):
        client = make_embedder(provider, environ={"EMBEDDINGGEMMA_MODEL": "gemma"})
        assert client.model == "gemma"

        client = make_embedder(provider, environ={"EMBEDDING_MODEL": "manual", "EMBEDDINGGEMMA_MODEL": "gemma"})
        assert client.model == "manual"

        client = make_embedder(provider, environ={})
        assert client.model == "text-embedding-3-small"

    def test_chunked_text_is_averaged(self):
        text = long_text() + "\n"
        chunks = split_into_chunks(text, 1000)
        vectors = {chunk: [float(i), float(i * 2), 1.0] for i, chunk in enumerate(chunks)}
        provider = FakeProvider(vectors=vectors)
        client = make_embedder(provider, chunk_size=1000)

        result = client.embed(text)

        assert len(provider.requests) == 3
        assert result == pytest.approx([1.0, 2.0, 1.0])

    def test_chunk_size_has_a_floor(self, provider):
        client = make_embedder(provider, chunk_size=10)
        assert client.chunk_limit == 100

    def test_missing_endpoint_raises_configuration_error(self, provider):
        client = EmbeddingClient(None, http_client=httpx.Client(transport=httpx.MockTransport(provider)))
        with pytest.raises(ConfigurationError):
            client.embed("x")
        with pytest.raises(ConfigurationError):
            client.embed_batch(["x"])
        assert provider.requests == []

    def test_non_2xx_raises_provider_error_with_details(self):
        def handler(request):
            return httpx.Response(503, text="overloaded")

        client = make_embedder(handler)
        with pytest.raises(ProviderError) as info:
            client.embed("x")

        assert info.value.status_code == 503
        assert info.value.body == "overloaded"
        assert not info.value.retryable

    def test_malformed_response_raises_provider_error(self):
        def handler(request):
            return httpx.Response(200, json={"data": []})

        client = make_embedder(handler)
        with pytest.raises(ProviderError, match="Invalid response format"):
            client.embed("x")

    def test_timeout_is_retryable_provider_error(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        client = make_embedder(handler)
        with pytest.raises(ProviderTimeoutError) as info:
            client.embed("x")
        assert info.value.retryable

    def test_timeout_aborts_chunked_embed(self):
        text = long_text() + "\n"
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 2:
                raise httpx.ReadTimeout("timed out", request=request)
            return httpx.Response(200, json={"data": [{"embedding": [1.0, 1.0]}]})

        client = make_embedder(handler, chunk_size=1000)
        with pytest.raises(ProviderTimeoutError):
            client.embed(text)
        assert len(calls) == 2

    def test_from_settings(self, provider):
        settings = ServerSettings(
            embedding_api_url=PROVIDER_URL,
            embedding_api_key="k",
            embedding_chunk_size=500,
            embedding_timeout=5.0,
            embedding_concurrency=2,
        )
        client = EmbeddingClient.from_settings(
            settings,
            http_client=httpx.Client(transport=httpx.MockTransport(provider)),
        )
        assert client.api_url == PROVIDER_URL
        assert client.chunk_limit == 500
        assert client.timeout == 5.0
        assert client.concurrency == 2


class TestEmbedBatch:

    def test_output_order_matches_input_despite_completion_order(self):
        # Earlier inputs take longer, so they finish last
        def handler(request):
            index = int(json.loads(request.content)["input"])
            time.sleep(0.01 * (5 - index))
            return httpx.Response(200, json={"data": [{"embedding": [float(index), 0.0]}]})

        client = make_embedder(handler, concurrency=5)
        result = client.embed_batch([str(i) for i in range(5)])

        assert result == [[float(i), 0.0] for i in range(5)]

    def test_concurrency_is_bounded(self):
        lock = threading.Lock()
        state = {"active": 0, "peak": 0}

        def handler(request):
            with lock:
                state["active"] += 1
                state["peak"] = max(state["peak"], state["active"])
            time.sleep(0.01)
            with lock:
                state["active"] -= 1
            return httpx.Response(200, json={"data": [{"embedding": [1.0]}]})

        client = make_embedder(handler, concurrency=2)
        client.embed_batch([str(i) for i in range(8)])

        assert state["peak"] <= 2

    def test_empty_batch(self, embedder, provider):
        assert embedder.embed_batch([]) == []
        assert provider.requests == []

    def test_single_failure_fails_the_batch(self):
        def handler(request):
            if json.loads(request.content)["input"] == "bad":
                return httpx.Response(500, text="boom")
            return httpx.Response(200, json={"data": [{"embedding": [1.0]}]})

        client = make_embedder(handler, concurrency=1)
        with pytest.raises(ProviderError):
            client.embed_batch(["ok", "bad", "ok"])
