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

"""Shared fixtures: fake embedding provider, in-memory store, test app."""

import json
import threading
from typing import Callable, Dict, List, Optional, Sequence

import httpx
import pytest
from fastapi.testclient import TestClient

from dry_scan.config import ServerSettings
from dry_scan.embedder import EmbeddingClient
from dry_scan.models import ElementData, ElementMetadata
from dry_scan.server import create_app
from dry_scan.store import VectorStore


PROVIDER_URL = "http://provider.test/v1/embeddings"


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProvider:
    """
    Stand-in for an OpenAI-compatible embeddings endpoint.

    Vectors come from `vectors` when the input text is listed there,
    otherwise from `default`. Every request is recorded.
    """

    def __init__(
        self,
        vectors: Optional[Dict[str, List[float]]] = None,
        default: Optional[Callable[[str], List[float]]] = None,
    ):
        self.vectors = dict(vectors or {})
        self.default = default or (lambda text: [float(len(text)), 1.0, 0.0])
        self.requests: List[dict] = []
        self.headers: List[httpx.Headers] = []
        self._lock = threading.Lock()

    @property
    def inputs(self) -> List[str]:
        return [r["input"] for r in self.requests]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        with self._lock:
            self.requests.append(body)
            self.headers.append(request.headers)
        text = body["input"]
        vector = self.vectors.get(text)
        if vector is None:
            vector = self.default(text)
        return httpx.Response(200, json={"data": [{"embedding": vector}]})


def make_element(
    name: str = "hello",
    line: int = 1,
    text: Optional[str] = None,
    file_hash: Optional[str] = None,
    file_path: str = "src/app.ts",
) -> ElementData:
    return ElementData(
        metadata=ElementMetadata(
            file_path=file_path,
            line_number=line,
            element_name=name,
            file_hash=file_hash,
        ),
        element_string=text if text is not None else f"function {name}() {{ return 1; }}",
    )


def make_embedder(provider: Callable, **kwargs) -> EmbeddingClient:
    http_client = httpx.Client(transport=httpx.MockTransport(provider))
    kwargs.setdefault("environ", {})
    return EmbeddingClient(PROVIDER_URL, http_client=http_client, **kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    vector_store = VectorStore(":memory:", clock=clock)
    yield vector_store
    vector_store.close()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def embedder(provider):
    client = make_embedder(provider)
    yield client
    client._http.close()


@pytest.fixture
def settings():
    return ServerSettings(embedding_api_url=PROVIDER_URL, db_path=":memory:")


@pytest.fixture
def api(settings, store, embedder):
    """TestClient for the indexing service backed by the in-memory store."""
    app = create_app(settings, store=store, embedder=embedder)
    with TestClient(app) as test_client:
        yield test_client


def element_payload(element: ElementData) -> dict:
    return element.to_dict()


def payloads(elements: Sequence[ElementData]) -> List[dict]:
    return [element_payload(e) for e in elements]
