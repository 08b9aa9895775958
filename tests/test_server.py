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

"""Tests for the indexing service HTTP surface."""

import httpx
import pytest
from fastapi.testclient import TestClient

from dry_scan.errors import ProviderTimeoutError, StoreError
from dry_scan.server import create_app, status_for

from conftest import FakeProvider, make_element, make_embedder, payloads


class TestIndexing:

    def test_post_element_returns_id(self, api, store):
        response = api.post("/elements", json=make_element("hello").to_dict())

        assert response.status_code == 200
        record_id = response.json()["id"]
        assert store.get(record_id).element_data.metadata.element_name == "hello"

    def test_post_element_without_element_string_is_400(self, api):
        body = make_element("hello").to_dict()
        del body["elementString"]

        response = api.post("/elements", json=body)

        assert response.status_code == 400
        assert response.json() == {"error": "elementString is required"}

    def test_post_element_without_metadata_is_400(self, api):
        response = api.post("/elements", json={"elementString": "function a() {}"})

        assert response.status_code == 400
        assert "metadata" in response.json()["error"]

    def test_metadata_round_trips(self, api, store):
        element = make_element("hello", line=4, file_hash="abc")
        body = element.to_dict()
        body["metadata"]["commitHash"] = "deadbeef"
        body["metadata"]["basePath"] = "/repo"

        record_id = api.post("/elements", json=body).json()["id"]

        meta = store.get(record_id).element_data.metadata
        assert meta.file_hash == "abc"
        assert meta.commit_hash == "deadbeef"
        assert meta.base_path == "/repo"

    def test_batch_returns_aligned_ids(self, api, store):
        elements = [make_element(f"fn{i}", line=i + 1) for i in range(3)]

        response = api.post("/elements/batch", json=payloads(elements))

        assert response.status_code == 200
        ids = response.json()["ids"]
        assert [store.get(i).element_data.metadata.element_name for i in ids] == ["fn0", "fn1", "fn2"]

    def test_empty_batch(self, api):
        response = api.post("/elements/batch", json=[])
        assert response.status_code == 200
        assert response.json() == {"ids": []}

    def test_batch_body_must_be_a_list(self, api):
        response = api.post("/elements/batch", json=make_element().to_dict())
        assert response.status_code == 400
        assert "error" in response.json()

    def test_repeat_submission_hits_cache(self, api, provider):
        body = make_element("hello", line=3, file_hash="abc").to_dict()

        api.post("/elements", json=body)
        api.post("/elements", json=body)

        assert len(provider.requests) == 1


class TestDelete:

    def test_delete_after_five_elements(self, api):
        elements = [make_element(f"fn{i}", line=i + 1) for i in range(5)]
        api.post("/elements/batch", json=payloads(elements))

        response = api.delete("/elements")

        assert response.status_code == 200
        assert response.json() == {"success": True, "deletedCount": 5}

        pairs = api.get("/similar/all", params={"threshold": 0.0}).json()
        assert pairs == {"pairs": []}

    def test_delete_keeps_embedding_cache(self, api, provider):
        body = make_element("hello", line=3, file_hash="abc").to_dict()
        api.post("/elements", json=body)
        api.delete("/elements")
        api.post("/elements", json=body)

        assert len(provider.requests) == 1


@pytest.fixture
def seeded_api(settings, store):
    vectors = {
        "function A() {}": [1.0, 0.0],
        "function B() {}": [0.9, 0.1],
        "function C() {}": [0.0, 1.0],
        "find the A one": [1.0, 0.05],
    }
    embedder = make_embedder(FakeProvider(vectors=vectors))
    app = create_app(settings, store=store, embedder=embedder)
    with TestClient(app) as client:
        ids = {}
        for name in "ABC":
            element = make_element(name, text=f"function {name}() {{}}")
            ids[name] = client.post("/elements", json=element.to_dict()).json()["id"]
        client.ids = ids
        yield client


class TestSimilarity:

    def test_similar_all_returns_close_pair(self, seeded_api):
        response = seeded_api.get("/similar/all", params={"threshold": 0.8, "limit": 10})

        assert response.status_code == 200
        pairs = response.json()["pairs"]
        assert len(pairs) == 1
        assert pairs[0]["element1"]["metadata"]["elementName"] == "A"
        assert pairs[0]["element2"]["metadata"]["elementName"] == "B"
        assert pairs[0]["similarity"] > 0.8
        # Absent optional metadata is omitted, not null
        assert "commitHash" not in pairs[0]["element1"]["metadata"]

    def test_similar_all_is_not_captured_as_an_id(self, seeded_api):
        response = seeded_api.get("/similar/all")
        assert response.status_code == 200
        assert "pairs" in response.json()

    def test_similar_by_id(self, seeded_api):
        response = seeded_api.get(f"/similar/{seeded_api.ids['A']}")

        assert response.status_code == 200
        elements = response.json()["similarElements"]
        assert [e["metadata"]["elementName"] for e in elements] == ["B"]
        assert elements[0]["elementString"] == "function B() {}"

    def test_similar_unknown_id_is_404(self, seeded_api):
        response = seeded_api.get("/similar/does-not-exist")

        assert response.status_code == 404
        assert "does-not-exist" in response.json()["error"]

    def test_invalid_threshold_is_400(self, seeded_api):
        response = seeded_api.get("/similar/all", params={"threshold": "high"})
        assert response.status_code == 400

    def test_search(self, seeded_api):
        response = seeded_api.get("/search", params={"q": "find the A one", "threshold": 0.9})

        assert response.status_code == 200
        results = response.json()["results"]
        assert [r["element"]["metadata"]["elementName"] for r in results] == ["A", "B"]
        assert results[0]["similarity"] >= results[1]["similarity"]

    def test_search_without_query_is_400(self, seeded_api):
        response = seeded_api.get("/search")

        assert response.status_code == 400
        assert response.json() == {"error": "Query parameter q is required"}


class TestErrors:

    def test_health(self, api):
        response = api.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["timestamp"]

    def test_provider_failure_is_500_with_message(self, settings, store):
        def handler(request):
            return httpx.Response(502, text="bad gateway")

        app = create_app(settings, store=store, embedder=make_embedder(handler))
        with TestClient(app) as client:
            response = client.post("/elements", json=make_element().to_dict())

        assert response.status_code == 500
        assert "bad gateway" in response.json()["error"]
        assert store.cache_stats()["records"] == 0

    def test_provider_timeout_is_504(self, settings, store):
        def handler(request):
            raise httpx.ConnectTimeout("slow", request=request)

        app = create_app(settings, store=store, embedder=make_embedder(handler))
        with TestClient(app) as client:
            response = client.post("/elements", json=make_element().to_dict())

        assert response.status_code == 504

    def test_missing_endpoint_is_500(self, store):
        from dry_scan.config import ServerSettings

        settings = ServerSettings(embedding_api_url=None, db_path=":memory:")
        app = create_app(settings, store=store)
        with TestClient(app) as client:
            response = client.post("/elements", json=make_element().to_dict())

        assert response.status_code == 500
        assert "EMBEDDING_API_URL" in response.json()["error"]

    def test_status_mapping(self):
        assert status_for(ProviderTimeoutError("t")) == 504
        assert status_for(StoreError("s")) == 500
        assert status_for(RuntimeError("r")) == 500
