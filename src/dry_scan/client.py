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
HTTP client for the indexing service, used by the dry CLI.
"""

import os
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, TypeVar
import logging

import httpx

from .config import DEFAULT_LIMIT, DEFAULT_SEARCH_THRESHOLD, DEFAULT_SERVER_URL, DEFAULT_THRESHOLD
from .errors import DryScanError, ServerResponseError
from .models import ElementData, SearchResult, SimilarPair


logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_REQUEST_TIMEOUT = 120.0


def resolve_server_url(
    server_url: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> str:
    """Explicit URL, then DRY_SERVER_URL, then the default. No trailing slash."""
    if environ is None:
        environ = os.environ
    url = server_url or environ.get("DRY_SERVER_URL") or DEFAULT_SERVER_URL
    return url[:-1] if url.endswith("/") else url


class DryClient:
    """Talks to a running indexing service."""

    def __init__(
        self,
        server_url: Optional[str] = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.server_url = resolve_server_url(server_url)
        self._http = httpx.Client(base_url=self.server_url, timeout=timeout, transport=transport)

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "DryClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _request(
        self,
        action: str,
        method: str,
        path: str,
        parse: Callable[[Any], T],
        **kwargs,
    ) -> T:
        """
        Send one request and parse its JSON body.

        Raises:
            DryScanError: If the server cannot be reached
            ServerResponseError: On a non-2xx status or an unusable body
        """
        try:
            response = self._http.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise DryScanError(f"Failed to {action}: could not reach {self.server_url} ({e})") from e

        if not response.is_success:
            raise ServerResponseError(
                f"Failed to {action} ({response.status_code}): {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            return parse(response.json())
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise ServerResponseError(
                f"Failed to {action}: invalid response from {self.server_url}: {response.text[:200]}",
                status_code=response.status_code,
                body=response.text,
            ) from e

    def submit_element(self, element: ElementData) -> str:
        """
        Submit an element for indexing.

        Returns:
            The id assigned by the service
        """
        return self._request(
            "submit element",
            "POST",
            "/elements",
            lambda data: str(data["id"]),
            json=element.to_dict(),
        )

    def submit_batch(self, elements: Sequence[ElementData]) -> List[str]:
        """Submit many elements in one request. Ids come back in input order."""
        ids = self._request(
            "submit elements",
            "POST",
            "/elements/batch",
            lambda data: [str(i) for i in data["ids"]],
            json=[element.to_dict() for element in elements],
        )
        if len(ids) != len(elements):
            raise ServerResponseError(
                f"Failed to submit elements: expected {len(elements)} ids, got {len(ids)}",
                status_code=200,
            )
        return ids

    def wipe_all_elements(self) -> int:
        """Delete every indexed element. Returns how many were deleted."""
        return self._request(
            "wipe elements",
            "DELETE",
            "/elements",
            lambda data: int(data["deletedCount"]),
        )

    def find_similar(
        self,
        element_id: str,
        threshold: float = DEFAULT_THRESHOLD,
        limit: int = DEFAULT_LIMIT,
    ) -> List[ElementData]:
        return self._request(
            "find similar elements",
            "GET",
            f"/similar/{element_id}",
            lambda data: [ElementData.from_dict(e) for e in data["similarElements"]],
            params={"threshold": threshold, "limit": limit},
        )

    def find_most_similar_pairs(
        self,
        threshold: float = DEFAULT_THRESHOLD,
        limit: int = DEFAULT_LIMIT,
    ) -> List[SimilarPair]:
        return self._request(
            "find similar pairs",
            "GET",
            "/similar/all",
            lambda data: [SimilarPair.from_dict(p) for p in data["pairs"]],
            params={"threshold": threshold, "limit": limit},
        )

    def search(
        self,
        query: str,
        threshold: float = DEFAULT_SEARCH_THRESHOLD,
        limit: int = DEFAULT_LIMIT,
    ) -> List[SearchResult]:
        """Free-text semantic search over the index."""
        return self._request(
            "search",
            "GET",
            "/search",
            lambda data: [SearchResult.from_dict(r) for r in data["results"]],
            params={"q": query, "threshold": threshold, "limit": limit},
        )

    def health(self) -> Dict[str, Any]:
        return self._request("check health", "GET", "/health", dict)
