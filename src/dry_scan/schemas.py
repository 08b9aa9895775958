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
Request and response bodies for the indexing service.

Field names are the camelCase wire names.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from .models import ElementData, SearchResult, SimilarPair


class MetadataPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    filePath: str
    lineNumber: int
    elementName: str
    commitHash: Optional[str] = None
    fileHash: Optional[str] = None
    basePath: Optional[str] = None

    @field_validator("lineNumber")
    @classmethod
    def line_number_must_be_positive(cls, v):
        if v < 1:
            raise ValueError("lineNumber must be at least 1")
        return v


class ElementPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    metadata: MetadataPayload
    # Optional here so a missing body is reported as a validation error
    # with a plain message rather than a schema dump
    elementString: Optional[str] = None

    def to_element(self) -> ElementData:
        return ElementData.from_dict(self.model_dump(exclude_none=True))

    @classmethod
    def from_element(cls, element: ElementData) -> "ElementPayload":
        return cls.model_validate(element.to_dict())


class IndexResponse(BaseModel):
    id: str


class BatchIndexResponse(BaseModel):
    ids: List[str]


class DeleteResponse(BaseModel):
    success: bool
    deletedCount: int


class SimilarPairPayload(BaseModel):
    element1: ElementPayload
    element2: ElementPayload
    similarity: float

    @classmethod
    def from_pair(cls, pair: SimilarPair) -> "SimilarPairPayload":
        return cls.model_validate(pair.to_dict())


class PairsResponse(BaseModel):
    pairs: List[SimilarPairPayload]


class SimilarElementsResponse(BaseModel):
    similarElements: List[ElementPayload]


class SearchResultPayload(BaseModel):
    element: ElementPayload
    similarity: float

    @classmethod
    def from_result(cls, result: SearchResult) -> "SearchResultPayload":
        return cls.model_validate(result.to_dict())


class SearchResponse(BaseModel):
    results: List[SearchResultPayload]


class HealthResponse(BaseModel):
    status: str
    timestamp: str


class ErrorResponse(BaseModel):
    error: str
