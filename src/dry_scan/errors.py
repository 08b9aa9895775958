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
Error taxonomy for dry-scan.

Core modules raise these; the HTTP layer maps them to status codes in one
place (server.py). Nothing in the core retries.
"""

from typing import Optional


class DryScanError(Exception):
    """Base class for all dry-scan errors."""


class ValidationError(DryScanError):
    """A required field is missing or malformed."""


class ConfigurationError(DryScanError):
    """Required configuration (e.g. the embedding endpoint) is missing or invalid."""


class ProviderError(DryScanError):
    """The embedding provider returned an error or an unusable response."""

    retryable = False

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ProviderTimeoutError(ProviderError):
    """An embedding request exceeded its timeout. Callers may retry."""

    retryable = True


class NotFoundError(DryScanError):
    """An element id is not in the store."""


class StoreError(DryScanError):
    """The backing store failed."""


class ServerResponseError(DryScanError):
    """The indexing service answered a client request with a non-2xx status."""

    def __init__(self, message: str, status_code: int, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
