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
JavaScript/TypeScript signatures: declarations, arrow functions assigned to
consts, and object-literal function properties.
"""

from .base import LanguagePatterns


PATTERNS = LanguagePatterns(
    language="javascript",
    extensions=("ts", "tsx", "js", "jsx", "mjs", "cjs"),
    include=[
        r"\bfunction\s+(\w+)\s*\(",
        r"\bconst\s+(\w+)\s*=\s*\([^)]*\)\s*=>",
        r"\b(\w+)\s*:\s*function\s*\(",
    ],
)
