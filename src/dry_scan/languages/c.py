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
C and C++ signatures: definitions that start at column zero.
"""

from .base import LanguagePatterns


PATTERNS = LanguagePatterns(
    language="c",
    extensions=("c", "h", "cpp", "cc", "cxx", "hpp", "hxx"),
    include=[
        r"^(?:[\w:<>,*&]+[ \t]+)+[*&]*((?:\w+::)*~?\w+)\s*\(",
    ],
    exclude=[
        r"^(?:return|else|typedef|using|struct|enum|union)\b",
    ],
)
