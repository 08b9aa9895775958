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
Swift signatures: functions and initializers.
"""

from .base import LanguagePatterns


PATTERNS = LanguagePatterns(
    language="swift",
    extensions=("swift",),
    include=[
        r"\bfunc\s+(\w+)\s*[(<]",
        r"^[ \t]*(?:(?:public|private|internal|fileprivate|convenience|required|override)\s+)*(init)\??\s*\(",
    ],
)
