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

"""Git lookups for scan metadata."""

from pathlib import Path
from typing import Optional, Union
import logging
import subprocess


logger = logging.getLogger(__name__)


def get_commit_hash(path: Union[str, Path]) -> Optional[str]:
    """
    HEAD commit of the repository containing path.

    Returns None outside a repository or when git is not installed.
    """
    cwd = Path(path)
    if cwd.is_file():
        cwd = cwd.parent

    try:
        result = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            cwd=cwd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            text=True,
            timeout=10,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug(f"git rev-parse failed in {cwd}: {e}")
        return None

    commit = result.stdout.strip()
    if result.returncode != 0 or not commit:
        return None
    return commit
