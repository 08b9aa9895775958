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
Logging setup. Modules log through logging.getLogger(__name__); entry
points call setup_logging() once with the resolved level.
"""

import logging
from typing import Optional, Union


PACKAGE_LOGGER = "dry_scan"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_handler: Optional[logging.Handler] = None


def setup_logging(level: Union[int, str] = logging.INFO) -> logging.Logger:
    """
    Configure the package logger.

    Args:
        level: Logging level, as an int or a name like "DEBUG"

    Returns:
        The configured package logger
    """
    global _handler

    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level: {level}")
        level = resolved

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)

    # Re-running setup replaces the handler rather than stacking a second one
    if _handler is not None:
        logger.removeHandler(_handler)

    _handler = logging.StreamHandler()
    _handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(_handler)

    return logger
