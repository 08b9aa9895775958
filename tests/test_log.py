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

"""Tests for logging setup."""

import logging

import pytest

from dry_scan.log import PACKAGE_LOGGER, setup_logging


@pytest.fixture
def package_logger():
    logger = logging.getLogger(PACKAGE_LOGGER)
    before = list(logger.handlers), logger.level
    yield logger
    logger.handlers[:] = before[0]
    logger.setLevel(before[1])


def test_repeat_setup_replaces_handler(package_logger):
    setup_logging(logging.INFO)
    count = len(package_logger.handlers)

    setup_logging("debug")

    assert len(package_logger.handlers) == count
    assert package_logger.level == logging.DEBUG


def test_foreign_handlers_are_kept(package_logger):
    extra = logging.NullHandler()
    package_logger.addHandler(extra)

    setup_logging(logging.WARNING)

    assert extra in package_logger.handlers


def test_unknown_level():
    with pytest.raises(ValueError, match="Unknown log level"):
        setup_logging("chatty")
