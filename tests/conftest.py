"""Shared pytest fixtures."""

from __future__ import annotations

import logging
from typing import Iterator

import pytest

from blockdrop.log import LOGGER_NAME


@pytest.fixture(autouse=True)
def _reset_package_logger() -> Iterator[None]:
    """Undo handler changes made by CLI invocations so caplog keeps working."""

    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
