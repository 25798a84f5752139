from __future__ import annotations

import logging
from typing import Iterator

import pytest

from agent_capabilities.capabilities.runtime import CapabilityRuntime
from agent_capabilities.capabilities.storage import CapabilityStorage


@pytest.fixture
def runtime() -> Iterator[CapabilityRuntime]:
    """Fresh capability runtime, torn down after the test."""
    rt = CapabilityRuntime()
    yield rt
    rt.reset()


@pytest.fixture
def storage() -> CapabilityStorage:
    """Empty in-memory capability storage."""
    return CapabilityStorage()


@pytest.fixture
def restore_root_logging() -> Iterator[None]:
    """Restore root logger handlers and level after tests that call setup_logging."""
    root_logger = logging.getLogger()
    handlers = root_logger.handlers[:]
    level = root_logger.level
    yield
    for handler in root_logger.handlers[:]:
        if handler not in handlers:
            handler.close()
        root_logger.removeHandler(handler)
    for handler in handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(level)
