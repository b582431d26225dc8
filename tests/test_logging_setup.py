"""Tests for loguru sink configuration."""

import sys

import pytest
from loguru import logger

from options_engine.logging_setup import configure_logging


@pytest.fixture
def restore_sinks():
    yield
    logger.remove()
    logger.add(sys.stderr)


def test_file_sink_receives_debug(tmp_path, restore_sinks):
    log_file = tmp_path / "logs" / "engine.log"
    configure_logging(level="WARNING", log_file=str(log_file))

    logger.bind(component="test").debug("chain cache warmed")
    logger.complete()

    text = log_file.read_text()
    assert "chain cache warmed" in text
    assert "'component': 'test'" in text
