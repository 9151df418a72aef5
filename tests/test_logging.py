import io
import json
import logging

import pytest

from frame_sync.telemetry import log_timing, setup_logging


@pytest.fixture
def package_logger():
    logger = logging.getLogger("frame_sync")
    saved = (list(logger.handlers), logger.level, logger.propagate)
    yield logger
    logger.handlers[:] = saved[0]
    logger.setLevel(saved[1])
    logger.propagate = saved[2]


def test_dict_messages_are_merged_into_json(package_logger):
    stream = io.StringIO()
    setup_logging("DEBUG", "json", stream=stream)

    logging.getLogger("frame_sync.sync.engine").info({"event": "sync.pair.start", "source": "icloud"})

    line = json.loads(stream.getvalue().strip())
    assert line["event"] == "sync.pair.start"
    assert line["source"] == "icloud"
    assert line["level"] == "INFO"
    assert line["logger"] == "frame_sync.sync.engine"


def test_plain_messages_and_exceptions(package_logger):
    stream = io.StringIO()
    setup_logging("INFO", "json", stream=stream)
    logger = logging.getLogger("frame_sync.app")

    try:
        raise RuntimeError("boom")
    except RuntimeError:
        logger.exception("run failed")

    line = json.loads(stream.getvalue().strip())
    assert line["message"] == "run failed"
    assert "RuntimeError: boom" in line["exc_info"]


def test_level_filters_debug(package_logger):
    stream = io.StringIO()
    setup_logging("WARNING", "text", stream=stream)

    logging.getLogger("frame_sync.app").info({"event": "hidden"})
    logging.getLogger("frame_sync.app").warning("shown")

    output = stream.getvalue()
    assert "hidden" not in output
    assert "shown" in output


def test_log_timing_emits_duration(package_logger):
    stream = io.StringIO()
    setup_logging("DEBUG", "json", stream=stream)

    log_timing("sync.pair", 12.3456, {"source": "icloud"})

    line = json.loads(stream.getvalue().strip())
    assert line["event"] == "timing"
    assert line["operation"] == "sync.pair"
    assert line["duration_ms"] == 12.35
    assert line["source"] == "icloud"
