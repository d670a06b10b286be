"""Tests for the loguru wrapper."""

from labnet.models.enums import LogLevel
from labnet.utils.logger import configure_logging, format_traceback, get_logger


def test_format_traceback():
    try:
        raise KeyError("vpndmzvn")
    except KeyError as e:
        text = format_traceback(e)
    assert text.startswith("Traceback")
    assert "KeyError: 'vpndmzvn'" in text


def test_file_sink_respects_level(tmp_path):
    log_file = tmp_path / "labnet.log"
    configure_logging(LogLevel.INFO, str(log_file))
    logger = get_logger("labnet.test")
    logger.debug("hidden")
    logger.info("Baseline captured")
    configure_logging(LogLevel.WARNING)

    text = log_file.read_text()
    assert "Baseline captured" in text
    assert "labnet.test" in text
    assert "hidden" not in text
