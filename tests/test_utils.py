import logging

import pytest

from interviewer.utils import import_quietly, setup_logging, with_suppressed_audio_warnings


def test_import_quietly_returns_module():
    assert import_quietly("json").dumps({"a": 1}) == '{"a": 1}'


def test_import_quietly_raises_for_missing_module():
    with pytest.raises(ImportError):
        import_quietly("definitely_not_an_installed_audio_lib")


def test_suppressed_audio_warnings_keeps_return_value_and_name():
    @with_suppressed_audio_warnings
    def open_device():
        return "stream"

    assert open_device() == "stream"
    assert open_device.__name__ == "open_device"


def test_setup_logging_writes_to_file(tmp_path):
    log_path = tmp_path / "logs" / "interview.log"
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        assert setup_logging(str(log_path), "INFO") == str(log_path)
        logging.getLogger("session").info("State: not_started -> awaiting_question")
        logging.getLogger("session").debug("hidden at INFO")
        for handler in root.handlers:
            handler.flush()

        text = log_path.read_text()
        assert "awaiting_question" in text
        assert "hidden at INFO" not in text
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
