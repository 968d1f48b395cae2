import sys

import pytest

from gui_operate import logging_utils


def test_default_log_dir_respects_xdg_state_home(monkeypatch, tmp_path):
    if sys.platform in ("win32", "darwin"):
        pytest.skip("XDG state paths apply to Linux and other Unix platforms")

    state_home = tmp_path / "state"
    monkeypatch.setenv("XDG_STATE_HOME", str(state_home))

    assert logging_utils.default_log_dir() == state_home / "gui_operate" / "logs"


def test_configure_logging_skips_file_logging_on_error(monkeypatch, tmp_path):
    def _raise(*_args, **_kwargs):
        raise PermissionError("blocked")

    monkeypatch.setattr(logging_utils.Path, "mkdir", _raise)

    # Should not raise even if the log directory cannot be created.
    logging_utils.configure_logging(log_dir=tmp_path / "logs")


def test_file_logging_writes_to_log_dir(tmp_path):
    logging_utils.configure_logging(log_dir=tmp_path / "logs", level="INFO")
    logging_utils.get_logger("test").info("hello file")
    logging_utils.configure_logging(log_dir=None)

    assert "hello file" in (tmp_path / "logs" / "gui_operate.log").read_text(encoding="utf-8")


def test_logging_redacts_secrets(capsys):
    logging_utils.configure_logging(log_dir=None, level="INFO")
    log = logging_utils.get_logger("test")
    log.info("Bearer sk-test-secret")
    log.info("api_key=sk-test-secret")
    captured = capsys.readouterr()
    assert "sk-test-secret" not in captured.err
    assert "[REDACTED]" in captured.err
    assert captured.out == ""


def test_redact_text_leaves_plain_messages():
    assert logging_utils.redact_text("clicked at (10, 20)") == "clicked at (10, 20)"
