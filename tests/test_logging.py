"""Tests for the operations log, debug mode and the crash log."""

import logging
import os
import sys

import pytest

from notetaker.errors import ERROR_LOG_FILENAME, log_exception
from notetaker.logging_config import (
    OPS_LOG_FILENAME,
    configure_ops_log,
    configure_quiet_mode,
    enable_debug_mode,
)


@pytest.fixture
def restore_package_level():
    package_logger = logging.getLogger("notetaker")
    level = package_logger.level
    yield
    package_logger.setLevel(level)


class TestOpsLog:

    def test_writes_info_records(self, tmp_path):
        handler = configure_ops_log(tmp_path / "store")
        logging.getLogger("notetaker.api").info("write %s", "groceries")
        logging.getLogger("notetaker.api").debug("not recorded")
        handler.flush()
        text = (tmp_path / "store" / OPS_LOG_FILENAME).read_text()
        assert "INFO write groceries" in text
        assert "not recorded" not in text

    def test_records_process_id(self, tmp_path):
        handler = configure_ops_log(tmp_path)
        logging.getLogger("notetaker.api").info("delete groceries")
        handler.flush()
        text = (tmp_path / OPS_LOG_FILENAME).read_text()
        assert f"[{os.getpid()}] INFO delete groceries" in text

    def test_overrides_quiet_level(self, tmp_path, restore_package_level):
        configure_quiet_mode(quiet=True)
        assert logging.getLogger("notetaker").level == logging.WARNING
        configure_ops_log(tmp_path)
        assert logging.getLogger("notetaker").level == logging.INFO

    def test_rotation_limits(self, tmp_path):
        handler = configure_ops_log(tmp_path)
        assert handler.maxBytes == 1_000_000
        assert handler.backupCount == 3


class TestDebugMode:

    def test_adds_single_stderr_handler(self, restore_package_level):
        enable_debug_mode()
        enable_debug_mode()
        package_logger = logging.getLogger("notetaker")
        stderr_handlers = [h for h in package_logger.handlers
                           if isinstance(h, logging.StreamHandler)
                           and getattr(h, "stream", None) is sys.stderr]
        assert len(stderr_handlers) == 1
        assert package_logger.level == logging.DEBUG
        assert not any(h in logging.getLogger().handlers for h in stderr_handlers)


class TestLogException:

    def _raise(self):
        try:
            raise KeyError("no such note")
        except KeyError as e:
            return e

    def test_writes_traceback(self, tmp_path):
        path = log_exception(self._raise(), context="note CLI", store_path=tmp_path)
        assert path == tmp_path / ERROR_LOG_FILENAME
        text = path.read_text()
        assert "note CLI" in text
        assert f"pid {os.getpid()}" in text
        assert "Traceback" in text
        assert "KeyError: 'no such note'" in text

    def test_appends(self, tmp_path):
        log_exception(self._raise(), store_path=tmp_path)
        log_exception(self._raise(), store_path=tmp_path)
        assert (tmp_path / ERROR_LOG_FILENAME).read_text().count("KeyError") >= 2

    def test_private_permissions(self, tmp_path):
        path = log_exception(self._raise(), store_path=tmp_path)
        assert os.stat(path).st_mode & 0o777 == 0o600

    def test_default_store(self, tmp_path):
        path = log_exception(self._raise())
        assert path == tmp_path / "default-store" / ERROR_LOG_FILENAME
        assert path.exists()

    def test_unwritable_location_is_ignored(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        path = log_exception(self._raise(), store_path=blocker / "sub")
        assert not path.exists()
