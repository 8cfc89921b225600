"""Unit tests for utils/logging.py."""

import logging
from logging.handlers import RotatingFileHandler

import pytest

from ereader_updater.utils.logging import setup_logger


@pytest.mark.unit
class TestSetupLogger:
    """Test setup_logger function."""

    @pytest.fixture(autouse=True)
    def cleanup_loggers(self):
        """Remove handlers from loggers created by a test."""
        created = []
        yield created
        for name in created:
            lg = logging.getLogger(name)
            for h in list(lg.handlers):
                h.close()
                lg.removeHandler(h)

    def test_creates_log_directory(self, tmp_path, cleanup_loggers):
        """Test missing parent directories of the log file are created."""
        # Arrange
        log_dir = tmp_path / "new_logs" / "subdir"
        name = "test_updater_logger_dir"
        cleanup_loggers.append(name)

        # Act
        setup_logger(name, log_dir / "test.log")

        # Assert
        assert log_dir.exists()

    def test_level_info_by_default(self, tmp_path, cleanup_loggers):
        """Test the default level is INFO."""
        # Arrange
        name = "test_updater_logger_level"
        cleanup_loggers.append(name)

        # Act
        logger = setup_logger(name, tmp_path / "test.log")

        # Assert
        assert logger.level == logging.INFO

    def test_file_and_console_handlers(self, tmp_path, cleanup_loggers):
        """Test a rotating file handler and a console handler are attached."""
        # Arrange
        name = "test_updater_logger_handlers"
        cleanup_loggers.append(name)

        # Act
        logger = setup_logger(name, tmp_path / "test.log", max_bytes=1000, backup_count=5)

        # Assert
        rotating = [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]
        console = [
            h for h in logger.handlers
            if isinstance(h, logging.StreamHandler) and not isinstance(h, RotatingFileHandler)
        ]
        assert len(rotating) == 1
        assert rotating[0].maxBytes == 1000
        assert rotating[0].backupCount == 5
        assert len(console) == 1

    def test_no_duplicate_handlers(self, tmp_path, cleanup_loggers):
        """Test calling setup twice does not add handlers again."""
        # Arrange
        name = "test_updater_logger_dup"
        cleanup_loggers.append(name)
        setup_logger(name, tmp_path / "test.log")

        # Act
        logger = setup_logger(name, tmp_path / "test.log")

        # Assert
        assert len(logger.handlers) == 2

    def test_writes_formatted_line(self, tmp_path, cleanup_loggers):
        """Test records reach the file in the ISO timestamped format."""
        # Arrange
        name = "test_updater_logger_format"
        cleanup_loggers.append(name)
        log_file = tmp_path / "test.log"
        logger = setup_logger(name, log_file)

        # Act
        logger.info("Flashing rootfs.img to system_a...")
        for h in logger.handlers:
            h.flush()

        # Assert
        content = log_file.read_text()
        assert f"[INFO] {name}: Flashing rootfs.img to system_a..." in content

    def test_unwritable_log_path_falls_back_to_console(
        self, tmp_path, cleanup_loggers, caplog
    ):
        """Test a log path that cannot be created leaves console logging only."""
        # Arrange
        name = "test_updater_logger_readonly"
        cleanup_loggers.append(name)
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")

        # Act
        with caplog.at_level("WARNING"):
            logger = setup_logger(name, blocker / "updater.log")

        # Assert
        assert len(logger.handlers) == 1
        assert not any(isinstance(h, RotatingFileHandler) for h in logger.handlers)
        assert "logging to console only" in caplog.text
