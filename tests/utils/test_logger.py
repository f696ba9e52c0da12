"""
Tests for logger module.

Tests cover logger setup, package-level handler sharing, handler
management, log levels and formatting.
"""

import logging
import logging.handlers
import pytest

from tsbundler.utils.logger import (
    VALID_LOG_LEVELS,
    add_console_handler,
    add_file_handler,
    get_logger,
    set_log_level,
    setup_logger,
)


@pytest.fixture
def log_file_path(tmp_path):
    """Create path to temporary log file."""
    return tmp_path / "logs" / "test.log"


@pytest.fixture
def clean_loggers():
    """Remove handlers from the named loggers after the test."""
    names = []

    def _register(*logger_names):
        names.extend(logger_names)
        for name in logger_names:
            logging.getLogger(name).handlers.clear()
        return [logging.getLogger(name) for name in logger_names]

    yield _register
    for name in names:
        logger = logging.getLogger(name)
        for handler in logger.handlers:
            handler.close()
        logger.handlers.clear()
        logger.setLevel(logging.NOTSET)


@pytest.fixture
def test_logger(clean_loggers):
    """Create fresh logger instance for each test."""
    (logger,) = clean_loggers("bundler_test_logger")
    logger.setLevel(logging.DEBUG)
    return logger


@pytest.fixture
def bare_root(monkeypatch):
    """Hide root handlers (pytest installs its own) from get_logger."""
    class _HiddenHandlers(list):
        # pytest re-adds its capture handlers when the test call starts;
        # keep them working but invisible to Logger.hasHandlers()
        def __bool__(self):
            return False

    monkeypatch.setattr(logging.getLogger(), "handlers", _HiddenHandlers())


class TestLoggerSetup:
    """Test logger creation and configuration."""

    def test_setup_logger_default_level(self, clean_loggers):
        """Test that default log level is INFO."""
        clean_loggers("setup_app")
        logger = setup_logger("setup_app")
        assert logger.name == "setup_app"
        assert logger.level == logging.INFO

    def test_setup_logger_custom_level(self, clean_loggers):
        """Test that custom log level is set correctly."""
        clean_loggers("setup_app")
        assert setup_logger("setup_app", level="debug").level == logging.DEBUG

    def test_setup_logger_invalid_level(self):
        """Test that invalid log level raises ValueError."""
        with pytest.raises(ValueError, match="Invalid log level"):
            setup_logger("setup_app", level="VERBOSE")

    def test_setup_logger_with_file(self, clean_loggers, log_file_path):
        """Test logger creation with log file."""
        clean_loggers("setup_app")
        logger = setup_logger("setup_app", log_file=log_file_path)

        assert len(logger.handlers) == 2
        logger.info("Bundle written")
        assert "Bundle written" in log_file_path.read_text(encoding="utf-8")

    def test_setup_logger_prevents_duplicate_handlers(self, clean_loggers):
        """Test that calling setup_logger twice doesn't duplicate handlers."""
        clean_loggers("setup_dup")
        first = setup_logger("setup_dup")
        count = len(first.handlers)

        second = setup_logger("setup_dup")

        assert first is second
        assert len(second.handlers) == count == 1


class TestGetLogger:
    """Test that module loggers share one package handler."""

    def test_child_logger_configures_package(self, clean_loggers, bare_root):
        """Test first module logger sets up the package logger."""
        package, child = clean_loggers("pkgalpha", "pkgalpha.core.loader")

        logger = get_logger("pkgalpha.core.loader")

        assert logger is child
        assert child.handlers == []
        assert len(package.handlers) == 1
        assert package.level == logging.INFO

    def test_second_child_reuses_package_handler(self, clean_loggers, bare_root):
        """Test later module loggers do not add handlers."""
        package, _, _ = clean_loggers("pkgbeta", "pkgbeta.a", "pkgbeta.b")

        get_logger("pkgbeta.a")
        get_logger("pkgbeta.b")

        assert len(package.handlers) == 1

    def test_top_level_name(self, clean_loggers, bare_root):
        """Test a package name is set up directly."""
        (package,) = clean_loggers("pkggamma")
        assert get_logger("pkggamma") is package
        assert len(package.handlers) == 1

    def test_existing_root_handlers_are_respected(self, clean_loggers, monkeypatch):
        """Test nothing is added when the application configured logging."""
        package, _ = clean_loggers("pkgdelta", "pkgdelta.x")
        monkeypatch.setattr(logging.getLogger(), "handlers", [logging.NullHandler()])

        get_logger("pkgdelta.x")

        assert package.handlers == []

    def test_records_propagate(self, clean_loggers, bare_root, caplog):
        """Test module records still reach root-level capture."""
        clean_loggers("pkgeps", "pkgeps.mod")
        logger = get_logger("pkgeps.mod")
        logging.getLogger().addHandler(caplog.handler)

        logger.warning("Unresolved import './missing'")

        assert "Unresolved import './missing'" in caplog.text


class TestLogLevels:
    """Test log level configuration and filtering."""

    def test_set_log_level_changes_level(self, test_logger):
        """Test set_log_level changes logger level."""
        set_log_level(test_logger, "WARNING")
        assert test_logger.level == logging.WARNING

    def test_set_log_level_updates_console_handler_only(self, test_logger, log_file_path):
        """Test console handlers follow the level; file handlers keep theirs."""
        add_console_handler(test_logger, "INFO")
        add_file_handler(test_logger, log_file_path, "DEBUG")

        set_log_level(test_logger, "ERROR")

        console, file_handler = test_logger.handlers
        assert console.level == logging.ERROR
        assert file_handler.level == logging.DEBUG

    def test_set_log_level_invalid_raises_error(self, test_logger):
        """Test set_log_level raises ValueError for invalid level."""
        with pytest.raises(ValueError, match="Invalid log level"):
            set_log_level(test_logger, "INVALID")

    def test_all_valid_log_levels(self, test_logger):
        """Test all valid log levels can be set."""
        for level in VALID_LOG_LEVELS:
            set_log_level(test_logger, level)
            assert test_logger.level == getattr(logging, level)


class TestLogHandlers:
    """Test console and file handler management."""

    def test_add_console_handler(self, test_logger):
        """Test adding console handler with the simple format."""
        add_console_handler(test_logger, "INFO")

        (handler,) = test_logger.handlers
        assert isinstance(handler, logging.StreamHandler)
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "Loaded 4 modules", None, None)
        assert handler.format(record) == "INFO: Loaded 4 modules"

    def test_add_file_handler_creates_directory(self, test_logger, tmp_path):
        """Test file handler creates log directory if missing."""
        log_file = tmp_path / "nested" / "logs" / "bundle.log"

        add_file_handler(test_logger, log_file)
        test_logger.debug("Resolved './user'")

        content = log_file.read_text(encoding="utf-8")
        assert "bundler_test_logger" in content
        assert "DEBUG" in content
        assert "test_logger.py" in content
        assert "Resolved './user'" in content

    def test_log_rotation_configuration(self, test_logger, log_file_path):
        """Test that rotating file handler is configured correctly."""
        add_file_handler(test_logger, log_file_path)

        (handler,) = test_logger.handlers
        assert isinstance(handler, logging.handlers.RotatingFileHandler)
        assert handler.maxBytes == 10 * 1024 * 1024
        assert handler.backupCount == 5

    def test_log_file_encoding_utf8(self, test_logger, log_file_path):
        """Test log files use UTF-8 encoding."""
        add_file_handler(test_logger, log_file_path)

        test_logger.info("Renamed Größe to Größe_profile")

        assert "Renamed Größe to Größe_profile" in log_file_path.read_text(encoding="utf-8")

    @pytest.mark.parametrize("adder", [add_console_handler, add_file_handler])
    def test_invalid_handler_level(self, test_logger, log_file_path, adder):
        """Test handler helpers reject invalid levels."""
        args = (test_logger, log_file_path) if adder is add_file_handler else (test_logger,)
        with pytest.raises(ValueError, match="Invalid log level"):
            adder(*args, level="INVALID")
