"""
Utility modules for filesystem access and logging.

This package provides:
- Path utilities and the read-only filesystem view used while bundling
- Logging infrastructure with file and console output

Examples:
    >>> from tsbundler.utils import normalize_path, setup_logger
    >>> path = normalize_path("./src/index.ts")
    >>> logger = setup_logger("tsbundler")
"""

from .path_utils import (
    # Type alias
    PathLike,
    # Filesystem view
    FileSystem,
    LocalFileSystem,
    # Path normalization
    normalize_path,
    # Directory operations
    ensure_directory,
    # Path validation
    is_safe_path,
    # Naming helpers
    module_stem,
    sanitize_identifier,
)

from .logger import (
    # Logger setup
    setup_logger,
    get_logger,
    set_log_level,
    # Handler management
    add_file_handler,
    add_console_handler,
    # Constants
    VALID_LOG_LEVELS,
)

__all__ = [
    # Type alias
    "PathLike",
    # Filesystem view
    "FileSystem",
    "LocalFileSystem",
    # Path utilities
    "normalize_path",
    "ensure_directory",
    "is_safe_path",
    "module_stem",
    "sanitize_identifier",
    # Logger
    "setup_logger",
    "get_logger",
    "set_log_level",
    "add_file_handler",
    "add_console_handler",
    "VALID_LOG_LEVELS",
]
