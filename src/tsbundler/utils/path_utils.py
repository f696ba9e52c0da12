"""
Path utilities and the filesystem view used by the bundler.

This module provides path normalization helpers, the ``FileSystem`` view the
resolver and loader read through, and small helpers for naming modules by
their file stem. All functions use pathlib.Path for cross-platform compatibility.

Examples:
    >>> from tsbundler.utils.path_utils import normalize_path, module_stem
    >>> path = normalize_path("./src/index.ts")
    >>> module_stem(Path("src/utils/user.d.ts"))
    'user'
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Union

# Type alias for path-like objects
PathLike = Union[str, Path]

# Extensions that mark a declaration-only TypeScript file
DECLARATION_SUFFIXES = (".d.ts", ".d.mts", ".d.cts")

_IDENTIFIER_UNSAFE = re.compile(r"[^A-Za-z0-9_$]")


class FileSystem(ABC):
    """
    Read-only view of the filesystem consulted during bundling.

    Subclasses implement the three primitives; the default implementation
    is ``LocalFileSystem``. Tests substitute their own view to count reads
    or to simulate missing files.
    """

    @abstractmethod
    def read_bytes(self, path: Path) -> bytes:
        pass

    @abstractmethod
    def is_file(self, path: Path) -> bool:
        pass

    @abstractmethod
    def is_dir(self, path: Path) -> bool:
        pass


class LocalFileSystem(FileSystem):
    """Filesystem view backed by the local disk."""

    def read_bytes(self, path: Path) -> bytes:
        return path.read_bytes()

    def is_file(self, path: Path) -> bool:
        return path.is_file()

    def is_dir(self, path: Path) -> bool:
        return path.is_dir()


def normalize_path(path: PathLike) -> Path:
    """
    Return the canonical absolute form of a module or output path.

    ``~`` is expanded and relative segments and symlinks are resolved, so two
    specifiers naming the same file map to one module cache key.

    Raises:
        ValueError: If path is empty or None.

    Examples:
        >>> normalize_path("src/../src/index.ts")
        PosixPath('/repo/src/index.ts')
    """
    if path is None or (isinstance(path, str) and not path.strip()):
        raise ValueError("Path cannot be None or empty")
    return Path(path).expanduser().resolve()


def ensure_directory(path: Path) -> Path:
    """Create ``path`` and its parents when missing, and return it."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def is_safe_path(path: Path, base: Path) -> bool:
    """
    Return True when ``path`` resolves to a location inside ``base``.

    Batch output names are checked with this before anything is written.

    Examples:
        >>> is_safe_path(Path("/out/User.d.ts"), Path("/out"))
        True
        >>> is_safe_path(Path("/out/../etc/passwd"), Path("/out"))
        False
    """
    try:
        path.resolve().relative_to(base.resolve())
    except (ValueError, OSError):
        return False
    return True


def module_stem(path: Path) -> str:
    """
    Return the stem that names a module in generated identifiers.

    ``.d.ts`` suffixes are removed entirely and ``index`` files are named
    after their directory, so ``src/utils/index.ts`` and ``src/utils.ts``
    both yield ``utils``.

    Examples:
        >>> module_stem(Path("types/user.d.ts"))
        'user'
        >>> module_stem(Path("src/models/index.ts"))
        'models'
    """
    name = path.name
    for suffix in DECLARATION_SUFFIXES:
        if name.lower().endswith(suffix):
            name = name[: -len(suffix)]
            break
    else:
        name = Path(name).stem
    if name == "index" and path.parent.name:
        name = path.parent.name
    return name


def sanitize_identifier(text: str) -> str:
    """
    Turn arbitrary text into a valid TypeScript identifier fragment.

    Examples:
        >>> sanitize_identifier("user-profile")
        'user_profile'
        >>> sanitize_identifier("3d")
        '_3d'
    """
    cleaned = _IDENTIFIER_UNSAFE.sub("_", text)
    if not cleaned:
        return "_"
    if cleaned[0].isdigit():
        cleaned = "_" + cleaned
    return cleaned
