"""tsconfig.json path alias loading.

Reads ``compilerOptions.paths`` (and ``baseUrl``) from a project's
``tsconfig.json``, following ``extends`` chains, and turns them into a
``PathAliasTable``. tsconfig files are JSON with comments, so line and
block comments and trailing commas are removed before parsing.

Only the first target of each ``paths`` entry is used, and a trailing
``/*`` or ``*`` is stripped from keys and targets.

Example:
    >>> root = find_project_root(Path("src/pages/home.ts"))
    >>> load_alias_table(root).match("@utils/alias")
    ('@utils', PosixPath('/repo/src/utils'), 'alias')
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

from tsbundler.core.path_resolver import PathAliasTable
from tsbundler.utils.logger import get_logger
from tsbundler.utils.path_utils import PathLike, normalize_path

logger = get_logger("tsbundler.core.tsconfig")

TSCONFIG_NAME = "tsconfig.json"

# Files or directories marking a project root
PROJECT_MARKERS = (TSCONFIG_NAME, "package.json", ".git")

MAX_ROOT_SEARCH_DEPTH = 10

# Strings are matched first so comment markers inside them survive
_COMMENT_PATTERN = re.compile(r'("(?:\\.|[^"\\])*")|//[^\n]*|/\*[\s\S]*?\*/')
_TRAILING_COMMA_PATTERN = re.compile(r'("(?:\\.|[^"\\])*")|,(?=\s*[}\]])')


def strip_jsonc(text: str) -> str:
    """Remove comments and trailing commas from JSON-with-comments text."""
    text = _COMMENT_PATTERN.sub(lambda m: m.group(1) or "", text)
    return _TRAILING_COMMA_PATTERN.sub(lambda m: m.group(1) or "", text)


def _trim_wildcard(text: str) -> str:
    if text.endswith("/*"):
        return text[:-2]
    if text.endswith("*"):
        return text[:-1]
    return text


def read_tsconfig(config_path: Path) -> dict[str, Any]:
    """Parse one tsconfig file without following ``extends``.

    Unreadable or malformed files yield an empty dict and a warning.
    """
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            text = f.read()
    except OSError as e:
        logger.warning(f"Cannot read {config_path}: {e}")
        return {}

    try:
        data = json.loads(strip_jsonc(text))
    except json.JSONDecodeError as e:
        logger.warning(f"Invalid JSON in {config_path}: {e}")
        return {}
    if not isinstance(data, dict):
        logger.warning(f"Ignoring {config_path}: top level is not an object")
        return {}
    return data


def _extends_paths(config_path: Path, extends: Any) -> list[Path]:
    values = extends if isinstance(extends, list) else [extends]
    paths = []
    for value in values:
        if not isinstance(value, str) or not value:
            continue
        if value.startswith(".") or Path(value).is_absolute():
            candidate = config_path.parent / value
        else:
            candidate = config_path.parent / "node_modules" / value
        if candidate.suffix != ".json" and not candidate.is_file():
            candidate = candidate.with_name(candidate.name + ".json")
        paths.append(candidate)
    return paths


def load_alias_mapping(config_path: Path, _seen: set[Path] | None = None) -> dict[str, Path]:
    """Return the merged ``paths`` aliases of ``config_path`` and its parents.

    Targets are made absolute against the declaring file's ``baseUrl`` (or
    its directory). Entries of a child config override its parents'.
    """
    seen = _seen if _seen is not None else set()
    config_path = normalize_path(config_path)
    if config_path in seen:
        logger.warning(f"Circular 'extends' chain through {config_path}")
        return {}
    seen.add(config_path)
    if not config_path.is_file():
        return {}

    data = read_tsconfig(config_path)
    mapping: dict[str, Path] = {}
    for parent in _extends_paths(config_path, data.get("extends")):
        mapping.update(load_alias_mapping(parent, seen))

    options = data.get("compilerOptions") or {}
    base_url = options.get("baseUrl") if isinstance(options, dict) else None
    base = config_path.parent / base_url if isinstance(base_url, str) else config_path.parent
    paths = options.get("paths") if isinstance(options, dict) else None
    if isinstance(paths, dict):
        for key, targets in paths.items():
            if not isinstance(targets, list) or not targets or not isinstance(targets[0], str):
                logger.debug(f"{config_path.name}: skipping alias '{key}' without targets")
                continue
            mapping[_trim_wildcard(key)] = normalize_path(base / _trim_wildcard(targets[0]))

    logger.debug(f"Read {len(mapping)} path alias(es) from {config_path}")
    return mapping


def load_alias_table(project_root: PathLike) -> PathAliasTable:
    """Build the alias table of the project rooted at ``project_root``.

    A missing tsconfig.json yields an empty table.
    """
    root = normalize_path(project_root)
    mapping = load_alias_mapping(root / TSCONFIG_NAME)
    table = PathAliasTable.from_mapping(mapping, base=root)
    if not table.is_empty:
        logger.info(f"Loaded {len(table.entries)} path alias(es) from {root / TSCONFIG_NAME}")
    return table


def find_project_root(start: PathLike) -> Path | None:
    """Walk up from ``start`` to the nearest directory holding a project marker.

    At most ``MAX_ROOT_SEARCH_DEPTH`` levels are searched.
    """
    current = normalize_path(start)
    if not current.is_dir():
        current = current.parent

    for _ in range(MAX_ROOT_SEARCH_DEPTH):
        if any((current / marker).exists() for marker in PROJECT_MARKERS):
            logger.debug(f"Project root found at {current}")
            return current
        if current.parent == current:
            break
        current = current.parent
    return None
