"""Bundling options and their JSON persistence.

This module defines the ``BundleConfig`` dataclass holding every option of a
bundle run, with validation and dictionary conversion, plus
``load_config``/``save_config`` for keeping option sets in JSON files.

Example:
    >>> config = BundleConfig(preserve_default_export=True, aliases={"@utils/*": "src/utils/*"})
    >>> config.validate()
    >>> save_config(config, Path("bundle.json"))
    >>> load_config(Path("bundle.json")).aliases
    {'@utils/*': 'src/utils/*'}
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from tsbundler.core.path_resolver import DEFAULT_EXTENSIONS, PathAliasTable
from tsbundler.utils.logger import get_logger
from tsbundler.utils.path_utils import ensure_directory

logger = get_logger("tsbundler.core.config")

CONFIG_VERSION = "1.0"


@dataclass
class BundleConfig:
    """Options of one bundle run.

    Attributes:
        version: Schema version of the saved form
        preserve_default_export: Re-emit the entry's default export as a
            trailing ``export default <Name>;``
        default_export_name: Display name for an anonymous default export
            of the entry (``DefaultExport`` when unset)
        root_names: Restrict the roots to these names of the entry module
        extensions: File extensions tried when resolving specifiers
        resolve_node_modules: Look up bare specifiers in ``node_modules``
        max_workers: Size of the module loading pool
        parse_timeout: Seconds allowed per parse call, None for no limit
        aliases: Path alias prefixes mapped to directories, in tsconfig
            ``paths`` form; relative directories are anchored at the
            project root
    """

    version: str = CONFIG_VERSION
    preserve_default_export: bool = False
    default_export_name: Optional[str] = None
    root_names: List[str] = field(default_factory=list)
    extensions: List[str] = field(default_factory=lambda: list(DEFAULT_EXTENSIONS))
    resolve_node_modules: bool = True
    max_workers: int = 4
    parse_timeout: Optional[float] = 30.0
    aliases: Dict[str, str] = field(default_factory=dict)

    def validate(self) -> None:
        """Validate the configuration.

        Raises:
            ValueError: If any validation check fails
        """
        if self.version != CONFIG_VERSION:
            raise ValueError(f"Invalid version: {self.version}. Expected '{CONFIG_VERSION}'")

        if not isinstance(self.max_workers, int) or self.max_workers < 1:
            raise ValueError(f"max_workers must be a positive integer, got {self.max_workers!r}")

        if self.parse_timeout is not None:
            if not isinstance(self.parse_timeout, (int, float)) or self.parse_timeout <= 0:
                raise ValueError(
                    f"parse_timeout must be a positive number or None, got {self.parse_timeout!r}"
                )

        if not self.extensions:
            raise ValueError("At least one file extension is required")
        for ext in self.extensions:
            if not isinstance(ext, str) or not ext.startswith("."):
                raise ValueError(f"Invalid extension {ext!r}: extensions must start with '.'")

        if self.default_export_name is not None and not _is_identifier(self.default_export_name):
            raise ValueError(
                f"default_export_name must be a valid identifier, got {self.default_export_name!r}"
            )

        for name in self.root_names:
            if not isinstance(name, str) or not name:
                raise ValueError(f"Invalid root name {name!r}")

        for prefix, target in self.aliases.items():
            if not isinstance(prefix, str) or not isinstance(target, str) or not target:
                raise ValueError(f"Invalid path alias {prefix!r} -> {target!r}")

        logger.debug("Bundle configuration validated successfully")

    def alias_table(self, base: Path | None = None) -> PathAliasTable:
        """Build the path alias table, anchoring relative roots at ``base``."""
        return PathAliasTable.from_mapping(self.aliases, base=base)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary for JSON serialization."""
        return {
            "version": self.version,
            "preserve_default_export": self.preserve_default_export,
            "default_export_name": self.default_export_name,
            "root_names": list(self.root_names),
            "extensions": list(self.extensions),
            "resolve_node_modules": self.resolve_node_modules,
            "max_workers": self.max_workers,
            "parse_timeout": self.parse_timeout,
            "aliases": dict(self.aliases),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> BundleConfig:
        """Create configuration from dictionary.

        Missing keys take their defaults.

        Raises:
            ValueError: If ``data`` is not a mapping
        """
        if not isinstance(data, dict):
            raise ValueError(f"Configuration must be a JSON object, got {type(data).__name__}")

        defaults = cls()
        config = cls(
            version=data.get("version", CONFIG_VERSION),
            preserve_default_export=bool(data.get("preserve_default_export", False)),
            default_export_name=data.get("default_export_name"),
            root_names=list(data.get("root_names", [])),
            extensions=list(data.get("extensions", defaults.extensions)),
            resolve_node_modules=bool(data.get("resolve_node_modules", True)),
            max_workers=data.get("max_workers", defaults.max_workers),
            parse_timeout=data.get("parse_timeout", defaults.parse_timeout),
            aliases=dict(data.get("aliases", {})),
        )
        logger.debug("Created bundle configuration from dictionary")
        return config


def _is_identifier(name: str) -> bool:
    if not name or name[0].isdigit():
        return False
    return all(ch.isalnum() or ch in "_$" for ch in name)


def save_config(config: BundleConfig, file_path: Path) -> None:
    """Save a configuration to a JSON file.

    Raises:
        ValueError: If configuration validation fails
        OSError: If the file cannot be written
    """
    try:
        config.validate()
        ensure_directory(file_path.parent)
        with open(file_path, "w", encoding="utf-8") as f:
            json.dump(config.to_dict(), f, indent=2)
        logger.debug(f"Configuration saved to {file_path}")
    except ValueError as e:
        logger.error(f"Validation failed for configuration: {e}")
        raise ValueError(f"Configuration validation failed: {e}") from e
    except OSError as e:
        logger.error(f"Failed to write configuration to {file_path}: {e}")
        raise


def load_config(file_path: Path) -> BundleConfig:
    """Load and validate a configuration from a JSON file.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the JSON is invalid or validation fails
    """
    if not file_path.exists():
        logger.error(f"Configuration file not found: {file_path}")
        raise FileNotFoundError(f"Configuration file not found: {file_path}")

    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = json.load(f)
        config = BundleConfig.from_dict(data)
        config.validate()
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON in configuration file {file_path}: {e}")
        raise ValueError(f"Invalid JSON format in configuration file: {e}") from e
    except ValueError as e:
        logger.error(f"Validation failed for configuration from {file_path}: {e}")
        raise ValueError(f"Configuration validation failed: {e}") from e

    logger.debug(f"Configuration loaded from {file_path}")
    return config
