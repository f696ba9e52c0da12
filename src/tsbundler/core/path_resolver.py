"""Module specifier resolution.

``PathResolver`` maps a raw import specifier, as written in a module, to the
canonical path of the file it refers to. Three specifier forms are handled:

1. Relative (``./x``, ``../x``): resolved against the importing module's
   directory.
2. Aliased (``@utils/x``): the longest matching prefix of the
   ``PathAliasTable`` is rewritten to its root directory.
3. Bare package names (``react``): looked up in ``node_modules`` folders
   walking up from the importing module, including ``@types`` packages.

For each candidate the resolver tries the literal path, the path with each
supported extension appended, ``.js``-style specifiers mapped to their
TypeScript sources, and finally an ``index`` file inside a directory of
that name.

Example:
    >>> aliases = PathAliasTable.from_mapping({"@utils/*": "src/utils/*"}, base=Path("/repo"))
    >>> resolver = PathResolver(aliases)
    >>> resolver.resolve(Path("/repo/src/index.ts"), "@utils/alias")
    PosixPath('/repo/src/utils/alias.ts')
"""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence

from tsbundler.core.errors import UnresolvedImport
from tsbundler.utils.logger import get_logger
from tsbundler.utils.path_utils import FileSystem, LocalFileSystem, PathLike, normalize_path

logger = get_logger("tsbundler.core.path_resolver")

# Extensions tried, in order, after the literal path
DEFAULT_EXTENSIONS = (".ts", ".tsx", ".d.ts")

# Emitted-JavaScript suffixes that TypeScript maps back to sources
JS_SUFFIXES = {".js", ".jsx", ".mjs", ".cjs"}

# package.json fields naming a package's declaration entry point
PACKAGE_TYPES_FIELDS = ("types", "typings")


@dataclass(frozen=True)
class PathAliasTable:
    """Read-only mapping of alias prefixes to root directories.

    Prefixes are stored without the trailing ``*`` that tsconfig uses, and
    are matched longest first.

    Attributes:
        entries: ``(prefix, root)`` pairs ordered by descending prefix length.

    Example:
        >>> table = PathAliasTable.from_mapping({"@": "/repo/src", "@utils": "/repo/src/utils"})
        >>> table.match("@utils/alias")
        ('@utils', PosixPath('/repo/src/utils'), 'alias')
    """
    entries: tuple[tuple[str, Path], ...] = ()

    @classmethod
    def from_mapping(
        cls, mapping: Mapping[str, PathLike], base: Path | None = None
    ) -> "PathAliasTable":
        """Build a table from ``{prefix: directory}``.

        Trailing ``*`` wildcards are stripped from both sides and relative
        directories are anchored at ``base`` (or the working directory).
        """
        entries = []
        for prefix, target in mapping.items():
            prefix = prefix[:-1] if prefix.endswith("*") else prefix
            target_text = str(target)
            if target_text.endswith("*"):
                target_text = target_text[:-1]
            root = Path(target_text)
            if not root.is_absolute():
                root = (base or Path.cwd()) / root
            entries.append((prefix, normalize_path(root)))
        entries.sort(key=lambda entry: len(entry[0]), reverse=True)
        return cls(tuple(entries))

    @property
    def is_empty(self) -> bool:
        return not self.entries

    def match(self, specifier: str) -> tuple[str, Path, str] | None:
        """Return ``(prefix, root, remainder)`` for the longest matching prefix."""
        for prefix, root in self.entries:
            if prefix == "":
                return prefix, root, specifier
            if prefix.endswith("/"):
                if specifier.startswith(prefix):
                    return prefix, root, specifier[len(prefix):]
            elif specifier == prefix:
                return prefix, root, ""
            elif specifier.startswith(prefix + "/"):
                return prefix, root, specifier[len(prefix) + 1:]
        return None

    def to_dict(self) -> dict[str, str]:
        return {prefix: str(root) for prefix, root in self.entries}


class PathResolver:
    """Resolves import specifiers to canonical module paths.

    Results are cached per importing directory and specifier, so the
    resolver can be shared by loader workers.

    Attributes:
        alias_table: Path aliases consulted for non-relative specifiers
        extensions: File extensions tried after the literal path
        filesystem: Read-only view of the filesystem
        resolve_node_modules: Whether bare specifiers are looked up in
            ``node_modules``
    """

    def __init__(
        self,
        alias_table: PathAliasTable | None = None,
        extensions: Sequence[str] = DEFAULT_EXTENSIONS,
        filesystem: FileSystem | None = None,
        resolve_node_modules: bool = True,
    ) -> None:
        self.alias_table = alias_table or PathAliasTable()
        self.extensions = tuple(extensions)
        self.filesystem = filesystem or LocalFileSystem()
        self.resolve_node_modules = resolve_node_modules
        self._cache: dict[tuple[Path, str], Path | None] = {}
        self._lock = threading.Lock()

    def is_module_file(self, path: Path) -> bool:
        return path.name.lower().endswith(self.extensions)

    @staticmethod
    def is_relative(specifier: str) -> bool:
        return specifier in (".", "..") or specifier.startswith(("./", "../"))

    def resolve(self, from_module: Path, specifier: str) -> Path:
        """Resolve ``specifier`` as written in ``from_module``.

        Args:
            from_module: Canonical path of the importing module.
            specifier: Raw specifier string.

        Returns:
            Canonical path of the target module.

        Raises:
            UnresolvedImport: If no candidate file exists.
        """
        key = (from_module.parent, specifier)
        with self._lock:
            cached = self._cache.get(key, ...)
        if cached is ...:
            cached = self._resolve_uncached(from_module, specifier)
            with self._lock:
                self._cache[key] = cached
        if cached is None:
            raise UnresolvedImport(from_module, specifier)
        return cached

    def _resolve_uncached(self, from_module: Path, specifier: str) -> Path | None:
        if self.is_relative(specifier) or Path(specifier).is_absolute():
            found = self._resolve_file(from_module.parent / specifier)
            logger.debug(f"Resolved relative '{specifier}' from {from_module.name} -> {found}")
            return found

        matched = self.alias_table.match(specifier)
        if matched is not None:
            prefix, root, remainder = matched
            found = self._resolve_file(root / remainder if remainder else root)
            if found is not None:
                logger.debug(f"Resolved alias '{specifier}' via '{prefix}' -> {found}")
                return found

        if self.resolve_node_modules:
            found = self._resolve_package(from_module.parent, specifier)
            if found is not None:
                logger.debug(f"Resolved package '{specifier}' -> {found}")
                return found

        return None

    def _resolve_file(self, candidate: Path) -> Path | None:
        """Apply extension and index inference to ``candidate``.

        A literal path is only taken when it names a TypeScript module;
        assets such as ``.css`` or ``.json`` files never resolve.
        """
        fs = self.filesystem
        if self.is_module_file(candidate) and fs.is_file(candidate):
            return normalize_path(candidate)

        for ext in self.extensions:
            with_ext = candidate.with_name(candidate.name + ext)
            if fs.is_file(with_ext):
                return normalize_path(with_ext)

        if candidate.suffix.lower() in JS_SUFFIXES:
            stem = candidate.with_suffix("")
            for ext in self.extensions:
                source = stem.with_name(stem.name + ext)
                if fs.is_file(source):
                    return normalize_path(source)

        if fs.is_dir(candidate):
            for ext in self.extensions:
                index = candidate / f"index{ext}"
                if fs.is_file(index):
                    return normalize_path(index)

        return None

    def _resolve_package(self, from_dir: Path, specifier: str) -> Path | None:
        parts = specifier.split("/")
        if specifier.startswith("@") and len(parts) >= 2:
            package, subpath = "/".join(parts[:2]), "/".join(parts[2:])
            types_package = "@types/" + package[1:].replace("/", "__")
        else:
            package, subpath = parts[0], "/".join(parts[1:])
            types_package = f"@types/{package}"

        directory = from_dir
        while True:
            modules_dir = directory / "node_modules"
            if self.filesystem.is_dir(modules_dir):
                for name in (package, types_package):
                    package_dir = modules_dir / name
                    if self.filesystem.is_dir(package_dir):
                        found = self._resolve_in_package(package_dir, subpath)
                        if found is not None:
                            return found
            if directory.parent == directory:
                return None
            directory = directory.parent

    def _resolve_in_package(self, package_dir: Path, subpath: str) -> Path | None:
        if subpath:
            return self._resolve_file(package_dir / subpath)

        manifest = package_dir / "package.json"
        if self.filesystem.is_file(manifest):
            try:
                data = json.loads(self.filesystem.read_bytes(manifest))
            except (OSError, ValueError) as exc:
                logger.warning(f"Ignoring unreadable {manifest}: {exc}")
                data = {}
            for field_name in PACKAGE_TYPES_FIELDS:
                entry = data.get(field_name) if isinstance(data, dict) else None
                if isinstance(entry, str) and entry:
                    found = self._resolve_file(package_dir / entry)
                    if found is not None:
                        return found

        return self._resolve_file(package_dir / "index")
