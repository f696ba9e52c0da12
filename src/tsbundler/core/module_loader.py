"""Module loading with a shared, single-flight cache.

``ModuleLoader`` reads and parses each distinct file at most once, extracts
its declarations and directives, resolves its specifiers, and publishes the
immutable ``Module`` under its canonical path. Loading is the only phase
that runs in parallel:

* ``load_graph`` walks the import graph of an entry point with a bounded
  worker pool, submitting each newly discovered path once.
* Concurrent ``load`` calls for the same path wait on the first caller's
  future instead of parsing again.
* Every parse call runs on a separate pool and is bounded by
  ``parse_timeout`` so a hung parser only fails its own module.

A loader can be shared by several bundle runs; its cache is the only state
that outlives a single run.

Example:
    >>> resolver = PathResolver()
    >>> with ModuleLoader(resolver, max_workers=4) as loader:
    ...     modules = loader.load_graph(Path("src/index.ts"))
    ...     table = loader.symbol_table(Path("src/index.ts"))
"""

from __future__ import annotations

import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from tsbundler.core.errors import ModuleLoadError, ModuleSyntaxError, UnresolvedImport
from tsbundler.core.path_resolver import PathResolver
from tsbundler.processors.declaration_extractor import (
    Declaration,
    DeclarationExtractor,
    DefaultExportDirective,
    ExportBinding,
    ImportBinding,
)
from tsbundler.processors.syntax_provider import ParsedSource, TypeScriptSyntaxProvider
from tsbundler.utils.logger import get_logger
from tsbundler.utils.path_utils import FileSystem, PathLike, normalize_path

if TYPE_CHECKING:
    from tsbundler.core.symbol_table import ModuleSymbolTable, SymbolTableBuilder

logger = get_logger("tsbundler.core.module_loader")

UTF8_BOM = b"\xef\xbb\xbf"


@dataclass(frozen=True)
class Module:
    """A loaded source file.

    Attributes:
        path: Canonical path of the file
        source: File contents the declarations were sliced from
        declarations: Top-level declarations in source order
        imports: Import bindings in source order
        exports: Export bindings in source order
        default_export: ``export default <expression>`` directive, if any
        resolved_specifiers: Each import/re-export specifier mapped to its
            canonical target, or None when it could not be resolved
    """
    path: Path
    source: bytes
    declarations: tuple[Declaration, ...] = ()
    imports: tuple[ImportBinding, ...] = ()
    exports: tuple[ExportBinding, ...] = ()
    default_export: DefaultExportDirective | None = None
    resolved_specifiers: dict[str, Path | None] = field(default_factory=dict)

    def resolved(self, specifier: str) -> Path | None:
        return self.resolved_specifiers.get(specifier)

    @property
    def dependencies(self) -> list[Path]:
        """Resolved target paths in first-seen order."""
        return [path for path in self.resolved_specifiers.values() if path is not None]

    @property
    def unresolved_specifiers(self) -> list[str]:
        return [spec for spec, path in self.resolved_specifiers.items() if path is None]


class ModuleLoader:
    """Loads and caches modules by canonical path.

    Attributes:
        resolver: Path resolver used for every specifier
        syntax_provider: Parser adapter
        filesystem: Read-only filesystem view (defaults to the resolver's)
        max_workers: Size of the load and parse worker pools
        parse_timeout: Seconds allowed per parse call; None disables it
    """

    def __init__(
        self,
        resolver: PathResolver,
        syntax_provider: TypeScriptSyntaxProvider | None = None,
        filesystem: FileSystem | None = None,
        max_workers: int = 4,
        parse_timeout: float | None = 30.0,
        table_builder: "SymbolTableBuilder | None" = None,
    ) -> None:
        if max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {max_workers}")
        if table_builder is None:
            from tsbundler.core.symbol_table import SymbolTableBuilder
            table_builder = SymbolTableBuilder()

        self.resolver = resolver
        self.syntax_provider = syntax_provider or TypeScriptSyntaxProvider()
        self.filesystem = filesystem or resolver.filesystem
        self.max_workers = max_workers
        self.parse_timeout = parse_timeout
        self._table_builder = table_builder

        self._futures: dict[Path, Future] = {}
        self._tables: dict[Path, "ModuleSymbolTable"] = {}
        self._lock = threading.Lock()
        self._load_pool: ThreadPoolExecutor | None = None
        self._parse_pool: ThreadPoolExecutor | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def __enter__(self) -> "ModuleLoader":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        """Shut down the worker pools. Cached modules stay available."""
        with self._lock:
            pools = [self._load_pool, self._parse_pool]
            self._load_pool = None
            self._parse_pool = None
        for pool in pools:
            if pool is not None:
                pool.shutdown(wait=False, cancel_futures=True)

    def _get_load_pool(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._load_pool is None:
                self._load_pool = ThreadPoolExecutor(
                    max_workers=self.max_workers, thread_name_prefix="tsbundler-load"
                )
            return self._load_pool

    def _get_parse_pool(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._parse_pool is None:
                self._parse_pool = ThreadPoolExecutor(
                    max_workers=self.max_workers, thread_name_prefix="tsbundler-parse"
                )
            return self._parse_pool

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def loaded_paths(self) -> list[Path]:
        with self._lock:
            return [
                path for path, future in self._futures.items()
                if future.done() and future.exception() is None
            ]

    def load(self, path: PathLike) -> Module:
        """Return the module at ``path``, loading it on first request.

        Raises:
            ModuleLoadError: If the file cannot be read or parsed in time.
            ModuleSyntaxError: If the file contains malformed syntax.
        """
        canonical = normalize_path(path)
        with self._lock:
            future = self._futures.get(canonical)
            owner = future is None
            if owner:
                future = Future()
                self._futures[canonical] = future

        if not owner:
            return future.result()

        try:
            module = self._load_uncached(canonical)
        except BaseException as exc:
            future.set_exception(exc)
            raise
        future.set_result(module)
        return module

    def symbol_table(self, path: PathLike) -> "ModuleSymbolTable":
        """Return the symbol table of the module at ``path``."""
        canonical = normalize_path(path)
        with self._lock:
            table = self._tables.get(canonical)
        if table is not None:
            return table
        self.load(canonical)
        with self._lock:
            return self._tables[canonical]

    def load_graph(self, entry: PathLike) -> dict[Path, Module]:
        """Load ``entry`` and every module it transitively imports.

        Packages found under ``node_modules`` are not prefetched; they are
        loaded on demand when a needed binding leads into them.

        Returns:
            Mapping of canonical path to module for every module loaded by
            this walk.

        Raises:
            ModuleLoadError: For the first module that fails to load. Work
                still queued is cancelled.
        """
        entry_path = normalize_path(entry)
        pool = self._get_load_pool()
        pending: dict[Future, Path] = {pool.submit(self.load, entry_path): entry_path}
        scheduled = {entry_path}
        modules: dict[Path, Module] = {}

        while pending:
            done, _ = wait(pending, return_when=FIRST_COMPLETED)
            for future in done:
                path = pending.pop(future)
                try:
                    module = future.result()
                except Exception:
                    for other in pending:
                        other.cancel()
                    raise
                modules[path] = module
                for dependency in module.dependencies:
                    if dependency in scheduled or "node_modules" in dependency.parts:
                        continue
                    scheduled.add(dependency)
                    pending[pool.submit(self.load, dependency)] = dependency

        logger.info(f"Loaded {len(modules)} module(s) reachable from {entry_path.name}")
        return modules

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _load_uncached(self, path: Path) -> Module:
        try:
            source = self.filesystem.read_bytes(path)
        except OSError as exc:
            raise ModuleLoadError(path, f"cannot read file: {exc.strerror or exc}") from exc
        if source.startswith(UTF8_BOM):
            source = source[len(UTF8_BOM):]

        parsed = self._parse(path, source)
        if parsed.errors:
            raise ModuleSyntaxError(path, parsed.errors)

        syntax = DeclarationExtractor(path, parsed).extract()

        resolved: dict[str, Path | None] = {}
        for specifier in syntax.specifiers:
            try:
                resolved[specifier] = self.resolver.resolve(path, specifier)
            except UnresolvedImport:
                logger.debug(f"{path.name}: specifier '{specifier}' does not resolve")
                resolved[specifier] = None

        module = Module(
            path=path,
            source=source,
            declarations=tuple(syntax.declarations),
            imports=tuple(syntax.imports),
            exports=tuple(syntax.exports),
            default_export=syntax.default_export,
            resolved_specifiers=resolved,
        )
        table = self._table_builder.build(module)
        with self._lock:
            self._tables[path] = table

        logger.debug(
            f"Loaded {path}: {len(module.declarations)} declaration(s), "
            f"{len(module.imports)} import(s), {len(module.exports)} export(s)"
        )
        return module

    def _parse(self, path: Path, source: bytes) -> ParsedSource:
        if self.parse_timeout is None:
            return self.syntax_provider.parse(source, path)

        future = self._get_parse_pool().submit(self.syntax_provider.parse, source, path)
        try:
            return future.result(timeout=self.parse_timeout)
        except FutureTimeoutError as exc:
            future.cancel()
            raise ModuleLoadError(
                path, f"parser timed out after {self.parse_timeout}s"
            ) from exc
