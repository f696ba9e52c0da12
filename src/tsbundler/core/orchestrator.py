"""Bundle orchestration.

This module provides ``BundleOrchestrator``, which runs the full pipeline for
one entry point, and the module-level ``bundle``/``bundle_text`` helpers.

A run moves through these states::

    PENDING -> LOADING -> RESOLVING -> EMITTING -> COMPLETED
                  |
                  v
                FAILED

Loading is the only fatal phase: a module that cannot be read or parsed
fails the run for that entry. Resolution problems are collected and
returned next to a best-effort bundle.

Each run gets its own ``BundleContext`` (diagnostics, alias resolver,
reference graph, reachability engine, emitter). Only the ``ModuleLoader``
cache is shared, which lets ``bundle_many`` parse each file once across
several entries.

Example:
    >>> result = bundle(Path("src/index.ts"), options=BundleConfig(preserve_default_export=True))
    >>> if result.success:
    ...     print(result.text)
    ... else:
    ...     for error in result.errors:
    ...         print(error)
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, ClassVar, Sequence

from tsbundler.core.alias_resolver import AliasResolver
from tsbundler.core.config import BundleConfig
from tsbundler.core.dependency_graph import BundleGraph, ReferenceGraphBuilder
from tsbundler.core.emitter import Emitter, emitted_symbols
from tsbundler.core.errors import (
    CollisionRenameApplied,
    DiagnosticCollector,
    ModuleLoadError,
    ResolutionError,
)
from tsbundler.core.module_loader import ModuleLoader
from tsbundler.core.path_resolver import PathAliasTable, PathResolver
from tsbundler.core.reachability import BundlePlan, ReachabilityEngine
from tsbundler.utils.logger import get_logger
from tsbundler.utils.path_utils import FileSystem, PathLike, normalize_path

logger = get_logger("tsbundler.core.orchestrator")


class JobState(Enum):
    """States of a bundle run.

    States:
        PENDING: Run created but not started
        LOADING: Reading and parsing the module graph
        RESOLVING: Resolving bindings and walking the reference graph
        EMITTING: Producing the bundle text
        COMPLETED: Bundle produced (possibly with diagnostics)
        FAILED: A module failed to load; no bundle was produced
    """
    PENDING = "pending"
    LOADING = "loading"
    RESOLVING = "resolving"
    EMITTING = "emitting"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class BundleEntry:
    """One entry of a batch run, written ``file:type[:alias]`` on the command line.

    Attributes:
        path: Entry module
        type_name: Name to bundle from the entry
        alias: Name the type gets in its bundle, defaults to ``type_name``
    """
    path: Path
    type_name: str
    alias: str | None = None

    _PATTERN: ClassVar[re.Pattern] = re.compile(
        r"^(?P<path>.+?):(?P<type>[A-Za-z_$][\w$]*)(?::(?P<alias>[A-Za-z_$][\w$]*))?$"
    )

    @classmethod
    def parse(cls, text: str) -> BundleEntry:
        """Parse ``file:type[:alias]``.

        Raises:
            ValueError: If the text does not name a type
        """
        match = cls._PATTERN.match(text.strip())
        if match is None:
            raise ValueError(f"Invalid entry '{text}': expected 'file:type[:alias]'")
        return cls(Path(match.group("path")), match.group("type"), match.group("alias"))

    @property
    def output_name(self) -> str:
        return f"{self.alias or self.type_name}.d.ts"

    def __str__(self) -> str:
        suffix = f":{self.alias}" if self.alias else ""
        return f"{self.path}:{self.type_name}{suffix}"


@dataclass
class BundleResult:
    """Result of bundling one entry point.

    Attributes:
        entry: Canonical entry path
        text: Bundle text; empty when the run failed
        errors: Resolution diagnostics
        notices: Collision renames applied
        state: Final state of the run
        fatal_error: Message of the load failure that stopped the run
        exception: The load failure itself
        metadata: Counters and timings of the run
    """
    entry: Path
    text: str = ""
    errors: list[ResolutionError] = field(default_factory=list)
    notices: list[CollisionRenameApplied] = field(default_factory=list)
    state: JobState = JobState.PENDING
    fatal_error: str | None = None
    exception: ModuleLoadError | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        """True for a completed bundle without diagnostics."""
        return self.state is JobState.COMPLETED and not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "entry": str(self.entry),
            "state": self.state.value,
            "success": self.success,
            "fatal_error": self.fatal_error,
            "errors": [error.to_dict() for error in self.errors],
            "notices": [notice.to_dict() for notice in self.notices],
            "metadata": dict(self.metadata),
        }


@dataclass
class BundleContext:
    """Per-run state; nothing in it outlives a single bundle."""
    diagnostics: DiagnosticCollector
    resolver: AliasResolver
    graph: BundleGraph
    builder: ReferenceGraphBuilder
    engine: ReachabilityEngine
    emitter: Emitter

    @classmethod
    def create(cls, loader: ModuleLoader, config: BundleConfig) -> BundleContext:
        diagnostics = DiagnosticCollector()
        resolver = AliasResolver(loader, diagnostics)
        graph = BundleGraph()
        builder = ReferenceGraphBuilder(resolver, graph)
        return cls(
            diagnostics=diagnostics,
            resolver=resolver,
            graph=graph,
            builder=builder,
            engine=ReachabilityEngine(resolver, builder, config.default_export_name),
            emitter=Emitter(config.preserve_default_export),
        )


class BundleOrchestrator:
    """Runs the bundling pipeline over a shared module loader.

    Attributes:
        config: Options of every run
        loader: Module loader whose cache is shared by all runs

    Example:
        >>> with BundleOrchestrator(BundleConfig()) as orchestrator:
        ...     results = orchestrator.bundle_many([BundleEntry.parse("src/user.ts:User")])
    """

    def __init__(
        self,
        config: BundleConfig | None = None,
        alias_table: PathAliasTable | None = None,
        loader: ModuleLoader | None = None,
        filesystem: FileSystem | None = None,
    ) -> None:
        self.config = config or BundleConfig()
        self.config.validate()
        self._owns_loader = loader is None
        if loader is None:
            resolver = PathResolver(
                alias_table if alias_table is not None else self.config.alias_table(),
                extensions=self.config.extensions,
                filesystem=filesystem,
                resolve_node_modules=self.config.resolve_node_modules,
            )
            loader = ModuleLoader(
                resolver,
                filesystem=filesystem,
                max_workers=self.config.max_workers,
                parse_timeout=self.config.parse_timeout,
            )
        self.loader = loader
        self._current_state = JobState.PENDING

    def __enter__(self) -> BundleOrchestrator:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_loader:
            self.loader.close()

    def _transition_state(self, new_state: JobState, result: BundleResult) -> None:
        old_state = self._current_state
        self._current_state = new_state
        result.state = new_state
        logger.info(f"State transition: {old_state.name} -> {new_state.name}")

    def bundle(
        self,
        entry: PathLike,
        root_names: Sequence[str] | None = None,
        renamed_roots: dict[str, str] | None = None,
    ) -> BundleResult:
        """Bundle ``entry``.

        Args:
            entry: Entry module path.
            root_names: Restrict roots to these names; defaults to the
                configured ``root_names``, then to every export.
            renamed_roots: Display names for roots, keyed by exported name.

        Returns:
            The result; load failures are reported in it, not raised.
        """
        entry_path = normalize_path(entry)
        result = BundleResult(entry=entry_path)
        self._current_state = JobState.PENDING
        started = time.perf_counter()

        self._transition_state(JobState.LOADING, result)
        try:
            modules = self.loader.load_graph(entry_path)
        except ModuleLoadError as exc:
            self._transition_state(JobState.FAILED, result)
            result.fatal_error = exc.message
            result.exception = exc
            result.metadata["elapsed_seconds"] = time.perf_counter() - started
            logger.error(f"Bundling {entry_path.name} failed: {exc.message}")
            return result

        self._transition_state(JobState.RESOLVING, result)
        context = BundleContext.create(self.loader, self.config)
        names = root_names if root_names is not None else (self.config.root_names or None)
        try:
            plan = context.engine.plan(entry_path, names, renamed_roots)
        except ModuleLoadError as exc:
            # Packages under node_modules are loaded on demand while resolving
            self._transition_state(JobState.FAILED, result)
            result.fatal_error = exc.message
            result.exception = exc
            logger.error(f"Bundling {entry_path.name} failed: {exc.message}")
            return result

        self._transition_state(JobState.EMITTING, result)
        result.text = context.emitter.emit(plan)
        result.errors = context.diagnostics.errors
        result.notices = plan.renames
        result.metadata = self._metadata(plan, context, len(modules), time.perf_counter() - started)

        self._transition_state(JobState.COMPLETED, result)
        if result.errors:
            logger.warning(f"Bundle of {entry_path.name} completed with {len(result.errors)} diagnostic(s)")
        return result

    def _metadata(
        self, plan: BundlePlan, context: BundleContext, module_count: int, elapsed: float
    ) -> dict[str, Any]:
        cycles = context.graph.find_cycles()
        if cycles:
            logger.debug(f"{len(cycles)} reference cycle(s) among bundled symbols")
        return {
            "modules_loaded": module_count,
            "symbols": [name for _, name in emitted_symbols(plan)],
            "symbol_count": plan.symbol_count,
            "renames": len(plan.renames),
            "reference_cycles": len(cycles),
            "unresolved_names": context.builder.unresolved_names,
            "elapsed_seconds": elapsed,
        }

    def bundle_many(
        self,
        entries: Sequence[BundleEntry],
        progress_callback: Callable[[int, int, BundleEntry], None] | None = None,
    ) -> list[BundleResult]:
        """Bundle each entry's type into its own result, sharing the module cache.

        Args:
            entries: Entries to bundle, in order.
            progress_callback: Called as ``(index, total, entry)`` before
                each entry is bundled.
        """
        logger.info(f"Batch bundling {len(entries)} entr{'y' if len(entries) == 1 else 'ies'}")
        results = []
        for index, entry in enumerate(entries, start=1):
            if progress_callback is not None:
                progress_callback(index, len(entries), entry)
            renamed = {entry.type_name: entry.alias} if entry.alias else None
            results.append(self.bundle(entry.path, [entry.type_name], renamed))
        failed = sum(1 for r in results if r.state is JobState.FAILED)
        logger.info(f"Batch bundling finished: {len(results) - failed}/{len(results)} produced a bundle")
        return results


def bundle(
    entry: PathLike,
    alias_table: PathAliasTable | None = None,
    options: BundleConfig | None = None,
) -> BundleResult:
    """Bundle ``entry`` with a fresh loader."""
    with BundleOrchestrator(options, alias_table) as orchestrator:
        return orchestrator.bundle(entry)


def bundle_text(
    entry: PathLike,
    alias_table: PathAliasTable | None = None,
    options: BundleConfig | None = None,
) -> tuple[str, list[ResolutionError]]:
    """Bundle ``entry`` and return ``(text, errors)``.

    Raises:
        ModuleLoadError: If a module of the graph cannot be loaded.
    """
    result = bundle(entry, alias_table, options)
    if result.exception is not None:
        raise result.exception
    return result.text, result.errors
