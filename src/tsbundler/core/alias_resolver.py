"""Import and re-export chain resolution.

``AliasResolver`` maps a name, as seen from some module, to the canonical
``Symbol`` that defines it. It follows every TypeScript binding form:

* local exports of declarations or of imported names
* named and default re-exports (``export { A as B } from``)
* ``export *`` unions, expanded lazily per module
* namespace imports and namespace re-exports (``import * as NS``,
  ``export * as NS from``), which resolve to a ``NamespaceTarget`` whose
  members are looked up on demand

A chain is followed as an explicit loop over ``(module, name)`` hops with a
visited list, so arbitrarily long chains neither recurse deeply nor loop
forever. The pairs of a finished chain are memoized.

Failures are never raised to the caller: they are recorded in the
``DiagnosticCollector`` and the lookup returns ``None``.

Example:
    >>> resolver = AliasResolver(loader, DiagnosticCollector())
    >>> resolver.resolve_export(Path("/p/index.ts"), "RenamedType")
    Symbol(module_path=PosixPath('/p/types.ts'), name='OriginalType')
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Sequence, Union

from tsbundler.core.errors import (
    AmbiguousStarExport,
    CircularAliasError,
    DiagnosticCollector,
    MissingExport,
    UnresolvedImport,
)
from tsbundler.core.symbol_table import ModuleSymbolTable, Symbol
from tsbundler.processors.declaration_extractor import (
    DEFAULT_EXPORT,
    ExportBinding,
    ExportKind,
    ImportBinding,
    ImportKind,
)
from tsbundler.utils.logger import get_logger

if TYPE_CHECKING:
    from tsbundler.core.module_loader import ModuleLoader

logger = get_logger("tsbundler.core.alias_resolver")


@dataclass(frozen=True)
class NamespaceTarget:
    """A whole module's export table bound to one name."""
    module_path: Path


Target = Union[Symbol, NamespaceTarget]

# A step of a chain: either a finished target (or None) or the next pair
_Hop = Union[Target, None, tuple[Path, str]]


class AliasResolver:
    """Resolves exported and locally visible names to their origin symbols.

    One resolver belongs to one bundle run; its memo tables are never
    shared across runs.

    Attributes:
        diagnostics: Collector receiving resolution errors
    """

    def __init__(self, loader: "ModuleLoader", diagnostics: DiagnosticCollector) -> None:
        self._loader = loader
        self.diagnostics = diagnostics
        self._memo: dict[tuple[Path, str], Target | None] = {}
        self._star_sources_memo: dict[Path, dict[str, list[Path]]] = {}
        self._expanding: list[Path] = []
        self._cycle_floor = 0
        self._cycle_cuts = 0
        self._disambiguating: set[tuple[Path, str]] = set()

    def table(self, module_path: Path) -> ModuleSymbolTable:
        return self._loader.symbol_table(module_path)

    # ------------------------------------------------------------------
    # Chain following
    # ------------------------------------------------------------------

    def resolve_export(self, module_path: Path, name: str) -> Target | None:
        """Resolve the export ``name`` of ``module_path`` to its origin."""
        chain: list[tuple[Path, str]] = []
        on_chain: set[tuple[Path, str]] = set()
        current = (module_path, name)
        cuts = self._cycle_cuts

        while True:
            if current in self._memo:
                result = self._memo[current]
                break
            if current in on_chain:
                error = CircularAliasError(chain + [current])
                if self.diagnostics.add(error):
                    logger.warning(error.message)
                result = None
                break
            chain.append(current)
            on_chain.add(current)

            hop = self._next_hop(*current)
            if isinstance(hop, tuple):
                current = hop
                continue
            result = hop
            break

        # a None reached by cutting an export * cycle short is not final
        if result is not None or self._cycle_cuts == cuts:
            for key in chain:
                self._memo[key] = result
        if len(chain) > 1:
            logger.debug(f"Resolved {module_path.name}:{name} through {len(chain)} hop(s) -> {result}")
        return result

    def resolve_import(self, module_path: Path, binding: ImportBinding) -> Target | None:
        """Resolve an import binding declared in ``module_path``."""
        hop = self._import_hop(self.table(module_path), binding)
        if isinstance(hop, tuple):
            return self.resolve_export(*hop)
        return hop

    def _next_hop(self, module_path: Path, name: str) -> _Hop:
        table = self.table(module_path)
        binding = table.export_table.get(name)
        if binding is not None:
            return self._binding_hop(table, binding)

        if name != DEFAULT_EXPORT:
            sources = self._star_sources(module_path).get(name)
            if sources:
                if len(sources) == 1:
                    return (sources[0], name)
                return self._unique_star_target(module_path, name, sources, report=True)

        self.diagnostics.add(MissingExport(module_path, name))
        return None

    def _binding_hop(self, table: ModuleSymbolTable, binding: ExportBinding) -> _Hop:
        if binding.kind is ExportKind.LOCAL:
            local = binding.local_name or ""
            if table.declares(local):
                return Symbol(table.module_path, local)
            imported = table.imports.get(local)
            if imported is not None:
                return self._import_hop(table, imported)
            self.diagnostics.add(MissingExport(table.module_path, local))
            return None

        target = self._target(table, binding.specifier or "", binding.exported_name)
        if target is None:
            return None
        if binding.kind is ExportKind.REEXPORT_NAMESPACE:
            return NamespaceTarget(target)
        return (target, binding.remote_name or DEFAULT_EXPORT)

    def _import_hop(self, table: ModuleSymbolTable, binding: ImportBinding) -> _Hop:
        target = self._target(table, binding.specifier, binding.local_name)
        if target is None:
            return None
        if binding.kind is ImportKind.NAMESPACE:
            return NamespaceTarget(target)
        return (target, binding.remote_name or DEFAULT_EXPORT)

    def _target(self, table: ModuleSymbolTable, specifier: str, symbol: str | None) -> Path | None:
        target = table.target_of(specifier)
        if target is None:
            error = UnresolvedImport(table.module_path, specifier, symbol)
            if self.diagnostics.add(error):
                logger.warning(error.message)
        return target

    # ------------------------------------------------------------------
    # export * expansion
    # ------------------------------------------------------------------

    def _star_sources(self, module_path: Path) -> dict[str, list[Path]]:
        """Map each name contributed by ``export *`` to the modules providing it.

        Names the module exports explicitly are left out: an explicit export
        always wins over a star export. Expansion of a module that is
        already being expanded yields nothing, which terminates
        ``export *`` cycles.

        A result is only memoized when it is complete. Inside a cycle
        ``a -> b -> a`` the expansion of ``b`` misses the names ``a``
        contributes, so it is recomputed once ``a`` is known.
        """
        cached = self._star_sources_memo.get(module_path)
        if cached is not None:
            return cached
        if module_path in self._expanding:
            self._cycle_floor = min(self._cycle_floor, self._expanding.index(module_path))
            return {}

        depth = len(self._expanding)
        outer_floor = self._cycle_floor
        self._cycle_floor = depth
        self._expanding.append(module_path)
        try:
            table = self.table(module_path)
            sources: dict[str, list[Path]] = {}
            for binding in table.star_exports:
                target = self._target(table, binding.specifier or "", None)
                if target is None:
                    continue
                for exported in self._all_export_names(target):
                    if exported == DEFAULT_EXPORT or exported in table.export_table:
                        continue
                    providers = sources.setdefault(exported, [])
                    if target not in providers:
                        providers.append(target)
        finally:
            self._expanding.pop()
            floor = self._cycle_floor
            self._cycle_floor = min(outer_floor, floor)

        if floor >= depth:
            self._star_sources_memo[module_path] = sources
        else:
            logger.debug(f"Star exports of {module_path.name} are partial inside an export * cycle")
        return sources

    def _all_export_names(self, module_path: Path) -> list[str]:
        names = list(self.table(module_path).export_table)
        names.extend(name for name in self._star_sources(module_path) if name not in names)
        return names

    def _unique_star_target(
        self, module_path: Path, name: str, sources: Sequence[Path], report: bool
    ) -> Target | None:
        """Pick the single origin behind a name several star exports provide.

        Providers that lead to the same symbol are not ambiguous; otherwise
        the name is excluded, mirroring TypeScript.
        """
        key = (module_path, name)
        if key in self._disambiguating:
            self._cycle_cuts += 1
            return None
        self._disambiguating.add(key)
        targets: list[Target] = []
        try:
            for source in sources:
                target = self.resolve_export(source, name)
                if target is not None and target not in targets:
                    targets.append(target)
        finally:
            self._disambiguating.discard(key)
        if len(targets) == 1:
            return targets[0]
        if len(targets) > 1:
            if report:
                self.diagnostics.add(AmbiguousStarExport(module_path, name, sources))
            logger.warning(
                f"'{name}' is exported by several 'export *' sources of {module_path.name}; excluded"
            )
        return None

    # ------------------------------------------------------------------
    # Lookups used by later stages
    # ------------------------------------------------------------------

    def has_export(self, module_path: Path, name: str) -> bool:
        return name in self.table(module_path).export_table or name in self._star_sources(module_path)

    def export_entries(
        self, module_path: Path, names: Sequence[str] | None = None
    ) -> list[tuple[str, Target]]:
        """Resolve the exports of a module, in export order.

        Explicit exports come first in source order, followed by names
        contributed by ``export *``. Star names whose providers disagree
        are dropped silently, as TypeScript does.

        Args:
            module_path: Module whose exports are listed.
            names: Restrict the listing to these names (unknown names are
                skipped).
        """
        table = self.table(module_path)
        star = self._star_sources(module_path)
        if names is None:
            wanted = list(table.export_table)
            wanted.extend(name for name in star if name not in table.export_table)
        else:
            wanted = [name for name in names if name in table.export_table or name in star]

        entries: list[tuple[str, Target]] = []
        for name in wanted:
            providers = star.get(name) if name not in table.export_table else None
            if providers and len(providers) > 1:
                target = self._unique_star_target(module_path, name, providers, report=False)
            else:
                target = self.resolve_export(module_path, name)
            if target is not None:
                entries.append((name, target))
        return entries

    def resolve_local(self, module_path: Path, name: str) -> Target | None:
        """Resolve a name as visible inside ``module_path``.

        Lookup order: local declarations, imports, then the module's own
        re-exports. Names found nowhere are globals and resolve to None
        without a diagnostic.
        """
        table = self.table(module_path)
        if name != DEFAULT_EXPORT and table.declares(name):
            return Symbol(module_path, name)

        binding = table.imports.get(name)
        if binding is not None:
            return self.resolve_import(module_path, binding)

        if self.has_export(module_path, name):
            return self.resolve_export(module_path, name)
        return None

    def resolve_reference(
        self, module_path: Path, names: Sequence[str]
    ) -> tuple[Target | None, int]:
        """Resolve a possibly qualified reference such as ``NS.Sub.User``.

        Namespace segments are walked until a symbol is reached; any
        segments after that are member accesses of the symbol (an enum
        member, say).

        Returns:
            The target and the number of leading segments it covers.
        """
        target = self.resolve_local(module_path, names[0])
        consumed = 1
        while isinstance(target, NamespaceTarget) and consumed < len(names):
            target = self.resolve_export(target.module_path, names[consumed])
            consumed += 1
        return target, consumed
