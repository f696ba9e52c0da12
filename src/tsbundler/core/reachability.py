"""Reachability walk and collision-free display naming.

``ReachabilityEngine`` starts from the symbols an entry module exports and
walks the reference graph breadth first. Each symbol moves through
``SymbolState`` UNVISITED -> QUEUED -> RESOLVED exactly once, which both
deduplicates symbols reached through several alias chains and makes
mutually referencing declarations safe.

Display names are handed out by ``DisplayNameAllocator`` once the walk is
done, in discovery order. Roots keep their exported names; the globals the
bundle mentions are reserved before any other symbol is named. The first
symbol to claim a name keeps it; later symbols with the same name are
renamed with a suffix derived from their defining module and a
``CollisionRenameApplied`` notice is recorded.

Example:
    >>> engine = ReachabilityEngine(resolver, ReferenceGraphBuilder(resolver))
    >>> plan = engine.plan(Path("/p/index.ts"))
    >>> [plan.display_names[s] for s in plan.order]
    ['Check', 'User', 'Age', 'Age_profile']
"""

from __future__ import annotations

import hashlib
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Sequence

from tsbundler.core.alias_resolver import AliasResolver, NamespaceTarget, Target
from tsbundler.core.dependency_graph import ReferenceGraphBuilder, ResolvedReference
from tsbundler.core.errors import CollisionRenameApplied, MissingExport
from tsbundler.core.symbol_table import Symbol
from tsbundler.processors.declaration_extractor import DEFAULT_EXPORT, Declaration
from tsbundler.utils.logger import get_logger
from tsbundler.utils.path_utils import module_stem, sanitize_identifier

logger = get_logger("tsbundler.core.reachability")

# Display name of an anonymous default nobody gave a name to
DEFAULT_EXPORT_PLACEHOLDER = "DefaultExport"


class SymbolState(Enum):
    """Traversal state of a symbol."""
    UNVISITED = "unvisited"
    QUEUED = "queued"
    RESOLVED = "resolved"


class DisplayNameAllocator:
    """Assigns unique display names, first come first served.

    Candidates for a taken name are tried in order: the sanitized module
    stem as a suffix, a short hash of the module path, then a counter.

    Example:
        >>> allocator = DisplayNameAllocator()
        >>> allocator.allocate(Symbol(Path("/p/user.ts"), "Age"), "Age")
        'Age'
        >>> allocator.allocate(Symbol(Path("/p/profile.ts"), "Age"), "Age")
        'Age_profile'
    """

    def __init__(self) -> None:
        self._used_names: set[str] = set()
        self._names: dict[Symbol, str] = {}
        self.renames: list[CollisionRenameApplied] = []

    @property
    def names(self) -> dict[Symbol, str]:
        return dict(self._names)

    def is_taken(self, name: str) -> bool:
        return name in self._used_names

    def reserve(self, name: str) -> bool:
        """Claim a name that belongs to no symbol. Returns False if taken."""
        if name in self._used_names:
            return False
        self._used_names.add(name)
        return True

    def allocate(self, symbol: Symbol, preferred: str) -> str:
        """Return the display name of ``symbol``, allocating it on first call."""
        existing = self._names.get(symbol)
        if existing is not None:
            return existing

        name = self._first_free(symbol, preferred)
        self._used_names.add(name)
        self._names[symbol] = name
        if name != preferred:
            notice = CollisionRenameApplied(symbol.module_path, preferred, name)
            self.renames.append(notice)
            logger.warning(str(notice))
        return name

    def _first_free(self, symbol: Symbol, preferred: str) -> str:
        if preferred not in self._used_names:
            return preferred

        stem = sanitize_identifier(module_stem(symbol.module_path))
        digest = hashlib.md5(str(symbol.module_path).encode("utf-8")).hexdigest()[:6]
        for suffix in (stem, digest):
            candidate = f"{preferred}_{suffix}"
            if suffix and candidate not in self._used_names:
                return candidate

        counter = 2
        while f"{preferred}_{counter}" in self._used_names:
            counter += 1
        return f"{preferred}_{counter}"


@dataclass
class BundlePlan:
    """Everything the emitter needs, in emission order.

    Attributes:
        entry: Canonical path of the entry module
        order: Symbols in BFS discovery order
        display_names: Final name of every symbol in ``order``
        declarations: Declarations of every symbol, in source order
        references: Resolved references of every symbol
        root_aliases: Extra exported names of root symbols, as
            ``(symbol, exported_name)``
        default_symbol: Symbol behind the entry's default export, if it is
            part of the bundle
        renames: Collision renames applied while naming
    """
    entry: Path
    order: list[Symbol] = field(default_factory=list)
    display_names: dict[Symbol, str] = field(default_factory=dict)
    declarations: dict[Symbol, tuple[Declaration, ...]] = field(default_factory=dict)
    references: dict[Symbol, list[ResolvedReference]] = field(default_factory=dict)
    root_aliases: list[tuple[Symbol, str]] = field(default_factory=list)
    default_symbol: Symbol | None = None
    renames: list[CollisionRenameApplied] = field(default_factory=list)

    def display_name(self, symbol: Symbol) -> str:
        return self.display_names[symbol]

    @property
    def symbol_count(self) -> int:
        return len(self.order)

    def to_dict(self) -> dict[str, Any]:
        return {
            "entry": str(self.entry),
            "symbols": [
                {"symbol": str(symbol), "name": self.display_names[symbol]}
                for symbol in self.order
            ],
            "aliases": [
                {"symbol": str(symbol), "name": name} for symbol, name in self.root_aliases
            ],
            "default": str(self.default_symbol) if self.default_symbol else None,
            "renames": [notice.to_dict() for notice in self.renames],
        }


class ReachabilityEngine:
    """Selects the symbols an entry point needs and names them.

    Attributes:
        resolver: Alias resolver of the current run
        builder: Reference graph builder of the current run
        default_export_name: Display name for an anonymous default export
            that is a root
    """

    def __init__(
        self,
        resolver: AliasResolver,
        builder: ReferenceGraphBuilder,
        default_export_name: str | None = None,
    ) -> None:
        self.resolver = resolver
        self.builder = builder
        self.default_export_name = default_export_name or DEFAULT_EXPORT_PLACEHOLDER

    # ------------------------------------------------------------------
    # Roots
    # ------------------------------------------------------------------

    def collect_roots(
        self, entry: Path, root_names: Sequence[str] | None = None
    ) -> list[tuple[str, Symbol]]:
        """List ``(exported_name, symbol)`` roots of ``entry`` in export order.

        Namespace exports are expanded into the exports of their module.
        With ``root_names``, only those names are used; a name the entry
        declares or imports without exporting it is accepted too.
        """
        if not root_names:
            entries = self.resolver.export_entries(entry)
        else:
            entries = []
            for name in root_names:
                if self.resolver.has_export(entry, name):
                    exported = self.resolver.resolve_export(entry, name)
                    if exported is not None:
                        entries.append((name, exported))
                    continue
                target = self.resolver.resolve_local(entry, name)
                if target is None:
                    self.resolver.diagnostics.add(MissingExport(entry, name))
                    logger.warning(f"Root '{name}' is not declared or exported by {entry.name}")
                    continue
                entries.append((name, target))

        roots: list[tuple[str, Symbol]] = []
        self._flatten(entries, roots, expanded=set())
        return roots

    def _flatten(
        self,
        entries: list[tuple[str, Target]],
        roots: list[tuple[str, Symbol]],
        expanded: set[Path],
    ) -> None:
        for name, target in entries:
            if isinstance(target, Symbol):
                roots.append((name, target))
                continue
            if target.module_path in expanded:
                continue
            expanded.add(target.module_path)
            logger.debug(f"Expanding namespace export '{name}' of {target.module_path.name}")
            self._flatten(self.resolver.export_entries(target.module_path), roots, expanded)

    def _root_display_name(self, exported_name: str, symbol: Symbol) -> str:
        if exported_name != DEFAULT_EXPORT:
            return exported_name
        if symbol.is_anonymous_default:
            return self.default_export_name
        return symbol.name

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def plan(
        self,
        entry: Path,
        root_names: Sequence[str] | None = None,
        renamed_roots: Mapping[str, str] | None = None,
    ) -> BundlePlan:
        """Walk the reference graph from the roots of ``entry``.

        Args:
            entry: Canonical path of the entry module.
            root_names: Restrict roots to these names, see ``collect_roots``.
            renamed_roots: Preferred display names for roots, keyed by the
                name the entry exports them under.
        """
        renamed_roots = renamed_roots or {}
        plan = BundlePlan(entry=entry)
        states: dict[Symbol, SymbolState] = {}
        preferred_names: dict[Symbol, str] = {}
        queue: deque[Symbol] = deque()

        def enqueue(symbol: Symbol, preferred: str) -> bool:
            if states.get(symbol, SymbolState.UNVISITED) is not SymbolState.UNVISITED:
                return False
            states[symbol] = SymbolState.QUEUED
            preferred_names[symbol] = preferred
            plan.order.append(symbol)
            queue.append(symbol)
            return True

        roots = self.collect_roots(entry, root_names)
        pending_aliases: list[tuple[Symbol, str]] = []
        for exported_name, symbol in roots:
            if exported_name == DEFAULT_EXPORT:
                plan.default_symbol = symbol
            preferred = renamed_roots.get(exported_name) or self._root_display_name(exported_name, symbol)
            if not enqueue(symbol, preferred):
                if exported_name != DEFAULT_EXPORT:
                    pending_aliases.append((symbol, exported_name))
        root_count = len(plan.order)

        while queue:
            symbol = queue.popleft()
            references = self.builder.edges_for(symbol)
            for reference in references:
                target = reference.target
                preferred = reference.local_name if target.is_anonymous_default else target.name
                enqueue(target, preferred)
            plan.references[symbol] = references
            plan.declarations[symbol] = self.builder.declarations_of(symbol)
            states[symbol] = SymbolState.RESOLVED

        allocator = self._allocate_names(plan, preferred_names, root_count, pending_aliases)
        plan.display_names = allocator.names
        plan.renames = list(allocator.renames)
        logger.info(
            f"Reachability: {plan.symbol_count} symbol(s) from {len(roots)} root(s), "
            f"{len(plan.renames)} rename(s)"
        )
        return plan

    def _allocate_names(
        self,
        plan: BundlePlan,
        preferred_names: Mapping[Symbol, str],
        root_count: int,
        pending_aliases: Sequence[tuple[Symbol, str]],
    ) -> DisplayNameAllocator:
        """Name the symbols of ``plan`` in discovery order.

        Roots are named first and keep their exported names. Extra export
        names of roots come next, then every global the bundle mentions
        (``Date``, ``Omit``) so that no renamed declaration shadows one.
        """
        allocator = DisplayNameAllocator()
        for symbol in plan.order[:root_count]:
            allocator.allocate(symbol, preferred_names[symbol])

        for symbol, exported_name in pending_aliases:
            if exported_name == allocator.names[symbol]:
                continue
            if allocator.reserve(exported_name):
                plan.root_aliases.append((symbol, exported_name))
            else:
                logger.warning(f"Export alias '{exported_name}' of {symbol} clashes with another name; dropped")

        for text in self.builder.unresolved_names:
            allocator.reserve(text.split(".", 1)[0])

        for symbol in plan.order[root_count:]:
            allocator.allocate(symbol, preferred_names[symbol])
        return allocator
