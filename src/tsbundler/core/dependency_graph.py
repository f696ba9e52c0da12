"""Reference graph between bundlable symbols.

This module provides the ``BundleGraph`` container, whose nodes are
``Symbol`` identities and whose edges record that one declaration mentions
another, and the ``ReferenceGraphBuilder`` that fills it lazily: the edges
of a symbol are computed the first time the reachability walk asks for
them, so only symbols actually needed by a bundle are ever resolved.

Every edge keeps the exact byte span of the mention inside the declaring
text, which is what lets the emitter rename references precisely.

Example:
    >>> graph = BundleGraph()
    >>> builder = ReferenceGraphBuilder(resolver, graph)
    >>> for ref in builder.edges_for(Symbol(Path("/p/index.ts"), "Check")):
    ...     print(ref.target)
    user.ts:User
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from tsbundler.core.alias_resolver import AliasResolver
from tsbundler.core.symbol_table import Symbol
from tsbundler.processors.declaration_extractor import Declaration
from tsbundler.utils.logger import get_logger

logger = get_logger("tsbundler.core.dependency_graph")


# ============================================================================
# Data Structures
# ============================================================================


@dataclass(frozen=True)
class ResolvedReference:
    """A type reference of one symbol resolved to another symbol.

    Attributes:
        source: Symbol whose declaration contains the mention
        target: Symbol the mention resolves to
        declaration_index: Which of the source's declarations contains it
        start: Byte offset of the span to rewrite, relative to that
            declaration's raw text
        end: End of the span to rewrite. For ``NS.User['id']`` the span
            covers ``NS.User``; for ``Color.Red`` it covers only ``Color``.
        local_name: The name used at the mention site (the last rewritten
            segment), e.g. ``AliasDefault`` for a default import
    """
    source: Symbol
    target: Symbol
    declaration_index: int
    start: int
    end: int
    local_name: str


@dataclass
class BundleGraph:
    """Depends-on graph over symbols, built during reference resolution.

    Attributes:
        nodes: Symbols in insertion order
        edges: Resolved references per source symbol, in mention order
        adjacency_list: Forward adjacency (symbol -> symbols it mentions)
        reverse_adjacency: Reverse adjacency (symbol -> symbols mentioning it)
    """
    nodes: dict[Symbol, None] = field(default_factory=dict)
    edges: dict[Symbol, list[ResolvedReference]] = field(default_factory=dict)
    adjacency_list: dict[Symbol, dict[Symbol, None]] = field(default_factory=dict)
    reverse_adjacency: dict[Symbol, dict[Symbol, None]] = field(default_factory=dict)

    def add_node(self, symbol: Symbol) -> None:
        self.nodes.setdefault(symbol)
        self.adjacency_list.setdefault(symbol, {})
        self.reverse_adjacency.setdefault(symbol, {})

    def add_edge(self, reference: ResolvedReference) -> None:
        """Record a reference and update adjacency lists."""
        self.add_node(reference.source)
        self.add_node(reference.target)
        self.edges.setdefault(reference.source, []).append(reference)
        self.adjacency_list[reference.source].setdefault(reference.target)
        self.reverse_adjacency[reference.target].setdefault(reference.source)

    def references_from(self, symbol: Symbol) -> list[ResolvedReference]:
        return list(self.edges.get(symbol, []))

    def get_dependencies(self, symbol: Symbol) -> list[Symbol]:
        """Distinct symbols ``symbol`` mentions, in first-mention order."""
        return list(self.adjacency_list.get(symbol, {}))

    def get_dependents(self, symbol: Symbol) -> list[Symbol]:
        return list(self.reverse_adjacency.get(symbol, {}))

    def has_path(self, from_symbol: Symbol, to_symbol: Symbol) -> bool:
        """Check with BFS whether ``to_symbol`` is reachable from ``from_symbol``."""
        if from_symbol == to_symbol:
            return True

        visited: set[Symbol] = {from_symbol}
        queue = [from_symbol]
        while queue:
            current = queue.pop(0)
            for neighbor in self.adjacency_list.get(current, {}):
                if neighbor == to_symbol:
                    return True
                if neighbor not in visited:
                    visited.add(neighbor)
                    queue.append(neighbor)
        return False

    def find_cycles(self) -> list[list[Symbol]]:
        """Find mutual-reference cycles using three-color DFS.

        Cycles between distinct symbols are legal in type space (two
        interfaces referring to each other); they are reported for
        diagnostics only. Self references are not counted.

        Returns:
            Each cycle as a list of symbols, closed by repeating its first
            symbol.
        """
        WHITE, GRAY, BLACK = 0, 1, 2
        color = {symbol: WHITE for symbol in self.nodes}
        cycles: list[list[Symbol]] = []

        for start in self.nodes:
            if color[start] != WHITE:
                continue
            path: list[Symbol] = []
            stack = [(start, iter(self.adjacency_list.get(start, {})))]
            color[start] = GRAY
            path.append(start)
            while stack:
                node, neighbors = stack[-1]
                advanced = False
                for neighbor in neighbors:
                    if neighbor == node:
                        continue
                    if color.get(neighbor, WHITE) == GRAY:
                        cycle_start = path.index(neighbor)
                        cycles.append(path[cycle_start:] + [neighbor])
                    elif color.get(neighbor, WHITE) == WHITE:
                        color[neighbor] = GRAY
                        path.append(neighbor)
                        stack.append((neighbor, iter(self.adjacency_list.get(neighbor, {}))))
                        advanced = True
                        break
                if not advanced:
                    color[node] = BLACK
                    path.pop()
                    stack.pop()

        return cycles

    def to_dict(self) -> dict[str, Any]:
        """Serialize the graph for debugging/logging."""
        return {
            "nodes": [str(symbol) for symbol in self.nodes],
            "edges": [
                {
                    "from": str(ref.source),
                    "to": str(ref.target),
                    "name": ref.local_name,
                }
                for refs in self.edges.values()
                for ref in refs
            ],
        }


# ============================================================================
# Builder
# ============================================================================


class ReferenceGraphBuilder:
    """Resolves the type references of symbols into ``BundleGraph`` edges.

    Each mention is resolved in the scope of the module that declares the
    symbol. Mentions that resolve to nothing (builtins, lib types, globals)
    or only to a namespace are leaves and produce no edge.
    """

    def __init__(self, resolver: AliasResolver, graph: BundleGraph | None = None) -> None:
        self.resolver = resolver
        self.graph = graph if graph is not None else BundleGraph()
        self._built: set[Symbol] = set()
        self._unresolved_names: dict[str, None] = {}

    @property
    def unresolved_names(self) -> list[str]:
        """Referenced names treated as globals, in first-seen order."""
        return list(self._unresolved_names)

    def declarations_of(self, symbol: Symbol) -> tuple[Declaration, ...]:
        return self.resolver.table(symbol.module_path).declarations_of(symbol.name)

    def edges_for(self, symbol: Symbol) -> list[ResolvedReference]:
        """Return the resolved references of ``symbol``, computing them once."""
        if symbol in self._built:
            return self.graph.references_from(symbol)
        self._built.add(symbol)
        self.graph.add_node(symbol)

        for index, declaration in enumerate(self.declarations_of(symbol)):
            for reference in declaration.references:
                names = [name for name, _, _ in reference.segments]
                target, consumed = self.resolver.resolve_reference(symbol.module_path, names)
                if not isinstance(target, Symbol):
                    self._unresolved_names.setdefault(reference.text)
                    continue
                last_name, _, end = reference.segments[consumed - 1]
                self.graph.add_edge(ResolvedReference(
                    source=symbol,
                    target=target,
                    declaration_index=index,
                    start=reference.start,
                    end=end,
                    local_name=last_name,
                ))

        references = self.graph.references_from(symbol)
        logger.debug(f"{symbol}: {len(references)} resolved reference(s)")
        return references
