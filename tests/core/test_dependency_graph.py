"""Tests for the symbol reference graph.

Covers:
- BundleGraph adjacency, path queries and cycle detection
- Lazy, memoized edge building
- Rewrite spans of plain, qualified and member-access references
- Unresolved names treated as globals
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from tests.core.conftest import write_project
from tsbundler.core.dependency_graph import BundleGraph, ReferenceGraphBuilder, ResolvedReference
from tsbundler.core.symbol_table import Symbol

A = Symbol(Path("/p/a.ts"), "A")
B = Symbol(Path("/p/b.ts"), "B")
C = Symbol(Path("/p/c.ts"), "C")
D = Symbol(Path("/p/d.ts"), "D")


def _ref(source: Symbol, target: Symbol) -> ResolvedReference:
    return ResolvedReference(source, target, 0, 0, 1, target.name)


@pytest.fixture
def graph() -> BundleGraph:
    """A -> B -> C -> A with a tail C -> D."""
    g = BundleGraph()
    for source, target in [(A, B), (B, C), (C, A), (C, D)]:
        g.add_edge(_ref(source, target))
    return g


class TestBundleGraph:
    """Test graph structure and queries."""

    def test_nodes_in_insertion_order(self, graph):
        assert list(graph.nodes) == [A, B, C, D]

    def test_dependencies_and_dependents(self, graph):
        assert graph.get_dependencies(C) == [A, D]
        assert graph.get_dependents(A) == [C]
        assert graph.get_dependencies(D) == []

    def test_duplicate_edges_keep_every_reference(self):
        g = BundleGraph()
        g.add_edge(_ref(A, B))
        g.add_edge(_ref(A, B))
        assert len(g.references_from(A)) == 2
        assert g.get_dependencies(A) == [B]

    def test_has_path(self, graph):
        assert graph.has_path(A, D)
        assert graph.has_path(B, A)
        assert not graph.has_path(D, A)
        assert graph.has_path(D, D)

    def test_find_cycles(self, graph):
        cycles = graph.find_cycles()
        assert cycles == [[A, B, C, A]]

    def test_self_reference_is_not_a_cycle(self):
        g = BundleGraph()
        g.add_edge(_ref(A, A))
        assert g.find_cycles() == []

    def test_to_dict(self, graph):
        data = graph.to_dict()
        assert data["nodes"] == ["a.ts:A", "b.ts:B", "c.ts:C", "d.ts:D"]
        assert {"from": "c.ts:C", "to": "d.ts:D", "name": "D"} in data["edges"]


class TestReferenceGraphBuilder:
    """Test edge building from declarations."""

    def test_rewrite_spans(self, tmp_path, make_resolver):
        root = write_project(tmp_path, {
            "index.ts": """\
                import * as NS from './user';
                export enum Color { Red, Green }
                export interface Check {
                  user: NS.User['id'];
                  color: Color.Red;
                  when: Date;
                }
                """,
            "user.ts": "export interface User { id: number }\n",
        })
        index = (root / "index.ts").resolve()
        resolver = make_resolver(index)
        builder = ReferenceGraphBuilder(resolver)
        check = Symbol(index, "Check")
        raw = builder.declarations_of(check)[0].raw

        edges = builder.edges_for(check)

        assert [(e.target.name, raw[e.start:e.end]) for e in edges] == [
            ("User", b"NS.User"),
            ("Color", b"Color"),
        ]
        assert [e.local_name for e in edges] == ["User", "Color"]
        assert builder.unresolved_names == ["Date"]

    def test_edges_are_memoized(self, ts_project, make_resolver):
        index = (ts_project / "src" / "index.ts").resolve()
        resolver = make_resolver(index)
        builder = ReferenceGraphBuilder(resolver)
        symbol = Symbol(index, "FullUser")

        first = builder.edges_for(symbol)
        with patch.object(resolver, "resolve_reference", wraps=resolver.resolve_reference) as spy:
            second = builder.edges_for(symbol)
        assert first == second
        spy.assert_not_called()

    def test_edges_are_added_to_graph(self, ts_project, make_resolver):
        index = (ts_project / "src" / "index.ts").resolve()
        resolver = make_resolver(index)
        graph = BundleGraph()
        builder = ReferenceGraphBuilder(resolver, graph)

        builder.edges_for(Symbol(index, "FullUser"))

        user_ts = (ts_project / "src" / "utils" / "user.ts").resolve()
        assert graph.get_dependencies(Symbol(index, "FullUser")) == [
            Symbol(index, "UserProfile"),
            Symbol(user_ts, "AdminUser"),
        ]

    def test_default_import_keeps_local_name(self, ts_project, make_resolver):
        advanced = (ts_project / "src" / "advanced.ts").resolve()
        resolver = make_resolver(advanced)
        builder = ReferenceGraphBuilder(resolver)

        (edge,) = builder.edges_for(Symbol(advanced, "AdvancedDefaultUser2"))

        assert edge.local_name == "AliasDefault2"
        assert edge.target.name == "AliasUser"

    def test_merged_declarations_are_indexed(self, tmp_path, make_resolver):
        root = write_project(tmp_path, {
            "a.ts": """\
                export interface Box { a: First }
                export interface Box { b: Second }
                interface First {}
                interface Second {}
                """,
        })
        entry = (root / "a.ts").resolve()
        builder = ReferenceGraphBuilder(make_resolver(entry))
        edges = builder.edges_for(Symbol(entry, "Box"))
        assert [(e.target.name, e.declaration_index) for e in edges] == [("First", 0), ("Second", 1)]
