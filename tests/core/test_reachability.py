"""Tests for the reachability walk and display naming.

Covers:
- Collision renaming order (module stem, path hash, counter)
- Root collection, including namespace exports and explicit root names
- Discovery order, deduplication and cycles
- Root aliases, renamed roots and anonymous default naming
"""

from __future__ import annotations

import hashlib
from pathlib import Path

from tests.core.conftest import write_project
from tsbundler.core.dependency_graph import ReferenceGraphBuilder
from tsbundler.core.errors import AmbiguousStarExport, MissingExport
from tsbundler.core.reachability import (
    DEFAULT_EXPORT_PLACEHOLDER,
    DisplayNameAllocator,
    ReachabilityEngine,
)
from tsbundler.core.symbol_table import Symbol


def _engine(resolver, default_export_name=None) -> ReachabilityEngine:
    return ReachabilityEngine(resolver, ReferenceGraphBuilder(resolver), default_export_name)


def _names(plan) -> list[str]:
    return [plan.display_names[symbol] for symbol in plan.order]


class TestDisplayNameAllocator:
    """Test collision-free name allocation."""

    def test_first_claim_keeps_name(self):
        allocator = DisplayNameAllocator()
        assert allocator.allocate(Symbol(Path("/p/user.ts"), "Age"), "Age") == "Age"
        assert allocator.renames == []

    def test_collision_uses_module_stem(self):
        allocator = DisplayNameAllocator()
        allocator.allocate(Symbol(Path("/p/user.ts"), "Age"), "Age")
        renamed = allocator.allocate(Symbol(Path("/p/profile-data.ts"), "Age"), "Age")

        assert renamed == "Age_profile_data"
        (notice,) = allocator.renames
        assert notice.original_name == "Age"
        assert notice.new_name == "Age_profile_data"

    def test_same_stem_falls_back_to_path_hash(self):
        allocator = DisplayNameAllocator()
        allocator.allocate(Symbol(Path("/p/user.ts"), "Age"), "Age")
        allocator.allocate(Symbol(Path("/p/a/profile.ts"), "Age"), "Age")
        third = Path("/p/b/profile.ts")

        digest = hashlib.md5(str(third).encode("utf-8")).hexdigest()[:6]
        assert allocator.allocate(Symbol(third, "Age"), "Age") == f"Age_{digest}"

    def test_counter_is_last_resort(self):
        allocator = DisplayNameAllocator()
        path = Path("/p/profile.ts")
        digest = hashlib.md5(str(path).encode("utf-8")).hexdigest()[:6]
        for name in ("Age", "Age_profile", f"Age_{digest}", "Age_2"):
            assert allocator.reserve(name)
        assert allocator.allocate(Symbol(path, "Age"), "Age") == "Age_3"

    def test_allocation_is_stable_per_symbol(self):
        allocator = DisplayNameAllocator()
        symbol = Symbol(Path("/p/user.ts"), "User")
        assert allocator.allocate(symbol, "User") == allocator.allocate(symbol, "Other")

    def test_reserve(self):
        allocator = DisplayNameAllocator()
        assert allocator.reserve("Alias")
        assert not allocator.reserve("Alias")
        assert allocator.is_taken("Alias")

    def test_index_module_named_after_directory(self):
        allocator = DisplayNameAllocator()
        allocator.allocate(Symbol(Path("/p/user.ts"), "Age"), "Age")
        assert allocator.allocate(Symbol(Path("/p/models/index.ts"), "Age"), "Age") == "Age_models"


class TestRoots:
    """Test root collection."""

    def test_roots_follow_export_order(self, ts_project, make_resolver):
        index = (ts_project / "src" / "index.ts").resolve()
        roots = _engine(make_resolver(index)).collect_roots(index)
        assert [name for name, _ in roots] == [
            "User", "UserRole", "Address", "UserProfile", "UserId", "FullUser", "default",
        ]

    def test_namespace_export_is_expanded(self, tmp_path, make_resolver):
        root = write_project(tmp_path, {
            "index.ts": "export * as Models from './models';\n",
            "models.ts": "export interface Model {}\nexport type Id = string;\n",
        })
        index = (root / "index.ts").resolve()
        roots = _engine(make_resolver(index)).collect_roots(index)
        assert [(name, symbol.name) for name, symbol in roots] == [("Model", "Model"), ("Id", "Id")]

    def test_explicit_root_names(self, ts_project, make_resolver):
        index = (ts_project / "src" / "index.ts").resolve()
        roots = _engine(make_resolver(index)).collect_roots(index, ["FullUser", "User"])
        assert [name for name, _ in roots] == ["FullUser", "User"]

    def test_unexported_declaration_can_be_a_root(self, tmp_path, make_resolver):
        root = write_project(tmp_path, {"a.ts": "interface Hidden { id: number }\n"})
        entry = (root / "a.ts").resolve()
        roots = _engine(make_resolver(entry)).collect_roots(entry, ["Hidden"])
        assert roots == [("Hidden", Symbol(entry, "Hidden"))]

    def test_unknown_root_is_reported(self, tmp_path, make_resolver):
        root = write_project(tmp_path, {"a.ts": "export interface A {}\n"})
        entry = (root / "a.ts").resolve()
        resolver = make_resolver(entry)

        assert _engine(resolver).collect_roots(entry, ["Nope"]) == []
        (error,) = resolver.diagnostics.errors
        assert isinstance(error, MissingExport)
        assert error.symbol == "Nope"

    def test_ambiguous_explicit_root_is_reported(self, tmp_path, make_resolver):
        root = write_project(tmp_path, {
            "index.ts": "export * from './a';\nexport * from './b';\n",
            "a.ts": "export interface Dup { a: string }\n",
            "b.ts": "export interface Dup { b: string }\n",
        })
        entry = (root / "index.ts").resolve()
        resolver = make_resolver(entry)

        assert _engine(resolver).collect_roots(entry, ["Dup"]) == []
        assert any(isinstance(e, AmbiguousStarExport) for e in resolver.diagnostics.errors)


class TestPlan:
    """Test the breadth-first walk."""

    def test_discovery_order(self, ts_project, make_resolver):
        index = (ts_project / "src" / "index.ts").resolve()
        plan = _engine(make_resolver(index)).plan(index)

        assert _names(plan) == [
            "User", "UserRole", "Address", "UserProfile", "UserId", "FullUser",
            "CommonType", "CommonInterface", "AdminUser", "UserStatus",
        ]
        assert plan.default_symbol == Symbol(index, "UserProfile")
        assert plan.root_aliases == []
        assert plan.renames == []

    def test_every_symbol_has_declarations_and_references(self, ts_project, make_resolver):
        index = (ts_project / "src" / "index.ts").resolve()
        plan = _engine(make_resolver(index)).plan(index)
        assert set(plan.declarations) == set(plan.order)
        assert set(plan.references) == set(plan.order)

    def test_symbol_reached_through_aliases_once(self, ts_project, make_resolver):
        advanced = (ts_project / "src" / "advanced.ts").resolve()
        plan = _engine(make_resolver(advanced)).plan(advanced)

        alias_user = Symbol((ts_project / "src" / "utils" / "alias.ts").resolve(), "AliasUser")
        assert plan.order.count(alias_user) == 1
        assert plan.display_names[alias_user] == "RenamedAliasUser"
        assert _names(plan) == [
            "AdvancedRole", "AdvancedUser", "AdvancedDefaultUser", "AdvancedDefaultUser2",
            "RenamedAliasUser", "AliasRole",
        ]

    def test_mutual_references(self, tmp_path, make_resolver):
        root = write_project(tmp_path, {
            "a.ts": "import { B } from './b';\nexport interface A { b: B }\n",
            "b.ts": "import { A } from './a';\nexport interface B { a: A; self: B }\n",
        })
        entry = (root / "a.ts").resolve()
        plan = _engine(make_resolver(entry)).plan(entry)
        assert _names(plan) == ["A", "B"]

    def test_collision_between_modules(self, tmp_path, make_resolver):
        root = write_project(tmp_path, {
            "user.ts": """\
                import { Age as ProfileAge } from './profile';
                export interface Person { age: Age; profileAge: ProfileAge }
                export type Age = number;
                """,
            "profile.ts": "export type Age = string;\n",
        })
        entry = (root / "user.ts").resolve()
        plan = _engine(make_resolver(entry)).plan(entry)

        assert _names(plan) == ["Person", "Age", "Age_profile"]
        (notice,) = plan.renames
        assert notice.module_path.name == "profile.ts"

    def test_declaration_does_not_shadow_global(self, tmp_path, make_resolver):
        root = write_project(tmp_path, {
            "index.ts": """\
                import { Date as When } from './calendar';
                export interface Meeting { start: Date; end: When }
                """,
            "calendar.ts": "export type Date = string;\n",
        })
        entry = (root / "index.ts").resolve()
        plan = _engine(make_resolver(entry)).plan(entry)

        assert _names(plan) == ["Meeting", "Date_calendar"]

    def test_rename_skips_global_with_suffixed_name(self, tmp_path, make_resolver):
        root = write_project(tmp_path, {
            "a.ts": """\
                import { Age as OtherAge } from './b';
                export type Age = number;
                export interface X { y: OtherAge; z: Age_b }
                """,
            "b.ts": "export type Age = string;\n",
        })
        entry = (root / "a.ts").resolve()
        plan = _engine(make_resolver(entry)).plan(entry)

        digest = hashlib.md5(str((root / "b.ts").resolve()).encode("utf-8")).hexdigest()[:6]
        assert _names(plan) == ["Age", "X", f"Age_{digest}"]

    def test_extra_export_name_becomes_alias(self, tmp_path, make_resolver):
        root = write_project(tmp_path, {
            "a.ts": "export interface Foo {}\nexport { Foo as Bar };\n",
        })
        entry = (root / "a.ts").resolve()
        plan = _engine(make_resolver(entry)).plan(entry)

        assert _names(plan) == ["Foo"]
        assert plan.root_aliases == [(Symbol(entry, "Foo"), "Bar")]

    def test_renamed_root(self, ts_project, make_resolver):
        user_ts = (ts_project / "src" / "utils" / "user.ts").resolve()
        plan = _engine(make_resolver(user_ts)).plan(user_ts, ["AdminUser"], {"AdminUser": "Admin"})
        assert _names(plan) == ["Admin", "User", "UserRole", "UserStatus"]

    def test_anonymous_default_root_uses_placeholder(self, tmp_path, make_resolver):
        root = write_project(tmp_path, {"a.ts": "export default { debug: true };\n"})
        entry = (root / "a.ts").resolve()
        resolver = make_resolver(entry)

        assert _names(_engine(resolver).plan(entry)) == [DEFAULT_EXPORT_PLACEHOLDER]
        assert _names(_engine(resolver, "Settings").plan(entry)) == ["Settings"]

    def test_anonymous_default_named_by_importer(self, tmp_path, make_resolver):
        root = write_project(tmp_path, {
            "main.ts": "import Thing from './thing';\nexport interface Uses { t: Thing }\n",
            "thing.ts": "export default class { id: number }\n",
        })
        entry = (root / "main.ts").resolve()
        plan = _engine(make_resolver(entry)).plan(entry)
        assert _names(plan) == ["Uses", "Thing"]

    def test_plan_to_dict(self, tmp_path, make_resolver):
        root = write_project(tmp_path, {"a.ts": "export interface Foo {}\nexport default Foo;\n"})
        entry = (root / "a.ts").resolve()
        data = _engine(make_resolver(entry)).plan(entry).to_dict()
        assert data["symbols"] == [{"symbol": "a.ts:Foo", "name": "Foo"}]
        assert data["default"] == "a.ts:Foo"
