"""Shared fixtures for bundling engine tests."""

from __future__ import annotations

import re
import textwrap
from pathlib import Path

import pytest

from tsbundler.core.alias_resolver import AliasResolver
from tsbundler.core.config import BundleConfig
from tsbundler.core.errors import DiagnosticCollector
from tsbundler.core.module_loader import ModuleLoader
from tsbundler.core.orchestrator import BundleOrchestrator
from tsbundler.core.path_resolver import PathAliasTable, PathResolver


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------

def create_test_file(directory: Path, name: str, content: str = "") -> Path:
    """Create a test file with the given name and dedented content."""
    file_path = directory / name
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_text(textwrap.dedent(content), encoding="utf-8")
    return file_path


def write_project(root: Path, files: dict[str, str]) -> Path:
    """Write ``{relative_name: content}`` under ``root`` and return ``root``."""
    for name, content in files.items():
        create_test_file(root, name, content)
    return root


def count_declarations(text: str, name: str) -> int:
    """Count emitted top-level declarations of ``name`` in bundle text."""
    pattern = re.compile(
        rf"^export (?:declare )?(?:interface|type|enum|class|function|const|let|var|namespace) "
        rf"{re.escape(name)}\b",
        re.MULTILINE,
    )
    return len(pattern.findall(text))


def assert_state_transition(log_records: list, from_state: str, to_state: str) -> bool:
    """Check that a state transition appears in log records."""
    pattern = f"{from_state} -> {to_state}"
    return any(pattern in record.message for record in log_records)


# ---------------------------------------------------------------------------
# Sample project
# ---------------------------------------------------------------------------

USER_TS = """\
    // src/utils/user.ts
    export interface User {
      id: number;
      name: string;
    }

    export type UserRole = 'admin' | 'user';

    export enum UserStatus {
      Active = 'active',
      Inactive = 'inactive'
    }

    export interface AdminUser extends User {
      role: UserRole;
      status: UserStatus;
    }
    """

ALIAS_TS = """\
    // src/utils/alias.ts
    export interface AliasUser {
      aliasId: number;
      aliasName: string;
    }

    export type AliasRole = 'admin' | 'user';

    const sideEffect = 'sideEffect';
    console.log('Side effect from alias.ts', sideEffect);

    export default AliasUser;
    """

ADDRESS_TS = """\
    export interface Address {
      street: string;
      city: string;
    }
    """

COMMON_TS = """\
    export type CommonType = string | number;

    export interface CommonInterface {
      id: string;
    }
    """

INDEX_TS = """\
    // src/index.ts
    import { User, UserRole, AdminUser } from './utils/user';
    import { Address } from './utils/address';
    import * as Common from './utils/common';

    // Re-export some types
    export { User, UserRole } from './utils/user';
    export type { Address } from './utils/address';

    // Define a complex type that uses imports
    export interface UserProfile extends User {
      address: Address;
      tags: Common.CommonType[];
    }

    // Define a type that uses namespace import
    export type UserId = Common.CommonInterface['id'];

    // Define a type that combines multiple imports
    export type FullUser = UserProfile & AdminUser;

    // Default export
    export default UserProfile;
    """

ADVANCED_TS = """\
    // src/advanced.ts
    import { AliasUser as AliasUserType, AliasRole as AliasRoleType } from './utils/alias';
    import AliasDefault, { AliasUser } from './utils/alias';
    import { default as AliasDefault2 } from './utils/alias';
    import type { AliasRole } from './utils/alias';
    import './utils/alias'; // Side effect import

    // Type using import type
    export type AdvancedRole = AliasRole;

    // Type using aliased import
    export interface AdvancedUser extends AliasUserType {
      role: AliasRoleType;
    }

    // Type using default import
    export interface AdvancedDefaultUser extends AliasDefault {
      defaultProp: string;
    }

    // Type using default import with alias
    export interface AdvancedDefaultUser2 extends AliasDefault2 {
      defaultProp2: string;
    }

    // Re-export with alias
    export { AliasUser as RenamedAliasUser } from './utils/alias';
    """

COMPLEX_TS = """\
    // src/complex.ts
    import { FullUser } from './index';
    import { LocalTypeWithExternal } from './external';
    import * as UserUtils from './utils/user';

    // Type using indexed access
    export type UserName = FullUser['name'];

    // Type using mapped type
    export type UserFields = {
      [K in keyof FullUser]?: FullUser[K];
    };

    // Type using Omit
    export type UserWithoutAddress = Omit<FullUser, 'address'>;

    // Type using Pick
    export type UserBasicInfo = Pick<FullUser, 'id' | 'name'>;

    // Type using namespace import
    export interface UserTypeCheck {
      userId: UserUtils.User['id'];
      userRole: UserUtils.UserRole;
    }
    """

ALIASED_TS = """\
    import { AdminUser } from '@utils/user';

    export interface Audit {
      by: AdminUser;
    }
    """

TSCONFIG_JSON = """\
    {
      // path aliases used by src/aliased.ts
      "compilerOptions": {
        "paths": {
          "@utils/*": ["src/utils/*"],
        }
      }
    }
    """


@pytest.fixture
def ts_project(tmp_path: Path) -> Path:
    """A small TypeScript project with re-exports, aliases and namespaces."""
    return write_project(tmp_path, {
        "src/utils/user.ts": USER_TS,
        "src/utils/alias.ts": ALIAS_TS,
        "src/utils/address.ts": ADDRESS_TS,
        "src/utils/common.ts": COMMON_TS,
        "src/index.ts": INDEX_TS,
        "src/advanced.ts": ADVANCED_TS,
        "src/complex.ts": COMPLEX_TS,
        "src/aliased.ts": ALIASED_TS,
        "tsconfig.json": TSCONFIG_JSON,
    })


@pytest.fixture
def loader():
    """A module loader with a plain path resolver."""
    with ModuleLoader(PathResolver(), max_workers=2) as module_loader:
        yield module_loader


@pytest.fixture
def make_resolver(loader):
    """Factory loading an entry's graph and returning a fresh alias resolver."""

    def factory(entry: Path) -> AliasResolver:
        loader.load_graph(entry)
        return AliasResolver(loader, DiagnosticCollector())

    return factory


@pytest.fixture
def make_orchestrator():
    """Factory for orchestrators that are closed after the test."""
    created: list[BundleOrchestrator] = []

    def factory(config: BundleConfig | None = None, alias_table: PathAliasTable | None = None):
        orchestrator = BundleOrchestrator(config or BundleConfig(max_workers=2), alias_table)
        created.append(orchestrator)
        return orchestrator

    yield factory
    for orchestrator in created:
        orchestrator.close()
