"""Core bundling engine.

This package resolves a TypeScript module graph and emits the declarations
reachable from an entry point as one collision-free bundle.

Classes:
    BundleConfig: Options of a bundle run
    BundleOrchestrator: Runs the pipeline for one or many entries
    BundleEntry: ``file:type[:alias]`` entry of a batch run
    BundleResult: Bundle text plus diagnostics of one run
    PathAliasTable: Alias prefix to directory mapping
    PathResolver: Specifier to module path resolution
    ModuleLoader: Cached, parallel module loading
    AliasResolver: Import and re-export chain resolution
    BundleWriter: Atomic bundle file writing
"""

from tsbundler.core.alias_resolver import AliasResolver, NamespaceTarget
from tsbundler.core.config import BundleConfig, load_config, save_config
from tsbundler.core.dependency_graph import BundleGraph, ReferenceGraphBuilder, ResolvedReference
from tsbundler.core.emitter import Emitter
from tsbundler.core.errors import (
    AmbiguousStarExport,
    BundlerError,
    CircularAliasError,
    CollisionRenameApplied,
    DiagnosticCollector,
    MissingExport,
    ModuleLoadError,
    ModuleSyntaxError,
    ResolutionError,
    UnresolvedImport,
)
from tsbundler.core.module_loader import Module, ModuleLoader
from tsbundler.core.orchestrator import (
    BundleEntry,
    BundleOrchestrator,
    BundleResult,
    JobState,
    bundle,
    bundle_text,
)
from tsbundler.core.output_writer import BundleWriter, WriteResult
from tsbundler.core.path_resolver import PathAliasTable, PathResolver
from tsbundler.core.reachability import BundlePlan, DisplayNameAllocator, ReachabilityEngine
from tsbundler.core.symbol_table import ModuleSymbolTable, Symbol, SymbolTableBuilder
from tsbundler.core.tsconfig import find_project_root, load_alias_table

__all__ = [
    "AliasResolver",
    "NamespaceTarget",
    "BundleConfig",
    "load_config",
    "save_config",
    "BundleGraph",
    "ReferenceGraphBuilder",
    "ResolvedReference",
    "Emitter",
    "AmbiguousStarExport",
    "BundlerError",
    "CircularAliasError",
    "CollisionRenameApplied",
    "DiagnosticCollector",
    "MissingExport",
    "ModuleLoadError",
    "ModuleSyntaxError",
    "ResolutionError",
    "UnresolvedImport",
    "Module",
    "ModuleLoader",
    "BundleEntry",
    "BundleOrchestrator",
    "BundleResult",
    "JobState",
    "bundle",
    "bundle_text",
    "BundleWriter",
    "WriteResult",
    "PathAliasTable",
    "PathResolver",
    "BundlePlan",
    "DisplayNameAllocator",
    "ReachabilityEngine",
    "ModuleSymbolTable",
    "Symbol",
    "SymbolTableBuilder",
    "find_project_root",
    "load_alias_table",
]
