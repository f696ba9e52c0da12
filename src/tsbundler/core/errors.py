"""Error taxonomy and diagnostics for the bundling engine.

Two families of problems are distinguished:

* **Fatal errors** (``ModuleLoadError``, ``ModuleSyntaxError``) stop the
  bundle for an entry point. They are raised by the loader and propagate.
* **Resolution errors** (``UnresolvedImport``, ``CircularAliasError``,
  ``MissingExport``, ``AmbiguousStarExport``) are collected into a
  ``DiagnosticCollector`` and returned next to a best-effort bundle. The
  offending reference becomes an unresolved leaf.

``CollisionRenameApplied`` is informational and never counted as an error.

Example:
    >>> diagnostics = DiagnosticCollector()
    >>> diagnostics.add(UnresolvedImport(Path("/p/a.ts"), "./missing", symbol="User"))
    True
    >>> print(diagnostics.errors[0])
    Cannot resolve import './missing' in /p/a.ts (needed for 'User')
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Sequence

if TYPE_CHECKING:
    from tsbundler.processors.syntax_provider import SyntaxIssue


# ============================================================================
# Fatal errors
# ============================================================================


class BundlerError(Exception):
    """Base class for every error raised by the bundler."""


class ModuleLoadError(BundlerError):
    """Exception raised when a module cannot be read or parsed in time.

    Attributes:
        path: Canonical path of the module
        details: Description of the failure
        message: Detailed error message

    Example:
        >>> raise ModuleLoadError(Path("/p/a.ts"), "parser timed out after 30.0s")
    """

    def __init__(self, path: Path, details: str):
        self.path = path
        self.details = details
        self.message = f"Failed to load module {path}: {details}"
        super().__init__(self.message)


class ModuleSyntaxError(ModuleLoadError):
    """Exception raised when a module contains malformed syntax.

    Attributes:
        path: Canonical path of the module
        issues: Syntax issues reported by the parser
    """

    def __init__(self, path: Path, issues: Sequence["SyntaxIssue"]):
        self.issues = list(issues)
        shown = ", ".join(str(issue) for issue in self.issues[:3])
        more = f" (+{len(self.issues) - 3} more)" if len(self.issues) > 3 else ""
        super().__init__(path, f"syntax error at {shown}{more}")


# ============================================================================
# Resolution errors (collected, not raised to callers)
# ============================================================================


class ResolutionError(BundlerError):
    """Base class for problems found while resolving bindings.

    Attributes:
        module_path: Module in which the problem was found
        specifier: Raw import specifier involved, if any
        symbol: Name whose resolution failed, if known
        message: Detailed error message
    """

    kind = "resolution-error"

    def __init__(
        self,
        module_path: Path,
        message: str,
        specifier: str | None = None,
        symbol: str | None = None,
    ):
        self.module_path = module_path
        self.specifier = specifier
        self.symbol = symbol
        self.message = message
        super().__init__(message)

    @property
    def key(self) -> tuple[Any, ...]:
        return (type(self).__name__, str(self.module_path), self.specifier, self.symbol)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "module": str(self.module_path),
            "specifier": self.specifier,
            "symbol": self.symbol,
            "message": self.message,
        }


class UnresolvedImport(ResolutionError):
    """A specifier could not be mapped to a file.

    Example:
        >>> UnresolvedImport(Path("/p/a.ts"), "@missing/x").message
        "Cannot resolve import '@missing/x' in /p/a.ts"
    """

    kind = "unresolved-import"

    def __init__(self, from_module: Path, specifier: str, symbol: str | None = None):
        needed = f" (needed for '{symbol}')" if symbol else ""
        super().__init__(
            from_module,
            f"Cannot resolve import '{specifier}' in {from_module}{needed}",
            specifier=specifier,
            symbol=symbol,
        )


class CircularAliasError(ResolutionError):
    """A re-export chain loops back on itself without reaching a declaration.

    Attributes:
        chain: ``(module_path, name)`` pairs in the order they were entered,
            ending with the repeated pair.
    """

    kind = "circular-alias"

    def __init__(self, chain: Sequence[tuple[Path, str]]):
        self.chain = list(chain)
        parts = [f"{path.name}:{name}" for path, name in self.chain]
        first_path, first_name = self.chain[0]
        super().__init__(
            first_path,
            f"Circular re-export detected: {' -> '.join(parts)}",
            symbol=first_name,
        )


class MissingExport(ResolutionError):
    """A module was asked for a name it does not export."""

    kind = "missing-export"

    def __init__(self, module_path: Path, name: str, specifier: str | None = None):
        super().__init__(
            module_path,
            f"Module {module_path} has no export named '{name}'",
            specifier=specifier,
            symbol=name,
        )


class AmbiguousStarExport(ResolutionError):
    """Two ``export *`` sources provide the same name with different origins.

    TypeScript drops such names from the star-export set; a lookup that
    depends on one is reported instead of guessing.
    """

    kind = "ambiguous-star-export"

    def __init__(self, module_path: Path, name: str, sources: Sequence[Path]):
        self.sources = list(sources)
        listed = ", ".join(str(source) for source in self.sources)
        super().__init__(
            module_path,
            f"Export '{name}' of {module_path} is ambiguous between {listed}",
            symbol=name,
        )


# ============================================================================
# Notices
# ============================================================================


@dataclass(frozen=True)
class CollisionRenameApplied:
    """Informational record of a display-name collision being resolved.

    Attributes:
        module_path: Defining module of the renamed symbol
        original_name: Name the symbol would have had
        new_name: Name used in the bundle
    """
    module_path: Path
    original_name: str
    new_name: str

    def __str__(self) -> str:
        return f"Renamed '{self.original_name}' from {self.module_path} to '{self.new_name}'"

    def to_dict(self) -> dict[str, str]:
        return {
            "module": str(self.module_path),
            "original_name": self.original_name,
            "new_name": self.new_name,
        }


class DiagnosticCollector:
    """Thread-safe, de-duplicating list of resolution errors.

    The same problem is often hit through several references; only the
    first occurrence is kept so the report stays readable.
    """

    def __init__(self) -> None:
        self._errors: list[ResolutionError] = []
        self._seen: set[tuple[Any, ...]] = set()
        self._lock = threading.Lock()

    def add(self, error: ResolutionError) -> bool:
        """Record ``error``; return False if an identical one was already recorded."""
        with self._lock:
            if error.key in self._seen:
                return False
            self._seen.add(error.key)
            self._errors.append(error)
            return True

    @property
    def errors(self) -> list[ResolutionError]:
        with self._lock:
            return list(self._errors)

    @property
    def count(self) -> int:
        return len(self._errors)
