"""Per-module symbol tables and canonical symbol identity.

This module provides the ``Symbol`` identity used throughout bundling and the
``SymbolTableBuilder`` that turns a loaded ``Module`` into a
``ModuleSymbolTable``: its local declarations by name, its import bindings
by local name, and its export table by exported name.

``export *`` directives are kept aside in ``star_exports``; the names they
contribute are expanded lazily by the alias resolver because they depend
on other modules.

Example:
    >>> from tsbundler.core.symbol_table import SymbolTableBuilder
    >>>
    >>> table = SymbolTableBuilder().build(module)
    >>> table.export_table["default"].local_name
    'MyDefaultType'
    >>> [d.kind.value for d in table.declarations_of("MyDefaultType")]
    ['type']
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from tsbundler.processors.declaration_extractor import (
    DEFAULT_EXPORT,
    Declaration,
    ExportBinding,
    ExportKind,
    ImportBinding,
    ImportKind,
)
from tsbundler.utils.logger import get_logger

if TYPE_CHECKING:
    from tsbundler.core.module_loader import Module

logger = get_logger("tsbundler.core.symbol_table")


@dataclass(frozen=True, order=True)
class Symbol:
    """Canonical identity of a bundlable entity.

    A symbol is the defining module plus the name declared there; aliases
    never take part in identity. The anonymous default export of a module
    is ``Symbol(path, "default")``.

    Example:
        >>> Symbol(Path("/p/user.ts"), "User")
        Symbol(module_path=PosixPath('/p/user.ts'), name='User')
    """
    module_path: Path
    name: str

    @property
    def is_anonymous_default(self) -> bool:
        return self.name == DEFAULT_EXPORT

    def __str__(self) -> str:
        return f"{self.module_path.name}:{self.name}"


@dataclass
class ModuleSymbolTable:
    """Names declared, imported and exported by one module.

    Attributes:
        module: The module the table was built from
        local_declarations: Declared name to its declarations. A name maps
            to several declarations when the module merges interfaces or
            overloads a function.
        imports: Local name to the import binding that introduced it
        export_table: Exported name to its binding, in source order
        star_exports: ``export * from`` bindings, in source order
    """
    module: "Module"
    local_declarations: dict[str, tuple[Declaration, ...]] = field(default_factory=dict)
    imports: dict[str, ImportBinding] = field(default_factory=dict)
    export_table: dict[str, ExportBinding] = field(default_factory=dict)
    star_exports: list[ExportBinding] = field(default_factory=list)

    @property
    def module_path(self) -> Path:
        return self.module.path

    def declares(self, name: str) -> bool:
        return name in self.local_declarations

    def declarations_of(self, name: str) -> tuple[Declaration, ...]:
        return self.local_declarations.get(name, ())

    def target_of(self, specifier: str) -> Path | None:
        """Canonical path a specifier of this module resolved to."""
        return self.module.resolved(specifier)

    def to_dict(self) -> dict[str, Any]:
        return {
            "module": str(self.module_path),
            "declarations": {
                name: [decl.kind.value for decl in decls]
                for name, decls in self.local_declarations.items()
            },
            "imports": {
                name: {"kind": binding.kind.value, "from": binding.specifier}
                for name, binding in self.imports.items()
            },
            "exports": {
                name: binding.kind.value for name, binding in self.export_table.items()
            },
            "star_exports": [binding.specifier for binding in self.star_exports],
        }


class SymbolTableBuilder:
    """Builds a ``ModuleSymbolTable`` from a loaded module.

    The builder is stateless and safe to call from loader workers.
    """

    def build(self, module: "Module") -> ModuleSymbolTable:
        table = ModuleSymbolTable(module=module)

        grouped: dict[str, list[Declaration]] = {}
        for declaration in module.declarations:
            grouped.setdefault(declaration.name, []).append(declaration)
        table.local_declarations = {name: tuple(decls) for name, decls in grouped.items()}

        for binding in module.imports:
            if binding.kind is ImportKind.SIDE_EFFECT or binding.local_name is None:
                continue
            if binding.local_name in table.imports:
                logger.warning(
                    f"{module.path.name}:{binding.line}: '{binding.local_name}' imported twice, "
                    f"keeping the first import"
                )
                continue
            table.imports[binding.local_name] = binding

        for binding in module.exports:
            if binding.kind is ExportKind.REEXPORT_ALL:
                table.star_exports.append(binding)
                continue
            name = binding.exported_name
            if name in table.export_table:
                logger.warning(
                    f"{module.path.name}:{binding.line}: duplicate export '{name}', "
                    f"keeping the first binding"
                )
                continue
            table.export_table[name] = binding

        self._bind_default_export(module, table)

        logger.debug(
            f"Symbol table for {module.path.name}: {len(table.local_declarations)} local, "
            f"{len(table.imports)} imported, {len(table.export_table)} exported, "
            f"{len(table.star_exports)} star export(s)"
        )
        return table

    def _bind_default_export(self, module: "Module", table: ModuleSymbolTable) -> None:
        """Bind ``export default <expression>``.

        A bare identifier naming a local or imported binding becomes an
        alias of it; anything else registers the anonymous default
        declaration under the ``default`` sentinel.
        """
        directive = module.default_export
        if directive is None:
            return
        if DEFAULT_EXPORT in table.export_table:
            logger.warning(f"{module.path.name}: multiple default exports, the last one wins")

        identifier = directive.identifier
        if identifier is not None and (table.declares(identifier) or identifier in table.imports):
            binding = ExportBinding(
                DEFAULT_EXPORT, ExportKind.LOCAL,
                local_name=identifier, line=directive.declaration.line,
            )
        else:
            table.local_declarations[DEFAULT_EXPORT] = (directive.declaration,)
            binding = ExportBinding(
                DEFAULT_EXPORT, ExportKind.LOCAL,
                local_name=DEFAULT_EXPORT, line=directive.declaration.line,
            )
        table.export_table[DEFAULT_EXPORT] = binding
