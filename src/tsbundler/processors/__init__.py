"""Source processing for the bundler.

This package turns TypeScript source text into the per-module surface the
bundling engine works on.

Modules:
    syntax_provider: tree-sitter parsing and syntax issue collection
    declaration_extractor: declarations, import/export bindings and
        type references of one module
"""

from tsbundler.processors.syntax_provider import (
    ParsedSource,
    SyntaxIssue,
    TypeScriptSyntaxProvider,
)
from tsbundler.processors.declaration_extractor import (
    DEFAULT_EXPORT,
    Declaration,
    DeclarationExtractor,
    DeclarationKind,
    DefaultExportDirective,
    ExportBinding,
    ExportKind,
    ImportBinding,
    ImportKind,
    ModuleSyntax,
    TypeReference,
)

__all__ = [
    "ParsedSource",
    "SyntaxIssue",
    "TypeScriptSyntaxProvider",
    "DEFAULT_EXPORT",
    "Declaration",
    "DeclarationExtractor",
    "DeclarationKind",
    "DefaultExportDirective",
    "ExportBinding",
    "ExportKind",
    "ImportBinding",
    "ImportKind",
    "ModuleSyntax",
    "TypeReference",
]
