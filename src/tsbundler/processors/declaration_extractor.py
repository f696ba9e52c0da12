"""Declaration and directive extraction for TypeScript modules.

This module provides the data structures describing one module's top-level
surface (declarations, import bindings, export bindings) and the
``DeclarationExtractor`` that produces them from a tree-sitter parse.

Each declaration keeps its verbatim byte slice together with the byte spans
of its own name and of every type reference it mentions, so that later
stages can rename symbols by splicing exact spans instead of matching text.

Example:
    >>> from tsbundler.processors import DeclarationExtractor, TypeScriptSyntaxProvider
    >>>
    >>> source = b"import { B } from './b';\\nexport interface A { b: B }\\n"
    >>> parsed = TypeScriptSyntaxProvider().parse(source, Path("a.ts"))
    >>> syntax = DeclarationExtractor(Path("a.ts"), parsed).extract()
    >>> [d.name for d in syntax.declarations]
    ['A']
    >>> [r.text for r in syntax.declarations[0].references]
    ['B']
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from tree_sitter import Node

from tsbundler.processors.syntax_provider import ParsedSource
from tsbundler.utils.logger import get_logger

logger = get_logger("tsbundler.processors.declaration_extractor")

# Sentinel name of the anonymous default export
DEFAULT_EXPORT = "default"


class DeclarationKind(Enum):
    """Kinds of top-level constructs that can be bundled."""
    INTERFACE = "interface"
    TYPE_ALIAS = "type"
    ENUM = "enum"
    CLASS = "class"
    FUNCTION = "function"
    CONST = "const"
    LET = "let"
    VAR = "var"
    NAMESPACE = "namespace"
    ANONYMOUS_DEFAULT = "anonymous-default"


class ImportKind(Enum):
    """Forms of import binding.

    NAMED: ``import { A } from`` / ``import { A as B } from``
    DEFAULT: ``import A from`` / ``import { default as A } from``
    NAMESPACE: ``import * as NS from``
    TYPE_ONLY: ``import type { A } from`` / ``import { type A } from``
    SIDE_EFFECT: ``import './m'``
    """
    NAMED = "named"
    DEFAULT = "default"
    NAMESPACE = "namespace"
    TYPE_ONLY = "type-only"
    SIDE_EFFECT = "side-effect"


class ExportKind(Enum):
    """Forms of export binding."""
    LOCAL = "local"
    REEXPORT_NAMED = "re-export-named"
    REEXPORT_ALL = "re-export-all"
    REEXPORT_DEFAULT = "re-export-default"
    REEXPORT_NAMESPACE = "re-export-namespace"


DECLARATION_NODE_KINDS = {
    "interface_declaration": DeclarationKind.INTERFACE,
    "type_alias_declaration": DeclarationKind.TYPE_ALIAS,
    "enum_declaration": DeclarationKind.ENUM,
    "class_declaration": DeclarationKind.CLASS,
    "abstract_class_declaration": DeclarationKind.CLASS,
    "function_declaration": DeclarationKind.FUNCTION,
    "generator_function_declaration": DeclarationKind.FUNCTION,
    "function_signature": DeclarationKind.FUNCTION,
    "internal_module": DeclarationKind.NAMESPACE,
    "module": DeclarationKind.NAMESPACE,
}

VARIABLE_NODE_TYPES = {"lexical_declaration", "variable_declaration"}

VARIABLE_KINDS = {
    "const": DeclarationKind.CONST,
    "let": DeclarationKind.LET,
    "var": DeclarationKind.VAR,
}

# Anonymous default expressions that can be given a name in place
NAMEABLE_EXPRESSIONS = {"class", "function_expression", "function", "generator_function"}

# Nodes that introduce type-level names for the construct holding them
_BINDING_NODE_TYPES = {"type_parameter", "mapped_type_clause"}

_SEGMENT_LEAVES = {"identifier", "type_identifier", "property_identifier"}
_SEGMENT_CONTAINERS = {"nested_type_identifier", "nested_identifier", "member_expression"}


@dataclass(frozen=True)
class TypeReference:
    """A type-level name mentioned inside a declaration.

    Attributes:
        segments: ``(name, start, end)`` for each dotted segment, with byte
            offsets relative to the owning declaration's ``raw`` text.
            ``NS.User`` has two segments, ``User`` has one.

    Example:
        >>> ref = TypeReference(segments=(("NS", 4, 6), ("User", 7, 11)))
        >>> ref.text, ref.head, ref.start, ref.end
        ('NS.User', 'NS', 4, 11)
    """
    segments: tuple[tuple[str, int, int], ...]

    @property
    def text(self) -> str:
        return ".".join(name for name, _, _ in self.segments)

    @property
    def head(self) -> str:
        return self.segments[0][0]

    @property
    def start(self) -> int:
        return self.segments[0][1]

    @property
    def end(self) -> int:
        return self.segments[-1][2]

    @property
    def is_qualified(self) -> bool:
        return len(self.segments) > 1


@dataclass(frozen=True)
class Declaration:
    """A top-level construct owned by exactly one module.

    Attributes:
        name: Declared name, or ``"default"`` for an anonymous default export.
        kind: DeclarationKind of the construct.
        raw: Verbatim source bytes, without any ``export``/``export default``
            prefix.
        doc: Comment block directly preceding the statement, verbatim.
        name_span: Byte span of the declared name inside ``raw``. A zero
            width span marks where a name can be inserted into an anonymous
            class or function; ``None`` means the declaration cannot carry a
            name in place.
        references: Type references mentioned by the declaration, in source
            order.
        line: 1-based line of the statement.
    """
    name: str
    kind: DeclarationKind
    raw: bytes
    doc: bytes = b""
    name_span: tuple[int, int] | None = None
    references: tuple[TypeReference, ...] = ()
    line: int = 0

    @property
    def text(self) -> str:
        return self.raw.decode("utf-8")

    @property
    def is_anonymous_default(self) -> bool:
        return self.kind is DeclarationKind.ANONYMOUS_DEFAULT


@dataclass(frozen=True)
class ImportBinding:
    """A name introduced into a module's scope by an import.

    Attributes:
        local_name: Name bound in the importing module (None for side-effect
            imports).
        kind: ImportKind of the binding.
        specifier: Raw module specifier as written.
        remote_name: Exported name looked up in the target module;
            ``"default"`` for default imports, None for namespace and
            side-effect imports.
        type_only: Whether the import was marked with ``type``.
        line: 1-based line of the import statement.
    """
    local_name: str | None
    kind: ImportKind
    specifier: str
    remote_name: str | None = None
    type_only: bool = False
    line: int = 0


@dataclass(frozen=True)
class ExportBinding:
    """A name leaving a module through an export directive.

    Attributes:
        exported_name: Public name; None for ``export * from``.
        kind: ExportKind of the binding.
        local_name: For LOCAL bindings, the name in the module's own scope
            (a declaration or an import).
        specifier: For re-exports, the raw module specifier.
        remote_name: For named/default re-exports, the name in the target.
        type_only: Whether the export was marked with ``type``.
        line: 1-based line of the export statement.
    """
    exported_name: str | None
    kind: ExportKind
    local_name: str | None = None
    specifier: str | None = None
    remote_name: str | None = None
    type_only: bool = False
    line: int = 0


@dataclass(frozen=True)
class DefaultExportDirective:
    """An ``export default <expression>`` statement.

    When the expression is a bare identifier, ``identifier`` holds it and
    the symbol table decides whether it aliases a local or imported name.
    ``declaration`` is the anonymous-default declaration used otherwise.
    """
    declaration: Declaration
    identifier: str | None = None


@dataclass
class ModuleSyntax:
    """Everything extracted from one module's top level."""
    declarations: list[Declaration] = field(default_factory=list)
    imports: list[ImportBinding] = field(default_factory=list)
    exports: list[ExportBinding] = field(default_factory=list)
    default_export: DefaultExportDirective | None = None

    @property
    def specifiers(self) -> list[str]:
        """Specifiers that lead to other modules, in first-seen order.

        Side-effect imports are skipped: their modules contribute nothing
        to the type-space bundle.
        """
        seen: dict[str, None] = {}
        for binding in self.imports:
            if binding.kind is not ImportKind.SIDE_EFFECT:
                seen.setdefault(binding.specifier)
        for export in self.exports:
            if export.specifier is not None:
                seen.setdefault(export.specifier)
        return list(seen)


class DeclarationExtractor:
    """Extracts declarations and import/export directives from one parse.

    Only top-level statements are inspected. Nested scopes are captured as
    part of their enclosing declaration's verbatim text.
    """

    def __init__(self, path: Path, parsed: ParsedSource) -> None:
        self.path = path
        self.source = parsed.source
        self.statements = parsed.statements
        self.syntax = ModuleSyntax()

    def extract(self) -> ModuleSyntax:
        for statement in self.statements:
            handler = getattr(self, f"_visit_{statement.type}", None)
            if handler is not None:
                handler(statement)
            elif statement.type in DECLARATION_NODE_KINDS or statement.type in VARIABLE_NODE_TYPES:
                self._add_declarations(statement, statement)
        return self.syntax

    # ------------------------------------------------------------------
    # Statement visitors
    # ------------------------------------------------------------------

    def _visit_ambient_declaration(self, node: Node) -> None:
        self._add_declarations(node, node)

    def _visit_expression_statement(self, node: Node) -> None:
        # `namespace Foo {}` parses as an expression statement
        inner = node.named_children[0] if node.named_children else None
        if inner is not None and inner.type == "internal_module":
            self._add_declarations(inner, node)

    def _visit_import_statement(self, node: Node) -> None:
        source_node = node.child_by_field_name("source") or _last_child_of_type(node, "string")
        if source_node is None:
            # import x = require(...) / import x = NS.y
            logger.debug(f"{self.path}:{_line(node)}: skipping import assignment")
            return
        specifier = _unquote(self._text(source_node))
        line = _line(node)
        statement_type_only = _has_keyword(node, "type")

        clause = _first_child_of_type(node, "import_clause")
        if clause is None:
            logger.debug(f"{self.path}:{line}: side-effect import of '{specifier}'")
            self.syntax.imports.append(
                ImportBinding(None, ImportKind.SIDE_EFFECT, specifier, line=line)
            )
            return

        for child in clause.named_children:
            if child.type == "identifier":
                self.syntax.imports.append(ImportBinding(
                    self._text(child), ImportKind.DEFAULT, specifier,
                    remote_name=DEFAULT_EXPORT, type_only=statement_type_only, line=line,
                ))
            elif child.type == "namespace_import":
                name_node = _first_child_of_type(child, "identifier")
                if name_node is not None:
                    self.syntax.imports.append(ImportBinding(
                        self._text(name_node), ImportKind.NAMESPACE, specifier,
                        type_only=statement_type_only, line=line,
                    ))
            elif child.type == "named_imports":
                for spec in child.named_children:
                    if spec.type == "import_specifier":
                        self._add_import_specifier(spec, specifier, statement_type_only, line)

    def _add_import_specifier(
        self, spec: Node, specifier: str, statement_type_only: bool, line: int
    ) -> None:
        name_node = spec.child_by_field_name("name")
        if name_node is None:
            return
        remote = _unquote(self._text(name_node))
        alias_node = spec.child_by_field_name("alias")
        local = self._text(alias_node) if alias_node is not None else remote
        type_only = statement_type_only or _has_keyword(spec, "type")

        if remote == DEFAULT_EXPORT:
            kind = ImportKind.DEFAULT
        elif type_only:
            kind = ImportKind.TYPE_ONLY
        else:
            kind = ImportKind.NAMED
        self.syntax.imports.append(
            ImportBinding(local, kind, specifier, remote_name=remote, type_only=type_only, line=line)
        )

    def _visit_export_statement(self, node: Node) -> None:
        line = _line(node)
        is_default = _has_keyword(node, "default")
        type_only = _has_keyword(node, "type")
        source_node = node.child_by_field_name("source")
        specifier = _unquote(self._text(source_node)) if source_node is not None else None

        declaration = node.child_by_field_name("declaration")
        if declaration is not None:
            added = self._add_declarations(declaration, node)
            for decl in added:
                exported = DEFAULT_EXPORT if is_default else decl.name
                self._add_export(ExportBinding(
                    exported, ExportKind.LOCAL, local_name=decl.name, line=line,
                ))
                if is_default:
                    break
            return

        if is_default:
            value = node.child_by_field_name("value")
            if value is None:
                value = next((c for c in node.named_children if c.type != "comment"), None)
            if value is not None:
                self._set_default_export(node, value)
            return

        clause = _first_child_of_type(node, "export_clause")
        if clause is not None:
            for spec in clause.named_children:
                if spec.type == "export_specifier":
                    self._add_export_specifier(spec, specifier, type_only, line)
            return

        namespace_export = _first_child_of_type(node, "namespace_export")
        if namespace_export is not None and specifier is not None:
            name_node = next(
                (c for c in namespace_export.named_children if c.type in ("identifier", "string")),
                None,
            )
            if name_node is not None:
                self._add_export(ExportBinding(
                    _unquote(self._text(name_node)), ExportKind.REEXPORT_NAMESPACE,
                    specifier=specifier, type_only=type_only, line=line,
                ))
            return

        if specifier is not None and _has_keyword(node, "*"):
            self._add_export(ExportBinding(
                None, ExportKind.REEXPORT_ALL, specifier=specifier, type_only=type_only, line=line,
            ))
            return

        logger.debug(f"{self.path}:{line}: unsupported export form skipped")

    def _add_export_specifier(
        self, spec: Node, specifier: str | None, statement_type_only: bool, line: int
    ) -> None:
        name_node = spec.child_by_field_name("name")
        if name_node is None:
            return
        name = _unquote(self._text(name_node))
        alias_node = spec.child_by_field_name("alias")
        exported = _unquote(self._text(alias_node)) if alias_node is not None else name
        type_only = statement_type_only or _has_keyword(spec, "type")

        if specifier is None:
            binding = ExportBinding(
                exported, ExportKind.LOCAL, local_name=name, type_only=type_only, line=line,
            )
        else:
            kind = ExportKind.REEXPORT_DEFAULT if name == DEFAULT_EXPORT else ExportKind.REEXPORT_NAMED
            binding = ExportBinding(
                exported, kind, specifier=specifier, remote_name=name,
                type_only=type_only, line=line,
            )
        self._add_export(binding)

    def _add_export(self, binding: ExportBinding) -> None:
        self.syntax.exports.append(binding)

    def _set_default_export(self, statement: Node, value: Node) -> None:
        """Record ``export default <value>``.

        An anonymous class or function keeps its verbatim text with a
        zero-width name slot after its keyword. Any other expression can
        only be emitted as an opaque type, so it carries no name slot.
        """
        base = value.start_byte
        raw = self._slice(value)
        name_span = None
        if value.type in NAMEABLE_EXPRESSIONS and value.child_by_field_name("name") is None:
            slot = _keyword_end(value)
            if slot is not None:
                name_span = (slot - base, slot - base)

        declaration = Declaration(
            name=DEFAULT_EXPORT,
            kind=DeclarationKind.ANONYMOUS_DEFAULT,
            raw=raw,
            doc=self._leading_doc(statement),
            name_span=name_span,
            references=tuple(_collect_references(value, self.source, base, skip=None)),
            line=_line(statement),
        )
        identifier = self._text(value) if value.type == "identifier" else None
        if self.syntax.default_export is not None:
            logger.warning(f"{self.path}:{_line(statement)}: duplicate default export, keeping the last one")
        self.syntax.default_export = DefaultExportDirective(declaration, identifier)

    # ------------------------------------------------------------------
    # Declarations
    # ------------------------------------------------------------------

    def _add_declarations(self, node: Node, statement: Node) -> list[Declaration]:
        declarations = self._build_declarations(node, statement)
        self.syntax.declarations.extend(declarations)
        return declarations

    def _build_declarations(self, node: Node, statement: Node) -> list[Declaration]:
        """Build declarations for ``node``.

        ``node`` is the construct itself (possibly wrapped in ``declare``);
        ``statement`` is the top-level statement whose leading comments
        become the documentation.
        """
        inner = node
        if node.type == "ambient_declaration":
            inner = next(
                (c for c in node.named_children
                 if c.type in DECLARATION_NODE_KINDS or c.type in VARIABLE_NODE_TYPES),
                None,
            )
            if inner is None:
                # declare global { } / declare module 'x' { }
                logger.debug(f"{self.path}:{_line(node)}: ambient block without a name skipped")
                return []

        doc = self._leading_doc(statement)
        line = _line(statement)

        if inner.type in VARIABLE_NODE_TYPES:
            return self._build_variable_declarations(node, inner, doc, line)

        name_node = inner.child_by_field_name("name")
        if name_node is None or name_node.type not in ("identifier", "type_identifier"):
            logger.debug(f"{self.path}:{line}: {inner.type} without a plain name skipped")
            return []

        base = node.start_byte
        return [Declaration(
            name=self._text(name_node),
            kind=DECLARATION_NODE_KINDS[inner.type],
            raw=self._slice(node),
            doc=doc,
            name_span=(name_node.start_byte - base, name_node.end_byte - base),
            references=tuple(_collect_references(inner, self.source, base, skip=name_node)),
            line=line,
        )]

    def _build_variable_declarations(
        self, node: Node, inner: Node, doc: bytes, line: int
    ) -> list[Declaration]:
        keyword = inner.children[0].type if inner.children else "var"
        kind = VARIABLE_KINDS.get(keyword, DeclarationKind.VAR)
        declarators = [c for c in inner.named_children if c.type == "variable_declarator"]

        declarations = []
        for declarator in declarators:
            name_node = declarator.child_by_field_name("name")
            if name_node is None or name_node.type != "identifier":
                logger.debug(f"{self.path}:{line}: destructuring declaration skipped")
                continue
            if len(declarators) == 1:
                raw = self._slice(node)
                base = node.start_byte
            else:
                # const a = 1, b = 2; is split into one declaration per name
                prefix = self.source[node.start_byte:declarators[0].start_byte]
                raw = prefix + self._slice(declarator) + b";"
                base = declarator.start_byte - len(prefix)
            declarations.append(Declaration(
                name=self._text(name_node),
                kind=kind,
                raw=raw,
                doc=doc,
                name_span=(name_node.start_byte - base, name_node.end_byte - base),
                references=tuple(_collect_references(declarator, self.source, base, skip=name_node)),
                line=line,
            ))
        return declarations

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _slice(self, node: Node) -> bytes:
        return self.source[node.start_byte:node.end_byte]

    def _text(self, node: Node) -> str:
        return self._slice(node).decode("utf-8")

    def _leading_doc(self, statement: Node) -> bytes:
        """Return the comment block directly above ``statement``.

        The block stops at a blank line or at a comment that trails
        another statement on the same line.
        """
        comments: list[Node] = []
        expected_row = statement.start_point[0]
        previous = statement.prev_sibling
        while previous is not None and previous.type == "comment":
            if previous.end_point[0] < expected_row - 1:
                break
            before = previous.prev_sibling
            if before is not None and before.type != "comment" and before.end_point[0] == previous.start_point[0]:
                break
            comments.append(previous)
            expected_row = previous.start_point[0]
            previous = before
        if not comments:
            return b""
        return self.source[comments[-1].start_byte:comments[0].end_byte]


# ---------------------------------------------------------------------------
# Type reference walk
# ---------------------------------------------------------------------------

def _collect_references(
    root: Node, source: bytes, base: int, skip: Node | None
) -> list[TypeReference]:
    """Collect type references under ``root``.

    Names bound by type parameters, mapped-type keys and ``infer`` clauses
    shadow outer names only inside the construct that binds them: the type
    parameters of a method hide nothing in its sibling members.
    """
    skip_key = (skip.start_byte, skip.end_byte) if skip is not None else None
    references: list[TypeReference] = []

    def add(node: Node, shadowed: frozenset[str]) -> bool:
        segments = _dotted_segments(node, source, base)
        if not segments:
            return False
        if segments[0][0] not in shadowed:
            references.append(TypeReference(tuple(segments)))
        return True

    stack: list[tuple[Node, frozenset[str]]] = [(root, frozenset())]
    while stack:
        node, shadowed = stack.pop()
        if skip_key is not None and (node.start_byte, node.end_byte) == skip_key:
            continue
        shadowed = shadowed | _bound_type_names(node, source)
        node_type = node.type
        if node_type in ("type_identifier", "nested_type_identifier"):
            add(node, shadowed)
            continue
        if node_type == "type_query":
            for child in node.named_children:
                if not add(child, shadowed):
                    stack.append((child, shadowed))
            continue
        if node_type == "extends_clause":
            # class heritage: `extends Base` names a value expression
            for child in node.named_children:
                if child.type in ("identifier", "member_expression") and add(child, shadowed):
                    continue
                stack.append((child, shadowed))
            continue
        if node_type == "conditional_type":
            stack.extend(_conditional_scopes(node, source, shadowed))
            continue
        stack.extend((child, shadowed) for child in node.named_children)

    references.sort(key=lambda ref: ref.start)
    return references


def _bound_type_names(node: Node, source: bytes) -> frozenset[str]:
    """Names ``node`` binds for its own subtree.

    Type parameter lists and mapped-type clauses bind for the node that
    directly holds them, e.g. ``<T>`` on a method signature or
    ``[K in keyof T]`` on an index signature.
    """
    names: set[str] = set()
    for child in node.named_children:
        if child.type == "type_parameters":
            for param in child.named_children:
                if param.type in _BINDING_NODE_TYPES:
                    names.add(_field_text(param, "name", source))
        elif child.type in _BINDING_NODE_TYPES:
            names.add(_field_text(child, "name", source))
    if node.type == "infer_type":
        name = _first_child_of_type(node, "type_identifier")
        if name is not None:
            names.add(source[name.start_byte:name.end_byte].decode("utf-8"))
    names.discard("")
    return frozenset(names)


def _conditional_scopes(
    node: Node, source: bytes, shadowed: frozenset[str]
) -> list[tuple[Node, frozenset[str]]]:
    # `infer` names in the extends clause are visible in the true branch only
    check = node.child_by_field_name("left")
    pattern = node.child_by_field_name("right")
    consequence = node.child_by_field_name("consequence")
    alternative = node.child_by_field_name("alternative")
    inferred = shadowed | _infer_names(pattern, source) if pattern is not None else shadowed
    scopes = [(check, shadowed), (pattern, inferred), (consequence, inferred), (alternative, shadowed)]
    return [(child, names) for child, names in scopes if child is not None]


def _infer_names(node: Node, source: bytes) -> frozenset[str]:
    names: set[str] = set()
    stack = [node]
    while stack:
        current = stack.pop()
        if current.type == "conditional_type":
            continue
        if current.type == "infer_type":
            name = _first_child_of_type(current, "type_identifier")
            if name is not None:
                names.add(source[name.start_byte:name.end_byte].decode("utf-8"))
        stack.extend(current.named_children)
    return frozenset(names)


def _field_text(node: Node, field_name: str, source: bytes) -> str:
    child = node.child_by_field_name(field_name)
    if child is None:
        return ""
    return source[child.start_byte:child.end_byte].decode("utf-8")


def _dotted_segments(
    node: Node, source: bytes, base: int
) -> list[tuple[str, int, int]] | None:
    """Split a (possibly qualified) name node into its segments.

    Returns None when the node is anything other than a chain of plain
    identifiers, e.g. a call or an element access.
    """
    if node.type in _SEGMENT_LEAVES:
        text = source[node.start_byte:node.end_byte].decode("utf-8")
        return [(text, node.start_byte - base, node.end_byte - base)]
    if node.type not in _SEGMENT_CONTAINERS:
        return None
    segments: list[tuple[str, int, int]] = []
    for child in node.named_children:
        if child.type == "comment":
            continue
        part = _dotted_segments(child, source, base)
        if part is None:
            return None
        segments.extend(part)
    return segments


def _line(node: Node) -> int:
    return node.start_point[0] + 1


def _has_keyword(node: Node, keyword: str) -> bool:
    return any(not child.is_named and child.type == keyword for child in node.children)


def _first_child_of_type(node: Node, node_type: str) -> Node | None:
    for child in node.children:
        if child.type == node_type:
            return child
    return None


def _last_child_of_type(node: Node, node_type: str) -> Node | None:
    found = None
    for child in node.children:
        if child.type == node_type:
            found = child
    return found


def _keyword_end(node: Node) -> int | None:
    """Byte offset after ``class``/``function``/``function*`` in ``node``."""
    end = None
    for child in node.children:
        if child.is_named:
            break
        if child.type in ("class", "function", "*"):
            end = child.end_byte
        elif end is not None:
            break
    return end


def _unquote(text: str) -> str:
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"', "`"):
        return text[1:-1]
    return text
