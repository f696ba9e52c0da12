"""Bundle text emission.

The emitter turns a ``BundlePlan`` into declaration text. Declarations are
reused verbatim; the only changes are splices at the byte spans recorded
during extraction and resolution:

* the declared name becomes the symbol's display name
* each resolved reference becomes its target's display name, dropping any
  namespace qualifier (``NS.User['id']`` -> ``User['id']``)

Every emitted declaration is exported. Anonymous default classes and
functions receive their display name after the keyword; any other default
expression is folded to ``type <Name> = unknown;``.
"""

from __future__ import annotations

from typing import Sequence

from tsbundler.core.dependency_graph import ResolvedReference
from tsbundler.core.reachability import BundlePlan
from tsbundler.core.symbol_table import Symbol
from tsbundler.processors.declaration_extractor import Declaration
from tsbundler.utils.logger import get_logger

logger = get_logger("tsbundler.core.emitter")

BLOCK_SEPARATOR = "\n\n"


class Emitter:
    """Serializes a bundle plan in discovery order.

    Attributes:
        preserve_default_export: Append ``export default <Name>;`` when the
            entry has a default export in the bundle
    """

    def __init__(self, preserve_default_export: bool = False) -> None:
        self.preserve_default_export = preserve_default_export

    def emit(self, plan: BundlePlan) -> str:
        """Render ``plan`` as bundle text ending with a newline.

        Returns an empty string when the plan selects nothing.
        """
        blocks: list[str] = []
        for symbol in plan.order:
            name = plan.display_name(symbol)
            references = plan.references.get(symbol, [])
            for index, declaration in enumerate(plan.declarations.get(symbol, ())):
                local_refs = [ref for ref in references if ref.declaration_index == index]
                blocks.append(self.render_declaration(declaration, name, local_refs, plan))

        for symbol, exported_name in plan.root_aliases:
            blocks.append(f"export {{ {plan.display_name(symbol)} as {exported_name} }};")

        if self.preserve_default_export and plan.default_symbol is not None:
            blocks.append(f"export default {plan.display_name(plan.default_symbol)};")

        if not blocks:
            return ""
        logger.debug(f"Emitted {len(blocks)} block(s) for {plan.entry.name}")
        return BLOCK_SEPARATOR.join(blocks) + "\n"

    def render_declaration(
        self,
        declaration: Declaration,
        display_name: str,
        references: Sequence[ResolvedReference],
        plan: BundlePlan,
    ) -> str:
        """Render one declaration with its doc comment and renames applied."""
        doc = declaration.doc.decode("utf-8", errors="replace")
        prefix = f"{doc}\n" if doc else ""

        if declaration.is_anonymous_default and declaration.name_span is None:
            logger.debug(f"Folding anonymous default to opaque type '{display_name}'")
            return f"{prefix}export type {display_name} = unknown;"

        edits: list[tuple[int, int, str]] = []
        if declaration.name_span is not None:
            start, end = declaration.name_span
            edits.append((start, end, f" {display_name}" if start == end else display_name))
        for reference in references:
            edits.append((reference.start, reference.end, plan.display_name(reference.target)))

        body = _apply_edits(declaration.raw, edits).decode("utf-8", errors="replace")
        return f"{prefix}export {body}"


def _apply_edits(raw: bytes, edits: list[tuple[int, int, str]]) -> bytes:
    """Splice replacements into ``raw``; overlapping edits after the first are skipped."""
    out = bytearray()
    cursor = 0
    for start, end, replacement in sorted(edits, key=lambda edit: (edit[0], edit[1])):
        if start < cursor:
            logger.debug(f"Skipping overlapping edit at {start}-{end}")
            continue
        out += raw[cursor:start]
        out += replacement.encode("utf-8")
        cursor = end
    out += raw[cursor:]
    return bytes(out)


def emitted_symbols(plan: BundlePlan) -> list[tuple[Symbol, str]]:
    """``(symbol, display_name)`` pairs in emission order."""
    return [(symbol, plan.display_name(symbol)) for symbol in plan.order]
