"""Lua-subset front end used by the language server."""

from __future__ import annotations

from lunals.contract import CheckMessage, IdentifierOccurrence, IdentifierVisitor
from lunals.lua import nodes
from lunals.lua.checker import check
from lunals.lua.lexer import LuaSyntaxError
from lunals.lua.parser import parse
from lunals.schema import AnalysisSettings

__all__ = ["LuaAnalyzer", "LuaSyntaxError", "check", "parse", "visit"]


def visit(tree: nodes.Chunk, visitor: IdentifierVisitor) -> None:
    for node in nodes.walk(tree):
        if not isinstance(node, nodes.Name):
            continue
        binding = node.binding
        visitor.on_identifier(
            occurrence=IdentifierOccurrence(
                name=node.name,
                line=node.line,
                column=node.column,
                length=node.length,
                scope_id=node.scope_id,
                type_descriptor=binding.type if binding is not None else None,
                is_global=binding is None or binding.is_global,
            )
        )


class LuaAnalyzer:
    def parse(self, text: str, uri: str, settings: AnalysisSettings) -> nodes.Chunk:
        return parse(text, uri)

    def typecheck(
        self,
        tree: nodes.Chunk,
        text: str,
        uri: str,
        settings: AnalysisSettings,
    ) -> list[CheckMessage]:
        return check(
            tree,
            strict=settings.strict,
            integer=settings.integer,
            unused=settings.unused,
        )

    def visit(self, tree: nodes.Chunk, visitor: IdentifierVisitor) -> None:
        visit(tree, visitor)
