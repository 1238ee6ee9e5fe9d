"""Contract between the session core and a language front end.

The session only needs three things from a front end: parse text into a
tree, check a tree into tagged messages, and walk a tree's identifiers.
``lunals.lua.LuaAnalyzer`` is the implementation shipped with the server;
tests substitute fakes that satisfy ``Analyzer``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, TypeVar

from lunals.exceptions import LunalsError
from lunals.schema import AnalysisSettings

TreeT = TypeVar("TreeT")


class ParseFailure(LunalsError):
    """Raised by ``Analyzer.parse``.

    ``str(exc)`` is expected to look like ``"<line>:<column>: <message>"``;
    anything else is still a failure but yields no diagnostic.
    """


@dataclass(frozen=True)
class CheckMessage:
    line: int
    column: int
    tag: str
    message: str
    length: int = 1


@dataclass(frozen=True)
class IdentifierOccurrence:
    name: str
    line: int
    column: int
    length: int
    scope_id: int
    type_descriptor: str | None = None
    is_global: bool = False

    @property
    def end_column(self) -> int:
        return self.column + self.length

    def covers(self, line: int, column: int) -> bool:
        return line == self.line and self.column <= column < self.end_column

    def same_symbol(self, other: IdentifierOccurrence) -> bool:
        return self.name == other.name and self.scope_id == other.scope_id


class IdentifierVisitor(Protocol):
    def on_identifier(self, *, occurrence: IdentifierOccurrence) -> None: ...


class Analyzer(Protocol[TreeT]):
    def parse(self, text: str, uri: str, settings: AnalysisSettings) -> TreeT: ...

    def typecheck(
        self,
        tree: TreeT,
        text: str,
        uri: str,
        settings: AnalysisSettings,
    ) -> list[CheckMessage]: ...

    def visit(self, tree: TreeT, visitor: IdentifierVisitor) -> None: ...
