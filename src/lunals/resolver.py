"""Map an LSP position to the identifier occurrence under it."""

from __future__ import annotations

from dataclasses import dataclass, field

from lsprotocol.types import Position, Range

from lunals.analyzer import AnalyzerAdapter
from lunals.contract import IdentifierOccurrence
from lunals.exceptions import IdentifierNotFound, SyntaxOrTypeError
from lunals.session import Session


def to_internal(position: Position) -> tuple[int, int]:
    """Wire positions are 0-based; tree coordinates are 1-based."""
    return position.line + 1, position.character + 1


def occurrence_range(occurrence: IdentifierOccurrence) -> Range:
    line = occurrence.line - 1
    start = occurrence.column - 1
    return Range(
        start=Position(line=line, character=start),
        end=Position(line=line, character=start + occurrence.length),
    )


@dataclass
class _PositionMatcher:
    line: int
    column: int
    best: IdentifierOccurrence | None = None

    def on_identifier(self, *, occurrence: IdentifierOccurrence) -> None:
        if not occurrence.covers(self.line, self.column):
            return
        # Smallest span wins; equal spans keep the first one visited.
        if self.best is None or occurrence.length < self.best.length:
            self.best = occurrence


@dataclass
class _SymbolMatcher:
    target: IdentifierOccurrence
    matches: list[IdentifierOccurrence] = field(default_factory=list)

    def on_identifier(self, *, occurrence: IdentifierOccurrence) -> None:
        if occurrence.same_symbol(self.target):
            self.matches.append(occurrence)


@dataclass(frozen=True)
class Resolution:
    uri: str
    tree: object
    occurrence: IdentifierOccurrence


class PositionResolver:
    def __init__(self, adapter: AnalyzerAdapter):
        self.adapter = adapter

    def resolve(self, session: Session, uri: str, position: Position) -> Resolution:
        tree = self.adapter.typecheck(session, uri)
        if tree is None:
            raise SyntaxOrTypeError(uri)
        line, column = to_internal(position)
        matcher = _PositionMatcher(line, column)
        self.adapter.visit(tree, matcher)
        if matcher.best is None:
            raise IdentifierNotFound(uri, position.line, position.character)
        return Resolution(uri=uri, tree=tree, occurrence=matcher.best)

    def matching_occurrences(self, resolution: Resolution) -> list[IdentifierOccurrence]:
        """Every occurrence of the resolved symbol, in traversal order."""
        matcher = _SymbolMatcher(resolution.occurrence)
        self.adapter.visit(resolution.tree, matcher)
        return matcher.matches
