"""Runs the front end for a document and publishes what it reports."""

from __future__ import annotations

import re

from lsprotocol.types import Diagnostic, DiagnosticSeverity, Position, Range

from lunals.contract import Analyzer, CheckMessage, IdentifierVisitor, ParseFailure
from lunals.lua import LuaAnalyzer
from lunals.session import Session

DIAGNOSTIC_SOURCE = "lunals"
WARNING_TAGS = frozenset({"any", "mask", "unused"})

_PARSE_ERROR_RE = re.compile(r"^(?P<line>\d+):(?P<column>\d+): (?P<message>.*)$", re.DOTALL)


def severity_for(tag: str) -> DiagnosticSeverity:
    if tag in WARNING_TAGS:
        return DiagnosticSeverity.Warning
    return DiagnosticSeverity.Error


def _range(line: int, column: int, length: int) -> Range:
    start = Position(line=max(line - 1, 0), character=max(column - 1, 0))
    end = Position(line=start.line, character=start.character + max(length, 1))
    return Range(start=start, end=end)


def diagnostic_from_message(message: CheckMessage) -> Diagnostic:
    return Diagnostic(
        range=_range(message.line, message.column, message.length),
        severity=severity_for(message.tag),
        source=f"{DIAGNOSTIC_SOURCE}.{message.tag}",
        message=message.message,
    )


def diagnostic_from_parse_failure(text: str) -> Diagnostic | None:
    match = _PARSE_ERROR_RE.match(text)
    if match is None:
        return None
    return Diagnostic(
        range=_range(int(match.group("line")), int(match.group("column")), 1),
        severity=DiagnosticSeverity.Error,
        source=f"{DIAGNOSTIC_SOURCE}.syntax",
        message=match.group("message"),
    )


class AnalyzerAdapter:
    def __init__(self, analyzer: Analyzer | None = None):
        self.analyzer: Analyzer = analyzer if analyzer is not None else LuaAnalyzer()

    def typecheck(self, session: Session, uri: str) -> object | None:
        """Analyze ``uri`` and publish its diagnostics.

        Returns the syntax tree when the document is free of errors (warnings
        are fine), otherwise ``None``. The tree is cached on the session under
        the same rule.
        """
        text = session.text(uri)
        if text is None:
            return None
        settings = session.analysis
        try:
            tree = self.analyzer.parse(text, uri, settings)
        except ParseFailure as exc:
            session.trees.pop(uri, None)
            diagnostic = diagnostic_from_parse_failure(str(exc))
            if diagnostic is None:
                session.logger.warning("unrecognized parse failure for %s: %s", uri, exc)
                session.publish_diagnostics(uri, [])
            else:
                session.publish_diagnostics(uri, [diagnostic])
            return None
        messages = self.analyzer.typecheck(tree, text, uri, settings)
        diagnostics = [diagnostic_from_message(message) for message in messages]
        session.publish_diagnostics(uri, diagnostics)
        if any(d.severity == DiagnosticSeverity.Error for d in diagnostics):
            session.logger.debug(
                "%s has %d diagnostics with errors; tree discarded", uri, len(diagnostics)
            )
            session.trees.pop(uri, None)
            return None
        session.trees[uri] = tree
        return tree

    def visit(self, tree: object, visitor: IdentifierVisitor) -> None:
        self.analyzer.visit(tree, visitor)
