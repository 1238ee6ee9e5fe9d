"""Hover, rename, references and definition providers.

All four resolve the identifier under the cursor first and fail the same
way the resolver does: ``SyntaxOrTypeError`` while the document has errors,
``IdentifierNotFound`` when the cursor is not on an identifier.
"""

from __future__ import annotations

import re

from lsprotocol.types import (
    DefinitionParams,
    Hover,
    HoverParams,
    Location,
    MarkupContent,
    MarkupKind,
    ReferenceParams,
    RenameParams,
    TextEdit,
    WorkspaceEdit,
)

from lunals.contract import IdentifierOccurrence
from lunals.exceptions import ErrorCode, RpcError
from lunals.invariants import never
from lunals.lua.lexer import KEYWORDS
from lunals.resolver import PositionResolver, occurrence_range
from lunals.session import Session

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def hover_text(occurrence: IdentifierOccurrence) -> str:
    scope = "global" if occurrence.is_global else "local"
    type_descriptor = occurrence.type_descriptor or "any"
    return f"```lua\n{scope} {occurrence.name}: {type_descriptor}\n```"


def hover(resolver: PositionResolver, session: Session, params: HoverParams) -> Hover:
    uri = params.text_document.uri
    resolution = resolver.resolve(session, uri, params.position)
    occurrence = resolution.occurrence
    return Hover(
        contents=MarkupContent(kind=MarkupKind.Markdown, value=hover_text(occurrence)),
        range=occurrence_range(occurrence),
    )


def rename(resolver: PositionResolver, session: Session, params: RenameParams) -> WorkspaceEdit:
    new_name = params.new_name
    if not _IDENTIFIER_RE.match(new_name) or new_name in KEYWORDS:
        raise RpcError(
            f"'{new_name}' is not a valid identifier",
            code=ErrorCode.INVALID_PARAMS,
        )
    uri = params.text_document.uri
    resolution = resolver.resolve(session, uri, params.position)
    edits = [
        TextEdit(range=occurrence_range(occurrence), new_text=new_name)
        for occurrence in resolver.matching_occurrences(resolution)
    ]
    return WorkspaceEdit(changes={uri: edits})


def references(
    resolver: PositionResolver, session: Session, params: ReferenceParams
) -> list[Location]:
    uri = params.text_document.uri
    resolution = resolver.resolve(session, uri, params.position)
    return [
        Location(uri=uri, range=occurrence_range(occurrence))
        for occurrence in resolver.matching_occurrences(resolution)
    ]


def definition(
    resolver: PositionResolver, session: Session, params: DefinitionParams
) -> Location:
    """First occurrence in traversal order.

    Declarations precede their uses in source order, so the first match is
    taken to be the declaration.
    """
    uri = params.text_document.uri
    resolution = resolver.resolve(session, uri, params.position)
    matches = resolver.matching_occurrences(resolution)
    if not matches:
        never("resolved occurrence missing from its own tree", uri=uri)
    return Location(uri=uri, range=occurrence_range(matches[0]))
