"""Per-connection state: documents, settings, diagnostics and cached trees."""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Mapping

from lsprotocol.types import (
    TEXT_DOCUMENT_PUBLISH_DIAGNOSTICS,
    Diagnostic,
    PublishDiagnosticsParams,
    TextDocumentSyncKind,
)
from pygls.workspace import TextDocument

from lunals import jsonrpc
from lunals.config import analysis_settings, merge_payload
from lunals.converter import unstructure
from lunals.framing import FrameReader, encode_frame
from lunals.json_types import JSONObject
from lunals.schema import AnalysisSettings

LANGUAGE_ID = "lua"


@dataclass
class Session:
    """State of one client connection.

    Only the connection's own message loop touches a session, one message
    at a time, so none of this is locked.
    """

    write: Callable[[bytes], None]
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("lunals.session"))
    exit_fn: Callable[[int], object] = sys.exit
    frames: FrameReader = field(default_factory=FrameReader)
    documents: dict[str, TextDocument] = field(default_factory=dict)
    settings: dict[str, object] = field(default_factory=dict)
    diagnostics: dict[str, list[Diagnostic]] = field(default_factory=dict)
    trees: dict[str, object] = field(default_factory=dict)
    root: Path | None = None
    initialized: bool = False
    shutdown_requested: bool = False
    running: bool = True
    _analysis: AnalysisSettings | None = field(default=None, repr=False)

    # outgoing messages

    def send(self, message: JSONObject) -> None:
        self.write(encode_frame(jsonrpc.encode(message)))

    def notify(self, method: str, params: object) -> None:
        self.send(jsonrpc.notification(method, unstructure(params)))

    def publish_diagnostics(self, uri: str, diagnostics: list[Diagnostic]) -> None:
        self.diagnostics[uri] = list(diagnostics)
        document = self.documents.get(uri)
        self.notify(
            TEXT_DOCUMENT_PUBLISH_DIAGNOSTICS,
            PublishDiagnosticsParams(
                uri=uri,
                diagnostics=list(diagnostics),
                version=document.version if document is not None else None,
            ),
        )

    # documents

    def put_document(
        self,
        uri: str,
        text: str,
        version: int | None = None,
        language_id: str | None = None,
    ) -> TextDocument:
        previous = self.documents.get(uri)
        if language_id is None:
            language_id = previous.language_id if previous is not None else LANGUAGE_ID
        if version is None and previous is not None:
            version = previous.version
        document = TextDocument(
            uri,
            source=text,
            version=version,
            language_id=language_id,
            sync_kind=TextDocumentSyncKind.Full,
        )
        self.documents[uri] = document
        return document

    def remove_document(self, uri: str) -> None:
        self.documents.pop(uri, None)
        self.trees.pop(uri, None)
        self.diagnostics.pop(uri, None)

    def text(self, uri: str) -> str | None:
        document = self.documents.get(uri)
        return document.source if document is not None else None

    # settings

    def update_settings(self, values: Mapping[str, object]) -> None:
        self.settings = merge_payload(values, self.settings)
        self._analysis = None

    @property
    def analysis(self) -> AnalysisSettings:
        if self._analysis is None:
            self._analysis = analysis_settings(self.settings)
        return self._analysis
