from __future__ import annotations

import asyncio
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Mapping

from lsprotocol.types import (
    EXIT,
    INITIALIZE,
    INITIALIZED,
    SHUTDOWN,
    TEXT_DOCUMENT_COMPLETION,
    TEXT_DOCUMENT_DEFINITION,
    TEXT_DOCUMENT_DID_CHANGE,
    TEXT_DOCUMENT_DID_CLOSE,
    TEXT_DOCUMENT_DID_OPEN,
    TEXT_DOCUMENT_DID_SAVE,
    TEXT_DOCUMENT_HOVER,
    TEXT_DOCUMENT_PUBLISH_DIAGNOSTICS,
    TEXT_DOCUMENT_REFERENCES,
    TEXT_DOCUMENT_RENAME,
    TEXT_DOCUMENT_SIGNATURE_HELP,
    WORKSPACE_DID_CHANGE_CONFIGURATION,
    CompletionList,
    CompletionOptions,
    CompletionParams,
    DefinitionParams,
    DidChangeConfigurationParams,
    DidChangeTextDocumentParams,
    DidCloseTextDocumentParams,
    DidOpenTextDocumentParams,
    DidSaveTextDocumentParams,
    Hover,
    HoverParams,
    InitializeResult,
    Location,
    PublishDiagnosticsParams,
    ReferenceParams,
    RenameParams,
    SaveOptions,
    ServerCapabilities,
    ServerInfo,
    SignatureHelpOptions,
    SignatureHelpParams,
    TextDocumentSyncKind,
    TextDocumentSyncOptions,
    WorkspaceEdit,
)
from pygls.uris import to_fs_path

from lunals import __version__, features, jsonrpc
from lunals.analyzer import AnalyzerAdapter
from lunals.config import analysis_defaults, client_settings
from lunals.contract import Analyzer
from lunals.converter import structure, unstructure
from lunals.exceptions import (
    DecodeError,
    ErrorCode,
    FramingError,
    IncrementalSyncError,
    RpcError,
)
from lunals.resolver import PositionResolver
from lunals.schema import Envelope
from lunals.session import Session

logger = logging.getLogger(__name__)

SERVER_NAME = "lunals"
RESERVED_PREFIX = "$/"
READ_CHUNK_SIZE = 64 * 1024

Handler = Callable[["LanguageServer", Session, Any], Any]


@dataclass(frozen=True)
class MethodSpec:
    handler: Handler
    # None means the handler receives the raw params value.
    params_type: type | None = None


class LanguageServer:
    """Routes decoded envelopes to registered handlers.

    The method table is closed: it is filled at import time through
    ``feature`` and every entry names the lsprotocol type its params are
    structured into before the handler runs.
    """

    def __init__(self, name: str, version: str, analyzer: Analyzer | None = None):
        self.name = name
        self.version = version
        self.methods: dict[str, MethodSpec] = {}
        self.adapter = AnalyzerAdapter(analyzer)
        self.resolver = PositionResolver(self.adapter)

    def feature(self, method: str, params_type: type | None = None) -> Callable[[Handler], Handler]:
        def _register(handler: Handler) -> Handler:
            self.methods[method] = MethodSpec(handler=handler, params_type=params_type)
            return handler

        return _register

    def with_analyzer(self, analyzer: Analyzer) -> LanguageServer:
        clone = LanguageServer(self.name, self.version, analyzer)
        clone.methods = dict(self.methods)
        return clone

    # dispatch

    def handle_payload(self, session: Session, payload: bytes) -> None:
        try:
            envelope = jsonrpc.decode(payload)
        except DecodeError as exc:
            session.logger.warning("undecodable message: %s", exc)
            if exc.has_id:
                session.send(jsonrpc.error_response(exc.request_id, exc))
            return
        self.dispatch(session, envelope)

    def dispatch(self, session: Session, envelope: Envelope) -> None:
        if envelope.is_request:
            self._handle_request(session, envelope)
        else:
            self._handle_notification(session, envelope)

    def _call(self, session: Session, envelope: Envelope, spec: MethodSpec) -> Any:
        params: Any = envelope.params
        if spec.params_type is not None:
            params = structure(params if params is not None else {}, spec.params_type)
        return spec.handler(self, session, params)

    def _handle_request(self, session: Session, envelope: Envelope) -> None:
        method = envelope.method
        spec = self.methods.get(method)
        try:
            if not session.initialized and method != INITIALIZE:
                raise RpcError("server not initialized", code=ErrorCode.SERVER_NOT_INITIALIZED)
            if spec is None:
                raise RpcError(f"unknown method: {method}", code=ErrorCode.METHOD_NOT_FOUND)
            if session.shutdown_requested:
                raise RpcError("server is shutting down", code=ErrorCode.INVALID_REQUEST)
            result = self._call(session, envelope, spec)
        except RpcError as exc:
            session.logger.info("request %s failed: %s", method, exc.message)
            session.send(jsonrpc.error_response(envelope.id, exc))
        except Exception as exc:
            session.logger.exception("request %s crashed", method)
            error = RpcError(f"{type(exc).__name__}: {exc}", code=ErrorCode.INTERNAL_ERROR)
            session.send(jsonrpc.error_response(envelope.id, error))
        else:
            session.send(jsonrpc.result_response(envelope.id, unstructure(result)))

    def _handle_notification(self, session: Session, envelope: Envelope) -> None:
        method = envelope.method
        spec = self.methods.get(method)
        if spec is None:
            if method.startswith(RESERVED_PREFIX):
                session.logger.debug("ignoring notification %s", method)
            else:
                session.logger.warning("unknown notification %s", method)
            return
        if not session.initialized and method != EXIT:
            session.logger.warning("dropping %s received before initialize", method)
            return
        try:
            self._call(session, envelope, spec)
        except RpcError as exc:
            session.logger.error("notification %s failed: %s", method, exc.message)
        except Exception:
            session.logger.exception("notification %s crashed", method)


server = LanguageServer(SERVER_NAME, __version__)

CAPABILITIES = ServerCapabilities(
    text_document_sync=TextDocumentSyncOptions(
        open_close=True,
        change=TextDocumentSyncKind.Full,
        save=SaveOptions(include_text=False),
    ),
    hover_provider=True,
    # Completion and signature help are advertised but answer with nothing.
    completion_provider=CompletionOptions(trigger_characters=[".", ":"]),
    signature_help_provider=SignatureHelpOptions(trigger_characters=["(", ","]),
    definition_provider=True,
    references_provider=True,
    rename_provider=True,
    document_formatting_provider=False,
    document_symbol_provider=False,
    code_action_provider=False,
)


def _root_path(params: Mapping[str, object]) -> Path | None:
    root_uri = params.get("rootUri")
    if isinstance(root_uri, str) and root_uri:
        path = to_fs_path(root_uri)
        if path:
            return Path(path)
    root_path = params.get("rootPath")
    if isinstance(root_path, str) and root_path:
        return Path(root_path)
    return None


# lifecycle


@server.feature(INITIALIZE)
def initialize(ls: LanguageServer, session: Session, params: object) -> InitializeResult:
    if session.initialized:
        raise RpcError("initialize may only be sent once", code=ErrorCode.INVALID_REQUEST)
    raw = params if isinstance(params, dict) else {}
    session.root = _root_path(raw)
    session.update_settings(analysis_defaults(session.root))
    session.update_settings(client_settings(raw.get("initializationOptions")))
    session.initialized = True
    session.logger.info("initialized (root=%s, settings=%s)", session.root, session.settings)
    return InitializeResult(
        capabilities=CAPABILITIES,
        server_info=ServerInfo(name=ls.name, version=ls.version),
    )


@server.feature(INITIALIZED)
def initialized(ls: LanguageServer, session: Session, params: object) -> None:
    return None


@server.feature(SHUTDOWN)
def shutdown(ls: LanguageServer, session: Session, params: object) -> None:
    session.shutdown_requested = True
    session.running = False
    return None


@server.feature(EXIT)
def exit_(ls: LanguageServer, session: Session, params: object) -> None:
    session.running = False
    session.exit_fn(0 if session.shutdown_requested else 1)


# document sync


@server.feature(TEXT_DOCUMENT_DID_OPEN, DidOpenTextDocumentParams)
def did_open(ls: LanguageServer, session: Session, params: DidOpenTextDocumentParams) -> None:
    document = params.text_document
    session.put_document(
        document.uri, document.text, document.version, document.language_id
    )
    ls.adapter.typecheck(session, document.uri)


@server.feature(TEXT_DOCUMENT_DID_CHANGE, DidChangeTextDocumentParams)
def did_change(ls: LanguageServer, session: Session, params: DidChangeTextDocumentParams) -> None:
    uri = params.text_document.uri
    changes = list(params.content_changes)
    if any(getattr(change, "range", None) is not None for change in changes):
        raise IncrementalSyncError(uri)
    if not changes:
        return
    session.put_document(uri, changes[-1].text, params.text_document.version)
    ls.adapter.typecheck(session, uri)


@server.feature(TEXT_DOCUMENT_DID_CLOSE, DidCloseTextDocumentParams)
def did_close(ls: LanguageServer, session: Session, params: DidCloseTextDocumentParams) -> None:
    uri = params.text_document.uri
    session.remove_document(uri)
    session.notify(
        TEXT_DOCUMENT_PUBLISH_DIAGNOSTICS,
        PublishDiagnosticsParams(uri=uri, diagnostics=[]),
    )


@server.feature(TEXT_DOCUMENT_DID_SAVE, DidSaveTextDocumentParams)
def did_save(ls: LanguageServer, session: Session, params: DidSaveTextDocumentParams) -> None:
    uri = params.text_document.uri
    if params.text is not None:
        session.put_document(uri, params.text)
    ls.adapter.typecheck(session, uri)


@server.feature(WORKSPACE_DID_CHANGE_CONFIGURATION, DidChangeConfigurationParams)
def did_change_configuration(
    ls: LanguageServer, session: Session, params: DidChangeConfigurationParams
) -> None:
    session.update_settings(client_settings(params.settings))
    for uri in list(session.documents):
        ls.adapter.typecheck(session, uri)


# features


@server.feature(TEXT_DOCUMENT_HOVER, HoverParams)
def hover(ls: LanguageServer, session: Session, params: HoverParams) -> Hover:
    return features.hover(ls.resolver, session, params)


@server.feature(TEXT_DOCUMENT_RENAME, RenameParams)
def rename(ls: LanguageServer, session: Session, params: RenameParams) -> WorkspaceEdit:
    return features.rename(ls.resolver, session, params)


@server.feature(TEXT_DOCUMENT_REFERENCES, ReferenceParams)
def references(ls: LanguageServer, session: Session, params: ReferenceParams) -> list[Location]:
    return features.references(ls.resolver, session, params)


@server.feature(TEXT_DOCUMENT_DEFINITION, DefinitionParams)
def definition(ls: LanguageServer, session: Session, params: DefinitionParams) -> Location:
    return features.definition(ls.resolver, session, params)


@server.feature(TEXT_DOCUMENT_COMPLETION, CompletionParams)
def completion(ls: LanguageServer, session: Session, params: CompletionParams) -> CompletionList:
    return CompletionList(is_incomplete=False, items=[])


@server.feature(TEXT_DOCUMENT_SIGNATURE_HELP, SignatureHelpParams)
def signature_help(ls: LanguageServer, session: Session, params: SignatureHelpParams) -> None:
    return None


# transports


async def serve_connection(
    ls: LanguageServer,
    reader: asyncio.StreamReader,
    write: Callable[[bytes], None],
    *,
    drain: Callable[[], Awaitable[None]] | None = None,
    session_logger: logging.Logger | None = None,
    exit_fn: Callable[[int], object] = sys.exit,
) -> Session:
    """Serve one connection until EOF and return its final session state."""
    session = Session(
        write=write,
        logger=session_logger or logging.getLogger("lunals.session"),
        exit_fn=exit_fn,
    )
    while True:
        chunk = await reader.read(READ_CHUNK_SIZE)
        if not chunk:
            session.logger.info("input closed")
            break
        try:
            payloads = session.frames.feed(chunk)
        except FramingError as exc:
            session.logger.error("closing connection on framing error: %s", exc)
            break
        for payload in payloads:
            ls.handle_payload(session, payload)
        if drain is not None:
            await drain()
    session.running = False
    return session


async def _serve_stdio(ls: LanguageServer) -> None:
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)
    stdout = sys.stdout.buffer

    def _write(data: bytes) -> None:
        stdout.write(data)
        stdout.flush()

    await serve_connection(ls, reader, _write)


async def _serve_tcp(
    ls: LanguageServer,
    host: str,
    port: int,
    on_ready: Callable[[int], None] | None,
) -> None:
    connections = 0

    async def _client(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        nonlocal connections
        connections += 1
        peer = writer.get_extra_info("peername")
        logger.info("connection %d from %s", connections, peer)
        try:
            await serve_connection(
                ls,
                reader,
                writer.write,
                drain=writer.drain,
                session_logger=logger.getChild(f"session{connections}"),
            )
        finally:
            writer.close()

    listener = await asyncio.start_server(_client, host, port)
    bound = listener.sockets[0].getsockname()[1]
    logger.info("listening on %s:%d", host, bound)
    if on_ready is not None:
        on_ready(bound)
    async with listener:
        await listener.serve_forever()


def start_io(ls: LanguageServer = server) -> None:
    asyncio.run(_serve_stdio(ls))


def start_tcp(
    port: int,
    *,
    host: str = "127.0.0.1",
    ls: LanguageServer = server,
    on_ready: Callable[[int], None] | None = None,
) -> None:
    asyncio.run(_serve_tcp(ls, host, port, on_ready))

