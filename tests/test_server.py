from __future__ import annotations

import json
from pathlib import Path

from lunals import server as lsp
from lunals.session import Session
from tests.lsp_helpers import URI, Wire

PUBLISH = "textDocument/publishDiagnostics"


def _send(session: Session, payload: dict, ls: lsp.LanguageServer = lsp.server) -> None:
    ls.handle_payload(session, json.dumps(payload).encode("utf-8"))


def _request(session: Session, request_id: int, method: str, params=None, **kwargs) -> None:
    payload = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        payload["params"] = params
    _send(session, payload, **kwargs)


def _notify(session: Session, method: str, params=None) -> None:
    payload = {"jsonrpc": "2.0", "method": method}
    if params is not None:
        payload["params"] = params
    _send(session, payload)


def _initialize(session: Session, wire: Wire, params: dict | None = None) -> dict:
    _request(session, 1, "initialize", params or {"capabilities": {}})
    _notify(session, "initialized", {})
    response = wire.responses()[-1]
    wire.clear()
    return response


def _open(session: Session, text: str, version: int = 1) -> None:
    _notify(
        session,
        "textDocument/didOpen",
        {"textDocument": {"uri": URI, "languageId": "lua", "version": version, "text": text}},
    )


def _position(line: int, character: int) -> dict:
    return {"textDocument": {"uri": URI}, "position": {"line": line, "character": character}}


def test_initialize_reports_capabilities(session: Session, wire: Wire) -> None:
    response = _initialize(session, wire)
    result = response["result"]
    capabilities = result["capabilities"]
    assert response["id"] == 1
    assert result["serverInfo"]["name"] == "lunals"
    assert capabilities["textDocumentSync"]["change"] == 1
    assert capabilities["textDocumentSync"]["openClose"] is True
    assert capabilities["hoverProvider"] is True
    assert capabilities["definitionProvider"] is True
    assert capabilities["referencesProvider"] is True
    assert capabilities["renameProvider"] is True
    assert capabilities["completionProvider"]["triggerCharacters"] == [".", ":"]
    assert capabilities["signatureHelpProvider"]["triggerCharacters"] == ["(", ","]
    assert session.initialized


def test_initialize_twice_is_rejected(session: Session, wire: Wire) -> None:
    _initialize(session, wire)
    _request(session, 2, "initialize", {"capabilities": {}})
    (response,) = wire.responses()
    assert response["error"]["code"] == -32600


def test_requests_before_initialize(session: Session, wire: Wire) -> None:
    _request(session, 9, "textDocument/hover", _position(0, 0))
    (response,) = wire.messages()
    assert response["id"] == 9
    assert response["error"]["code"] == -32002


def test_unknown_request_before_initialize(session: Session, wire: Wire) -> None:
    _request(session, 4, "workspace/symbol", {"query": ""})
    (response,) = wire.messages()
    assert response["id"] == 4
    assert response["error"]["code"] == -32002


def test_notifications_before_initialize_are_dropped(session: Session, wire: Wire) -> None:
    _open(session, "local x = 1")
    assert wire.messages() == []
    assert session.documents == {}


def test_unknown_methods(session: Session, wire: Wire) -> None:
    _initialize(session, wire)
    _request(session, 2, "workspace/symbol", {"query": ""})
    _notify(session, "$/cancelRequest", {"id": 2})
    _notify(session, "custom/thing", {})
    (response,) = wire.messages()
    assert response["id"] == 2
    assert response["error"]["code"] == -32601


def test_malformed_json_then_continue(session: Session, wire: Wire) -> None:
    _initialize(session, wire)
    lsp.server.handle_payload(session, b'{"jsonrpc":"2.0","id":3,"method":')
    lsp.server.handle_payload(session, b"{garbage")
    _request(session, 4, "shutdown")
    first, second = wire.messages()
    assert first["id"] == 3
    assert first["error"]["code"] == -32700
    assert second == {"jsonrpc": "2.0", "id": 4, "result": None}


def test_invalid_envelope_and_params(session: Session, wire: Wire) -> None:
    _initialize(session, wire)
    _send(session, {"jsonrpc": "2.0", "id": 5, "method": "shutdown", "params": None})
    _request(session, 6, "textDocument/hover", {"textDocument": {"uri": URI}})
    invalid_request, invalid_params = wire.messages()
    assert invalid_request["id"] == 5
    assert invalid_request["error"]["code"] == -32600
    assert invalid_params["id"] == 6
    assert invalid_params["error"]["code"] == -32602


def test_every_request_gets_exactly_one_reply(session: Session, wire: Wire) -> None:
    _initialize(session, wire)
    _open(session, "local x = 1\nprint(x)")
    _request(session, 10, "textDocument/hover", _position(1, 6))
    _request(session, 11, "textDocument/hover", _position(0, 8))
    _request(session, 12, "textDocument/completion", _position(0, 0))
    _request(session, 13, "textDocument/signatureHelp", _position(0, 0))
    responses = wire.responses()
    assert [response["id"] for response in responses] == [10, 11, 12, 13]
    hover, missing, completion, signature = responses
    assert hover["result"]["contents"] == {
        "kind": "markdown",
        "value": "```lua\nlocal x: integer\n```",
    }
    assert missing["error"]["code"] == -32010
    assert completion["result"] == {"isIncomplete": False, "items": []}
    assert signature == {"jsonrpc": "2.0", "id": 13, "result": None}


def test_did_open_publishes_diagnostics(session: Session, wire: Wire) -> None:
    _initialize(session, wire)
    _open(session, "local x = 1", version=4)
    (published,) = wire.notifications(PUBLISH)
    params = published["params"]
    assert params["uri"] == URI
    assert params["version"] == 4
    assert [d["source"] for d in params["diagnostics"]] == ["lunals.unused"]
    assert "id" not in published


def test_did_change_replaces_text(session: Session, wire: Wire) -> None:
    _initialize(session, wire)
    _open(session, "local x = 1")
    wire.clear()
    _notify(
        session,
        "textDocument/didChange",
        {
            "textDocument": {"uri": URI, "version": 2},
            "contentChanges": [{"text": "print(1)"}],
        },
    )
    assert session.text(URI) == "print(1)"
    (published,) = wire.notifications(PUBLISH)
    assert published["params"]["diagnostics"] == []
    assert published["params"]["version"] == 2


def test_incremental_change_is_rejected(session: Session, wire: Wire) -> None:
    _initialize(session, wire)
    _open(session, "local x = 1")
    wire.clear()
    _notify(
        session,
        "textDocument/didChange",
        {
            "textDocument": {"uri": URI, "version": 2},
            "contentChanges": [
                {
                    "range": {
                        "start": {"line": 0, "character": 6},
                        "end": {"line": 0, "character": 7},
                    },
                    "text": "y",
                }
            ],
        },
    )
    assert session.text(URI) == "local x = 1"
    assert wire.messages() == []
    _request(session, 7, "shutdown")
    assert wire.responses() == [{"jsonrpc": "2.0", "id": 7, "result": None}]


def test_did_close_clears_diagnostics(session: Session, wire: Wire) -> None:
    _initialize(session, wire)
    _open(session, "local x = 1")
    wire.clear()
    _notify(session, "textDocument/didClose", {"textDocument": {"uri": URI}})
    (published,) = wire.notifications(PUBLISH)
    assert published["params"] == {"uri": URI, "diagnostics": []}
    assert URI not in session.documents
    assert URI not in session.diagnostics


def test_did_save_rechecks(session: Session, wire: Wire) -> None:
    _initialize(session, wire)
    _open(session, "local x = 1")
    wire.clear()
    _notify(session, "textDocument/didSave", {"textDocument": {"uri": URI}})
    _notify(session, "textDocument/didSave", {"textDocument": {"uri": URI}, "text": "print(2)"})
    first, second = wire.notifications(PUBLISH)
    assert len(first["params"]["diagnostics"]) == 1
    assert second["params"]["diagnostics"] == []


def test_did_change_configuration_rechecks_open_documents(session: Session, wire: Wire) -> None:
    _initialize(session, wire)
    _open(session, "local x = 1")
    wire.clear()
    _notify(
        session,
        "workspace/didChangeConfiguration",
        {"settings": {"lunals": {"unused": False}}},
    )
    (published,) = wire.notifications(PUBLISH)
    assert published["params"]["diagnostics"] == []
    assert session.analysis.unused is False


def test_initialize_reads_workspace_config(session: Session, wire: Wire, tmp_path: Path) -> None:
    (tmp_path / "lunals.toml").write_text("[analysis]\nunused = false\nstrict = true\n")
    _initialize(session, wire, {"capabilities": {}, "rootUri": tmp_path.as_uri()})
    assert session.root == tmp_path
    assert session.analysis.unused is False
    assert session.analysis.strict is True


def test_initialization_options_override_workspace_config(
    session: Session, wire: Wire, tmp_path: Path
) -> None:
    (tmp_path / "lunals.toml").write_text("[analysis]\nunused = false\n")
    _initialize(
        session,
        wire,
        {
            "capabilities": {},
            "rootPath": str(tmp_path),
            "initializationOptions": {"unused": True},
        },
    )
    _open(session, "local x = 1")
    (published,) = wire.notifications(PUBLISH)
    assert [d["source"] for d in published["params"]["diagnostics"]] == ["lunals.unused"]


def test_shutdown_then_exit(session: Session, wire: Wire) -> None:
    _initialize(session, wire)
    _request(session, 2, "shutdown")
    _request(session, 3, "textDocument/hover", _position(0, 0))
    _notify(session, "exit")
    shutdown, refused = wire.responses()
    assert shutdown["result"] is None
    assert refused["error"]["code"] == -32600
    assert wire.exits == [0]
    assert session.running is False


def test_exit_without_shutdown(session: Session, wire: Wire) -> None:
    _notify(session, "exit")
    assert wire.exits == [1]


def test_handler_crash_becomes_internal_error(session: Session, wire: Wire) -> None:
    class _Broken:
        def parse(self, text, uri, settings):
            raise RuntimeError("kaboom")

        def typecheck(self, tree, text, uri, settings):
            return []

        def visit(self, tree, visitor) -> None:
            return None

    ls = lsp.server.with_analyzer(_Broken())
    _request(session, 1, "initialize", {"capabilities": {}}, ls=ls)
    wire.clear()
    _send(
        session,
        {
            "jsonrpc": "2.0",
            "method": "textDocument/didOpen",
            "params": {
                "textDocument": {"uri": URI, "languageId": "lua", "version": 1, "text": "x"}
            },
        },
        ls=ls,
    )
    _request(session, 2, "textDocument/hover", _position(0, 0), ls=ls)
    (response,) = wire.messages()
    assert response["id"] == 2
    assert response["error"]["code"] == -32603
    assert "kaboom" in response["error"]["message"]
