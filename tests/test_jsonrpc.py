from __future__ import annotations

import json

import pytest

from lunals import jsonrpc
from lunals.exceptions import DecodeError, ErrorCode, RpcError


def _decode_error(payload: bytes) -> DecodeError:
    with pytest.raises(DecodeError) as excinfo:
        jsonrpc.decode(payload)
    return excinfo.value


def test_decode_request() -> None:
    envelope = jsonrpc.decode(
        b'{"jsonrpc":"2.0","id":1,"method":"textDocument/hover","params":{"a":1}}'
    )
    assert envelope.is_request
    assert envelope.id == 1
    assert envelope.method == "textDocument/hover"
    assert envelope.params == {"a": 1}


def test_decode_notification_has_no_id() -> None:
    envelope = jsonrpc.decode(b'{"jsonrpc":"2.0","method":"initialized"}')
    assert not envelope.is_request
    assert envelope.params is None


def test_decode_null_id_is_still_a_request() -> None:
    envelope = jsonrpc.decode(b'{"jsonrpc":"2.0","id":null,"method":"shutdown"}')
    assert envelope.is_request
    assert envelope.id is None


def test_decode_string_id_and_array_params() -> None:
    envelope = jsonrpc.decode(b'{"jsonrpc":"2.0","id":"abc","method":"m","params":[1,2]}')
    assert envelope.id == "abc"
    assert envelope.params == [1, 2]


def test_invalid_json_salvages_id() -> None:
    error = _decode_error(b'{"jsonrpc":"2.0","id":7,"method":')
    assert error.code is ErrorCode.PARSE_ERROR
    assert error.has_id
    assert error.request_id == 7


def test_invalid_json_without_id() -> None:
    error = _decode_error(b"{not json")
    assert error.code is ErrorCode.PARSE_ERROR
    assert not error.has_id


def test_invalid_utf8_is_a_parse_error() -> None:
    error = _decode_error(b'{"jsonrpc":"2.0","method":"\xff"}')
    assert error.code is ErrorCode.PARSE_ERROR


def test_non_object_envelope() -> None:
    error = _decode_error(b"[1,2]")
    assert error.code is ErrorCode.INVALID_REQUEST
    assert not error.has_id


def test_wrong_version_keeps_id() -> None:
    error = _decode_error(b'{"jsonrpc":"1.0","id":4,"method":"m"}')
    assert error.code is ErrorCode.INVALID_REQUEST
    assert error.has_id
    assert error.request_id == 4


def test_missing_method() -> None:
    error = _decode_error(b'{"jsonrpc":"2.0","id":5}')
    assert error.code is ErrorCode.INVALID_REQUEST
    assert "method" in error.message


def test_explicit_null_params_rejected() -> None:
    error = _decode_error(b'{"jsonrpc":"2.0","id":6,"method":"m","params":null}')
    assert error.code is ErrorCode.INVALID_REQUEST
    assert error.request_id == 6


def test_scalar_params_rejected() -> None:
    error = _decode_error(b'{"jsonrpc":"2.0","method":"m","params":"x"}')
    assert error.code is ErrorCode.INVALID_REQUEST


def test_structured_id_is_not_echoed() -> None:
    error = _decode_error(b'{"jsonrpc":"2.0","id":{"a":1},"method":"m"}')
    assert error.code is ErrorCode.INVALID_REQUEST
    assert not error.has_id


def test_encode_is_compact_and_keeps_unicode() -> None:
    encoded = jsonrpc.encode({"a": [1, 2], "b": "é"})
    assert encoded == '{"a":[1,2],"b":"é"}'.encode("utf-8")


def test_response_shapes() -> None:
    assert jsonrpc.result_response(1, None) == {"jsonrpc": "2.0", "id": 1, "result": None}
    error = RpcError("nope", code=ErrorCode.INVALID_PARAMS, data={"uri": "u"})
    assert jsonrpc.error_response("x", error) == {
        "jsonrpc": "2.0",
        "id": "x",
        "error": {"code": -32602, "message": "nope", "data": {"uri": "u"}},
    }
    assert jsonrpc.notification("exit") == {"jsonrpc": "2.0", "method": "exit"}
    assert json.loads(jsonrpc.encode(jsonrpc.notification("m", {"k": 1}))) == {
        "jsonrpc": "2.0",
        "method": "m",
        "params": {"k": 1},
    }
