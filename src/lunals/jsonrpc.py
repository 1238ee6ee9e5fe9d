"""JSON-RPC 2.0 envelope codec."""

from __future__ import annotations

import json
import re

from pydantic import ValidationError

from lunals.exceptions import DecodeError, ErrorCode, RpcError
from lunals.json_types import JSONObject, JSONValue, RequestId
from lunals.schema import Envelope

JSONRPC_VERSION = "2.0"

# Best-effort id recovery from a body that is not valid JSON.
_ID_RE = re.compile(r'"id"\s*:\s*(-?\d+|"(?:[^"\\]|\\.)*")')

__all__ = [
    "Envelope",
    "ErrorCode",
    "decode",
    "encode",
    "error_response",
    "notification",
    "result_response",
]


def _salvage_id(text: str) -> tuple[RequestId, bool]:
    match = _ID_RE.search(text)
    if match is None:
        return None, False
    try:
        value = json.loads(match.group(1))
    except ValueError:
        return None, False
    return value, True


def _raw_id(raw: dict) -> tuple[RequestId, bool]:
    if "id" not in raw:
        return None, False
    value = raw["id"]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value, True
    return None, False


def decode(payload: bytes) -> Envelope:
    try:
        text = payload.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecodeError(
            f"payload is not valid UTF-8: {exc.reason}", code=ErrorCode.PARSE_ERROR
        ) from exc
    try:
        raw = json.loads(text)
    except ValueError as exc:
        request_id, has_id = _salvage_id(text)
        raise DecodeError(
            f"invalid JSON: {exc}",
            code=ErrorCode.PARSE_ERROR,
            request_id=request_id,
            has_id=has_id,
        ) from exc
    if not isinstance(raw, dict):
        raise DecodeError(
            f"envelope must be an object, got {type(raw).__name__}",
            code=ErrorCode.INVALID_REQUEST,
        )
    try:
        return Envelope.model_validate(raw)
    except ValidationError as exc:
        request_id, has_id = _raw_id(raw)
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'envelope'}: {error['msg']}"
            for error in exc.errors()
        )
        raise DecodeError(
            f"invalid request: {problems}",
            code=ErrorCode.INVALID_REQUEST,
            request_id=request_id,
            has_id=has_id,
        ) from exc


def encode(message: JSONObject) -> bytes:
    return json.dumps(message, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def result_response(request_id: RequestId, result: JSONValue) -> JSONObject:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def error_response(request_id: RequestId, error: RpcError) -> JSONObject:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "error": error.to_dict()}


def notification(method: str, params: JSONValue = None) -> JSONObject:
    message: JSONObject = {"jsonrpc": JSONRPC_VERSION, "method": method}
    if params is not None:
        message["params"] = params
    return message
