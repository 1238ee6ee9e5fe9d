"""Exception hierarchy for the lunals session core."""

from __future__ import annotations

from enum import IntEnum

from lunals.json_types import JSONObject, JSONValue, RequestId


class ErrorCode(IntEnum):
    """JSON-RPC and LSP error codes used in replies."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603
    SERVER_NOT_INITIALIZED = -32002
    UNKNOWN_ERROR = -32001
    REQUEST_CANCELLED = -32800
    # Implementation-defined band (-32000..-32099).
    SYNTAX_OR_TYPE_ERROR = -32000
    IDENTIFIER_NOT_FOUND = -32010


class LunalsError(Exception):
    """Root of every error raised by lunals itself."""


class NeverThrown(LunalsError):
    """Raised by ``never()`` when a path assumed unreachable is reached.

    The keyword payload passed to ``never()`` is kept on ``env`` so the log
    line that reports the failure can show what state led there.
    """

    def __init__(self, message: str, *, env: dict[str, object] | None = None):
        super().__init__(message)
        self.env = dict(env or {})


class FramingError(LunalsError):
    """The byte stream does not carry a valid Content-Length header."""


class RpcError(LunalsError):
    """An error that is reported to the client as a JSON-RPC error object."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        data: JSONValue = None,
    ):
        super().__init__(message)
        if code is not None:
            self.code = code
        self.message = message
        self.data = data

    def to_dict(self) -> JSONObject:
        error: JSONObject = {"code": int(self.code), "message": self.message}
        if self.data is not None:
            error["data"] = self.data
        return error


class DecodeError(RpcError):
    """A payload could not be decoded into a valid envelope.

    ``request_id`` is only meaningful when ``has_id`` is true; a request whose
    id is JSON ``null`` still has an id.
    """

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode,
        request_id: RequestId = None,
        has_id: bool = False,
    ):
        super().__init__(message, code=code)
        self.request_id = request_id
        self.has_id = has_id


class SyntaxOrTypeError(RpcError):
    code = ErrorCode.SYNTAX_OR_TYPE_ERROR

    def __init__(self, uri: str):
        super().__init__(f"syntax or type error in {uri}", data={"uri": uri})


class IdentifierNotFound(RpcError):
    code = ErrorCode.IDENTIFIER_NOT_FOUND

    def __init__(self, uri: str, line: int, character: int):
        super().__init__(
            "identifier not found",
            data={"uri": uri, "line": line, "character": character},
        )


class IncrementalSyncError(RpcError):
    """A range-based change arrived although only full sync is advertised."""

    code = ErrorCode.INVALID_PARAMS

    def __init__(self, uri: str):
        super().__init__(
            f"incremental change for {uri} rejected: server only supports full "
            "document sync",
            data={"uri": uri},
        )
