"""Conversion between wire JSON and lsprotocol types."""

from __future__ import annotations

from typing import Any, Type, TypeVar

from lsprotocol.converters import get_converter

from lunals.exceptions import ErrorCode, RpcError
from lunals.json_types import JSONValue

T = TypeVar("T")

converter = get_converter()


def structure(data: object, cls: Type[T]) -> T:
    try:
        return converter.structure(data, cls)
    except Exception as exc:  # cattrs raises several unrelated types
        raise RpcError(
            f"invalid params for {cls.__name__}: {exc}",
            code=ErrorCode.INVALID_PARAMS,
        ) from exc


def unstructure(value: Any) -> JSONValue:
    return converter.unstructure(value)
