"""Wire-level JSON aliases.

Everything crossing the JSON-RPC boundary is plain JSON until the converter
structures it into lsprotocol types.
"""

from __future__ import annotations

from typing import TypeAlias

JSONScalar: TypeAlias = str | int | float | bool | None
JSONValue: TypeAlias = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]
JSONObject: TypeAlias = dict[str, JSONValue]

# A request id may be any scalar; JSON null is a legal id.
RequestId: TypeAlias = JSONScalar
