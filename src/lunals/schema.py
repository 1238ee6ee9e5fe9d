from __future__ import annotations

from typing import Any, Dict, List, Literal, Union

from pydantic import BaseModel, ConfigDict, StrictBool, StrictFloat, StrictInt, StrictStr
from pydantic import field_validator


class Envelope(BaseModel):
    """An incoming JSON-RPC 2.0 request or notification."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    jsonrpc: Literal["2.0"]
    method: StrictStr
    id: Union[StrictInt, StrictFloat, StrictStr, StrictBool, None] = None
    params: Union[Dict[str, Any], List[Any], None] = None

    @field_validator("params", mode="before")
    @classmethod
    def _params_not_null(cls, value: Any) -> Any:
        # Absent params never reach this validator; an explicit null does.
        if value is None:
            raise ValueError("params must be an object or an array")
        return value

    @property
    def is_request(self) -> bool:
        return "id" in self.model_fields_set


class AnalysisSettings(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    strict: StrictBool = False
    integer: StrictBool = False
    unused: StrictBool = True
