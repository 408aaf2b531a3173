"""Tagged result type for the ``{isSuccess, data, error, status}`` envelope.

Inside the process results are either ``ApiSuccess`` or ``ApiFailure``; the
untyped JSON envelope only exists at the HTTP edge (``to_envelope`` on the
server, ``parse_envelope`` on the client).
"""

from typing import Any, Generic, Literal, Optional, Type, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

T = TypeVar("T")


class ApiSuccess(BaseModel, Generic[T]):
    """Successful result carrying data."""

    is_success: Literal[True] = True
    data: T
    status: int = 200

    def to_envelope(self) -> dict:
        data = self.data
        if isinstance(data, BaseModel):
            data = data.model_dump(mode="json", by_alias=True, exclude_none=True)
        return {"isSuccess": True, "data": data, "error": None, "status": self.status}


class ApiFailure(BaseModel):
    """Failed result carrying a user-facing error and HTTP status."""

    is_success: Literal[False] = False
    error: str
    status: int

    def to_envelope(self) -> dict:
        return {"isSuccess": False, "data": None, "error": self.error, "status": self.status}


ApiResult = Union[ApiSuccess[Any], ApiFailure]


def parse_envelope(
    payload: Any,
    status_code: int,
    model: Optional[Type[BaseModel]] = None,
) -> ApiResult:
    """Convert a JSON envelope received over HTTP into a tagged result.

    Args:
        payload: Decoded JSON body
        status_code: HTTP status of the response, used when the body has none
        model: Optional pydantic model to validate ``data`` into

    Returns:
        ApiSuccess with (validated) data, or ApiFailure
    """
    if not isinstance(payload, dict) or "isSuccess" not in payload:
        return ApiFailure(error="Invalid response from server", status=status_code)

    status = payload.get("status") or status_code

    if not payload["isSuccess"]:
        return ApiFailure(error=payload.get("error") or "Unknown error occurred", status=status)

    data = payload.get("data")
    if model is not None and data is not None:
        try:
            data = model.model_validate(data)
        except PydanticValidationError:
            return ApiFailure(error="Invalid response from server", status=status)

    return ApiSuccess(data=data, status=status)
