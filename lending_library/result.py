"""Result type shared by the domain service, the web layer and the client.

Domain operations return errors as data instead of raising them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, List, TypeVar, Union

T = TypeVar("T")

# Error codes
EXISTS = "EXISTS"
NOT_FOUND = "NOT_FOUND"
BAD_REQ = "BAD_REQ"
AUTH = "AUTH"
DB = "DB"
INTERNAL = "INTERNAL"
UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class Error:
    """A single domain error."""

    message: str
    code: str = UNKNOWN
    widget: str | None = None

    def to_dict(self) -> dict:
        data = {"message": self.message, "code": self.code}
        if self.widget:
            data["widget"] = self.widget
        return data

    @staticmethod
    def from_dict(data: dict) -> "Error":
        return Error(
            message=str(data.get("message", "")),
            code=str(data.get("code", UNKNOWN)),
            widget=data.get("widget"),
        )


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Success result."""

    val: T

    @property
    def is_ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    """Failure result carrying one or more errors."""

    errors: List[Error] = field(default_factory=list)

    @property
    def is_ok(self) -> bool:
        return False


Result = Union[Ok[T], Err]

VOID_RESULT: Ok[None] = Ok(None)


def ok(val: Any = None) -> Ok:
    return Ok(val)


def err(message: str, code: str = UNKNOWN, widget: str | None = None) -> Err:
    """Return a failure result holding a single error."""
    return Err([Error(message, code, widget)])
