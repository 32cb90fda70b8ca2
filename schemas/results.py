"""
Operation Results

Tagged result type returned by every state-machine operation. Expected
business-rule failures are reported here rather than raised.
"""

from enum import Enum
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field


T = TypeVar("T")


class ErrorKind(str, Enum):
    """Why an operation did not succeed."""
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    INVARIANT_VIOLATION = "invariant_violation"
    INVALID_STATE = "invalid_state"
    DUPLICATE = "duplicate"
    VALIDATION = "validation"


class OperationResult(BaseModel, Generic[T]):
    """
    Outcome of a state transition.

    `duplicate` marks an idempotent no-op that still counts as success
    (e.g. registering interest twice).
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    success: bool
    message: str = ""
    error: Optional[ErrorKind] = None
    duplicate: bool = False
    data: Optional[T] = None

    @classmethod
    def ok(
        cls,
        data: Optional[T] = None,
        message: str = "",
        duplicate: bool = False
    ) -> "OperationResult[T]":
        return cls(success=True, message=message, data=data, duplicate=duplicate)

    @classmethod
    def fail(cls, error: ErrorKind, message: str) -> "OperationResult[T]":
        return cls(success=False, message=message, error=error)

    @classmethod
    def not_found(cls, what: str) -> "OperationResult[T]":
        return cls.fail(ErrorKind.NOT_FOUND, f"{what} not found")

    @classmethod
    def forbidden(cls, message: str = "Permission denied") -> "OperationResult[T]":
        return cls.fail(ErrorKind.FORBIDDEN, message)


class ClientInfo(BaseModel):
    """Request metadata captured alongside signatures."""
    ip_address: Optional[str] = Field(default=None, description="Client IP address")
    user_agent: Optional[str] = Field(default=None, description="Client user agent")
