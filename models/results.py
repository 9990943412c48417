"""Result envelope returned by every public pipeline operation."""
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class AIResult(BaseModel, Generic[T]):
    """Either ``data`` (success) or ``error`` (failure), never both.

    ``error_code`` carries the machine-readable code of the internal
    exception that produced the failure, when there was one.
    """
    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @classmethod
    def succeeded(cls, data: T) -> "AIResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def failed(cls, error: str, error_code: Optional[str] = None) -> "AIResult[T]":
        return cls(success=False, error=error, error_code=error_code)
