from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass
class Result(Generic[T]):
    """Outcome of parsing one user reply.

    On failure ``error`` is the corrective prompt shown to the user and
    ``error_code`` names the rejected input kind.
    """

    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @staticmethod
    def success(value: T) -> "Result[T]":
        return Result(ok=True, value=value)

    @staticmethod
    def failure(error: str, code: str = "invalid_input") -> "Result[T]":
        return Result(ok=False, error=error, error_code=code)
