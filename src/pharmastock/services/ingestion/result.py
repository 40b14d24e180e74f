"""Stage outcome type for the per-file pipeline."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from pharmastock.errors import FileError, FileErrorCode

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True)
class StageResult(Generic[T]):
    """Either a stage's value or the FileError that stopped the file.

    Build instances with ``success`` / ``failure``; chain stages with ``then``
    and ``map`` so the first failure short-circuits the rest.
    """

    value: T | None = None
    error: FileError | None = None

    @classmethod
    def success(cls, value: T) -> StageResult[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, code: FileErrorCode, message: str) -> StageResult[T]:
        return cls(error=FileError(code=code, message=message))

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value.

        Raises:
            ValueError: If this result is a failure.
        """
        if self.error is not None:
            raise ValueError(f"Stage failed: {self.error.code}: {self.error.message}")
        return self.value  # type: ignore[return-value]

    def then(self, fn: Callable[[T], StageResult[U]]) -> StageResult[U]:
        """Run the next stage on success, otherwise propagate the failure."""
        if self.error is not None:
            return StageResult(error=self.error)
        return fn(self.value)  # type: ignore[arg-type]

    def map(self, fn: Callable[[T], U]) -> StageResult[U]:
        """Transform the value on success, otherwise propagate the failure."""
        if self.error is not None:
            return StageResult(error=self.error)
        return StageResult(value=fn(self.value))  # type: ignore[arg-type]
