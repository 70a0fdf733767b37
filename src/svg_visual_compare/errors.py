"""Typed failures raised by the comparison engine."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union


class CompareError(Exception):
    """Base class for every failure the engine reports to its caller."""

    def __init__(self, message: str, *, path: Optional[Union[str, Path]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.path = str(path) if path is not None else None

    @property
    def kind(self) -> str:
        return type(self).__name__

    def with_path(self, path: Union[str, Path]) -> "CompareError":
        if self.path is None:
            self.path = str(path)
        return self

    def __str__(self) -> str:
        if self.path:
            return f"{self.message} ({self.path})"
        return self.message


class AnalysisError(CompareError):
    """The document is malformed, unreadable or has no root ``<svg>``."""


class AlignmentError(CompareError):
    """An alignment anchor could not be resolved in one of the documents."""


class PlanError(CompareError):
    """Render dimensions came out non-positive or non-finite."""


class RasterizationError(CompareError):
    """The rendering backend crashed, timed out or returned a bad buffer."""


class RepairError(CompareError):
    """The viewBox repair collaborator failed."""


class ValidationError(CompareError):
    """Malformed batch input or configuration values out of range."""


class AspectRatioMismatchError(CompareError):
    """Raised instead of a 100% result when mismatches are configured as fatal."""

    def __init__(
        self,
        message: str,
        *,
        ratio1: float,
        ratio2: float,
        diff: float,
        path: Optional[Union[str, Path]] = None,
    ) -> None:
        super().__init__(message, path=path)
        self.ratio1 = ratio1
        self.ratio2 = ratio2
        self.diff = diff


__all__ = [
    "AlignmentError",
    "AnalysisError",
    "AspectRatioMismatchError",
    "CompareError",
    "PlanError",
    "RasterizationError",
    "RepairError",
    "ValidationError",
]
