"""Exception taxonomy for the normalization engine."""
from __future__ import annotations

from typing import Optional


class Csv3nfError(Exception):
    """Base class for every error raised by csv3nf."""


class ConfigurationError(Csv3nfError, ValueError):
    pass


class NormalizationError(Csv3nfError):
    """A pipeline stage failed. Raised only by the top-level orchestration call."""

    def __init__(self, stage: str, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"[{stage}] {message}")
        self.stage = stage
        self.cause = cause


class InvalidInputError(NormalizationError, ValueError):
    """Input is not text, is empty, or has fewer than two lines."""

    def __init__(self, message: str) -> None:
        super().__init__("input", message)
