"""
Result type returned by connector handlers.

Handlers never raise for user-facing failures; they return ``Err`` with a
kind, a message safe to show the user, and optional debug text. The CLI (or
any other host) maps ``Err`` to its own error presentation.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar, Union

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Classification of handler failures."""

    USER = "user"  # Shown to the user as-is
    INVALID_CREDENTIALS = "invalid_credentials"
    CONFIG = "config"  # Setup step missing or invalid


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    message: str
    debug: str | None = None

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err]
