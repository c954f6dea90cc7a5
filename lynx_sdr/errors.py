"""Error taxonomy shared by the orchestrator, the store and the adapters.

There is a single exception type, :class:`AppError`, tagged with an
:class:`ErrorKind`.  Callers branch on ``exc.kind`` rather than on
subclasses, so the HTTP layer only needs one ``except`` clause.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    INTEGRATION = "integration"


class AppError(Exception):
    """A typed failure that is safe to surface at the API boundary."""

    def __init__(self, kind: ErrorKind, message: str, *, service: str | None = None):
        self.kind = kind
        self.message = message
        self.service = service
        super().__init__(f"{service} Integration Error: {message}" if service else message)


def validation_error(message: str) -> AppError:
    return AppError(ErrorKind.VALIDATION, message)


def not_found_error(message: str) -> AppError:
    return AppError(ErrorKind.NOT_FOUND, message)


def integration_error(service: str, message: str) -> AppError:
    """Normalise a downstream failure, keeping the originating system name."""
    return AppError(ErrorKind.INTEGRATION, message, service=service)
