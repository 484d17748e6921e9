# src/shikigami/errors.py

"""
Error taxonomy shared by every store.

Callers that only care about "does this id exist" can catch NotFoundError;
AmbiguousPrefixError is a NotFoundError so prefix lookups keep that contract.
"""

from __future__ import annotations

from collections.abc import Iterable


class FudaError(Exception):
    """Base class for all errors raised by the fuda core."""


class NotFoundError(FudaError, LookupError):
    def __init__(self, ref: str, message: str | None = None) -> None:
        self.ref = ref
        super().__init__(message or f"Fuda not found: {ref}")


class AmbiguousPrefixError(NotFoundError):
    """More than one fuda matches a prefix."""

    def __init__(self, prefix: str, candidates: Iterable[str]) -> None:
        self.candidates = sorted(candidates)
        super().__init__(
            prefix,
            f"Fuda not found: {prefix} (ambiguous, {len(self.candidates)} matches)",
        )


class InvalidArgumentError(FudaError, ValueError):
    pass


class InvalidStatusError(FudaError):
    def __init__(self, fuda_id: str, status: str, message: str | None = None) -> None:
        self.fuda_id = fuda_id
        self.status = status
        super().__init__(message or f"Fuda {fuda_id} has status '{status}'")


class AlreadyInProgressError(FudaError):
    def __init__(self, fuda_id: str, assigned_spirit_id: str | None = None) -> None:
        self.fuda_id = fuda_id
        self.assigned_spirit_id = assigned_spirit_id
        super().__init__(f"Fuda '{fuda_id}' is already being worked on")
