"""
vita_core.errors
----------------
Error taxonomy for the privacy computation core.

Every error carries optional context (operation, position_id, computation_id)
so callers can log and decide whether to retry. Advisory validation outcomes
are never raised; see vita_core.policy.
"""

from __future__ import annotations
from typing import Optional


class VitaError(Exception):
    def __init__(
        self,
        message: str = "",
        *,
        operation: Optional[str] = None,
        position_id: Optional[str] = None,
        computation_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.position_id = position_id
        self.computation_id = computation_id

    def context(self) -> dict:
        ctx = {"error": type(self).__name__, "message": self.message}
        for k in ("operation", "position_id", "computation_id"):
            v = getattr(self, k)
            if v is not None:
                ctx[k] = v
        return ctx


class InitializationError(VitaError):
    pass


class PrivacyDisabledError(InitializationError):
    pass


class EncryptionError(VitaError):
    pass


class DecryptionError(VitaError):
    pass


class EncodingError(VitaError, ValueError):
    pass


class ValidationError(VitaError, ValueError):
    """Hard policy constraint violated."""

    def __init__(self, message: str = "", errors=None, **kwargs):
        super().__init__(message, **kwargs)
        self.errors = list(errors or [])


class MigrationError(VitaError):
    def __init__(self, message: str = "", migration=None, **kwargs):
        super().__init__(message, **kwargs)
        self.migration = migration


class SubmissionError(VitaError):
    pass


class ReferenceExtractionError(VitaError):
    pass


class UnknownResultKind(VitaError):
    pass


class ComputationTimeoutError(VitaError, TimeoutError):
    pass


class ComputationCancelledError(VitaError):
    pass


class DuplicateComputationError(VitaError):
    pass


class InvalidTransitionError(VitaError):
    pass


class ComputationNotFoundError(VitaError, KeyError):
    def __str__(self) -> str:
        return self.message


class ComputationFailedError(VitaError):
    """The network reported the computation as failed."""
    pass


class PositionNotFoundError(VitaError, KeyError):
    def __str__(self) -> str:
        return self.message
