"""
Error taxonomy for the reconciliation engine.

Transport/API failures are not wrapped here: the Kubernetes service layer
surfaces `kubernetes.client.ApiException` unchanged, and the finalizer
wraps it in a `FinalizerError` naming the stage that failed.
"""
from enum import Enum


class MinecraftOperatorError(Exception):
    """Base class for operator errors."""


class FinalizerStage(str, Enum):
    APPLY = "apply"
    CLEANUP = "cleanup"


class FinalizerError(MinecraftOperatorError):
    """The apply or cleanup branch failed."""

    def __init__(self, stage: FinalizerStage, cause: BaseException):
        self.stage = stage
        self.cause = cause
        super().__init__(f"Finalizer error during {stage.value}: {cause}")


class SerializationError(MinecraftOperatorError):
    """An object could not be converted to or from its wire form."""
