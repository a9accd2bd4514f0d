"""
Error taxonomy — every failure the provisioner can report.

Adapters return result objects for expected failures. When a failure
has to cross a step boundary it is raised as a ``ProvisionError``
carrying an ``ErrorKind``; the runner turns it into a failed
StepResult. Nothing above the runner ever sees a raw traceback.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    """Classification of provisioning failures."""

    PERMISSION_DENIED = "PermissionDenied"
    NOT_FOUND = "NotFound"
    TIMEOUT = "Timeout"
    NON_ZERO_EXIT = "NonZeroExit"
    CLONE_FAILED = "CloneFailed"
    REVISION_NOT_FOUND = "RevisionNotFound"
    PATCH_VERIFICATION_FAILED = "PatchVerificationFailed"
    INTERRUPTED = "Interrupted"
    NON_CRITICAL_CHECK_FAILED = "NonCriticalCheckFailed"

    # ── Runner / configuration ───────────────────────────────────
    PRECONDITION_FAILED = "PreconditionFailed"
    VERIFICATION_FAILED = "VerificationFailed"
    CONFIG_INVALID = "ConfigInvalid"
    UNEXPECTED = "Unexpected"


class ProvisionError(Exception):
    """A classified provisioning failure.

    Args:
        kind: The ErrorKind of the failure.
        message: Human-readable summary.
        output: Captured command output, if any.
    """

    def __init__(self, kind: ErrorKind, message: str, output: str = "") -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.output = output

    def __str__(self) -> str:
        return f"{self.kind}: {self.message}"
