"""
Domain models — Pydantic types and dataclasses for the provisioner.

All models are re-exported here for convenient access:

    from volsetup.core.models import Step, StepResult, ProvisionConfig, ErrorKind
"""

from volsetup.core.models.command import CommandResult
from volsetup.core.models.errors import ErrorKind, ProvisionError
from volsetup.core.models.step import (
    RunStatus,
    Step,
    StepOutput,
    StepResult,
    StepStatus,
)
from volsetup.core.models.target import InstallTarget, PackageSpec, ProvisionConfig

__all__ = [
    # command.py
    "CommandResult",
    # errors.py
    "ErrorKind",
    # target.py
    "InstallTarget",
    "PackageSpec",
    "ProvisionConfig",
    "ProvisionError",
    # step.py
    "RunStatus",
    "Step",
    "StepOutput",
    "StepResult",
    "StepStatus",
]
