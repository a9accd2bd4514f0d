"""
Package installer — one interface over apt and pip.

``ensure_installed`` distinguishes "already satisfied" from "freshly
installed" so the report can say which packages this run touched.
Package criticality lives on the PackageSpec: a failed non-critical
install becomes a warning, a failed critical install fails the step.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from enum import StrEnum

from pydantic import BaseModel

from volsetup.adapters.packages.apt import AptPackages
from volsetup.adapters.packages.pip import PipPackages
from volsetup.core.models.errors import ErrorKind, ProvisionError
from volsetup.core.models.target import PackageSpec

logger = logging.getLogger(__name__)


class PackageStatus(StrEnum):
    ALREADY_PRESENT = "already_present"
    INSTALLED = "installed"
    FAILED = "failed"


class PackageOutcome(BaseModel):
    """Result of ensuring one package."""

    name: str
    manager: str
    status: PackageStatus
    critical: bool = True
    reason: str = ""

    @property
    def failed(self) -> bool:
        return self.status == PackageStatus.FAILED


class PackageInstaller:
    """Dispatch PackageSpecs to the right package manager."""

    def __init__(self, apt: AptPackages, pip: PipPackages) -> None:
        self._managers = {"apt": apt, "pip": pip}

    def ensure_installed(self, spec: PackageSpec) -> PackageOutcome:
        """Install ``spec`` unless it is already present. Never raises."""
        manager = self._managers.get(spec.manager)
        if manager is None:
            return PackageOutcome(
                name=spec.name,
                manager=spec.manager,
                status=PackageStatus.FAILED,
                critical=spec.critical,
                reason=f"Unknown package manager '{spec.manager}'",
            )

        if not spec.upgrade and manager.is_installed(spec.name):
            logger.debug("%s already installed (%s)", spec.name, spec.manager)
            return PackageOutcome(
                name=spec.name,
                manager=spec.manager,
                status=PackageStatus.ALREADY_PRESENT,
                critical=spec.critical,
            )

        if spec.manager == "pip":
            was_present = spec.upgrade and manager.is_installed(spec.name)
            result = manager.install(spec.name, upgrade=spec.upgrade)
        else:
            was_present = False
            result = manager.install(spec.name)

        if not result.ok:
            reason = (result.stderr.strip().splitlines() or [f"exit {result.exit_code}"])[-1]
            logger.warning("Failed to install %s (%s): %s", spec.name, spec.manager, reason)
            return PackageOutcome(
                name=spec.name,
                manager=spec.manager,
                status=PackageStatus.FAILED,
                critical=spec.critical,
                reason=reason,
            )

        return PackageOutcome(
            name=spec.name,
            manager=spec.manager,
            status=PackageStatus.ALREADY_PRESENT if was_present else PackageStatus.INSTALLED,
            critical=spec.critical,
        )

    def ensure_all(self, specs: Iterable[PackageSpec]) -> list[PackageOutcome]:
        """Ensure every spec; raise only after trying all of them.

        Raises:
            ProvisionError: NonZeroExit when any critical package failed.
        """
        outcomes = [self.ensure_installed(spec) for spec in specs]
        critical_failures = [o for o in outcomes if o.failed and o.critical]
        if critical_failures:
            names = ", ".join(o.name for o in critical_failures)
            detail = "\n".join(f"{o.name}: {o.reason}" for o in critical_failures)
            raise ProvisionError(
                ErrorKind.NON_ZERO_EXIT,
                f"Required packages failed to install: {names}",
                output=detail,
            )
        return outcomes


__all__ = [
    "AptPackages",
    "PackageInstaller",
    "PackageOutcome",
    "PackageStatus",
    "PipPackages",
]
