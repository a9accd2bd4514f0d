"""
Git adapter — fetch a repository pinned to one revision.

Uses the git CLI through the CommandRunner. Fetching is destructive
by contract: an existing destination directory is removed before the
clone, never merged.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from pydantic import BaseModel

from volsetup.adapters.base import CommandRunner
from volsetup.core.models.errors import ErrorKind, ProvisionError

logger = logging.getLogger(__name__)


class FetchResult(BaseModel):
    """A checkout now owned by the caller."""

    path: str
    repo_url: str
    revision: str
    commit: str = ""


class GitFetcher:
    """Clone and pin repositories.

    Args:
        runner: Process executor.
        timeout: Seconds allowed for the clone.
    """

    def __init__(self, runner: CommandRunner, timeout: float | None = 600) -> None:
        self._runner = runner
        self._timeout = timeout

    def is_available(self) -> bool:
        return self._runner.which("git") is not None

    def fetch(self, repo_url: str, revision: str, dest_dir: str | Path) -> FetchResult:
        """Clone ``repo_url`` into ``dest_dir`` and check out ``revision``.

        Raises:
            ProvisionError: CloneFailed on network/repository errors,
                RevisionNotFound when the revision does not exist.
        """
        dest = Path(dest_dir)
        if dest.exists() or dest.is_symlink():
            logger.info("Removing existing checkout at %s", dest)
            if dest.is_dir() and not dest.is_symlink():
                shutil.rmtree(dest)
            else:
                dest.unlink()

        dest.parent.mkdir(parents=True, exist_ok=True)
        logger.info("Cloning %s → %s", repo_url, dest)
        clone = self._runner.run(
            "git",
            ["clone", repo_url, str(dest)],
            timeout=self._timeout,
        )
        if not clone.ok:
            message = f"Could not clone {repo_url}"
            if clone.error_kind in (ErrorKind.NOT_FOUND, ErrorKind.TIMEOUT):
                message += f" ({clone.error_kind})"
            raise ProvisionError(
                ErrorKind.CLONE_FAILED,
                message,
                output=clone.combined_output,
            )

        logger.info("Checking out %s", revision)
        checkout = self._runner.run(
            "git",
            ["-C", str(dest), "checkout", "--quiet", revision],
            timeout=60,
        )
        if not checkout.ok:
            raise ProvisionError(
                ErrorKind.REVISION_NOT_FOUND,
                f"Revision '{revision}' not found in {repo_url}",
                output=checkout.combined_output,
            )

        head = self._runner.run("git", ["-C", str(dest), "rev-parse", "HEAD"], timeout=30)
        commit = head.stdout.strip() if head.ok else ""

        return FetchResult(
            path=str(dest),
            repo_url=repo_url,
            revision=revision,
            commit=commit,
        )
