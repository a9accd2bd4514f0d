"""
Install target and provisioning configuration models.

``InstallTarget`` describes *what* gets installed (the legacy toolkit);
``ProvisionConfig`` describes *where* and *how*. Both are immutable
after load and validated from YAML by the config loader.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class PackageSpec(BaseModel):
    """One package the toolkit depends on.

    ``critical`` decides whether a failed install aborts the step or is
    only recorded as a warning.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    manager: Literal["apt", "pip"] = "apt"
    critical: bool = True
    upgrade: bool = False


def _default_packages() -> list[PackageSpec]:
    optional = ["distorm3", "pycrypto", "pillow", "ujson", "pytz", "ipython", "capstone"]
    return [
        PackageSpec(name="python2", manager="apt"),
        PackageSpec(name="python2-dev", manager="apt"),
        PackageSpec(name="build-essential", manager="apt"),
        PackageSpec(name="yara", manager="pip", upgrade=True),
        *(PackageSpec(name=n, manager="pip", critical=False, upgrade=True) for n in optional),
        PackageSpec(name="pycryptodome", manager="pip", critical=False),
    ]


class InstallTarget(BaseModel):
    """The legacy toolkit to install, pinned to one revision."""

    model_config = ConfigDict(frozen=True)

    name: str = "Volatility"
    repo_url: str = "https://github.com/volatilityfoundation/volatility.git"
    revision: str = "2.6.1"
    checkout_dir_name: str = "volatility"
    entry_point: str = "vol.py"
    packages: list[PackageSpec] = Field(default_factory=_default_packages)

    # Smoke-test expectations
    capabilities: list[str] = Field(
        default_factory=lambda: ["pslist", "pstree", "psxview", "malfind", "yarascan", "filescan"]
    )
    import_checks: list[str] = Field(default_factory=lambda: ["volatility", "distorm3", "Crypto"])
    integration_module: str = "yara"

    def packages_for(self, manager: str) -> list[PackageSpec]:
        return [p for p in self.packages if p.manager == manager]


class ProvisionConfig(BaseModel):
    """Complete runtime configuration for one provisioning run.

    User-dependent values (``invoking_user``, ``target_home``) are
    resolved once at startup and threaded through step construction.
    """

    model_config = ConfigDict(frozen=True)

    target: InstallTarget = Field(default_factory=InstallTarget)

    # ── Identity ─────────────────────────────────────────────────
    invoking_user: str = "root"
    target_home: str = "/root"
    root_home: str = "/root"

    # ── Legacy runtime ───────────────────────────────────────────
    interpreter: str = "python2"
    pip_binary: str = "pip2"
    get_pip_url: str = "https://bootstrap.pypa.io/pip/2.7/get-pip.py"
    get_pip_path: str = "/tmp/get-pip.py"

    # ── Generated artifacts ──────────────────────────────────────
    wrapper_path: str = "/usr/local/bin/vol.py"
    wrapper_aliases: list[str] = Field(default_factory=lambda: ["vol2.py", "volatility"])
    entry_point_search_roots: list[str] = Field(default_factory=lambda: ["/root", "/home"])

    # ── Shared library link ──────────────────────────────────────
    library_name: str = "libyara.so"
    # Known layouts under the first root, tried before a recursive search
    library_patterns: list[str] = Field(
        default_factory=lambda: ["usr/lib/libyara.so", "yara/libyara.so", "*/libyara.so"]
    )
    library_search_roots: list[str] = Field(
        default_factory=lambda: ["/usr/local/lib/python2.7/dist-packages", "/usr"]
    )
    library_link: str = "/usr/lib/libyara.so"

    # ── Logs ─────────────────────────────────────────────────────
    install_log: str = "/tmp/volatility_install.log"
    deps_log: str = "/tmp/volatility_deps.log"
    report_path: str = "/tmp/volatility_install_report.json"

    # ── Runner policy ────────────────────────────────────────────
    command_timeout: int = 1800
    run_timeout: float | None = None
    stop_on_failure: bool = True

    @property
    def pip_command(self) -> list[str]:
        return [self.interpreter, "-m", "pip"]

    @property
    def install_dir(self) -> Path:
        return Path(self.target_home) / self.target.checkout_dir_name

    @property
    def entry_point_path(self) -> Path:
        return self.install_dir / self.target.entry_point

    @property
    def candidate_locations(self) -> tuple[str, ...]:
        """Where the wrapper looks for the entry point, in order.

        ``$HOME`` is expanded by the wrapper at run time, so the invoking
        shell's home always wins over the root install.
        """
        rel = f"{self.target.checkout_dir_name}/{self.target.entry_point}"
        return (f"$HOME/{rel}", f"{self.root_home}/{rel}")

    @property
    def backup_paths(self) -> list[Path]:
        """Prior-install locations moved aside before a fresh install."""
        paths = [self.install_dir]
        root_install = Path(self.root_home) / self.target.checkout_dir_name
        if Path(self.target_home) != Path(self.root_home):
            paths.append(root_install)
        paths.append(Path(self.wrapper_path))
        return paths

    @property
    def runs_via_sudo(self) -> bool:
        return self.invoking_user not in ("", "root")

    def rebased(self, root: str | Path) -> ProvisionConfig:
        """Copy of this config with every filesystem path moved under ``root``.

        Used by mock runs so that simulated installs never touch the
        real system directories.
        """
        base = Path(root)

        def move(value: str) -> str:
            return str(base / value.lstrip("/"))

        return self.model_copy(
            update={
                "target_home": move(self.target_home),
                "root_home": move(self.root_home),
                "get_pip_path": move(self.get_pip_path),
                "wrapper_path": move(self.wrapper_path),
                "entry_point_search_roots": [move(p) for p in self.entry_point_search_roots],
                "library_search_roots": [move(p) for p in self.library_search_roots],
                "library_link": move(self.library_link),
                "install_log": move(self.install_log),
                "deps_log": move(self.deps_log),
                "report_path": move(self.report_path),
            }
        )
