"""
Configuration loader — reads volsetup.yml into a ProvisionConfig.

Lookup order:
    --config PATH  >  $VOLSETUP_CONFIG  >  ./volsetup.yml
    >  /etc/volsetup/config.yml  >  built-in defaults

The invoking user and target home are resolved here, once, from the
environment (``SUDO_USER``, ``HOME``) unless the file sets them.
Nothing downstream reads the environment again.
"""

from __future__ import annotations

import logging
import os
import pwd
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from volsetup.core.models.target import ProvisionConfig

logger = logging.getLogger(__name__)

# Default config filename (current directory)
CONFIG_FILE = "volsetup.yml"
SYSTEM_CONFIG = Path("/etc/volsetup/config.yml")
CONFIG_ENV_VAR = "VOLSETUP_CONFIG"


class ConfigError(Exception):
    """Raised when configuration is invalid or missing."""


def find_config_file(
    explicit: Path | None = None,
    environ: Mapping[str, str] | None = None,
    cwd: Path | None = None,
    system_path: Path | None = None,
) -> Path | None:
    """Resolve which config file to load.

    An explicitly requested file (flag or env var) must exist;
    the implicit locations are optional.

    Returns:
        Path to the config file, or None to use built-in defaults.

    Raises:
        ConfigError: If an explicitly requested file does not exist.
    """
    env = os.environ if environ is None else environ

    if explicit is not None:
        if not explicit.is_file():
            raise ConfigError(f"Config file not found: {explicit}")
        return explicit

    from_env = env.get(CONFIG_ENV_VAR)
    if from_env:
        path = Path(from_env)
        if not path.is_file():
            raise ConfigError(f"Config file not found: {path} (from ${CONFIG_ENV_VAR})")
        return path

    for candidate in ((cwd or Path.cwd()) / CONFIG_FILE, system_path or SYSTEM_CONFIG):
        if candidate.is_file():
            return candidate

    return None


def resolve_invoking_user(environ: Mapping[str, str] | None = None) -> tuple[str, str]:
    """Determine who the install is for and where their home is.

    Under sudo this is ``SUDO_USER`` and their passwd home; otherwise
    the current user and ``$HOME``.

    Returns:
        ``(user, home)``
    """
    env = os.environ if environ is None else environ

    sudo_user = env.get("SUDO_USER", "")
    if sudo_user and sudo_user != "root":
        try:
            return sudo_user, pwd.getpwnam(sudo_user).pw_dir
        except KeyError:
            logger.warning("SUDO_USER %s has no passwd entry; assuming /home/%s", sudo_user, sudo_user)
            return sudo_user, f"/home/{sudo_user}"

    user = env.get("USER") or env.get("LOGNAME") or "root"
    home = env.get("HOME") or ("/root" if user == "root" else f"/home/{user}")
    return user, home


def _read_yaml(path: Path) -> dict[str, Any]:
    logger.debug("Loading config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # The YAML may wrap everything under a "volsetup" key or be flat
    return dict(data.get("volsetup", data))


def load_config(
    path: Path | None = None,
    environ: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> ProvisionConfig:
    """Load and validate the provisioning configuration.

    Args:
        path: Config file to read, or None for built-in defaults.
        environ: Environment used for user resolution (default: os.environ).
        overrides: Values that win over the file (CLI flags).

    Returns:
        Validated ProvisionConfig.

    Raises:
        ConfigError: If the file is unreadable or invalid.
    """
    data = _read_yaml(path) if path is not None else {}

    if "invoking_user" not in data or "target_home" not in data:
        user, home = resolve_invoking_user(environ)
        data.setdefault("invoking_user", user)
        data.setdefault("target_home", home)

    for key, value in (overrides or {}).items():
        if value is not None:
            data[key] = value

    try:
        config = ProvisionConfig.model_validate(data)
    except ValidationError as e:
        source = path or "built-in defaults"
        raise ConfigError(f"Invalid configuration ({source}): {e}") from e

    logger.info(
        "Config: %s %s for %s (%s)",
        config.target.name,
        config.target.revision,
        config.invoking_user,
        config.target_home,
    )
    return config
