"""
Shared test fixtures and configuration.
"""

from pathlib import Path

import pytest

from volsetup.adapters.mock import MockCommandRunner
from volsetup.core.models.target import ProvisionConfig
from volsetup.core.use_cases.install import simulated_runner


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config(tmp_path: Path) -> ProvisionConfig:
    """A root-run config with every path inside tmp_path."""
    return ProvisionConfig(invoking_user="root", target_home="/root").rebased(tmp_path)


@pytest.fixture
def sudo_config(tmp_path: Path) -> ProvisionConfig:
    """A config as resolved under ``sudo`` by user ``analyst``."""
    return ProvisionConfig(
        invoking_user="analyst",
        target_home="/home/analyst",
    ).rebased(tmp_path)


@pytest.fixture
def mock_runner() -> MockCommandRunner:
    return MockCommandRunner()


@pytest.fixture
def healthy_runner(config: ProvisionConfig) -> MockCommandRunner:
    """A runner simulating a host where every install succeeds."""
    return simulated_runner(config)
