"""
Test configuration and shared fixtures for citadel-dev tests.
"""

import logging
from pathlib import Path
from typing import Generator
from unittest.mock import Mock, patch

import pytest

from citadel_dev.dev_environment import SENTINEL_FILE, DevEnvironment


def pytest_configure(config):
    """Configure pytest with custom markers."""
    markers = [
        "unit: tests for individual controller methods",
        "cli: command-line contract tests",
    ]

    for marker in markers:
        config.addinivalue_line("markers", marker)


@pytest.fixture(autouse=True)
def restore_root_logger() -> Generator[None, None, None]:
    """Undo setup_logging() so handlers never point at a closed test stream."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    propagate = root.propagate
    yield
    root.handlers = handlers
    root.setLevel(level)
    root.propagate = propagate


@pytest.fixture
def dev_env(tmp_path: Path) -> DevEnvironment:
    """DevEnvironment writing captured output under the test directory."""
    return DevEnvironment(log_dir=str(tmp_path / "logs"))


@pytest.fixture
def env_root(tmp_path: Path, monkeypatch) -> Path:
    """An initialized environment directory, used as the working directory."""
    root = tmp_path / "citadel"
    root.mkdir()
    (root / SENTINEL_FILE).touch()
    (root / "Vagrantfile").write_text("# test\n")
    monkeypatch.chdir(root)
    return root


@pytest.fixture
def outside_dir(tmp_path: Path, monkeypatch) -> Path:
    """A working directory that is not part of any environment."""
    directory = tmp_path / "elsewhere"
    directory.mkdir()
    monkeypatch.chdir(directory)
    return directory


@pytest.fixture
def mock_which():
    """Pretend every external tool is installed."""
    with patch("citadel_dev.dev_environment.shutil.which", return_value="/usr/bin/tool") as mock:
        yield mock


@pytest.fixture
def mock_subprocess_run():
    """Mock subprocess.run for Vagrant commands."""
    with patch("citadel_dev.dev_environment.subprocess.run") as mock_run:
        mock_run.return_value = Mock(returncode=0)
        yield mock_run


@pytest.fixture
def mock_clone():
    """Mock run_subprocess so that git clone creates an empty checkout."""
    with patch("citadel_dev.dev_environment.run_subprocess") as mock_run:
        def side_effect(cmd, **kwargs):
            if cmd[:2] == ["git", "clone"]:
                Path(cmd[-1]).mkdir(parents=True)
            return Mock(returncode=0, stdout="", stderr="")

        mock_run.side_effect = side_effect
        yield mock_run


@pytest.fixture
def clone_urls(mock_clone):
    """Callable returning the repository URLs passed to git clone so far."""
    def _urls() -> list:
        return [c.args[0][2] for c in mock_clone.call_args_list if c.args[0][:2] == ["git", "clone"]]

    return _urls


@pytest.fixture
def remote_commands(mock_subprocess_run):
    """Callable returning the shell commands sent through 'vagrant ssh -c' so far."""
    def _commands() -> list:
        return [c.args[0][3] for c in mock_subprocess_run.call_args_list
                if c.args[0][:3] == ["vagrant", "ssh", "-c"]]

    return _commands
