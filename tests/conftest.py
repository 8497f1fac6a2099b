"""
Pytest configuration and shared fixtures for hostopt tests.

Tasks run against a temporary filesystem root, with external commands and
package installs replaced by recording fakes.
"""

import subprocess
from typing import Dict, List, Tuple
from unittest.mock import Mock, patch

import pytest

from hostopt.apt import InstallReport
from hostopt.config import ProvisionConfig
from hostopt.errors import CommandError
from hostopt.prompt import StepSelector
from hostopt.tasks import Context


class FakeRunner:
    """
    Stand-in for ``run_command`` that records every argv.

    Responses are keyed by argv prefix; the longest matching prefix wins and
    anything unmatched succeeds with empty output.
    """

    def __init__(self) -> None:
        self.calls: List[List[str]] = []
        self.dry_calls: List[List[str]] = []
        self.responses: Dict[Tuple[str, ...], Tuple[int, str, str]] = {}

    def respond(self, prefix: List[str], returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        self.responses[tuple(prefix)] = (returncode, stdout, stderr)

    def __call__(self, argv, check=True, dry_run=False, **kwargs) -> subprocess.CompletedProcess:
        argv = [str(a) for a in argv]
        if dry_run:
            self.dry_calls.append(argv)
            return subprocess.CompletedProcess(argv, 0, stdout="", stderr="")
        self.calls.append(argv)
        returncode, stdout, stderr = 0, "", ""
        best = -1
        for prefix, response in self.responses.items():
            if tuple(argv[: len(prefix)]) == prefix and len(prefix) > best:
                best = len(prefix)
                returncode, stdout, stderr = response
        if check and returncode != 0:
            raise CommandError(argv, returncode, stdout, stderr)
        return subprocess.CompletedProcess(argv, returncode, stdout=stdout, stderr=stderr)

    def ran(self, *prefix: str) -> bool:
        return any(tuple(c[: len(prefix)]) == prefix for c in self.calls)


@pytest.fixture
def config() -> ProvisionConfig:
    return ProvisionConfig(non_interactive=True)


@pytest.fixture
def selector() -> StepSelector:
    return StepSelector(interactive=False)


@pytest.fixture
def ctx(tmp_path, config, selector) -> Context:
    """Context whose materialized files land under tmp_path."""
    return Context(config=config, selector=selector, root=str(tmp_path))


@pytest.fixture
def fake_run():
    runner = FakeRunner()
    with patch("hostopt.tasks.run_command", runner), patch(
        "hostopt.tasks.locale.run_command", runner
    ):
        yield runner


@pytest.fixture
def fake_install():
    with patch("hostopt.tasks.install_packages") as mock_install:
        mock_install.side_effect = lambda names, **kw: InstallReport(installed=list(names))
        yield mock_install


@pytest.fixture
def mock_subprocess_run():
    with patch("hostopt.command.subprocess.run") as mock_run:
        mock_run.return_value = Mock(returncode=0, stdout="", stderr="")
        yield mock_run
