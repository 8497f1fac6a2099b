"""Tests for command execution and the task context."""

import subprocess

import pytest

from hostopt.command import format_argv, run_command
from hostopt.errors import CommandError


class TestRunCommand:
    def test_successful_command(self, mock_subprocess_run):
        mock_subprocess_run.return_value.stdout = "ok\n"

        result = run_command(["apt-get", "update"], env={"DEBIAN_FRONTEND": "noninteractive"})

        assert result.stdout == "ok\n"
        args, kwargs = mock_subprocess_run.call_args
        assert args[0] == ["apt-get", "update"]
        assert kwargs["text"] is True
        assert kwargs["capture_output"] is True
        assert kwargs["env"]["DEBIAN_FRONTEND"] == "noninteractive"
        assert "PATH" in kwargs["env"]

    def test_failure_raises_with_stderr(self, mock_subprocess_run):
        mock_subprocess_run.return_value.returncode = 100
        mock_subprocess_run.return_value.stderr = "E: Unable to locate package"

        with pytest.raises(CommandError, match="Unable to locate package") as excinfo:
            run_command(["apt-get", "install", "-y", "nope"])

        assert excinfo.value.returncode == 100
        assert excinfo.value.argv == ["apt-get", "install", "-y", "nope"]

    def test_failure_ignored_without_check(self, mock_subprocess_run):
        mock_subprocess_run.return_value.returncode = 3
        assert run_command(["systemctl", "is-enabled", "cups"], check=False).returncode == 3

    def test_dry_run_executes_nothing(self, mock_subprocess_run):
        result = run_command(["ufw", "--force", "enable"], dry_run=True)

        mock_subprocess_run.assert_not_called()
        assert result.returncode == 0
        assert result.args == ["ufw", "--force", "enable"]

    def test_missing_executable(self, mock_subprocess_run):
        mock_subprocess_run.side_effect = FileNotFoundError("No such file: 'dpkg-query'")

        assert run_command(["dpkg-query", "-W", "zsh"], check=False).returncode == 127
        with pytest.raises(CommandError, match="127"):
            run_command(["dpkg-query", "-W", "zsh"])

    def test_timeout_raises(self, mock_subprocess_run):
        mock_subprocess_run.side_effect = subprocess.TimeoutExpired(["sshd", "-t"], 30)
        with pytest.raises(CommandError, match="timed out"):
            run_command(["sshd", "-t"], timeout=30, check=False)

    def test_arguments_are_stringified(self, mock_subprocess_run):
        run_command(["ufw", "allow", 22])
        assert mock_subprocess_run.call_args[0][0] == ["ufw", "allow", "22"]


def test_format_argv_quotes():
    assert format_argv(["sh", "-c", "echo hi"]) == "sh -c 'echo hi'"


class TestContext:
    def test_path_is_joined_under_root(self, ctx, tmp_path):
        assert ctx.path("/etc/wsl.conf") == str(tmp_path / "etc/wsl.conf")

    def test_real_root_keeps_paths(self, ctx):
        ctx.root = "/"
        assert ctx.path("/etc/wsl.conf") == "/etc/wsl.conf"

    def test_run_honours_dry_run(self, ctx, fake_run):
        ctx.config.dry_run = True
        ctx.run(["systemctl", "restart", "ssh"])
        assert fake_run.calls == []
        assert fake_run.dry_calls == [["systemctl", "restart", "ssh"]]

    def test_query_runs_during_dry_run(self, ctx, fake_run):
        ctx.config.dry_run = True
        ctx.query(["systemctl", "is-enabled", "cups"])
        assert fake_run.calls == [["systemctl", "is-enabled", "cups"]]

    def test_try_run_reports_failure(self, ctx, fake_run):
        fake_run.respond(["sysctl"], 255, stderr="permission denied")
        assert ctx.try_run(["sysctl", "-p"], "Could not apply") is False
        assert ctx.try_run(["udevadm", "trigger"], "Could not trigger") is True

    def test_install_passes_lock_timeout(self, ctx, fake_install):
        ctx.config.lock_timeout = 60
        ctx.install(["curl"])
        fake_install.assert_called_once_with(["curl"], dry_run=False, lock_timeout=60)
