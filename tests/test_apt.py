"""Tests for the APT helpers and the idempotent installer."""

import subprocess
from unittest.mock import Mock, patch

import pytest

from hostopt.apt import (
    _lock_held,
    install_packages,
    package_available,
    upgrade_system,
    wait_for_dpkg_lock,
)
from hostopt.errors import CommandError, PackageLockTimeout

POLICY_AVAILABLE = """curl:
  Installed: (none)
  Candidate: 7.88.1-10+deb12u5
  Version table:
"""
POLICY_NONE = """ghost:
  Installed: (none)
  Candidate: (none)
"""


def fake_apt(available, fail_update=False):
    calls = []

    def run(argv, check=True, env=None, dry_run=False, **kwargs):
        argv = list(argv)
        calls.append((argv, dry_run))
        if argv[:2] == ["apt-cache", "policy"]:
            stdout = POLICY_AVAILABLE if argv[2] in available else ""
            return subprocess.CompletedProcess(argv, 0, stdout=stdout, stderr="")
        if argv == ["apt-get", "update"] and fail_update:
            raise CommandError(argv, 100, "", "Temporary failure resolving")
        return subprocess.CompletedProcess(argv, 0, stdout="", stderr="")

    run.calls = calls
    return run


@pytest.fixture
def no_lock_wait():
    with patch("hostopt.apt.wait_for_dpkg_lock") as mock_wait:
        mock_wait.return_value = 0.0
        yield mock_wait


class TestInstallPackages:
    def test_unavailable_package_does_not_block_the_rest(self, no_lock_wait):
        run = fake_apt({"curl"})
        with patch("hostopt.apt.run_command", run):
            report = install_packages(["curl", "definitely-not-a-real-package-xyz"])

        assert report.installed == ["curl"]
        assert report.skipped == ["definitely-not-a-real-package-xyz"]
        installs = [argv for argv, _ in run.calls if argv[:2] == ["apt-get", "install"]]
        assert installs == [["apt-get", "install", "-y", "curl"]]

    def test_nothing_available_skips_install(self, no_lock_wait):
        run = fake_apt(set())
        with patch("hostopt.apt.run_command", run):
            report = install_packages(["ghost-a", "ghost-b"])

        assert report.installed == []
        assert report.skipped == ["ghost-a", "ghost-b"]
        assert not any(argv[:2] == ["apt-get", "install"] for argv, _ in run.calls)

    def test_duplicates_and_blanks_are_dropped(self, no_lock_wait):
        run = fake_apt({"git", "vim"})
        with patch("hostopt.apt.run_command", run):
            report = install_packages(["git", "vim", "git", " ", ""])

        assert report.installed == ["git", "vim"]

    def test_empty_request_does_nothing(self, no_lock_wait):
        run = fake_apt(set())
        with patch("hostopt.apt.run_command", run):
            report = install_packages([])

        assert report.installed == [] and report.skipped == []
        assert run.calls == []
        no_lock_wait.assert_not_called()

    def test_refresh_failure_only_warns(self, no_lock_wait):
        run = fake_apt({"curl"}, fail_update=True)
        with patch("hostopt.apt.run_command", run):
            report = install_packages(["curl"])

        assert report.installed == ["curl"]

    def test_waits_for_lock_before_refreshing(self, no_lock_wait):
        run = fake_apt({"curl"})
        with patch("hostopt.apt.run_command", run):
            install_packages(["curl"], lock_timeout=42)

        assert no_lock_wait.call_count == 2
        no_lock_wait.assert_called_with(timeout=42)

    def test_waits_again_right_before_installing(self, no_lock_wait):
        run = fake_apt({"curl", "git"})
        seen = []

        def wait(timeout):
            seen.append([argv for argv, _ in run.calls])
            return 0.0

        no_lock_wait.side_effect = wait
        with patch("hostopt.apt.run_command", run):
            install_packages(["curl", "git"])

        assert seen[0] == []
        assert seen[1][-1] == ["apt-cache", "policy", "git"]
        assert run.calls[-1][0] == ["apt-get", "install", "-y", "curl", "git"]

    def test_lock_taken_after_refresh_blocks_install(self, no_lock_wait):
        run = fake_apt({"curl"})
        no_lock_wait.side_effect = [0.0, PackageLockTimeout("Timed out after 300s")]
        with patch("hostopt.apt.run_command", run):
            with pytest.raises(PackageLockTimeout):
                install_packages(["curl"])

        assert not any(argv[:2] == ["apt-get", "install"] for argv, _ in run.calls)

    def test_dry_run_does_not_wait_or_install(self, no_lock_wait):
        run = fake_apt({"curl"})
        with patch("hostopt.apt.run_command", run):
            install_packages(["curl"], dry_run=True)

        no_lock_wait.assert_not_called()
        install = [c for c in run.calls if c[0][:2] == ["apt-get", "install"]]
        assert install == [(["apt-get", "install", "-y", "curl"], True)]

    def test_failed_batch_install_raises(self, no_lock_wait):
        def run(argv, **kwargs):
            if argv[:2] == ["apt-get", "install"]:
                raise CommandError(list(argv), 100, "", "dpkg error")
            stdout = POLICY_AVAILABLE if argv[:2] == ["apt-cache", "policy"] else ""
            return subprocess.CompletedProcess(argv, 0, stdout=stdout, stderr="")

        with patch("hostopt.apt.run_command", run):
            with pytest.raises(CommandError, match="dpkg error"):
                install_packages(["curl"])


class TestPackageAvailable:
    @pytest.mark.parametrize(
        "stdout, returncode, expected",
        [
            (POLICY_AVAILABLE, 0, True),
            (POLICY_NONE, 0, False),
            ("", 0, False),
            (POLICY_AVAILABLE, 1, False),
        ],
    )
    def test_candidate_line(self, stdout, returncode, expected):
        result = Mock(returncode=returncode, stdout=stdout, stderr="")
        with patch("hostopt.apt.run_command", return_value=result):
            assert package_available("curl") is expected


class TestDpkgLock:
    def test_returns_immediately_when_free(self):
        sleep = Mock()
        assert wait_for_dpkg_lock(probe=lambda: [], sleep=sleep) == 0.0
        sleep.assert_not_called()

    def test_waits_until_released(self):
        probe = Mock(side_effect=[["/var/lib/dpkg/lock"], ["/var/lib/dpkg/lock"], []])
        sleep = Mock()

        waited = wait_for_dpkg_lock(timeout=10, interval=2, probe=probe, sleep=sleep)

        assert waited == 4
        assert sleep.call_count == 2

    def test_times_out(self):
        sleep = Mock()
        with pytest.raises(PackageLockTimeout, match="lock-frontend"):
            wait_for_dpkg_lock(
                timeout=4,
                interval=2,
                probe=lambda: ["/var/lib/dpkg/lock-frontend"],
                sleep=sleep,
            )
        assert sleep.call_count == 2

    def test_missing_lock_file_is_free(self, tmp_path):
        assert _lock_held(str(tmp_path / "lock")) is False

    def test_unlocked_file_is_free(self, tmp_path):
        lock = tmp_path / "lock"
        lock.write_text("")
        assert _lock_held(str(lock)) is False


class TestUpgradeSystem:
    def test_updates_then_upgrades_keeping_local_config(self, no_lock_wait):
        run = fake_apt(set())
        with patch("hostopt.apt.run_command", run):
            upgrade_system()

        argvs = [argv for argv, _ in run.calls]
        assert argvs[0] == ["apt-get", "update"]
        assert argvs[1][-2:] == ["upgrade", "-y"]
        assert "Dpkg::Options::=--force-confold" in argvs[1]
        assert no_lock_wait.call_count == 2
