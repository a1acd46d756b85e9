"""Tests for package manager command building and execution."""

import subprocess

import pytest

from constants import ExitCodes
from install_runner import (
    InstallError,
    build_install_command,
    build_passthrough_command,
    is_install_command,
    run_command,
    run_install,
)
from versioning.models import PackageManagerKind


class _FakeRun:
    """Records subprocess.run invocations and returns a fixed status."""

    def __init__(self, returncode=0):
        self.returncode = returncode
        self.calls = []

    def __call__(self, argv, cwd=None, check=False):
        self.calls.append((argv, cwd))
        return subprocess.CompletedProcess(argv, self.returncode)


class TestInstallCommands:
    """Per-manager install arguments."""

    def test_npm(self):
        cmd = build_install_command(PackageManagerKind.NPM, ["react"])
        assert cmd.argv == ["npm", "install", "--no-package-lock", "react"]

    def test_yarn_add_with_packages(self):
        cmd = build_install_command(PackageManagerKind.YARN, ["react", "react-dom"], ["--dev"])
        assert cmd.argv == ["yarn", "add", "--no-lockfile", "react", "react-dom", "--dev"]

    def test_pnpm_install_without_packages(self):
        assert str(build_install_command(PackageManagerKind.PNPM)) == "pnpm install --no-lockfile"

    def test_passthrough(self):
        cmd = build_passthrough_command(PackageManagerKind.YARN, "run", ["build"])
        assert cmd.argv == ["yarn", "run", "build"]

    @pytest.mark.parametrize(
        "command, manager, expected",
        [
            ("install", PackageManagerKind.NPM, True),
            ("i", PackageManagerKind.NPM, True),
            ("", PackageManagerKind.NPM, True),
            (None, PackageManagerKind.YARN, True),
            ("add", PackageManagerKind.NPM, False),
            ("add", PackageManagerKind.YARN, True),
            ("i", PackageManagerKind.YARN, False),
            ("i", PackageManagerKind.PNPM, True),
            ("run", PackageManagerKind.PNPM, False),
        ],
    )
    def test_is_install_command(self, command, manager, expected):
        assert is_install_command(command, manager) is expected


class TestRunInstall:
    """Running the package manager."""

    def test_success(self, tmp_path):
        fake = _FakeRun()
        run_install(build_install_command(PackageManagerKind.NPM), cwd=str(tmp_path), run=fake)
        assert fake.calls == [(["npm", "install", "--no-package-lock"], str(tmp_path))]

    def test_failure_raises(self):
        with pytest.raises(InstallError) as excinfo:
            run_install(build_install_command(PackageManagerKind.YARN), run=_FakeRun(returncode=1))
        assert excinfo.value.returncode == 1
        assert "yarn install --no-lockfile" in str(excinfo.value)

    def test_missing_binary(self):
        def fake(*args, **kwargs):
            raise FileNotFoundError("pnpm")
        assert run_command(build_install_command(PackageManagerKind.PNPM), run=fake) == ExitCodes.COMMAND_NOT_FOUND.value
