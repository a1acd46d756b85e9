"""Tests for the peerdeps command line entry point."""

import json
from unittest.mock import patch

import pytest

import peerdeps
from args import parse_args
from constants import ExitCodes
from install_runner import InstallError
from versioning.models import PackageManagerKind


def _project(tmp_path, root=None, members=None):
    root_manifest = root or {"name": "app", "peerDependencies": {"react": "^18.0.0"}}
    (tmp_path / "package.json").write_text(json.dumps(root_manifest, indent=2) + "\n", encoding="utf-8")
    for name, manifest in (members or {}).items():
        directory = tmp_path / "packages" / name
        directory.mkdir(parents=True)
        (directory / "package.json").write_text(json.dumps(manifest), encoding="utf-8")
    return tmp_path


def _run(tmp_path, *argv):
    return peerdeps.run(parse_args(["-d", str(tmp_path), *argv]))


class TestParseArgs:
    """Argument parsing."""

    def test_defaults(self):
        args = parse_args([])
        assert args.COMMAND == ""
        assert args.PACKAGES == []
        assert args.DIRECTORY == "."
        assert args.DRY_RUN is False
        assert args.EXTRA_ARGS == []

    def test_command_packages_and_flags(self):
        args = parse_args(["add", "react", "react-dom", "--pm", "PNPM", "--timeout", "5", "--dry-run"])
        assert args.COMMAND == "add"
        assert args.PACKAGES == ["react", "react-dom"]
        assert args.PACKAGE_MANAGER == "pnpm"
        assert args.TIMEOUT == 5.0
        assert args.DRY_RUN is True

    def test_unknown_options_passed_through(self):
        args = parse_args(["install", "--save-exact"])
        assert args.EXTRA_ARGS == ["--save-exact"]


@patch("peerdeps.detect_package_manager", return_value=PackageManagerKind.NPM)
class TestRun:
    """End-to-end runs with the package manager stubbed out."""

    def test_dry_run_writes_report_only(self, _detect, tmp_path):
        _project(tmp_path)
        before = (tmp_path / "package.json").read_bytes()
        report = tmp_path / "report.json"

        with patch("peerdeps.run_install") as install:
            code = _run(tmp_path, "install", "--dry-run", "--report", str(report))

        assert code == ExitCodes.SUCCESS.value
        install.assert_not_called()
        assert (tmp_path / "package.json").read_bytes() == before
        assert json.loads(report.read_text(encoding="utf-8")) == {"conflict_count": 0, "conflicts": []}

    def test_install_sees_resolved_manifest_then_restores(self, _detect, tmp_path):
        _project(
            tmp_path,
            root={"name": "mono", "workspaces": ["packages/*"]},
            members={
                "a": {"name": "a", "peerDependencies": {"react": "17.0.2"}},
                "b": {"name": "b", "peerDependencies": {"react": "^17.0.0"}},
            },
        )
        before = (tmp_path / "package.json").read_bytes()
        seen = {}

        def _install(command, cwd):
            seen["argv"] = command.argv
            seen["manifest"] = json.loads((tmp_path / "package.json").read_text(encoding="utf-8"))
            seen["backup"] = (tmp_path / "package.json.backup").exists()

        with patch("peerdeps.run_install", side_effect=_install):
            code = _run(tmp_path, "install")

        assert code == ExitCodes.SUCCESS.value
        assert seen["argv"] == ["npm", "install", "--no-package-lock"]
        assert seen["manifest"]["devDependencies"] == {"react": "17.0.2"}
        assert seen["manifest"]["npmConfig"] == {"legacy_peer_deps": True}
        assert seen["backup"] is True
        assert (tmp_path / "package.json").read_bytes() == before
        assert not (tmp_path / "package.json.backup").exists()

    def test_install_failure_restores(self, _detect, tmp_path):
        _project(tmp_path)
        before = (tmp_path / "package.json").read_bytes()

        with patch("peerdeps.run_install", side_effect=InstallError(["npm", "install"], 1)):
            code = _run(tmp_path, "install")

        assert code == ExitCodes.INSTALL_FAILED.value
        assert (tmp_path / "package.json").read_bytes() == before
        assert not (tmp_path / "package.json.backup").exists()

    def test_stale_backup_refused(self, _detect, tmp_path):
        _project(tmp_path)
        (tmp_path / "package.json.backup").write_text("{}", encoding="utf-8")

        with patch("peerdeps.run_install") as install:
            code = _run(tmp_path, "install")

        assert code == ExitCodes.FILE_ERROR.value
        install.assert_not_called()

    def test_missing_manifest(self, _detect, tmp_path):
        assert _run(tmp_path, "install") == ExitCodes.FILE_ERROR.value

    def test_other_commands_pass_through(self, _detect, tmp_path):
        _project(tmp_path)

        with patch("peerdeps.run_command", return_value=4) as run_command:
            code = _run(tmp_path, "run", "build")

        assert code == 4
        assert run_command.call_args[0][0].argv == ["npm", "run", "build"]


class TestRestoreCommand:
    """peerdeps restore."""

    def test_restores_leftover_backup(self, tmp_path):
        (tmp_path / "package.json").write_text('{"name": "mutated"}', encoding="utf-8")
        (tmp_path / "package.json.backup").write_bytes(b'{"name": "original"}\n')

        assert _run(tmp_path, "restore") == ExitCodes.SUCCESS.value
        assert (tmp_path / "package.json").read_bytes() == b'{"name": "original"}\n'
        assert not (tmp_path / "package.json.backup").exists()

    def test_nothing_to_restore(self, tmp_path):
        _project(tmp_path)
        assert _run(tmp_path, "restore") == ExitCodes.SUCCESS.value


class TestMain:
    """Process exit codes."""

    def test_main_exits_with_run_code(self, tmp_path):
        with patch("peerdeps.run", return_value=ExitCodes.INSTALL_FAILED.value):
            with pytest.raises(SystemExit) as excinfo:
                peerdeps.main(["install", "-d", str(tmp_path)])
        assert excinfo.value.code == ExitCodes.INSTALL_FAILED.value

    def test_interrupt_exits_with_interrupted_code(self, tmp_path):
        with patch("peerdeps.run", side_effect=KeyboardInterrupt):
            with pytest.raises(SystemExit) as excinfo:
                peerdeps.main(["install", "-d", str(tmp_path)])
        assert excinfo.value.code == ExitCodes.INTERRUPTED.value
