"""Tests for workspace discovery, peer requirement collection and PM detection."""

import asyncio
import json
import logging

import pytest

from manifest.errors import ManifestReadError
from manifest.reader import ManifestCache, read_manifest
from versioning.models import PackageManagerKind, PeerRequirement, WorkspaceMember
from workspace.collector import collect
from workspace.detect import detect_package_manager
from workspace.discovery import detect_monorepo, discover_members, workspace_patterns


def _package(directory, name=None, **fields):
    directory.mkdir(parents=True, exist_ok=True)
    manifest = dict(fields)
    if name is not None:
        manifest["name"] = name
    (directory / "package.json").write_text(json.dumps(manifest), encoding="utf-8")
    return directory


def _discover(root, pm=PackageManagerKind.NPM):
    return asyncio.run(discover_members(str(root), pm, ManifestCache()))


def _which(*installed):
    return lambda name: f"/usr/bin/{name}" if name in installed else None


class TestManifestReader:
    """Parsing and caching package.json files."""

    def test_invalid_json_raises(self, tmp_path):
        path = tmp_path / "package.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ManifestReadError) as excinfo:
            read_manifest(str(path))
        assert excinfo.value.operation == "read"

    def test_non_object_raises(self, tmp_path):
        path = tmp_path / "package.json"
        path.write_text("[]", encoding="utf-8")
        with pytest.raises(ManifestReadError):
            read_manifest(str(path))

    def test_cache_reads_once(self, tmp_path):
        root = _package(tmp_path, "app")
        cache = ManifestCache()
        first = cache.get(str(root / "package.json"))
        (root / "package.json").write_text('{"name": "changed"}', encoding="utf-8")
        assert cache.get(str(root / "package.json")) is first
        assert str(root / "package.json") in cache


class TestDiscovery:
    """Finding workspace members."""

    def test_plain_project_is_root_only(self, tmp_path):
        _package(tmp_path, "app")
        _package(tmp_path / "packages" / "ignored", "ignored")

        members = _discover(tmp_path)

        assert [(m.path, m.name) for m in members] == [(".", "app")]

    def test_workspace_globs_root_last(self, tmp_path):
        _package(tmp_path, "mono", workspaces=["packages/*"])
        _package(tmp_path / "packages" / "a", "@mono/a")
        _package(tmp_path / "packages" / "b", "@mono/b")
        (tmp_path / "packages" / "no-manifest").mkdir()

        members = _discover(tmp_path)

        assert [m.name for m in members] == ["@mono/a", "@mono/b", "mono"]
        assert members[0].path == "packages/a"

    def test_object_form_and_conventional_dirs(self, tmp_path):
        _package(tmp_path, "mono", workspaces={"packages": ["tools/*"]})
        _package(tmp_path / "tools" / "cli", "cli")
        _package(tmp_path / "apps" / "web", "web")

        members = _discover(tmp_path)

        assert [m.name for m in members] == ["cli", "web", "mono"]

    def test_negated_pattern_excludes(self, tmp_path):
        _package(tmp_path, "mono", workspaces=["pkgs/*", "!pkgs/private"])
        _package(tmp_path / "pkgs" / "public", "public")
        _package(tmp_path / "pkgs" / "private", "private")

        assert [m.name for m in _discover(tmp_path)] == ["public", "mono"]

    def test_pnpm_workspace_file(self, tmp_path):
        _package(tmp_path, "mono")
        (tmp_path / "pnpm-workspace.yaml").write_text("packages:\n  - 'libs/*'\n", encoding="utf-8")
        _package(tmp_path / "libs" / "core", "core")

        assert [m.name for m in _discover(tmp_path, PackageManagerKind.PNPM)] == ["core", "mono"]
        assert [m.name for m in _discover(tmp_path, PackageManagerKind.NPM)] == ["mono"]

    def test_unreadable_member_skipped(self, tmp_path, caplog):
        _package(tmp_path, "mono", workspaces=["packages/*"])
        broken = tmp_path / "packages" / "broken"
        broken.mkdir(parents=True)
        (broken / "package.json").write_text("{", encoding="utf-8")
        _package(tmp_path / "packages" / "ok", "ok")

        with caplog.at_level(logging.WARNING):
            members = _discover(tmp_path)

        assert [m.name for m in members] == ["ok", "mono"]
        assert "Skipping workspace member" in caplog.text

    def test_unnamed_member_uses_directory_name(self, tmp_path):
        _package(tmp_path, "mono", workspaces=["packages/*"])
        _package(tmp_path / "packages" / "nameless")

        assert _discover(tmp_path)[0].name == "nameless"

    def test_missing_root_manifest_raises(self, tmp_path):
        with pytest.raises(ManifestReadError):
            _discover(tmp_path)

    def test_workspace_patterns_ignores_junk(self):
        assert workspace_patterns({"workspaces": ["a/*", 3, ""]}) == ["a/*"]
        assert workspace_patterns({"workspaces": "a/*"}) == []


class TestDetectMonorepo:
    """Monorepo indicators."""

    def test_workspaces_field(self, tmp_path):
        assert detect_monorepo(str(tmp_path), {"workspaces": ["packages/*"]})

    def test_lerna_file(self, tmp_path):
        (tmp_path / "lerna.json").write_text("{}", encoding="utf-8")
        assert detect_monorepo(str(tmp_path), {})

    def test_populated_conventional_dir(self, tmp_path):
        (tmp_path / "apps" / "web").mkdir(parents=True)
        assert detect_monorepo(str(tmp_path), {})

    def test_empty_conventional_dir(self, tmp_path):
        (tmp_path / "packages").mkdir()
        assert not detect_monorepo(str(tmp_path), {})


class TestCollect:
    """Grouping peer requirements by dependency name."""

    def test_groups_in_discovery_order(self):
        members = [
            WorkspaceMember("packages/a", "a", {"peerDependencies": {"react": "^17.0.0", "vue": "^3.0.0"}}),
            WorkspaceMember("packages/b", "b", {"peerDependencies": {"react": "^17.0.0"}}),
            WorkspaceMember(".", "root", {"dependencies": {"react": "^18.0.0"}}),
        ]

        groups = collect(members)

        assert list(groups) == ["react", "vue"]
        assert groups["react"] == [
            PeerRequirement(required_by="a", version_range="^17.0.0"),
            PeerRequirement(required_by="b", version_range="^17.0.0"),
        ]

    def test_ignored_and_invalid_entries_skipped(self, caplog):
        members = [
            WorkspaceMember(".", "root", {"peerDependencies": {"react": "^18.0.0", "eslint": "^8.0.0", "bad": 1}}),
        ]

        with caplog.at_level(logging.WARNING):
            groups = collect(members, ignore=["eslint"])

        assert list(groups) == ["react"]
        assert "non-string peer range" in caplog.text

    def test_non_mapping_peer_dependencies(self):
        assert collect([WorkspaceMember(".", "root", {"peerDependencies": ["react"]})]) == {}


class TestDetectPackageManager:
    """Choosing npm, yarn or pnpm."""

    def test_forced_manager_wins(self, tmp_path):
        (tmp_path / "yarn.lock").write_text("", encoding="utf-8")
        assert detect_package_manager(str(tmp_path), "pnpm", which=_which("pnpm", "yarn")) is PackageManagerKind.PNPM

    def test_forced_but_missing_falls_back(self, tmp_path):
        (tmp_path / "yarn.lock").write_text("", encoding="utf-8")
        assert detect_package_manager(str(tmp_path), "pnpm", which=_which("yarn")) is PackageManagerKind.YARN

    def test_unknown_forced_manager_ignored(self, tmp_path):
        assert detect_package_manager(str(tmp_path), "bun", which=_which("npm")) is PackageManagerKind.NPM

    def test_lockfile_precedence(self, tmp_path):
        (tmp_path / "package-lock.json").write_text("{}", encoding="utf-8")
        (tmp_path / "pnpm-lock.yaml").write_text("", encoding="utf-8")
        assert detect_package_manager(str(tmp_path), which=_which("npm", "pnpm")) is PackageManagerKind.PNPM

    def test_lockfile_manager_not_installed(self, tmp_path):
        (tmp_path / "pnpm-lock.yaml").write_text("", encoding="utf-8")
        assert detect_package_manager(str(tmp_path), which=_which("yarn")) is PackageManagerKind.YARN

    def test_nothing_installed_defaults_to_npm(self, tmp_path):
        assert detect_package_manager(str(tmp_path), which=_which()) is PackageManagerKind.NPM
