"""Tests for repository descriptors and --repo parsing."""

import pytest

from crossaudit.pipeline.structures import ConfigurationError
from crossaudit.repos import (
    STATUS_MISSING,
    STATUS_NOT_DIR,
    STATUS_OK,
    build_repo,
    parse_repo_option,
    resolve_repos,
)


class TestParseRepoOption:
    @pytest.mark.parametrize(
        "spec,expected",
        [
            ("fns=/work/fns:functions", {"name": "fns", "path": "/work/fns", "role": "functions"}),
            ("studio=../studio", {"name": "studio", "path": "../studio", "role": "studio"}),
            ("shop = ./shop:storefront", {"name": "shop", "path": "./shop", "role": "storefront"}),
            # only known roles are split off
            ("win=C:\\repos\\web", {"name": "win", "path": "C:\\repos\\web", "role": "studio"}),
            ("odd=/x:weird", {"name": "odd", "path": "/x:weird", "role": "studio"}),
        ],
    )
    def test_valid(self, spec, expected):
        assert parse_repo_option(spec) == expected

    @pytest.mark.parametrize("spec", ["justapath", "=/x", "name=", "name=:code"])
    def test_invalid(self, spec):
        with pytest.raises(ConfigurationError, match="Invalid --repo"):
            parse_repo_option(spec)


class TestBuildRepo:
    def test_relative_path_resolved_against_root(self, tmp_path):
        (tmp_path / "studio").mkdir()

        repo = build_repo({"name": "studio", "path": "studio"}, tmp_path)

        assert repo.path == (tmp_path / "studio").resolve()
        assert repo.status == STATUS_OK
        assert repo.ok
        assert repo.role == "studio"

    def test_missing_path_is_not_an_error(self, tmp_path):
        repo = build_repo({"name": "gone", "path": "gone", "role": "functions"}, tmp_path)

        assert repo.status == STATUS_MISSING
        assert not repo.ok

    def test_file_is_not_a_repository(self, tmp_path):
        (tmp_path / "file.txt").write_text("x")

        repo = build_repo({"path": "file.txt"}, tmp_path)

        assert repo.status == STATUS_NOT_DIR
        assert repo.name == "file.txt"

    def test_unknown_role(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Unknown role 'cms'"):
            build_repo({"name": "x", "path": ".", "role": "cms"}, tmp_path)

    @pytest.mark.parametrize("entry", ["studio", {"name": "no-path"}])
    def test_malformed_entry(self, tmp_path, entry):
        with pytest.raises(ConfigurationError):
            build_repo(entry, tmp_path)

    def test_to_dict(self, tmp_path):
        repo = build_repo({"name": "gone", "path": "gone"}, tmp_path)

        assert repo.to_dict() == {
            "name": "gone",
            "role": "studio",
            "path": (tmp_path / "gone").resolve().as_posix(),
            "status": STATUS_MISSING,
        }


class TestResolveRepos:
    def test_root_is_default_repository(self, tmp_path, config):
        root = tmp_path / "project"
        root.mkdir()

        (repo,) = resolve_repos(config, root)

        assert repo.name == "project"
        assert repo.role == "studio"
        assert repo.path == root.resolve()

    def test_configured_repositories(self, tmp_path, config):
        (tmp_path / "a").mkdir()
        config["repos"] = [{"name": "a", "path": "a", "role": "functions"}, {"name": "b", "path": "b"}]

        repos = resolve_repos(config, tmp_path)

        assert [(r.name, r.role, r.ok) for r in repos] == [("a", "functions", True), ("b", "studio", False)]

    def test_cli_replaces_configured(self, tmp_path, config):
        config["repos"] = [{"name": "a", "path": "a"}]

        repos = resolve_repos(config, tmp_path, ("shop=shop:storefront",))

        assert [(r.name, r.role) for r in repos] == [("shop", "storefront")]

    def test_duplicate_names(self, tmp_path, config):
        with pytest.raises(ConfigurationError, match="Duplicate repository name: a"):
            resolve_repos(config, tmp_path, ("a=x", "a=y:code"))
