"""Tests for configuration loading."""

import os
from pathlib import Path

import pytest

from skipwise.config import SkipwiseConfig, load_config
from skipwise.exceptions import InvalidConfigError


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep the user's ~/.skipwise.toml and SKIPWISE_* variables out of the tests."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setattr(Path, "home", classmethod(lambda cls: home))
    for key in list(os.environ):
        if key.startswith("SKIPWISE_"):
            monkeypatch.delenv(key)
    return home


class TestSkipwiseConfig:
    """Test defaults and validation."""

    def test_defaults(self):
        """Defaults are conservative."""
        config = SkipwiseConfig()
        assert config.store_dir == ".skipwise"
        assert config.coverage_for_skipped_tests is False
        assert config.restrict_coverage_to_project_units is True
        assert config.decision_policy == "pass-through"
        assert config.keep_snapshots == 3

    @pytest.mark.parametrize(
        "field,value",
        [
            ("keep_snapshots", 0),
            ("lock_expire_seconds", 0),
            ("decision_policy", "random"),
            ("verbosity", "loud"),
            ("store_dir", ""),
        ],
    )
    def test_invalid_values(self, field, value):
        """Invalid values raise InvalidConfigError."""
        with pytest.raises(InvalidConfigError):
            SkipwiseConfig(**{field: value})

    def test_paths(self, tmp_path):
        """Store and cache paths are resolved against the project."""
        config = SkipwiseConfig(store_dir="build/skipwise", cache_dir="fp")
        assert config.store_path(tmp_path) == tmp_path / "build" / "skipwise"
        assert config.cache_path(tmp_path) == tmp_path / "build" / "skipwise" / "fp"


class TestLoadConfig:
    """Test merging of configuration sources."""

    def test_project_file(self, tmp_path):
        """skipwise.toml in the project root is read."""
        (tmp_path / "skipwise.toml").write_text("keep_snapshots = 5\n")
        assert load_config(project_dir=tmp_path).keep_snapshots == 5

    def test_section_table(self, tmp_path):
        """Settings may live under a [skipwise] table."""
        (tmp_path / "skipwise.toml").write_text("[skipwise]\ncoverage_for_skipped_tests = true\n")
        assert load_config(project_dir=tmp_path).coverage_for_skipped_tests is True

    def test_priority(self, tmp_path, isolated_home, monkeypatch):
        """global < project < explicit file < environment < overrides."""
        (isolated_home / ".skipwise.toml").write_text('store_dir = "global"\nkeep_snapshots = 2\n')
        (tmp_path / "skipwise.toml").write_text('store_dir = "project"\n')
        explicit = tmp_path / "explicit.toml"
        explicit.write_text("keep_snapshots = 7\n")
        monkeypatch.setenv("SKIPWISE_KEEP_SNAPSHOTS", "9")

        config = load_config(config_file=explicit, project_dir=tmp_path)
        assert config.store_dir == "project"
        assert config.keep_snapshots == 9

        config = load_config(config_file=explicit, project_dir=tmp_path, keep_snapshots=4)
        assert config.keep_snapshots == 4

    def test_none_overrides_are_ignored(self, tmp_path):
        """Unset CLI options never mask file values."""
        (tmp_path / "skipwise.toml").write_text("keep_snapshots = 5\n")
        assert load_config(project_dir=tmp_path, keep_snapshots=None).keep_snapshots == 5

    def test_env_list_and_bool(self, tmp_path, monkeypatch):
        """Lists are comma-separated and booleans accept common spellings."""
        monkeypatch.setenv("SKIPWISE_ALWAYS_EXECUTE", "*IT, com.example.Smoke*")
        monkeypatch.setenv("SKIPWISE_CACHE_ENABLED", "off")
        config = load_config(project_dir=tmp_path)
        assert config.always_execute == ["*IT", "com.example.Smoke*"]
        assert config.cache_enabled is False

    def test_bad_env_value(self, tmp_path, monkeypatch):
        """Unparseable environment values name the variable."""
        monkeypatch.setenv("SKIPWISE_CACHE_ENABLED", "maybe")
        with pytest.raises(InvalidConfigError, match="SKIPWISE_CACHE_ENABLED"):
            load_config(project_dir=tmp_path)

    def test_verbose_flag(self, tmp_path):
        """The verbose flag maps to verbosity."""
        assert load_config(project_dir=tmp_path, verbose=True).verbosity == "verbose"
        assert load_config(project_dir=tmp_path, verbose=False).verbosity == "normal"

    def test_unknown_key(self, tmp_path):
        """Unknown keys are configuration errors."""
        (tmp_path / "skipwise.toml").write_text("colour = true\n")
        with pytest.raises(InvalidConfigError):
            load_config(project_dir=tmp_path)

    def test_invalid_toml(self, tmp_path):
        """Syntax errors report the offending file."""
        (tmp_path / "skipwise.toml").write_text("keep_snapshots = \n")
        with pytest.raises(InvalidConfigError) as exc_info:
            load_config(project_dir=tmp_path)
        assert exc_info.value.source == tmp_path / "skipwise.toml"

    def test_missing_explicit_file(self, tmp_path):
        """An explicit config file must exist."""
        with pytest.raises(InvalidConfigError):
            load_config(config_file=tmp_path / "nope.toml", project_dir=tmp_path)
