"""Configuration loading and management for skipwise.

Configuration sources are merged in priority order:
    1. Defaults (defined in SkipwiseConfig)
    2. Global config (~/.skipwise.toml)
    3. Project config (<project>/skipwise.toml)
    4. Explicit config file
    5. Environment variables (SKIPWISE_* prefix)
    6. CLI overrides (passed as kwargs)

Example:
    >>> config = load_config(coverage_for_skipped_tests=True)
    >>> config.coverage_for_skipped_tests
    True
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, Optional, get_type_hints

from .exceptions import InvalidConfigError

Verbosity = Literal["quiet", "normal", "verbose"]
PolicyName = Literal["pass-through", "always-execute"]

CONFIG_FILE_NAME = "skipwise.toml"
GLOBAL_CONFIG_FILE_NAME = ".skipwise.toml"


@dataclass(frozen=True)
class SkipwiseConfig:
    """Configuration for one project's test impact analysis.

    Attributes:
        Storage:
            store_dir: Store directory, relative to the project root
            keep_snapshots: Snapshots retained by garbage collection (>= 1)
            lock_expire_seconds: Age after which a store lock left by a crashed
                build is broken

        Coverage:
            coverage_for_skipped_tests: Keep one compressed blob per test so
                that merged coverage can be produced for skipped tests
            restrict_coverage_to_project_units: Drop covered units the unit
                discovery did not report (third-party classes)

        Decisions:
            decision_policy: Name of the policy applied after the core decision
            always_execute: Glob patterns of test ids the "always-execute"
                policy never skips

        Caching:
            cache_enabled: Memoise canonical bytecode hashes on disk
            cache_dir: Cache directory, relative to the store directory

        Output control:
            verbosity: Logging verbosity level
    """

    # Storage
    store_dir: str = ".skipwise"
    keep_snapshots: int = 3
    lock_expire_seconds: float = 30.0

    # Coverage
    coverage_for_skipped_tests: bool = False
    restrict_coverage_to_project_units: bool = True

    # Decisions
    decision_policy: PolicyName = "pass-through"
    always_execute: list[str] = field(default_factory=list)

    # Caching
    cache_enabled: bool = True
    cache_dir: str = "cache"

    # Output control
    verbosity: Verbosity = "normal"

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.keep_snapshots < 1:
            raise InvalidConfigError("keep_snapshots must be at least 1")
        if self.lock_expire_seconds <= 0:
            raise InvalidConfigError("lock_expire_seconds must be positive")
        if self.decision_policy not in ("pass-through", "always-execute"):
            raise InvalidConfigError(f"unknown decision_policy '{self.decision_policy}'")
        if self.verbosity not in ("quiet", "normal", "verbose"):
            raise InvalidConfigError(f"unknown verbosity '{self.verbosity}'")
        if not self.store_dir:
            raise InvalidConfigError("store_dir must not be empty")

    def store_path(self, project_dir: Path) -> Path:
        """Resolve the store directory for ``project_dir``."""
        return Path(project_dir) / self.store_dir

    def cache_path(self, project_dir: Path) -> Path:
        """Resolve the fingerprint cache directory for ``project_dir``."""
        return self.store_path(project_dir) / self.cache_dir


def load_config(
    config_file: Optional[Path] = None,
    project_dir: Optional[Path] = None,
    **overrides: Any,
) -> SkipwiseConfig:
    """Load configuration with auto-discovery and merging.

    Args:
        config_file: Optional explicit config file path
        project_dir: Project root holding ``skipwise.toml`` (defaults to cwd)
        **overrides: Direct overrides (typically from CLI flags); ``None``
            values are ignored so unset CLI options never mask file values

    Returns:
        Validated SkipwiseConfig instance

    Raises:
        InvalidConfigError: If a config source is invalid or missing
    """
    merged: dict[str, Any] = {}

    global_config = Path.home() / GLOBAL_CONFIG_FILE_NAME
    if global_config.exists():
        merged.update(_load_toml_file(global_config))

    project_config = Path(project_dir or Path.cwd()) / CONFIG_FILE_NAME
    if project_config.exists():
        merged.update(_load_toml_file(project_config))

    if config_file is not None:
        if not config_file.exists():
            raise InvalidConfigError("config file not found", source=config_file)
        merged.update(_load_toml_file(config_file))

    merged.update(_load_env_vars())

    if "verbose" in overrides:
        if overrides["verbose"]:
            overrides["verbosity"] = "verbose"
        del overrides["verbose"]
    if "quiet" in overrides:
        if overrides["quiet"]:
            overrides["verbosity"] = "quiet"
        del overrides["quiet"]

    merged.update({key: value for key, value in overrides.items() if value is not None})

    try:
        return SkipwiseConfig(**merged)
    except TypeError as e:
        raise InvalidConfigError(str(e))


def _load_env_vars() -> dict[str, Any]:
    """Load configuration from SKIPWISE_* environment variables.

    List-valued fields take a comma-separated value, e.g.
    ``SKIPWISE_ALWAYS_EXECUTE="com.example.*IT,com.example.Smoke*"``.
    """
    type_hints = get_type_hints(SkipwiseConfig)

    result: dict[str, Any] = {}

    for field_name in SkipwiseConfig.__dataclass_fields__:
        env_key = f"SKIPWISE_{field_name.upper()}"
        env_value = os.environ.get(env_key)

        if env_value is None:
            continue

        type_hint = type_hints.get(field_name)
        if type_hint is None:
            continue

        try:
            parsed = _parse_env_value(env_value, type_hint)
        except ValueError as e:
            raise InvalidConfigError(f"{env_key}: {e}")
        if parsed is not None:
            result[field_name] = parsed

    return result


def _parse_env_value(value: str, type_hint: Any) -> Any:
    """Parse an environment variable string to the field's type.

    Raises:
        ValueError: If value can't be parsed to expected type
    """
    origin = getattr(type_hint, "__origin__", None)

    if origin is list:
        return [item.strip() for item in value.split(",") if item.strip()]

    if type_hint is bool:
        lower = value.lower()
        if lower in ("true", "1", "yes", "on"):
            return True
        elif lower in ("false", "0", "no", "off"):
            return False
        else:
            raise ValueError(f"expected true/false, got '{value}'")

    if type_hint is int:
        return int(value)

    if type_hint is float:
        return float(value)

    if type_hint is str or origin is Literal:
        return value

    return None


def _load_toml_file(path: Path) -> dict[str, Any]:
    """Load a TOML file, accepting either top-level keys or a [skipwise] table."""
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise InvalidConfigError(str(e), source=path)

    section = data.get("skipwise", data)
    if not isinstance(section, dict):
        raise InvalidConfigError("[skipwise] must be a table", source=path)
    return dict(section)
