"""Layered YAML configuration for cfgsync.

Repository defaults live in ``<repo>/config``; per-user overrides in
``<home>/config``. Both are directories of ``*.yml``/``*.yaml`` files merged
in name order. Every section is a flat mapping of typed fields.
"""

from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Literal, Mapping, MutableMapping, Optional, Tuple

import yaml

from .sync.catalog import DEFAULT_EXTENSION_FILES, DEFAULT_EXTENSIONS, DEFAULT_SNIPPET_SUFFIXES

REPO_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_DIR = REPO_ROOT / "config"
HOME_ENV = "CFGSYNC_HOME"
DEFAULT_HOME = "~/.cfgsync"

DiagnosticLevel = Literal["info", "warning", "error"]
ConfigurationStatus = Literal["ready", "missing", "invalid"]


@dataclass(frozen=True)
class Field:
    """One typed configuration value."""

    types: Tuple[type, ...]
    default: Any = None
    item_type: Optional[type] = None
    minimum: Optional[float] = None
    default_factory: Optional[Callable[[], Any]] = None

    def make_default(self) -> Any:
        if self.default_factory is not None:
            return self.default_factory()
        return deepcopy(self.default)

    @property
    def type_name(self) -> str:
        return " or ".join(t.__name__ for t in self.types)

    def accepts(self, value: Any) -> bool:
        # YAML turns "yes" into True; a bool is never a valid number here.
        if isinstance(value, bool):
            return bool in self.types
        return isinstance(value, self.types)


def _str(default: str = "") -> Field:
    return Field((str,), default)


def _flag(default: bool) -> Field:
    return Field((bool,), default)


def _names(defaults: Tuple[str, ...]) -> Field:
    return Field((list,), item_type=str, default_factory=lambda: list(defaults))


CONFIG_SCHEMA: Dict[str, Dict[str, Field]] = {
    "logging": {
        "level": _str("WARNING"),
        "structured": _flag(True),
    },
    "remote": {
        "api_url": _str("https://api.github.com"),
        "owner": _str(),
        "repo": _str("cursor-sync"),
        "branch": _str(),
        "token": _str(),
        "token_env": _str("GITHUB_TOKEN"),
        "timeout": Field((int, float), 30, minimum=1),
        "user_agent": _str("cfgsync"),
        "create_missing": _flag(False),
        "private": _flag(True),
    },
    "sync": {
        "batch_size": Field((int,), 5, minimum=1),
        "force_overwrite": _flag(True),
        "sync_extensions": _flag(True),
        "extensions": _names(DEFAULT_EXTENSIONS),
        "extension_files": _names(DEFAULT_EXTENSION_FILES),
        "snippet_suffixes": _names(DEFAULT_SNIPPET_SUFFIXES),
    },
    "paths": {
        "user_dir": _str(),
        "extensions_dir": _str(),
        "mcp_path": _str(),
    },
}


@dataclass
class Diagnostic:
    """A configuration loading or validation issue."""

    level: DiagnosticLevel
    message: str
    source: Optional[Path] = None


@dataclass
class ConfigurationBundle:
    """Everything cfgsync needs from configuration at runtime."""

    home_dir: Path
    status: ConfigurationStatus
    merged: Dict[str, Any] = field(default_factory=dict)
    repo_defaults: Dict[str, Any] = field(default_factory=dict)
    overrides: Dict[str, Any] = field(default_factory=dict)
    files_loaded: List[Path] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    log_path: Optional[Path] = None

    def has_errors(self) -> bool:
        return any(diag.level == "error" for diag in self.diagnostics)


def resolve_home_dir(
    env: Optional[Mapping[str, str]] = None,
    default: str = DEFAULT_HOME,
) -> Path:
    """Resolve the cfgsync home directory from the environment."""

    env_source = env if env is not None else os.environ
    raw = env_source.get(HOME_ENV) or default
    return Path(raw).expanduser()


def load_runtime_configuration(
    home_dir: Optional[Path] = None,
    defaults_dir: Path = DEFAULT_CONFIG_DIR,
) -> ConfigurationBundle:
    """Load repository defaults, then overrides from ``<home>/config``."""

    bundle = ConfigurationBundle(home_dir=home_dir or resolve_home_dir(), status="ready")
    bundle.repo_defaults = _read_config_dir(defaults_dir, "repo defaults", bundle)

    home = bundle.home_dir
    if not home.exists():
        # A fresh install has no home yet; defaults still apply.
        bundle.diagnostics.append(
            Diagnostic("info", f"Home directory '{home}' does not exist; using defaults.")
        )
    elif not home.is_dir():
        bundle.diagnostics.append(Diagnostic("error", f"Home path '{home}' is not a directory."))
    else:
        bundle.overrides = _read_config_dir(home / "config", "home overrides", bundle)

    merged = deepcopy(bundle.repo_defaults)
    _deep_merge(merged, bundle.overrides)
    bundle.merged = _apply_schema(merged, bundle.diagnostics)

    if bundle.has_errors():
        bundle.status = "invalid"
    elif not bundle.merged["remote"]["owner"]:
        bundle.diagnostics.append(
            Diagnostic("warning", "'config.remote.owner' is not set; sync runs will abort.")
        )
        bundle.status = "missing"
    return bundle


def _read_config_dir(directory: Path, label: str, bundle: ConfigurationBundle) -> Dict[str, Any]:
    """Merge every YAML file of ``directory`` in name order."""

    data: Dict[str, Any] = {}
    if not directory.is_dir():
        level: DiagnosticLevel = "error" if directory.exists() else "info"
        problem = "is not a directory" if directory.exists() else "was not found"
        bundle.diagnostics.append(
            Diagnostic(level, f"Configuration directory '{directory}' ({label}) {problem}.", directory)
        )
        return data

    for path in sorted([*directory.glob("*.yml"), *directory.glob("*.yaml")]):
        try:
            content = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as exc:
            bundle.diagnostics.append(Diagnostic("error", f"Failed to parse '{path}': {exc}", path))
            continue
        if content is not None and not isinstance(content, MutableMapping):
            bundle.diagnostics.append(
                Diagnostic("warning", f"Ignoring '{path}': top level is not a mapping.", path)
            )
            continue
        _deep_merge(data, content or {})
        bundle.files_loaded.append(path)
    return data


def _deep_merge(dest: MutableMapping[str, Any], source: Mapping[str, Any]) -> None:
    for key, value in source.items():
        current = dest.get(key)
        if isinstance(current, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(current, value)
        else:
            dest[key] = deepcopy(value)


def _apply_schema(raw: Dict[str, Any], diagnostics: List[Diagnostic]) -> Dict[str, Any]:
    """Return a fully populated config; bad values fall back to defaults."""

    def report(level: DiagnosticLevel, message: str) -> None:
        diagnostics.append(Diagnostic(level, message))

    for name in raw.keys() - CONFIG_SCHEMA.keys():
        report("warning", f"Unknown configuration key 'config.{name}'.")

    result: Dict[str, Any] = {}
    for section, fields in CONFIG_SCHEMA.items():
        supplied = raw.get(section)
        if supplied is None:
            supplied = {}
        elif not isinstance(supplied, Mapping):
            report("error", f"'config.{section}' must be a mapping.")
            supplied = {}

        for name in supplied.keys() - fields.keys():
            report("warning", f"Unknown configuration key 'config.{section}.{name}'.")

        values: Dict[str, Any] = {}
        for name, spec in fields.items():
            values[name] = _checked_value(f"config.{section}.{name}", supplied.get(name), spec, report)
        result[section] = values
    return result


def _checked_value(
    dotted: str,
    value: Any,
    spec: Field,
    report: Callable[[DiagnosticLevel, str], None],
) -> Any:
    if value is None:
        return spec.make_default()
    if not spec.accepts(value):
        report("error", f"'{dotted}' must be of type {spec.type_name}.")
        return spec.make_default()
    if spec.minimum is not None and value < spec.minimum:
        report("error", f"'{dotted}' must be at least {spec.minimum}.")
        return spec.make_default()
    if spec.item_type is not None:
        kept = [item for item in value if isinstance(item, spec.item_type)]
        if len(kept) != len(value):
            report("error", f"'{dotted}' entries must be of type {spec.item_type.__name__}.")
        return kept
    return value


__all__ = [
    "ConfigurationBundle",
    "ConfigurationStatus",
    "CONFIG_SCHEMA",
    "DEFAULT_CONFIG_DIR",
    "Diagnostic",
    "Field",
    "HOME_ENV",
    "load_runtime_configuration",
    "resolve_home_dir",
]
