"""``/config``: inspect the merged configuration and write CLI overrides."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Tuple

import yaml
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.tree import Tree

from ..configuration import CONFIG_SCHEMA, ConfigurationBundle, load_runtime_configuration
from ..slash_commands import SlashCommand, SlashCommandContext, render_rich

YAML_FLAGS = {"--yaml", "yaml"}
CLI_OVERRIDE_FILENAME = "99-cli-overrides.yml"
SECRET_KEYS = {("remote", "token")}
MASK = "********"

KeyPath = Tuple[str, str]


class ConfigMutationError(RuntimeError):
    """Raised when an override cannot be parsed or stored."""


def _handler(context: SlashCommandContext, args: List[str]) -> str:
    if not args or all(arg.lower() in YAML_FLAGS for arg in args):
        return _render_view(context.config, show_yaml=bool(args))
    try:
        key = _parse_key(args[0])
        if len(args) == 1:
            return _describe(key, _visible(context.config.merged)[key[0]][key[1]])
        return _store_override(context, key, " ".join(args[1:]).strip())
    except ConfigMutationError as exc:
        return f"[config] {exc}"


def _parse_key(expr: str) -> KeyPath:
    parts = [segment.strip() for segment in expr.split(".") if segment.strip()]
    if len(parts) != 2:
        raise ConfigMutationError(f"expected 'section.key', got '{expr}'.")
    section, name = parts
    if name not in CONFIG_SCHEMA.get(section, {}):
        raise ConfigMutationError(f"unknown key '{section}.{name}'.")
    return section, name


def _visible(merged: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    view = {section: dict(values) for section, values in (merged or {}).items() if isinstance(values, dict)}
    for section, name in SECRET_KEYS:
        if view.get(section, {}).get(name):
            view[section][name] = MASK
    for section, fields in CONFIG_SCHEMA.items():
        values = view.setdefault(section, {})
        for name, spec in fields.items():
            values.setdefault(name, spec.make_default())
    return view


def _describe(key: KeyPath, value: Any) -> str:
    dotted = ".".join(key)
    if value in (None, ""):
        return f"[config] {dotted} is not set."
    return f"[config] {dotted} = {_format_value(value)}"


def _store_override(context: SlashCommandContext, key: KeyPath, raw: str) -> str:
    if key in SECRET_KEYS:
        return "[config] refusing to store the credential in plain YAML; set remote.token_env instead."
    try:
        value = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ConfigMutationError(f"could not parse value: {exc}") from exc
    spec = CONFIG_SCHEMA[key[0]][key[1]]
    if not spec.accepts(value):
        raise ConfigMutationError(f"{'.'.join(key)} must be of type {spec.type_name}.")

    home_dir = context.config.home_dir
    override_path = home_dir / "config" / CLI_OVERRIDE_FILENAME
    overrides = _read_overrides(override_path)
    section = overrides.get(key[0])
    if not isinstance(section, dict):
        section = overrides[key[0]] = {}
    section[key[1]] = value
    try:
        override_path.parent.mkdir(parents=True, exist_ok=True)
        override_path.write_text(yaml.safe_dump(overrides, sort_keys=True), encoding="utf-8")
    except OSError as exc:
        raise ConfigMutationError(f"failed to write {override_path}: {exc}") from exc

    bundle = load_runtime_configuration(home_dir)
    context.router.config = bundle
    stored = bundle.merged[key[0]][key[1]]
    where = override_path.relative_to(home_dir)
    return f"[config] {'.'.join(key)} updated to {_format_value(stored)} (stored in {where})"


def _read_overrides(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigMutationError(f"could not read {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigMutationError(f"override file '{path}' must contain a mapping.")
    return data


def _format_value(value: Any) -> str:
    return f'"{value}"' if isinstance(value, str) else repr(value)


def _render_view(bundle: ConfigurationBundle, show_yaml: bool) -> str:
    visible = _visible(bundle.merged)

    files = Table(box=box.SIMPLE, header_style="bold magenta", pad_edge=False)
    files.add_column("Order", justify="right", style="magenta", no_wrap=True)
    files.add_column("File", overflow="fold", ratio=1)
    for order, path in enumerate(bundle.files_loaded, start=1):
        files.add_row(str(order), str(path))
    if not bundle.files_loaded:
        files.add_row("-", "[dim]No config files loaded[/dim]")

    tree = Tree("config", guide_style="cyan")
    for section in sorted(visible):
        branch = tree.add(f"[bold]{section}[/]")
        for name in sorted(visible[section]):
            branch.add(f"[bold]{name}[/]: {_format_value(visible[section][name])}")

    def _render(console: Console) -> None:
        console.print(Panel(files, title="Loaded Config Files", border_style="magenta"))
        console.print(Panel(tree, title=f"Merged Configuration ({bundle.status})", border_style="cyan"))
        for diagnostic in bundle.diagnostics:
            if diagnostic.level != "info":
                console.print(f"[yellow]{diagnostic.level}[/yellow]: {diagnostic.message}")
        if show_yaml:
            text = yaml.safe_dump(visible, sort_keys=True).strip()
            console.print(Panel(Syntax(text, "yaml", word_wrap=True), title="Merged Configuration (YAML)"))

    return render_rich(_render)


COMMAND = SlashCommand(
    name="config",
    description="Show merged configuration or set an override. Usage: /config [--yaml | section.key [value]]",
    handler=_handler,
)
