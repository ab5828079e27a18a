"""Slash command registry for the cfgsync CLI and its Rich output helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
from io import StringIO
import shutil
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from rich.console import Console
from rich.table import Table

from .configuration import ConfigurationBundle

SlashCommandHandler = Callable[["SlashCommandContext", List[str]], str]

# Below this Rich wraps tables into unreadable columns.
MIN_WIDTH = 20
MIN_HEIGHT = 10


@dataclass
class SlashCommandContext:
    """What a handler sees: the loaded config and the session's shared state."""

    config: ConfigurationBundle
    router: "CommandRouter"
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SlashCommand:
    name: str
    description: str
    handler: SlashCommandHandler
    requires_ready: bool = False

    @property
    def key(self) -> str:
        return self.name.lower()


class CommandRouter:
    """Dispatches ``/name args...`` to registered commands.

    ``metadata`` is shared by every invocation on the router, which is how
    ``/sync failures`` finds the report of the preceding ``/sync push``.
    """

    def __init__(
        self,
        config: ConfigurationBundle,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.config = config
        self.metadata: Dict[str, Any] = metadata if metadata is not None else {}
        self._registry: Dict[str, SlashCommand] = {}

    def register(self, command: SlashCommand) -> None:
        self._registry[command.key] = command

    def register_all(self, commands: Iterable[SlashCommand]) -> None:
        for command in commands:
            self.register(command)

    def get(self, command_name: str) -> Optional[SlashCommand]:
        return self._registry.get(command_name.lower())

    @property
    def command_names(self) -> Sequence[str]:
        return sorted(self._registry)

    def commands(self) -> Sequence[SlashCommand]:
        return [self._registry[key] for key in self.command_names]

    def handle(self, command_name: str, args: List[str]) -> str:
        command = self.get(command_name)
        if command is None:
            return f"[router] Unknown command '{command_name}'. Use /help to list commands."
        status = self.config.status
        if command.requires_ready and status != "ready":
            return f"[router] '/{command.name}' requires a ready configuration (current status: {status})."
        return command.handler(SlashCommandContext(self.config, self, self.metadata), args)


def render_rich(render_fn: Callable[[Console], None]) -> str:
    """Capture what ``render_fn`` prints to a Rich console as styled text."""

    columns, lines = shutil.get_terminal_size(fallback=(80, 24))
    console = Console(
        file=StringIO(),
        record=True,
        force_terminal=True,
        color_system="auto",
        width=max(MIN_WIDTH, columns),
        height=max(MIN_HEIGHT, lines),
    )
    render_fn(console)
    return console.export_text(clear=False, styles=True)


def render_help_table(commands: Sequence[SlashCommand]) -> str:
    table = Table(title="Commands", header_style="bold cyan")
    table.add_column("Command", style="green", no_wrap=True)
    table.add_column("Description")
    for command in commands:
        table.add_row(f"/{command.name}", command.description)
    return render_rich(lambda console: console.print(table))


__all__ = [
    "CommandRouter",
    "SlashCommand",
    "SlashCommandContext",
    "render_help_table",
    "render_rich",
]
