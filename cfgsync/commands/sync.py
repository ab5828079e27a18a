"""Command for pushing and pulling the editor configuration."""

from __future__ import annotations

import asyncio
from typing import List, Optional

from rich.console import Console
from rich.table import Table

from ..slash_commands import (
    SlashCommand,
    SlashCommandContext,
    render_rich,
)
from ..sync import BatchReport, Direction, SyncClient
from ..sync.errors import AuthFailure, RunAborted, SyncError

FORCE_FLAGS = {"--force", "-f"}
NO_FORCE_FLAGS = {"--no-force"}
YES_FLAGS = {"--yes", "-y"}
DETAIL_FLAGS = {"--details", "-d"}
LAST_REPORT_KEY = "last_report"
LAST_ERROR_KEY = "last_error"


def _handler(context: SlashCommandContext, args: List[str]) -> str:
    """Manage configuration sync."""

    if not args:
        return _show_status(context)

    subcommand = args[0].lower()
    flags = {arg.lower() for arg in args[1:]}

    if subcommand == "status":
        return _show_status(context)
    elif subcommand == "push":
        return _run_sync(context, Direction.PUSH, flags)
    elif subcommand == "pull":
        return _run_sync(context, Direction.PULL, flags)
    elif subcommand == "failures":
        return _show_failures(context.metadata.get(LAST_REPORT_KEY))
    elif subcommand == "help":
        return _show_help()
    else:
        return f"[sync] Unknown subcommand '{subcommand}'. Use /sync help for usage."


def _build_client(context: SlashCommandContext) -> SyncClient:
    kwargs = {}
    for key in ("store_factory", "env", "progress_callback"):
        if context.metadata.get(key) is not None:
            kwargs[key] = context.metadata[key]
    return SyncClient.from_config(context.config.merged, home=context.metadata.get("user_home"), **kwargs)


def _show_status(context: SlashCommandContext) -> str:
    status_info = _build_client(context).get_status()
    last_report: Optional[BatchReport] = context.metadata.get(LAST_REPORT_KEY)

    def _render(console: Console) -> None:
        table = Table(title="Config Sync Status", show_header=False)
        table.add_column("Property", style="bold")
        table.add_column("Value")

        table.add_row("Remote", status_info["remote"])
        table.add_row("API", status_info["api_url"])
        table.add_row("Branch", status_info["branch"])
        table.add_row("Credential", status_info["credential"])
        table.add_row("Batch Size", str(status_info["batch_size"]))
        table.add_row("Force Overwrite", str(status_info["force_overwrite"]))
        table.add_row("User Dir", status_info["user_dir"])
        table.add_row("Extensions Dir", status_info["extensions_dir"])
        table.add_row("Sync Extensions", str(status_info["sync_extensions"]))
        table.add_row("Local Files", str(status_info["local_files"]))
        if last_report is not None:
            table.add_row("Last Run", f"{last_report.direction.value}: {last_report.summary()}")

        console.print(table)

    return render_rich(_render)


def _resolve_force(flags: set) -> Optional[bool]:
    """Explicit flag wins; ``None`` defers to sync.force_overwrite."""
    if flags & FORCE_FLAGS:
        return True
    if flags & NO_FORCE_FLAGS:
        return False
    return None


def _run_sync(context: SlashCommandContext, direction: Direction, flags: set) -> str:
    """Run a push or pull and summarize the report."""

    if direction is Direction.PULL and not flags & YES_FLAGS:
        confirm = context.metadata.get("confirm")
        question = "Restore configuration from the remote store? Local files will be overwritten."
        if confirm is None or not confirm(question):
            context.metadata[LAST_ERROR_KEY] = RunAborted("pull not confirmed")
            return "[sync] Pull cancelled."

    context.metadata.pop(LAST_ERROR_KEY, None)
    try:
        client = _build_client(context)
        report = asyncio.run(client.run(direction, _resolve_force(flags)))
    except SyncError as exc:
        context.metadata[LAST_ERROR_KEY] = exc
        return _format_abort(direction, exc)

    context.metadata[LAST_REPORT_KEY] = report
    return _format_report(report, show_details=bool(flags & DETAIL_FLAGS))


def _format_abort(direction: Direction, exc: SyncError) -> str:
    label = direction.value.capitalize()
    if isinstance(exc, RunAborted):
        return f"[sync] {label} aborted: {exc}"
    if isinstance(exc, AuthFailure):
        return f"[sync] {label} aborted, credential rejected: {exc}"
    return f"[sync] {label} failed: {exc}"


def _format_report(report: BatchReport, show_details: bool = False) -> str:
    label = report.direction.value.capitalize()
    if report.ok:
        return f"[sync] {label} complete ({report.summary()})."

    lines = [
        f"[sync] {label} finished with {report.failure_count}/{report.total_count} failed file(s) "
        f"({report.summary()}).",
    ]
    if show_details:
        lines.append(_show_failures(report))
    else:
        lines.append("Run '/sync failures' for details.")
    return "\n".join(lines)


def _show_failures(report: Optional[BatchReport]) -> str:
    if report is None:
        return "[sync] No sync has run in this session."
    if report.ok:
        return "[sync] The last run had no failures."

    def _render(console: Console) -> None:
        table = Table(title=f"{report.direction.value.capitalize()} failures", show_header=True)
        table.add_column("File", style="cyan", overflow="fold")
        table.add_column("Error", overflow="fold")
        for failure in report.failures:
            table.add_row(failure.path, failure.error)
        console.print(table)

    return render_rich(_render)


def _show_help() -> str:
    """Show sync command help."""
    return """[sync] Usage:
  /sync                    Show sync status
  /sync status             Show sync status
  /sync push [--force|--no-force] [--details]
                           Upload local configuration
  /sync pull [--yes] [--force|--no-force] [--details]
                           Restore configuration from the remote store
  /sync failures           List the failures of the last run
  /sync help               Show this help

Configuration (in <home>/config/*.yml):
  remote:
    owner: my-user
    repo: cursor-sync
    token_env: GITHUB_TOKEN
    create_missing: false
  sync:
    batch_size: 5
    force_overwrite: true
    sync_extensions: true"""


COMMAND = SlashCommand(
    name="sync",
    description="Push or pull editor configuration. Usage: /sync [status|push|pull|failures|help]",
    handler=_handler,
)
