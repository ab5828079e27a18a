# cfgsync/app.py
"""
Command-line entry point for cfgsync.

``cfgsync sync push`` runs one command and exits; ``cfgsync`` with no
arguments starts an interactive prompt that accepts the same commands.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
try:
    import readline
except ImportError:  # pragma: no cover
    readline = None
import sys
from typing import List, Optional, Sequence

from .commands import COMMANDS
from .configuration import (
    ConfigurationBundle,
    Diagnostic,
    load_runtime_configuration,
    resolve_home_dir,
)
from .logging_utils import setup_logging
from .slash_commands import CommandRouter

REPO_ROOT = Path(__file__).resolve().parent.parent
logger = logging.getLogger("cfgsync")
LOG_LEVEL_ENV = "CFGSYNC_LOG_LEVEL"
YES_ANSWERS = {"y", "yes"}


def _log_path_within_home(log_path: Path, home_dir: Path) -> bool:
    try:
        log_path.relative_to(home_dir)
        return True
    except ValueError:
        return False


def confirm_prompt(question: str) -> bool:
    """Ask a yes/no question on the terminal; anything but yes is a no."""

    try:
        answer = input(f"{question} [y/N] ")
    except (EOFError, KeyboardInterrupt):
        print()
        return False
    return answer.strip().lower() in YES_ANSWERS


def print_progress(message: str, current: int, total: int) -> None:
    print(f"[sync] {message} ({current}/{total})")


def build_router(config: ConfigurationBundle, *, interactive: bool = True) -> CommandRouter:
    """Register every command on a fresh router."""

    metadata = {
        "repo_root": str(REPO_ROOT),
        "progress_callback": print_progress,
    }
    if interactive:
        metadata["confirm"] = confirm_prompt
    router = CommandRouter(config, metadata=metadata)
    router.register_all(COMMANDS)
    return router


def emit_configuration_report(config: ConfigurationBundle) -> None:
    """Print diagnostics so users can correct issues quickly."""

    problems = [diag for diag in config.diagnostics if diag.level != "info"]
    if not problems:
        logger.info("Loaded %d config file(s)", len(config.files_loaded))
        return

    print("[config] Diagnostics:", file=sys.stderr)
    for diag in problems:
        prefix = diag.source or config.home_dir
        print(f"  - ({diag.level.upper()}) {diag.message} [{prefix}]", file=sys.stderr)


def configure_autocomplete(router: CommandRouter) -> None:
    """Enable readline tab completion for command names."""

    if readline is None:
        return

    commands = list(router.command_names)

    def completer(text: str, state: int):
        fragment = text[1:] if text.startswith("/") else text
        matches = [f"/{cmd}" for cmd in commands if cmd.startswith(fragment)]
        if state < len(matches):
            return matches[state]
        return None

    readline.set_completer(completer)
    readline.parse_and_bind("tab: complete")
    readline.set_completer_delims(" \t")


def execute_cli_command(command_line: str, router: CommandRouter) -> str:
    """Run one command line through the router and print the result."""

    stripped = command_line.strip().lstrip("/")
    if not stripped:
        return ""
    parts = stripped.split()
    result = router.handle(parts[0], parts[1:])
    print(result)
    logger.info("Executed command: %s", stripped)
    return result


def bootstrap(home_dir: Optional[Path] = None) -> ConfigurationBundle:
    """Load configuration and start logging."""

    config_bundle = load_runtime_configuration(home_dir or resolve_home_dir())
    logging_cfg = (config_bundle.merged or {}).get("logging", {}) or {}
    level_name = (os.environ.get(LOG_LEVEL_ENV) or logging_cfg.get("level") or "WARNING").upper()
    log_path = setup_logging(
        config_bundle.home_dir,
        level_name,
        structured=bool(logging_cfg.get("structured", True)),
    )
    config_bundle.log_path = log_path
    if not _log_path_within_home(log_path, config_bundle.home_dir):
        config_bundle.diagnostics.append(
            Diagnostic(
                level="warning",
                message=f"Home log directory is not writable; logging to fallback path '{log_path}'.",
                source=log_path,
            )
        )
    logger.info("Logging initialized at %s", log_path)
    return config_bundle


def run_interactive(router: CommandRouter) -> None:
    configure_autocomplete(router)
    print("cfgsync ready. Type /help for commands, 'exit' to quit.")
    while True:
        try:
            line = input("> ").strip()
        except (EOFError, KeyboardInterrupt):
            print("\n[Exiting cfgsync]")
            break

        if line.lower() in {"quit", "exit", "/quit", "/exit"}:
            print("[Goodbye]")
            break
        if not line:
            continue
        execute_cli_command(line, router)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point for `python -m cfgsync` and the ``cfgsync`` script."""

    args: List[str] = list(sys.argv[1:] if argv is None else argv)
    config_bundle = bootstrap()
    emit_configuration_report(config_bundle)

    if not args:
        run_interactive(build_router(config_bundle, interactive=True))
        return 0

    router = build_router(config_bundle, interactive=sys.stdin.isatty())
    execute_cli_command(" ".join(args), router)
    if router.metadata.get("last_error") is not None:
        return 2
    report = router.metadata.get("last_report")
    if report is not None and not report.ok:
        return 1
    return 0


__all__ = ["main", "build_router", "bootstrap", "emit_configuration_report", "execute_cli_command"]
