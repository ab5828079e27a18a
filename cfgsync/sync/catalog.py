"""Builds the list of sync pairs for the editor's configuration files."""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .store import ManyFiles, RemoteStore, SyncPair

logger = logging.getLogger("cfgsync.sync.catalog")

DEFAULT_EXTENSIONS: Tuple[str, ...] = (
    "qianggaogao.vscode-gutter-preview-cn-0.32.2",
    "zh-community.insertseq-zh-0.10.1-zh",
)
DEFAULT_EXTENSION_FILES: Tuple[str, ...] = (
    "package.json",
    "README.md",
    "extension.vsixmanifest",
    "extension.js",
)
DEFAULT_SNIPPET_SUFFIXES: Tuple[str, ...] = (".json", ".code-snippets")

SNIPPETS_PREFIX = "snippets"
EXTENSIONS_PREFIX = "extensions"


def default_user_dir(
    platform: Optional[str] = None,
    home: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
) -> Path:
    """Where the editor keeps settings.json on this platform."""
    platform = platform or sys.platform
    home = home or Path.home()
    env = env if env is not None else os.environ
    if platform == "darwin":
        return home / "Library" / "Application Support" / "Cursor" / "User"
    if platform.startswith("win"):
        appdata = env.get("APPDATA")
        base = Path(appdata) if appdata else home / "AppData" / "Roaming"
        return base / "Cursor" / "User"
    return home / ".config" / "Cursor" / "User"


@dataclass
class EditorPaths:
    """Local locations of the editor files that get mirrored."""

    user_dir: Path
    extensions_dir: Path
    mcp_path: Path

    @property
    def settings_path(self) -> Path:
        return self.user_dir / "settings.json"

    @property
    def keybindings_path(self) -> Path:
        return self.user_dir / "keybindings.json"

    @property
    def snippets_dir(self) -> Path:
        return self.user_dir / "snippets"

    @property
    def extensions_json_path(self) -> Path:
        return self.extensions_dir / "extensions.json"

    def basic_pairs(self) -> List[SyncPair]:
        return [
            SyncPair(self.mcp_path, "mcp.json"),
            SyncPair(self.extensions_json_path, "extensions.json"),
            SyncPair(self.keybindings_path, "keybindings.json"),
            SyncPair(self.settings_path, "settings.json"),
        ]

    @classmethod
    def from_config(cls, config: Dict[str, Any], home: Optional[Path] = None) -> "EditorPaths":
        raw = config.get("paths", {}) if config else {}
        home = home or Path.home()
        user_dir = raw.get("user_dir") or default_user_dir(home=home)
        extensions_dir = raw.get("extensions_dir") or home / ".cursor" / "extensions"
        mcp_path = raw.get("mcp_path") or home / ".cursor" / "mcp.json"
        return cls(
            user_dir=Path(user_dir).expanduser(),
            extensions_dir=Path(extensions_dir).expanduser(),
            mcp_path=Path(mcp_path).expanduser(),
        )


@dataclass
class CatalogSettings:
    sync_extensions: bool = True
    extensions: Tuple[str, ...] = DEFAULT_EXTENSIONS
    extension_files: Tuple[str, ...] = DEFAULT_EXTENSION_FILES
    snippet_suffixes: Tuple[str, ...] = DEFAULT_SNIPPET_SUFFIXES

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "CatalogSettings":
        raw = config.get("sync", {}) if config else {}
        return cls(
            sync_extensions=bool(raw.get("sync_extensions", True)),
            extensions=tuple(e.strip() for e in raw.get("extensions", DEFAULT_EXTENSIONS) if e.strip()),
            extension_files=tuple(raw.get("extension_files", DEFAULT_EXTENSION_FILES)),
            snippet_suffixes=tuple(raw.get("snippet_suffixes", DEFAULT_SNIPPET_SUFFIXES)),
        )

    def is_snippet(self, name: str) -> bool:
        return name.endswith(self.snippet_suffixes)


def build_push_catalog(paths: EditorPaths, settings: CatalogSettings) -> List[SyncPair]:
    """Pairs for every local file that exists and should be uploaded."""

    pairs: List[SyncPair] = []
    for pair in paths.basic_pairs():
        if pair.local_path.is_file():
            pairs.append(pair)
        else:
            logger.info("Local file missing, skipping: %s", pair.local_path)

    if paths.snippets_dir.is_dir():
        for snippet in sorted(paths.snippets_dir.iterdir()):
            if snippet.is_file() and settings.is_snippet(snippet.name):
                pairs.append(SyncPair(snippet, f"{SNIPPETS_PREFIX}/{snippet.name}"))
    else:
        logger.info("Snippets directory missing, skipping: %s", paths.snippets_dir)

    if settings.sync_extensions:
        for ext_id in settings.extensions:
            ext_dir = paths.extensions_dir / ext_id
            if not ext_dir.is_dir():
                logger.info("Extension directory missing, skipping: %s", ext_dir)
                continue
            for name in settings.extension_files:
                candidate = ext_dir / name
                if candidate.is_file():
                    pairs.append(SyncPair(candidate, f"{EXTENSIONS_PREFIX}/{ext_id}/{name}"))
    else:
        logger.info("Extension sync disabled by configuration")

    logger.info("Push catalog holds %d file(s)", len(pairs))
    return pairs


async def _list_remote_files(store: RemoteStore, prefix: str) -> List[str]:
    listing = await store.list_directory(prefix)
    if listing is None:
        logger.info("Remote directory %s does not exist, skipping", prefix)
        return []
    if not isinstance(listing, ManyFiles):
        logger.warning("Remote path %s is a file, expected a directory", prefix)
        return []
    return [item.name for item in listing.files()]


async def build_pull_catalog(
    store: RemoteStore,
    paths: EditorPaths,
    settings: CatalogSettings,
) -> List[SyncPair]:
    """Pairs for everything that may be downloaded.

    The basic files are always requested; missing ones are reported as
    skipped by the coordinator. Snippets and extension files are discovered
    by listing the remote directories.
    """

    pairs: List[SyncPair] = list(paths.basic_pairs())

    for name in await _list_remote_files(store, SNIPPETS_PREFIX):
        if settings.is_snippet(name):
            pairs.append(SyncPair(paths.snippets_dir / name, f"{SNIPPETS_PREFIX}/{name}"))

    if settings.sync_extensions:
        allowed = set(settings.extension_files)
        for ext_id in settings.extensions:
            prefix = f"{EXTENSIONS_PREFIX}/{ext_id}"
            for name in await _list_remote_files(store, prefix):
                if name in allowed:
                    pairs.append(SyncPair(paths.extensions_dir / ext_id / name, f"{prefix}/{name}"))

    logger.info("Pull catalog holds %d file(s)", len(pairs))
    return pairs


__all__ = [
    "EditorPaths",
    "CatalogSettings",
    "build_push_catalog",
    "build_pull_catalog",
    "default_user_dir",
    "DEFAULT_EXTENSIONS",
    "DEFAULT_EXTENSION_FILES",
    "DEFAULT_SNIPPET_SUFFIXES",
]
