"""Run-level orchestration: preconditions, catalog, batches."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

from .batch import DEFAULT_BATCH_SIZE, BatchCoordinator, BatchReport, ProgressCallback
from .catalog import CatalogSettings, EditorPaths, build_pull_catalog, build_push_catalog
from .errors import RunAborted
from .github import DEFAULT_API_URL, GitHubStore
from .store import RemoteStore
from .unit import Direction, FileSyncUnit

logger = logging.getLogger("cfgsync.sync.client")

StoreFactory = Callable[["SyncSettings", str], RemoteStore]


@dataclass
class SyncSettings:
    """Settings for sync runs."""

    api_url: str = DEFAULT_API_URL
    owner: str = ""
    repo: str = "cursor-sync"
    branch: str = ""
    token: str = ""
    token_env: str = "GITHUB_TOKEN"
    timeout: float = 30.0
    user_agent: str = "cfgsync"
    create_missing: bool = False
    private: bool = True
    batch_size: int = DEFAULT_BATCH_SIZE
    force_overwrite: bool = True

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "SyncSettings":
        remote = config.get("remote", {}) if config else {}
        sync = config.get("sync", {}) if config else {}
        return cls(
            api_url=str(remote.get("api_url", DEFAULT_API_URL)),
            owner=str(remote.get("owner", "")),
            repo=str(remote.get("repo", "cursor-sync")),
            branch=str(remote.get("branch", "")),
            token=str(remote.get("token", "")),
            token_env=str(remote.get("token_env", "GITHUB_TOKEN")),
            timeout=float(remote.get("timeout", 30.0)),
            user_agent=str(remote.get("user_agent", "cfgsync")),
            create_missing=bool(remote.get("create_missing", False)),
            private=bool(remote.get("private", True)),
            batch_size=int(sync.get("batch_size", DEFAULT_BATCH_SIZE)),
            force_overwrite=bool(sync.get("force_overwrite", True)),
        )

    def resolve_token(self, env: Optional[Mapping[str, str]] = None) -> str:
        if self.token:
            return self.token
        env_source = env if env is not None else os.environ
        return env_source.get(self.token_env, "")


def _github_factory(settings: SyncSettings, token: str) -> RemoteStore:
    return GitHubStore(
        settings.owner,
        settings.repo,
        token,
        api_url=settings.api_url,
        branch=settings.branch or None,
        timeout=settings.timeout,
        user_agent=settings.user_agent,
    )


class SyncClient:
    """Mirrors the editor configuration to and from one remote store."""

    def __init__(
        self,
        settings: SyncSettings,
        paths: EditorPaths,
        catalog_settings: Optional[CatalogSettings] = None,
        *,
        store_factory: StoreFactory = _github_factory,
        env: Optional[Mapping[str, str]] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> None:
        self.settings = settings
        self.paths = paths
        self.catalog_settings = catalog_settings or CatalogSettings()
        self.store_factory = store_factory
        self.env = env
        self.progress_callback = progress_callback

    @classmethod
    def from_config(
        cls,
        config: Dict[str, Any],
        home: Optional[Path] = None,
        **kwargs: Any,
    ) -> "SyncClient":
        return cls(
            SyncSettings.from_config(config),
            EditorPaths.from_config(config, home=home),
            CatalogSettings.from_config(config),
            **kwargs,
        )

    def open_store(self) -> RemoteStore:
        """Check local preconditions and build the store handle."""
        if not self.settings.owner:
            raise RunAborted("remote.owner is not configured")
        token = self.settings.resolve_token(self.env)
        if not token:
            raise RunAborted(
                f"no credential: set remote.token or the {self.settings.token_env} environment variable"
            )
        return self.store_factory(self.settings, token)

    async def _ensure_container(self, store: RemoteStore, direction: Direction) -> None:
        check = getattr(store, "check_connection", None)
        if check is not None and not await check():
            raise RunAborted("cannot reach the remote store; check the network and credential")

        exists = getattr(store, "repository_exists", None)
        if exists is None or await exists():
            return
        name = f"{self.settings.owner}/{self.settings.repo}"
        if direction is Direction.PULL:
            raise RunAborted(f"repository {name} does not exist; push first")
        if not self.settings.create_missing:
            raise RunAborted(f"repository {name} does not exist and remote.create_missing is off")
        await store.create_repository(private=self.settings.private, description="Editor configuration sync")

    async def run(
        self,
        direction: Direction,
        force: Optional[bool] = None,
        store: Optional[RemoteStore] = None,
    ) -> BatchReport:
        force = self.settings.force_overwrite if force is None else force
        owned = store is None
        store = store or self.open_store()
        try:
            await self._ensure_container(store, direction)
            if direction is Direction.PUSH:
                pairs = build_push_catalog(self.paths, self.catalog_settings)
            else:
                pairs = await build_pull_catalog(store, self.paths, self.catalog_settings)
            coordinator = BatchCoordinator(
                FileSyncUnit(store),
                batch_size=self.settings.batch_size,
                progress_callback=self.progress_callback,
            )
            return await coordinator.run(pairs, direction, force)
        finally:
            if owned and hasattr(store, "aclose"):
                await store.aclose()

    async def push(self, force: Optional[bool] = None, store: Optional[RemoteStore] = None) -> BatchReport:
        return await self.run(Direction.PUSH, force, store)

    async def pull(self, force: Optional[bool] = None, store: Optional[RemoteStore] = None) -> BatchReport:
        return await self.run(Direction.PULL, force, store)

    def get_status(self) -> Dict[str, Any]:
        return {
            "remote": f"{self.settings.owner or '(owner not set)'}/{self.settings.repo}",
            "api_url": self.settings.api_url,
            "branch": self.settings.branch or "(default)",
            "credential": "configured" if self.settings.resolve_token(self.env) else "missing",
            "batch_size": self.settings.batch_size,
            "force_overwrite": self.settings.force_overwrite,
            "user_dir": str(self.paths.user_dir),
            "extensions_dir": str(self.paths.extensions_dir),
            "sync_extensions": self.catalog_settings.sync_extensions,
            "local_files": len(build_push_catalog(self.paths, self.catalog_settings)),
        }


__all__ = ["SyncClient", "SyncSettings"]
