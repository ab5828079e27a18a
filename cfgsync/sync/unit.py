"""Single-file synchronization in one direction."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple

from .codec import contents_equal
from .conflict import ConflictResolver
from .errors import AuthFailure, RemoteNotFound, SyncError, VersionConflict
from .store import RemoteStore, SyncPair

logger = logging.getLogger("cfgsync.sync.unit")


class Direction(str, Enum):
    PUSH = "push"
    PULL = "pull"


class OutcomeKind(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED_IDENTICAL = "skipped_identical"
    FAILED = "failed"


@dataclass(frozen=True)
class TransferOutcome:
    """What happened to one sync pair."""

    path: str
    kind: OutcomeKind
    reason: str = ""
    error: Optional[BaseException] = None
    ladder: Tuple[str, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.kind is not OutcomeKind.FAILED

    @property
    def remote_absent(self) -> bool:
        return isinstance(self.error, RemoteNotFound)

    @classmethod
    def failed(cls, path: str, error: BaseException) -> "TransferOutcome":
        return cls(path=path, kind=OutcomeKind.FAILED, reason=str(error) or type(error).__name__, error=error)


def _read_local(path: Path) -> Optional[bytes]:
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return None


def _write_local(path: Path, content: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)


class FileSyncUnit:
    """Reconciles one (local, remote) pair against a RemoteStore.

    Per-file errors are converted into a ``FAILED`` outcome here so sibling
    units never see them. ``AuthFailure`` is the exception: it is fatal for
    the whole run and propagates.
    """

    def __init__(self, store: RemoteStore, resolver: Optional[ConflictResolver] = None) -> None:
        self.store = store
        self.resolver = resolver or ConflictResolver(store)

    async def sync(self, pair: SyncPair, direction: Direction, force: bool) -> TransferOutcome:
        if direction is Direction.PUSH:
            return await self.push(pair, force)
        return await self.pull(pair, force)

    async def push(self, pair: SyncPair, force: bool) -> TransferOutcome:
        path = pair.remote_path
        try:
            content = await asyncio.to_thread(_read_local, pair.local_path)
            if content is None:
                raise FileNotFoundError(f"local file does not exist: {pair.local_path}")
            return await self._push_content(path, content, force)
        except AuthFailure:
            raise
        except (SyncError, OSError) as exc:
            logger.warning("Push of %s failed: %s", path, exc)
            return TransferOutcome.failed(path, exc)

    async def _push_content(self, path: str, content: bytes, force: bool) -> TransferOutcome:
        remote = await self.store.get_file(path)
        if remote is not None and not force and contents_equal(remote.content, content):
            logger.debug("Remote %s already identical, skipping", path)
            return TransferOutcome(path=path, kind=OutcomeKind.SKIPPED_IDENTICAL)

        token = remote.version_token if remote is not None else None
        if token is None:
            message = f"Create {path}"
        else:
            message = f"Update {path}{' (forced)' if force else ''}"

        try:
            await self.store.put_file(path, content, token, message)
        except VersionConflict as conflict:
            logger.info("Version conflict writing %s, handing to resolver", path)
            resolution = await self.resolver.resolve(
                path, content, conflict, force=force, known_token=token
            )
            return TransferOutcome(
                path=path,
                kind=OutcomeKind.CREATED if resolution.created else OutcomeKind.UPDATED,
                reason=f"resolved via {resolution.state.value}",
                ladder=tuple(state.value for state in resolution.attempts),
            )

        kind = OutcomeKind.CREATED if token is None else OutcomeKind.UPDATED
        logger.debug("%s %s", kind.value.capitalize(), path)
        return TransferOutcome(path=path, kind=kind)

    async def pull(self, pair: SyncPair, force: bool) -> TransferOutcome:
        path = pair.remote_path
        try:
            remote = await self.store.get_file(path)
            if remote is None:
                raise RemoteNotFound(f"'{path}' does not exist in the remote store", status=404)

            local = await asyncio.to_thread(_read_local, pair.local_path)
            if local is not None and not force and contents_equal(local, remote.content):
                logger.debug("Local %s already identical, skipping", pair.local_path)
                return TransferOutcome(path=path, kind=OutcomeKind.SKIPPED_IDENTICAL)

            await asyncio.to_thread(_write_local, pair.local_path, remote.content)
        except AuthFailure:
            raise
        except RemoteNotFound as exc:
            logger.debug("Pull of %s skipped: %s", path, exc)
            return TransferOutcome.failed(path, exc)
        except (SyncError, OSError) as exc:
            logger.warning("Pull of %s failed: %s", path, exc)
            return TransferOutcome.failed(path, exc)

        logger.debug("Wrote %s from %s", pair.local_path, path)
        return TransferOutcome(
            path=path,
            kind=OutcomeKind.CREATED if local is None else OutcomeKind.UPDATED,
        )


__all__ = ["Direction", "OutcomeKind", "TransferOutcome", "FileSyncUnit"]
