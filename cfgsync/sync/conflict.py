"""Fallback ladder for version conflicts on push."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

from .errors import (
    AuthFailure,
    ConflictUnresolved,
    RateLimited,
    RemoteNotFound,
    RemoteStoreError,
    SchemaError,
    VersionConflict,
)
from .store import FileMode, ObjectType, RemoteStore, TreeEntry

logger = logging.getLogger("cfgsync.sync.conflict")

_TOKEN_RE = re.compile(r"^[0-9a-f]{40}$")


class LadderState(str, Enum):
    """States walked by the resolver; one per rung plus the two terminals."""

    INITIAL = "initial"
    RETRIED = "retried"
    RECREATED = "recreated"
    TREE_REWRITTEN = "tree_rewritten"
    RAW_FALLBACK = "raw_fallback"
    RESOLVED = "resolved"
    EXHAUSTED = "exhausted"


def usable_token(token: Optional[str]) -> bool:
    return bool(token) and bool(_TOKEN_RE.match(token.lower()))


@dataclass
class Resolution:
    """Outcome of a successful ladder walk."""

    path: str
    state: LadderState
    created: bool
    attempts: List[LadderState] = field(default_factory=list)


@dataclass
class _LadderRun:
    """Mutable bookkeeping for one walk. Never shared between files."""

    path: str
    content: bytes
    known_token: Optional[str]
    last_error: RemoteStoreError
    attempts: List[LadderState] = field(default_factory=list)
    created: bool = False


Rung = Callable[[_LadderRun], Awaitable[None]]


def rebuild_tree(
    entries: Sequence[TreeEntry],
    path: str,
    blob: str,
) -> List[TreeEntry]:
    """Copy a recursive tree listing, pointing ``path`` at ``blob``.

    Subdirectory entries are dropped because the nested blob paths already
    describe them; keeping both would make the store reject the tree.
    """
    rebuilt: List[TreeEntry] = []
    replaced = False
    for entry in entries:
        if entry.object_type is ObjectType.TREE:
            continue
        if entry.path == path:
            mode = entry.mode if entry.mode in (FileMode.REGULAR, FileMode.EXECUTABLE) else FileMode.REGULAR
            rebuilt.append(TreeEntry(path, mode, ObjectType.BLOB, blob))
            replaced = True
        else:
            rebuilt.append(entry)
    if not replaced:
        rebuilt.append(TreeEntry(path, FileMode.REGULAR, ObjectType.BLOB, blob))
    return rebuilt


class ConflictResolver:
    """Recovers from ``VersionConflict`` by escalating through the ladder.

    Rungs run in order and stop at the first success:

    * retry with a refreshed token (hint from the error, else a re-fetch)
    * delete the file and create it again
    * rewrite the default branch tree with a new commit
    * raw metadata read plus conditional write, only when the structured
      responses could not be parsed

    Without ``force`` only the token retry runs; if it fails the conflict
    is terminal.
    """

    def __init__(self, store: RemoteStore) -> None:
        self.store = store
        self._rungs: Tuple[Tuple[LadderState, Rung], ...] = (
            (LadderState.RETRIED, self._retry_with_current_token),
            (LadderState.RECREATED, self._delete_and_recreate),
            (LadderState.TREE_REWRITTEN, self._rewrite_tree),
            (LadderState.RAW_FALLBACK, self._raw_conditional_write),
        )

    async def resolve(
        self,
        path: str,
        content: bytes,
        conflict: VersionConflict,
        *,
        force: bool,
        known_token: Optional[str] = None,
    ) -> Resolution:
        rungs = self._rungs if force else self._rungs[:1]
        run = _LadderRun(path=path, content=content, known_token=known_token, last_error=conflict)
        for rung_state, rung in rungs:
            if rung_state is LadderState.RAW_FALLBACK and not isinstance(run.last_error, SchemaError):
                logger.debug("Skipping raw fallback for %s: structured API still usable", path)
                continue
            run.attempts.append(rung_state)
            logger.info("Conflict on %s: attempting %s", path, rung_state.value)
            try:
                await rung(run)
            except (AuthFailure, RateLimited):
                raise
            except RemoteStoreError as exc:
                logger.warning("Rung %s failed for %s: %s", rung_state.value, path, exc)
                run.last_error = exc
                continue
            logger.info("Conflict on %s %s via %s", path, LadderState.RESOLVED.value, rung_state.value)
            return Resolution(path=path, state=rung_state, created=run.created, attempts=run.attempts)

        logger.error("Conflict ladder %s for %s", LadderState.EXHAUSTED.value, path)
        raise ConflictUnresolved(path, [s.value for s in run.attempts], run.last_error)

    # -- token resolution -----------------------------------------------------------

    async def _current_token(self, run: _LadderRun) -> Optional[str]:
        """Error hint first, then a fresh read, then the last token we knew."""
        hint = getattr(run.last_error, "current_token", None)
        if usable_token(hint):
            logger.debug("Using token hint %s... for %s", hint[:8], run.path)
            return hint
        try:
            state = await self.store.get_file(run.path)
        except (AuthFailure, RateLimited):
            raise
        except RemoteStoreError as exc:
            logger.debug("Token re-fetch failed for %s: %s", run.path, exc)
            return run.known_token
        if state is None:
            return None
        run.known_token = state.version_token
        return state.version_token

    # -- rungs ------------------------------------------------------------------------

    async def _retry_with_current_token(self, run: _LadderRun) -> None:
        token = await self._current_token(run)
        await self.store.put_file(
            run.path,
            run.content,
            token,
            f"Update {run.path} (version conflict repair)",
        )
        run.created = token is None

    async def _delete_and_recreate(self, run: _LadderRun) -> None:
        token = await self._current_token(run)
        if token is not None:
            await self.store.delete_file(
                run.path, token, f"Delete {run.path} (before forced overwrite)"
            )
        await self.store.put_file(run.path, run.content, None, f"Create {run.path} (forced overwrite)")
        run.created = token is None

    async def _rewrite_tree(self, run: _LadderRun) -> None:
        head = await self.store.get_default_branch_head()
        commit = await self.store.get_commit(head.commit)
        snapshot = await self.store.get_tree(commit.tree, recursive=True)
        if snapshot.truncated:
            raise RemoteStoreError(f"tree {commit.tree} listing is truncated; refusing to rewrite it")
        blob = await self.store.create_blob(run.content)
        existed = any(entry.path == run.path for entry in snapshot.entries)
        tree = await self.store.create_tree(rebuild_tree(snapshot.entries, run.path, blob))
        new_commit = await self.store.create_commit(
            f"Force overwrite {run.path} via tree rewrite", tree, [head.commit]
        )
        await self.store.update_ref(head.branch, new_commit, force=True)
        run.created = not existed

    async def _raw_conditional_write(self, run: _LadderRun) -> None:
        try:
            metadata = await self.store.raw_read_metadata(run.path)
        except RemoteNotFound:
            metadata = {}
        token = metadata.get("sha") if isinstance(metadata.get("sha"), str) else None
        await self.store.raw_conditional_write(
            run.path, run.content, token, f"Force overwrite {run.path} (raw fallback)"
        )
        run.created = token is None


__all__ = ["ConflictResolver", "LadderState", "Resolution", "rebuild_tree", "usable_token"]
