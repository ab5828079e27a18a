"""Shared fixtures: an in-memory RemoteStore with call recording and fault injection."""

from __future__ import annotations

from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pytest

from cfgsync.sync.codec import blob_hash
from cfgsync.sync.errors import RemoteNotFound, VersionConflict
from cfgsync.sync.store import (
    BranchHead,
    CommitInfo,
    FileMode,
    ListingItem,
    ManyFiles,
    ObjectType,
    RemoteFileState,
    RemoteStore,
    SingleFile,
    TreeEntry,
    TreeSnapshot,
)


class InMemoryStore(RemoteStore):
    """Store double that behaves like the real contents API.

    ``calls`` records ``(operation, argument)`` in order. ``fail()`` queues
    exceptions that the next matching calls raise before doing anything.
    """

    def __init__(self, files: Optional[Dict[str, bytes]] = None, *, exists: bool = True) -> None:
        self.files: Dict[str, bytes] = dict(files or {})
        self.blobs: Dict[str, bytes] = {blob_hash(c): c for c in self.files.values()}
        self.calls: List[Tuple[str, Any]] = []
        self.ref_updates: List[Tuple[str, str, bool]] = []
        self.commit_messages: List[str] = []
        self.truncated_tree = False
        self.exists = exists
        self.reachable = True
        self.created_repo = False
        self.closed = False
        self.head = "commit-0"
        self._pending_tree: List[TreeEntry] = []
        self._trees: Dict[str, List[TreeEntry]] = {}
        self._failures: Dict[Tuple[str, Optional[str]], List[BaseException]] = defaultdict(list)

    # -- test helpers -----------------------------------------------------------------

    def fail(self, operation: str, path: Optional[str] = None, *errors: BaseException) -> None:
        self._failures[(operation, path)].extend(errors)

    def token(self, path: str) -> str:
        return blob_hash(self.files[path])

    def operations(self, path: Optional[str] = None) -> List[str]:
        return [op for op, arg in self.calls if path is None or arg == path]

    def _enter(self, operation: str, arg: Any = None) -> None:
        self.calls.append((operation, arg))
        for key in ((operation, arg), (operation, None)):
            queue = self._failures.get(key)
            if queue:
                raise queue.pop(0)

    # -- container --------------------------------------------------------------------

    async def check_connection(self) -> bool:
        self._enter("check_connection")
        return self.reachable

    async def repository_exists(self) -> bool:
        self._enter("repository_exists")
        return self.exists

    async def create_repository(self, *, private: bool = True, description: str = "") -> None:
        self._enter("create_repository")
        self.exists = True
        self.created_repo = True

    async def aclose(self) -> None:
        self.closed = True

    # -- contents ---------------------------------------------------------------------

    async def get_file(self, path: str) -> Optional[RemoteFileState]:
        self._enter("get_file", path)
        if path not in self.files:
            return None
        return RemoteFileState(path, self.files[path], self.token(path))

    async def list_directory(self, path: str):
        self._enter("list_directory", path)
        if path in self.files:
            return SingleFile(ListingItem(path.rsplit("/", 1)[-1], path, "file", self.token(path)))
        prefix = f"{path}/"
        items: Dict[str, ListingItem] = {}
        for name in sorted(self.files):
            if not name.startswith(prefix):
                continue
            rest = name[len(prefix):]
            if "/" in rest:
                child = rest.split("/", 1)[0]
                items[child] = ListingItem(child, prefix + child, "dir", "0" * 40)
            else:
                items[rest] = ListingItem(rest, name, "file", self.token(name))
        if not items:
            return None
        return ManyFiles(items=tuple(items.values()))

    def _check_token(self, path: str, expected: Optional[str]) -> None:
        current = self.token(path) if path in self.files else None
        if expected is None and current is not None:
            raise VersionConflict(f"Invalid request. \"sha\" wasn't supplied for {path}", status=422)
        if expected is not None and expected != current:
            raise VersionConflict(f"{path} does not match {expected}", status=409)

    async def put_file(self, path: str, content: bytes, expected_token: Optional[str], message: str) -> str:
        self._enter("put_file", path)
        self._check_token(path, expected_token)
        self.files[path] = content
        self.blobs[blob_hash(content)] = content
        self.commit_messages.append(message)
        return blob_hash(content)

    async def delete_file(self, path: str, expected_token: str, message: str) -> None:
        self._enter("delete_file", path)
        if path not in self.files:
            raise RemoteNotFound(f"{path} not found", status=404)
        self._check_token(path, expected_token)
        del self.files[path]
        self.commit_messages.append(message)

    # -- git data ---------------------------------------------------------------------

    async def get_default_branch_head(self) -> BranchHead:
        self._enter("get_default_branch_head")
        return BranchHead("main", self.head)

    async def get_commit(self, commit: str) -> CommitInfo:
        self._enter("get_commit", commit)
        return CommitInfo(tree=f"tree-of-{commit}", parents=())

    async def get_tree(self, tree: str, recursive: bool = False) -> TreeSnapshot:
        self._enter("get_tree", tree)
        entries: List[TreeEntry] = []
        dirs = set()
        for path in sorted(self.files):
            parts = path.split("/")[:-1]
            for depth in range(1, len(parts) + 1):
                dirs.add("/".join(parts[:depth]))
            self.blobs[self.token(path)] = self.files[path]
            entries.append(TreeEntry(path, FileMode.REGULAR, ObjectType.BLOB, self.token(path)))
        entries.extend(TreeEntry(d, FileMode.SUBDIRECTORY, ObjectType.TREE, "1" * 40) for d in sorted(dirs))
        return TreeSnapshot(entries=tuple(entries), truncated=self.truncated_tree)

    async def create_blob(self, content: bytes) -> str:
        self._enter("create_blob")
        self.blobs[blob_hash(content)] = content
        return blob_hash(content)

    async def create_tree(self, entries: Sequence[TreeEntry]) -> str:
        self._enter("create_tree")
        tree = f"tree-{len(self._trees) + 1}"
        self._trees[tree] = list(entries)
        self._pending_tree = list(entries)
        return tree

    async def create_commit(self, message: str, tree: str, parents: Sequence[str]) -> str:
        self._enter("create_commit")
        self.commit_messages.append(message)
        self._pending_tree = self._trees[tree]
        return f"commit-{len(self.commit_messages)}"

    async def update_ref(self, branch: str, commit: str, force: bool = False) -> None:
        self._enter("update_ref", branch)
        self.ref_updates.append((branch, commit, force))
        self.head = commit
        self.files = {
            entry.path: self.blobs[entry.content_hash]
            for entry in self._pending_tree
            if entry.object_type is ObjectType.BLOB
        }

    # -- raw --------------------------------------------------------------------------

    async def raw_read_metadata(self, path: str) -> Dict[str, Any]:
        self._enter("raw_read_metadata", path)
        if path not in self.files:
            raise RemoteNotFound(f"{path} not found", status=404)
        return {"path": path, "sha": self.token(path), "type": "file"}

    async def raw_conditional_write(
        self, path: str, content: bytes, expected_token: Optional[str], message: str
    ) -> None:
        self._enter("raw_conditional_write", path)
        self._check_token(path, expected_token)
        self.files[path] = content
        self.blobs[blob_hash(content)] = content


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def editor_home(tmp_path: Path) -> Path:
    """A fake user home with the editor's config layout populated."""

    home = tmp_path / "home"
    user_dir = home / ".config" / "Cursor" / "User"
    (user_dir / "snippets").mkdir(parents=True)
    (user_dir / "settings.json").write_text('{"editor.fontSize": 14}\n', encoding="utf-8")
    (user_dir / "keybindings.json").write_text("[]\n", encoding="utf-8")
    (user_dir / "snippets" / "python.json").write_text("{}\n", encoding="utf-8")
    (user_dir / "snippets" / "global.code-snippets").write_text("{}\n", encoding="utf-8")
    (user_dir / "snippets" / "notes.txt").write_text("ignored\n", encoding="utf-8")
    cursor_dir = home / ".cursor"
    ext_dir = cursor_dir / "extensions" / "zh-community.insertseq-zh-0.10.1-zh"
    ext_dir.mkdir(parents=True)
    (ext_dir / "package.json").write_text('{"name": "insertseq"}\n', encoding="utf-8")
    (ext_dir / "icon.png").write_bytes(b"\x89PNG")
    (cursor_dir / "extensions" / "extensions.json").write_text("[]\n", encoding="utf-8")
    (cursor_dir / "mcp.json").write_text('{"servers": {}}\n', encoding="utf-8")
    return home
