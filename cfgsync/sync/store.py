"""Remote store contract and the data it exchanges."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union


def normalize_remote_path(path: str) -> str:
    """Forward slashes, no leading slash, no empty segments."""
    parts = [part for part in path.replace("\\", "/").split("/") if part and part != "."]
    return "/".join(parts)


@dataclass(frozen=True)
class SyncPair:
    """A local file and the remote path it mirrors."""

    local_path: Path
    remote_path: str

    def __post_init__(self) -> None:
        normalized = normalize_remote_path(self.remote_path)
        if not normalized:
            raise ValueError(f"remote path for '{self.local_path}' is empty")
        object.__setattr__(self, "remote_path", normalized)
        object.__setattr__(self, "local_path", Path(self.local_path))


@dataclass(frozen=True)
class RemoteFileState:
    """Snapshot of one remote file. ``None`` stands for an absent file."""

    path: str
    content: bytes
    version_token: str


class FileMode(str, Enum):
    REGULAR = "100644"
    EXECUTABLE = "100755"
    SUBDIRECTORY = "040000"
    SUBMODULE = "160000"
    SYMLINK = "120000"


class ObjectType(str, Enum):
    BLOB = "blob"
    TREE = "tree"
    COMMIT = "commit"


@dataclass(frozen=True)
class TreeEntry:
    path: str
    mode: FileMode
    object_type: ObjectType
    content_hash: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "mode": self.mode.value,
            "type": self.object_type.value,
            "sha": self.content_hash,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TreeEntry":
        return cls(
            path=data["path"],
            mode=FileMode(data["mode"]),
            object_type=ObjectType(data["type"]),
            content_hash=data["sha"],
        )


@dataclass(frozen=True)
class BranchHead:
    """Name of the default branch and the commit it points at."""

    branch: str
    commit: str


@dataclass(frozen=True)
class CommitInfo:
    tree: str
    parents: Tuple[str, ...] = ()


@dataclass(frozen=True)
class TreeSnapshot:
    """Entries of a tree listing. ``truncated`` means the listing is partial."""

    entries: Tuple[TreeEntry, ...]
    truncated: bool = False


@dataclass(frozen=True)
class ListingItem:
    """One entry of a directory listing (content is never included)."""

    name: str
    path: str
    item_type: str
    version_token: str


@dataclass(frozen=True)
class SingleFile:
    """Listing response shaped as one file object."""

    item: ListingItem
    content: Optional[bytes] = None


@dataclass(frozen=True)
class ManyFiles:
    """Listing response shaped as a sequence of file objects."""

    items: Tuple[ListingItem, ...] = field(default_factory=tuple)

    def files(self) -> List[ListingItem]:
        return [item for item in self.items if item.item_type == "file"]


Listing = Union[SingleFile, ManyFiles]


class RemoteStore(ABC):
    """Content-addressed file store with optimistic concurrency.

    Implementations must be safe for concurrent use by in-flight coroutines
    and hold no mutable client-side state beyond their connection.
    """

    @abstractmethod
    async def get_file(self, path: str) -> Optional[RemoteFileState]:
        """Return the file at ``path`` or ``None`` if it does not exist."""

    @abstractmethod
    async def list_directory(self, path: str) -> Optional[Listing]:
        """Return the raw listing for ``path`` or ``None`` if it does not exist."""

    @abstractmethod
    async def put_file(
        self,
        path: str,
        content: bytes,
        expected_token: Optional[str],
        message: str,
    ) -> str:
        """Create (``expected_token is None``) or update a file.

        Returns the new version token. Raises ``VersionConflict`` when the
        precondition does not hold.
        """

    @abstractmethod
    async def delete_file(self, path: str, expected_token: str, message: str) -> None:
        """Delete a file. Raises ``VersionConflict`` on a stale token."""

    @abstractmethod
    async def get_default_branch_head(self) -> BranchHead: ...

    @abstractmethod
    async def get_commit(self, commit: str) -> CommitInfo: ...

    @abstractmethod
    async def get_tree(self, tree: str, recursive: bool = False) -> TreeSnapshot: ...

    @abstractmethod
    async def create_blob(self, content: bytes) -> str: ...

    @abstractmethod
    async def create_tree(self, entries: Sequence[TreeEntry]) -> str: ...

    @abstractmethod
    async def create_commit(self, message: str, tree: str, parents: Sequence[str]) -> str: ...

    @abstractmethod
    async def update_ref(self, branch: str, commit: str, force: bool = False) -> None:
        """Repoint ``branch`` at ``commit``. Either fully applies or fails."""

    @abstractmethod
    async def raw_read_metadata(self, path: str) -> Dict[str, Any]:
        """Read file metadata without schema interpretation."""

    @abstractmethod
    async def raw_conditional_write(
        self,
        path: str,
        content: bytes,
        expected_token: Optional[str],
        message: str,
    ) -> None:
        """Write content with a precondition, bypassing schema interpretation."""


__all__ = [
    "normalize_remote_path",
    "SyncPair",
    "RemoteFileState",
    "FileMode",
    "ObjectType",
    "TreeEntry",
    "BranchHead",
    "CommitInfo",
    "TreeSnapshot",
    "ListingItem",
    "SingleFile",
    "ManyFiles",
    "Listing",
    "RemoteStore",
]
