"""Configuration mirroring against a content-addressed remote store."""

from __future__ import annotations

from .batch import BatchCoordinator, BatchReport, FailureRecord, partition
from .catalog import CatalogSettings, EditorPaths, build_pull_catalog, build_push_catalog
from .client import SyncClient, SyncSettings
from .codec import blob_hash, contents_equal, decode_content, encode_content
from .conflict import ConflictResolver, LadderState, Resolution
from .errors import (
    AuthFailure,
    ConflictUnresolved,
    RateLimited,
    RemoteNotFound,
    RemoteStoreError,
    RunAborted,
    SchemaError,
    SyncError,
    TransportFailure,
    VersionConflict,
)
from .github import GitHubStore
from .store import (
    BranchHead,
    CommitInfo,
    FileMode,
    ManyFiles,
    ObjectType,
    RemoteFileState,
    RemoteStore,
    SingleFile,
    SyncPair,
    TreeEntry,
    TreeSnapshot,
)
from .unit import Direction, FileSyncUnit, OutcomeKind, TransferOutcome

__all__ = [
    # Codec
    "encode_content",
    "decode_content",
    "contents_equal",
    "blob_hash",
    # Store
    "RemoteStore",
    "GitHubStore",
    "SyncPair",
    "RemoteFileState",
    "TreeEntry",
    "TreeSnapshot",
    "FileMode",
    "ObjectType",
    "BranchHead",
    "CommitInfo",
    "SingleFile",
    "ManyFiles",
    # Errors
    "SyncError",
    "RemoteStoreError",
    "VersionConflict",
    "RemoteNotFound",
    "RateLimited",
    "AuthFailure",
    "TransportFailure",
    "SchemaError",
    "ConflictUnresolved",
    "RunAborted",
    # Sync
    "ConflictResolver",
    "LadderState",
    "Resolution",
    "FileSyncUnit",
    "Direction",
    "OutcomeKind",
    "TransferOutcome",
    "BatchCoordinator",
    "BatchReport",
    "FailureRecord",
    "partition",
    # Run
    "SyncClient",
    "SyncSettings",
    "EditorPaths",
    "CatalogSettings",
    "build_push_catalog",
    "build_pull_catalog",
]
