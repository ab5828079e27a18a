"""Tests for run-level orchestration."""

from __future__ import annotations

from pathlib import Path

import pytest

from cfgsync.sync.catalog import CatalogSettings, EditorPaths
from cfgsync.sync.client import SyncClient, SyncSettings
from cfgsync.sync.errors import RunAborted
from cfgsync.sync.unit import Direction

from conftest import InMemoryStore


def _client(home: Path, store: InMemoryStore, **settings) -> SyncClient:
    defaults = {"owner": "octo", "token": "t0ken"}
    defaults.update(settings)
    return SyncClient(
        SyncSettings(**defaults),
        EditorPaths(
            user_dir=home / ".config" / "Cursor" / "User",
            extensions_dir=home / ".cursor" / "extensions",
            mcp_path=home / ".cursor" / "mcp.json",
        ),
        CatalogSettings(),
        store_factory=lambda _settings, _token: store,
        env={},
    )


def test_settings_from_config_and_token_resolution():
    settings = SyncSettings.from_config(
        {"remote": {"owner": "octo", "token_env": "CFG_TOKEN", "timeout": 5}, "sync": {"batch_size": 3}}
    )

    assert settings.repo == "cursor-sync"
    assert settings.batch_size == 3
    assert settings.timeout == 5.0
    assert settings.resolve_token({"CFG_TOKEN": "abc"}) == "abc"
    assert SyncSettings(token="inline").resolve_token({"GITHUB_TOKEN": "env"}) == "inline"


def test_open_store_requires_owner_and_token(tmp_path: Path, store: InMemoryStore):
    with pytest.raises(RunAborted, match="owner"):
        _client(tmp_path, store, owner="").open_store()
    with pytest.raises(RunAborted, match="GITHUB_TOKEN"):
        _client(tmp_path, store, token="").open_store()
    assert _client(tmp_path, store).open_store() is store


@pytest.mark.asyncio
async def test_push_uploads_catalog_and_closes_store(editor_home: Path, store: InMemoryStore):
    report = await _client(editor_home, store).push()

    assert report.ok
    assert report.total_count == 7
    assert "settings.json" in store.files
    assert store.closed


@pytest.mark.asyncio
async def test_second_push_skips_everything(editor_home: Path, store: InMemoryStore):
    client = _client(editor_home, store, force_overwrite=False)
    await client.push()
    store.commit_messages.clear()

    report = await client.push()

    assert report.outcome_counts == {"skipped_identical": 7}
    assert store.commit_messages == []


@pytest.mark.asyncio
async def test_pull_restores_into_empty_home(editor_home: Path, tmp_path: Path, store: InMemoryStore):
    await _client(editor_home, store).push()
    fresh = tmp_path / "fresh"

    report = await _client(fresh, store).pull()

    assert report.ok
    assert report.success_count == 7
    assert (fresh / ".config" / "Cursor" / "User" / "snippets" / "python.json").read_text() == "{}\n"


@pytest.mark.asyncio
async def test_pull_from_missing_repository_aborts(tmp_path: Path):
    store = InMemoryStore(exists=False)

    with pytest.raises(RunAborted, match="push first"):
        await _client(tmp_path, store).run(Direction.PULL)
    assert store.closed


@pytest.mark.asyncio
async def test_push_creates_repository_only_when_allowed(editor_home: Path):
    refused = InMemoryStore(exists=False)
    with pytest.raises(RunAborted, match="create_missing"):
        await _client(editor_home, refused).push()
    assert not refused.created_repo

    allowed = InMemoryStore(exists=False)
    report = await _client(editor_home, allowed, create_missing=True).push()
    assert allowed.created_repo
    assert report.ok


@pytest.mark.asyncio
async def test_unreachable_store_aborts(tmp_path: Path, store: InMemoryStore):
    store.reachable = False

    with pytest.raises(RunAborted, match="cannot reach"):
        await _client(tmp_path, store).push()
    assert "get_file" not in store.operations()


@pytest.mark.asyncio
async def test_supplied_store_is_not_closed(editor_home: Path, store: InMemoryStore):
    other = InMemoryStore()

    await _client(editor_home, other).push(store=store)

    assert not store.closed
    assert other.calls == []


def test_status_reports_configuration(editor_home: Path, store: InMemoryStore):
    status = _client(editor_home, store).get_status()

    assert status["remote"] == "octo/cursor-sync"
    assert status["credential"] == "configured"
    assert status["local_files"] == 7
