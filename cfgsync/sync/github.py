"""RemoteStore backed by a GitHub-style contents and git-data HTTP API."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence
from urllib.parse import quote

import httpx

from .codec import decode_content, encode_content
from .errors import (
    AuthFailure,
    RateLimited,
    RemoteNotFound,
    RemoteStoreError,
    SchemaError,
    TransportFailure,
    VersionConflict,
)
from .store import (
    BranchHead,
    CommitInfo,
    Listing,
    ListingItem,
    ManyFiles,
    RemoteFileState,
    RemoteStore,
    SingleFile,
    TreeEntry,
    TreeSnapshot,
    normalize_remote_path,
)

logger = logging.getLogger("cfgsync.sync.github")

DEFAULT_API_URL = "https://api.github.com"
ACCEPT_HEADER = "application/vnd.github+json"

_TOKEN_HINT_PATTERNS = (
    re.compile(r"is at ([0-9a-f]{40}) but expected", re.IGNORECASE),
    re.compile(r"does not match ([0-9a-f]{40})", re.IGNORECASE),
)
_CONFLICT_MARKERS = ("sha", "expected", "does not match")


def extract_token_hint(message: str) -> Optional[str]:
    """Pull the current version token out of a conflict message, if present."""
    for pattern in _TOKEN_HINT_PATTERNS:
        match = pattern.search(message)
        if match:
            return match.group(1).lower()
    return None


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(payload, Mapping):
        return str(payload.get("message") or response.reason_phrase)
    return response.reason_phrase


def _rate_limit_reset(headers: httpx.Headers) -> Optional[datetime]:
    reset = headers.get("x-ratelimit-reset")
    if reset and reset.isdigit():
        return datetime.fromtimestamp(int(reset), tz=timezone.utc)
    retry_after = headers.get("retry-after")
    if retry_after and retry_after.isdigit():
        return datetime.now(timezone.utc) + timedelta(seconds=int(retry_after))
    return None


def _is_throttled(response: httpx.Response, message: str) -> bool:
    # Secondary limits answer 403 with retry-after while quota remains.
    headers = response.headers
    return (
        headers.get("x-ratelimit-remaining") == "0"
        or "retry-after" in headers
        or "rate limit" in message.lower()
    )


def raise_for_store_status(response: httpx.Response) -> None:
    """Translate an HTTP error response into the store error taxonomy."""

    status = response.status_code
    if status < 400:
        return

    message = _error_message(response)
    details = {"url": str(response.request.url), "method": response.request.method}

    if status == 401:
        raise AuthFailure(f"credential rejected: {message}", status=status, details=details)
    if status == 429 or (status == 403 and _is_throttled(response, message)):
        raise RateLimited(
            f"rate limit exhausted: {message}",
            reset_at=_rate_limit_reset(response.headers),
            status=status,
            details=details,
        )
    if status == 403:
        raise AuthFailure(f"access denied: {message}", status=status, details=details)
    if status == 404:
        raise RemoteNotFound(message, status=status, details=details)
    lowered = message.lower()
    if status == 409 or (status == 422 and "sha" in lowered):
        if status == 422 or any(marker in lowered for marker in _CONFLICT_MARKERS):
            raise VersionConflict(
                message,
                current_token=extract_token_hint(message),
                status=status,
                details=details,
            )
    if status >= 500:
        raise TransportFailure(f"server error {status}: {message}", status=status, details=details)
    raise RemoteStoreError(f"HTTP {status}: {message}", status=status, details=details)


def _require(data: Any, *keys: str) -> Any:
    """Walk nested keys, raising SchemaError when the shape is wrong."""
    current = data
    for key in keys:
        if not isinstance(current, Mapping) or key not in current:
            raise SchemaError(f"response is missing '{'.'.join(keys)}'")
        current = current[key]
    return current


def _listing_item(data: Any) -> ListingItem:
    return ListingItem(
        name=str(_require(data, "name")),
        path=str(_require(data, "path")),
        item_type=str(_require(data, "type")),
        version_token=str(_require(data, "sha")),
    )


def parse_listing(payload: Any) -> Listing:
    """Disambiguate the contents endpoint's two response shapes."""
    if isinstance(payload, list):
        return ManyFiles(items=tuple(_listing_item(item) for item in payload))
    if isinstance(payload, Mapping):
        encoded = payload.get("content")
        content = decode_content(encoded) if isinstance(encoded, str) else None
        return SingleFile(item=_listing_item(payload), content=content)
    raise SchemaError(f"unexpected listing payload of type {type(payload).__name__}")


class GitHubStore(RemoteStore):
    """Repository-backed store. Immutable after construction."""

    def __init__(
        self,
        owner: str,
        repo: str,
        token: str,
        *,
        api_url: str = DEFAULT_API_URL,
        branch: Optional[str] = None,
        timeout: float = 30.0,
        user_agent: str = "cfgsync",
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.owner = owner
        self.repo = repo
        self.branch = branch or None
        self.api_url = api_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Accept": ACCEPT_HEADER,
            "User-Agent": user_agent,
        }

    async def __aenter__(self) -> "GitHubStore":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # -- plumbing -----------------------------------------------------------------

    @property
    def _repo_url(self) -> str:
        return f"{self.api_url}/repos/{self.owner}/{self.repo}"

    def _contents_url(self, path: str) -> str:
        return f"{self._repo_url}/contents/{quote(normalize_remote_path(path), safe='/')}"

    async def _send(
        self,
        method: str,
        url: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        try:
            response = await self._client.request(
                method, url, json=json, params=params, headers=self._headers
            )
        except httpx.TransportError as exc:
            raise TransportFailure(f"{method} {url} failed: {exc}") from exc
        raise_for_store_status(response)
        return response

    async def _json(self, method: str, url: str, **kwargs: Any) -> Any:
        response = await self._send(method, url, **kwargs)
        try:
            return response.json()
        except ValueError as exc:
            raise SchemaError(f"{method} {url} returned non-JSON body") from exc

    def _ref_params(self) -> Optional[Dict[str, Any]]:
        return {"ref": self.branch} if self.branch else None

    def _with_branch(self, body: Dict[str, Any]) -> Dict[str, Any]:
        if self.branch:
            body["branch"] = self.branch
        return body

    # -- container ------------------------------------------------------------------

    async def check_connection(self) -> bool:
        try:
            await self._send("GET", f"{self.api_url}/rate_limit")
        except AuthFailure:
            raise
        except RemoteStoreError as exc:
            logger.warning("Connection check failed: %s", exc)
            return False
        return True

    async def repository_exists(self) -> bool:
        try:
            await self._send("GET", self._repo_url)
        except RemoteNotFound:
            return False
        return True

    async def create_repository(self, *, private: bool = True, description: str = "") -> None:
        await self._send(
            "POST",
            f"{self.api_url}/user/repos",
            json={"name": self.repo, "description": description, "private": private},
        )
        logger.info("Created repository %s/%s", self.owner, self.repo)

    # -- contents API ---------------------------------------------------------------

    async def list_directory(self, path: str) -> Optional[Listing]:
        try:
            payload = await self._json("GET", self._contents_url(path), params=self._ref_params())
        except RemoteNotFound:
            return None
        return parse_listing(payload)

    async def get_file(self, path: str) -> Optional[RemoteFileState]:
        normalized = normalize_remote_path(path)
        listing = await self.list_directory(normalized)
        if listing is None:
            return None

        if isinstance(listing, SingleFile):
            if listing.item.item_type != "file":
                raise SchemaError(f"'{normalized}' is a {listing.item.item_type}, not a file")
            content = listing.content
            if content is None:
                content = await self._get_blob(listing.item.version_token)
            return RemoteFileState(normalized, content, listing.item.version_token)

        # Array shape for a file path: only accept an exact path match.
        matches = [item for item in listing.files() if item.path == normalized]
        if len(matches) != 1:
            raise SchemaError(f"'{normalized}' resolved to a directory listing")
        item = matches[0]
        logger.debug("Resolved '%s' from an array-shaped listing", normalized)
        content = await self._get_blob(item.version_token)
        return RemoteFileState(normalized, content, item.version_token)

    async def _get_blob(self, blob: str) -> bytes:
        payload = await self._json("GET", f"{self._repo_url}/git/blobs/{blob}")
        encoded = _require(payload, "content")
        if payload.get("encoding", "base64") != "base64":
            raise SchemaError(f"blob {blob} uses unsupported encoding {payload.get('encoding')!r}")
        return decode_content(str(encoded))

    async def put_file(
        self,
        path: str,
        content: bytes,
        expected_token: Optional[str],
        message: str,
    ) -> str:
        body: Dict[str, Any] = {"message": message, "content": encode_content(content)}
        if expected_token:
            body["sha"] = expected_token
        payload = await self._json("PUT", self._contents_url(path), json=self._with_branch(body))
        return str(_require(payload, "content", "sha"))

    async def delete_file(self, path: str, expected_token: str, message: str) -> None:
        body = self._with_branch({"message": message, "sha": expected_token})
        await self._send("DELETE", self._contents_url(path), json=body)

    # -- git data API ---------------------------------------------------------------

    async def get_default_branch_head(self) -> BranchHead:
        branch = self.branch
        if not branch:
            payload = await self._json("GET", self._repo_url)
            branch = str(payload.get("default_branch") or "main") if isinstance(payload, Mapping) else "main"
        ref = await self._json("GET", f"{self._repo_url}/git/ref/heads/{branch}")
        return BranchHead(branch=branch, commit=str(_require(ref, "object", "sha")))

    async def get_commit(self, commit: str) -> CommitInfo:
        payload = await self._json("GET", f"{self._repo_url}/git/commits/{commit}")
        parents = _require(payload, "parents")
        if not isinstance(parents, list):
            raise SchemaError("commit parents must be a list")
        return CommitInfo(
            tree=str(_require(payload, "tree", "sha")),
            parents=tuple(str(_require(parent, "sha")) for parent in parents),
        )

    async def get_tree(self, tree: str, recursive: bool = False) -> TreeSnapshot:
        params = {"recursive": "1"} if recursive else None
        payload = await self._json("GET", f"{self._repo_url}/git/trees/{tree}", params=params)
        raw_entries = _require(payload, "tree")
        if not isinstance(raw_entries, list):
            raise SchemaError("tree entries must be a list")
        entries: List[TreeEntry] = []
        for raw in raw_entries:
            try:
                entries.append(TreeEntry.from_dict(raw))
            except (KeyError, TypeError, ValueError) as exc:
                raise SchemaError(f"malformed tree entry {raw!r}") from exc
        return TreeSnapshot(entries=tuple(entries), truncated=bool(payload.get("truncated", False)))

    async def create_blob(self, content: bytes) -> str:
        payload = await self._json(
            "POST",
            f"{self._repo_url}/git/blobs",
            json={"content": encode_content(content), "encoding": "base64"},
        )
        return str(_require(payload, "sha"))

    async def create_tree(self, entries: Sequence[TreeEntry]) -> str:
        payload = await self._json(
            "POST",
            f"{self._repo_url}/git/trees",
            json={"tree": [entry.to_dict() for entry in entries]},
        )
        return str(_require(payload, "sha"))

    async def create_commit(self, message: str, tree: str, parents: Sequence[str]) -> str:
        payload = await self._json(
            "POST",
            f"{self._repo_url}/git/commits",
            json={"message": message, "tree": tree, "parents": list(parents)},
        )
        return str(_require(payload, "sha"))

    async def update_ref(self, branch: str, commit: str, force: bool = False) -> None:
        await self._send(
            "PATCH",
            f"{self._repo_url}/git/refs/heads/{branch}",
            json={"sha": commit, "force": force},
        )

    # -- raw protocol ---------------------------------------------------------------

    async def raw_read_metadata(self, path: str) -> Dict[str, Any]:
        response = await self._send("GET", self._contents_url(path), params=self._ref_params())
        try:
            payload = response.json()
        except ValueError:
            return {}
        if isinstance(payload, list):
            normalized = normalize_remote_path(path)
            payload = next(
                (item for item in payload if isinstance(item, Mapping) and item.get("path") == normalized),
                {},
            )
        return dict(payload) if isinstance(payload, Mapping) else {}

    async def raw_conditional_write(
        self,
        path: str,
        content: bytes,
        expected_token: Optional[str],
        message: str,
    ) -> None:
        body: Dict[str, Any] = {"message": message, "content": encode_content(content)}
        if expected_token:
            body["sha"] = expected_token
        await self._send("PUT", self._contents_url(path), json=self._with_branch(body))


__all__ = [
    "GitHubStore",
    "DEFAULT_API_URL",
    "extract_token_hint",
    "parse_listing",
    "raise_for_store_status",
]
