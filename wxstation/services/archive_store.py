"""
Archive Store - versioned remote file storage for CSV archives

The GitHub contents API is the production backend. Every object carries
a content hash (sha); updates must present the sha they were based on,
so a concurrent writer turns our write into a 409/422 instead of a lost
update.
"""

import asyncio
import base64
import logging
from dataclasses import dataclass
from typing import Protocol
from urllib.parse import quote

import httpx

from wxstation.core.config import Settings
from wxstation.core.errors import ArchiveStoreError

logger = logging.getLogger(__name__)

USER_AGENT = "wxstation-archiver"
RAW_MEDIA_TYPE = "application/vnd.github.raw"
CONFLICT_STATUSES = {409, 422}


@dataclass(frozen=True)
class StoredContent:
    text: str
    sha: str


@dataclass(frozen=True)
class PutResult:
    ok: bool
    status: int
    message: str
    sha: str | None = None

    @property
    def conflict(self) -> bool:
        return self.status in CONFLICT_STATUSES


class ContentStore(Protocol):
    """Archive collaborator consumed by the reconciler."""

    async def get_content(self, path: str) -> StoredContent | None: ...

    async def put_content(
        self,
        path: str,
        text: str,
        sha: str | None = None,
        message: str = "",
    ) -> PutResult: ...


class GitHubContentStore:
    """ContentStore backed by /repos/{repo}/contents/{path}."""

    def __init__(
        self,
        repo: str,
        token: str,
        branch: str = "main",
        api_url: str = "https://api.github.com",
        timeout: float = 10.0,
        retries: int = 1,
        client: httpx.AsyncClient | None = None,
    ):
        self.repo = repo
        self.branch = branch
        self.retries = retries
        self._api_url = api_url.rstrip("/")
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "User-Agent": USER_AGENT,
        }
        self._timeout = timeout
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "GitHubContentStore":
        return cls(
            repo=settings.github_repo,
            token=settings.github_token,
            branch=settings.github_branch,
            api_url=settings.github_api_url,
            timeout=settings.http_timeout,
            retries=settings.http_retries,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(headers=self._headers, timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def _url(self, path: str) -> str:
        return f"{self._api_url}/repos/{self.repo}/contents/{quote(path.lstrip('/'))}"

    async def _request(self, method: str, url: str, headers: dict | None = None, **kwargs) -> httpx.Response:
        """Send a request, retrying timeouts, transport errors and 5xx responses."""
        client = await self._get_client()
        headers = {**self._headers, **(headers or {})}
        max_attempts = self.retries + 1
        for attempt in range(1, max_attempts + 1):
            try:
                response = await client.request(method, url, headers=headers, **kwargs)
            except (httpx.TimeoutException, httpx.TransportError) as exc:
                logger.warning(
                    "Archive store %s %s failed (attempt %s/%s): %s",
                    method, url, attempt, max_attempts, exc,
                )
                if attempt >= max_attempts:
                    raise ArchiveStoreError(None, f"{type(exc).__name__}: {exc}") from exc
            else:
                if response.status_code < 500 or attempt >= max_attempts:
                    return response
                logger.warning(
                    "Archive store %s %s returned %s (attempt %s/%s)",
                    method, url, response.status_code, attempt, max_attempts,
                )
            await asyncio.sleep(0.5 * attempt)
        raise ArchiveStoreError(None, "archive store request exceeded retry attempts")

    async def get_content(self, path: str) -> StoredContent | None:
        """Current text and sha at path, or None when the file does not exist."""
        response = await self._request("GET", self._url(path), params={"ref": self.branch})
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise ArchiveStoreError(response.status_code, response.text[:2_048])

        payload = response.json()
        size = payload.get("size")
        encoded = (payload.get("content") or "").replace("\n", "")
        if payload.get("encoding") == "none" or (not encoded and size):
            # Files over 1 MB come back without inline content
            text = await self._get_raw(path)
        else:
            text = base64.b64decode(encoded).decode("utf-8") if encoded else ""

        received = len(text.encode("utf-8"))
        if size is not None and received != size:
            raise ArchiveStoreError(None, f"{path}: expected {size} bytes, received {received}")
        return StoredContent(text=text, sha=payload["sha"])

    async def _get_raw(self, path: str) -> str:
        response = await self._request(
            "GET", self._url(path), headers={"Accept": RAW_MEDIA_TYPE}, params={"ref": self.branch}
        )
        if response.status_code != 200:
            raise ArchiveStoreError(response.status_code, f"raw download of {path} failed: {response.text[:500]}")
        return response.content.decode("utf-8")

    async def put_content(
        self,
        path: str,
        text: str,
        sha: str | None = None,
        message: str = "",
    ) -> PutResult:
        """Create (sha=None) or update (sha of the version read) the file at path."""
        body = {
            "message": message or f"update {path}",
            "content": base64.b64encode(text.encode("utf-8")).decode("ascii"),
            "branch": self.branch,
        }
        if sha:
            body["sha"] = sha

        response = await self._request("PUT", self._url(path), json=body)
        if response.status_code in (200, 201):
            new_sha = (response.json().get("content") or {}).get("sha")
            return PutResult(ok=True, status=response.status_code, message="committed", sha=new_sha)

        logger.error("Archive store rejected %s: %s %s", path, response.status_code, response.text[:500])
        return PutResult(ok=False, status=response.status_code, message=response.text[:2_048])
