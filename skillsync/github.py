"""GitHub catalog fetcher.

Scans a repository through the GitHub contents API for directories that
contain a SKILL.md file, and downloads the full file tree of a skill when
it is installed.

Proxies are taken from the environment (HTTPS_PROXY, HTTP_PROXY,
ALL_PROXY, NO_PROXY) by httpx. A proxy set in the configuration replaces
the environment, and the configured no_proxy hosts bypass it.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import ssl
from collections import deque
from collections.abc import Sequence
from typing import Any, Optional, Protocol, Union
from urllib.parse import quote

import httpx

from skillsync.config import (
    SkillSyncConfig,
    get_config,
    get_github_token,
    get_no_proxy_hosts,
    get_proxy_url,
    get_ssl_verify,
)
from skillsync.descriptor import DESCRIPTOR_FILENAME, categorize_skill, parse_skill_md
from skillsync.errors import FetchError, FetchErrorKind
from skillsync.models import (
    CreateSkillFile,
    RepositoryReference,
    SkillDescriptor,
)


logger = logging.getLogger(__name__)

API_BASE = "https://api.github.com"
USER_AGENT = "skillsync"
API_ACCEPT = "application/vnd.github.v3+json"


class CatalogFetcher(Protocol):
    """What the sync and install layers need from a remote host."""

    async def fetch(self, ref: RepositoryReference) -> list[SkillDescriptor]:
        ...

    async def download_skill_files(self, descriptor: SkillDescriptor) -> list[CreateSkillFile]:
        ...


def make_skill_id(reference_id: str, source_path: str) -> str:
    """Catalog id of a skill: the reference id plus its path in the repo."""
    return f"{reference_id}:{source_path}"


def no_proxy_mounts(hosts: Sequence[str]) -> dict[str, None]:
    """httpx mounts that send ``hosts`` around an explicit proxy.

    Entries follow NO_PROXY conventions. ``example.com`` and
    ``.example.com`` both cover the domain and its subdomains, and ``*``
    disables the proxy. Entries with a scheme are used as URL patterns.
    """
    mounts: dict[str, None] = {}
    for host in hosts:
        if host == "*":
            return {"all://": None}
        if "://" in host:
            mounts[host] = None
        else:
            mounts[f"all://*{host.lstrip('.')}"] = None
    return mounts


class GitHubCatalogFetcher:
    """Fetch skill catalogs and files from GitHub.

    Args:
        client: HTTP client to use; one is created when omitted
        token: Optional GitHub token
        timeout: Total per-request timeout in seconds
        connect_timeout: Connection timeout in seconds
        max_retries: Attempts per request on transport errors
        max_scan_depth: Directory levels searched below the base path
        proxy: Explicit proxy URL (the environment is used otherwise)
        no_proxy: Hosts that bypass an explicit proxy
        verify: TLS verification flag or SSL context
        backoff: Base delay in seconds between retries, doubled each attempt
        api_base: GitHub API root
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        *,
        token: Optional[str] = None,
        timeout: float = 60.0,
        connect_timeout: float = 15.0,
        max_retries: int = 3,
        max_scan_depth: int = 3,
        proxy: Optional[str] = None,
        no_proxy: Sequence[str] = (),
        verify: Union[bool, ssl.SSLContext] = True,
        backoff: float = 0.5,
        api_base: str = API_BASE,
    ):
        self._owns_client = client is None
        if client is None:
            # Without an explicit proxy httpx applies the proxy environment itself.
            client = httpx.AsyncClient(
                timeout=httpx.Timeout(timeout, connect=connect_timeout),
                proxy=proxy,
                mounts=no_proxy_mounts(no_proxy) if proxy else None,
                verify=verify,
                follow_redirects=True,
            )
        self._client = client
        self.token = token
        self.max_retries = max(1, max_retries)
        self.max_scan_depth = max_scan_depth
        self.backoff = backoff
        self.api_base = api_base.rstrip("/")

    @classmethod
    def from_config(cls, config: Optional[SkillSyncConfig] = None) -> GitHubCatalogFetcher:
        """Build a fetcher from configuration.

        Raises:
            ConfigError: If the CA bundle cannot be loaded
        """
        config = config or get_config()
        return cls(
            token=get_github_token(config),
            timeout=config.request_timeout,
            connect_timeout=config.connect_timeout,
            max_retries=config.max_retries,
            max_scan_depth=config.max_scan_depth,
            proxy=get_proxy_url(config),
            no_proxy=get_no_proxy_hosts(config),
            verify=get_ssl_verify(config),
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> GitHubCatalogFetcher:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # -------------------------------------------------------------------------
    # HTTP
    # -------------------------------------------------------------------------

    def _headers(self, api: bool) -> dict[str, str]:
        headers = {"User-Agent": USER_AGENT}
        if api:
            headers["Accept"] = API_ACCEPT
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _get(
        self,
        url: str,
        params: Optional[dict[str, str]] = None,
        api: bool = True,
    ) -> httpx.Response:
        """GET with retries on transport errors.

        Raises:
            FetchError: NETWORK once every attempt failed
        """
        last_error: Optional[Exception] = None

        for attempt in range(self.max_retries):
            if attempt > 0:
                await asyncio.sleep(self.backoff * (2 ** attempt))
            try:
                return await self._client.get(url, params=params, headers=self._headers(api))
            except httpx.TransportError as e:
                last_error = e
                logger.debug("Request to %s failed (attempt %d): %s", url, attempt + 1, e)

        raise FetchError(FetchErrorKind.NETWORK, f"{url}: {last_error}")

    @staticmethod
    def _check_status(response: httpx.Response, what: str) -> None:
        status = response.status_code
        if 200 <= status < 300:
            return
        if status == 404:
            raise FetchError(FetchErrorKind.NOT_FOUND, what)
        if status == 429:
            raise FetchError(FetchErrorKind.RATE_LIMITED, what)
        if status == 403:
            remaining = response.headers.get("X-RateLimit-Remaining")
            if remaining is None or remaining == "0" or "rate limit" in response.text.lower():
                raise FetchError(FetchErrorKind.RATE_LIMITED, what)
            raise FetchError(FetchErrorKind.PARSE, f"Access denied for {what}")
        raise FetchError(FetchErrorKind.PARSE, f"Unexpected status {status} for {what}")

    @staticmethod
    def _json(response: httpx.Response, what: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise FetchError(FetchErrorKind.PARSE, f"Invalid JSON for {what}: {e}") from e

    def contents_url(self, owner: str, repo: str, path: str) -> str:
        return f"{self.api_base}/repos/{owner}/{repo}/contents/{quote(path.strip('/'), safe='/')}"

    # -------------------------------------------------------------------------
    # Contents API
    # -------------------------------------------------------------------------

    async def list_contents(
        self,
        owner: str,
        repo: str,
        path: str,
        revision: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        """List one directory of a repository."""
        what = f"{owner}/{repo}/{path}".rstrip("/")
        params = {"ref": revision} if revision else None
        response = await self._get(self.contents_url(owner, repo, path), params=params)
        self._check_status(response, what)

        data = self._json(response, what)
        if not isinstance(data, list):
            raise FetchError(FetchErrorKind.PARSE, f"Not a directory: {what}")
        return [item for item in data if isinstance(item, dict)]

    async def download(self, url: str) -> bytes:
        """Download raw bytes, typically from a ``download_url``."""
        response = await self._get(url, api=False)
        self._check_status(response, url)
        return response.content

    async def fetch_file_bytes(
        self,
        owner: str,
        repo: str,
        path: str,
        revision: Optional[str] = None,
    ) -> bytes:
        """Fetch one file, decoding inline base64 or following its download URL."""
        what = f"{owner}/{repo}/{path}"
        params = {"ref": revision} if revision else None
        response = await self._get(self.contents_url(owner, repo, path), params=params)
        self._check_status(response, what)

        data = self._json(response, what)
        if not isinstance(data, dict):
            raise FetchError(FetchErrorKind.PARSE, f"Not a file: {what}")

        encoded = data.get("content")
        if encoded:
            try:
                return base64.b64decode(encoded.replace("\n", ""), validate=True)
            except (binascii.Error, ValueError) as e:
                raise FetchError(FetchErrorKind.PARSE, f"Bad base64 content for {what}") from e

        if data.get("download_url"):
            return await self.download(data["download_url"])

        raise FetchError(FetchErrorKind.PARSE, f"No content found for {what}")

    async def fetch_descriptor_text(
        self,
        owner: str,
        repo: str,
        path: str,
        revision: Optional[str] = None,
    ) -> str:
        raw = await self.fetch_file_bytes(owner, repo, path, revision)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise FetchError(FetchErrorKind.PARSE, f"{path} is not UTF-8 text") from e

    # -------------------------------------------------------------------------
    # Catalog
    # -------------------------------------------------------------------------

    async def fetch(self, ref: RepositoryReference) -> list[SkillDescriptor]:
        """Scan a repository for skills.

        Walks the tree breadth-first from the reference's base path. A
        directory holding a SKILL.md is a skill and is not searched further.

        Raises:
            FetchError: On any remote failure
        """
        base_path = (ref.base_path or "").strip("/")
        queue: deque[tuple[str, int]] = deque([(base_path, 0)])
        visited: set[str] = set()
        skills: list[SkillDescriptor] = []

        while queue:
            dir_path, depth = queue.popleft()
            if dir_path in visited:
                continue
            visited.add(dir_path)

            contents = await self.list_contents(ref.owner, ref.name, dir_path, ref.revision)

            descriptor_entry = next(
                (
                    item
                    for item in contents
                    if item.get("type") == "file"
                    and str(item.get("name", "")).lower() == DESCRIPTOR_FILENAME.lower()
                ),
                None,
            )
            if descriptor_entry is not None:
                skills.append(await self._read_skill(ref, dir_path, descriptor_entry))
                continue

            if depth >= self.max_scan_depth:
                continue

            for item in contents:
                if item.get("type") != "dir" or not item.get("name"):
                    continue
                subdir = f"{dir_path}/{item['name']}" if dir_path else item["name"]
                queue.append((subdir, depth + 1))

        logger.info("Found %d skills in %s", len(skills), ref.display_name)
        return skills

    async def _read_skill(
        self,
        ref: RepositoryReference,
        dir_path: str,
        descriptor_entry: dict[str, Any],
    ) -> SkillDescriptor:
        descriptor_path = descriptor_entry.get("path") or (
            f"{dir_path}/{descriptor_entry['name']}" if dir_path else descriptor_entry["name"]
        )
        content = await self.fetch_descriptor_text(
            ref.owner, ref.name, descriptor_path, ref.revision
        )
        metadata, paragraph = parse_skill_md(content)

        folder = dir_path.rsplit("/", 1)[-1] if dir_path else ref.name
        name = metadata.name or folder.replace("-", " ")
        description = metadata.description or paragraph or f"A skill from {folder}"

        return SkillDescriptor(
            id=make_skill_id(ref.id, dir_path),
            name=name,
            description=description,
            source_reference=ref.id,
            owner=ref.owner,
            repository=ref.name,
            source_path=dir_path,
            install_path=folder,
            category=categorize_skill(name, description, metadata.tags),
            revision=ref.revision,
            long_description=content,
            metadata=metadata,
        )

    async def download_skill_files(self, descriptor: SkillDescriptor) -> list[CreateSkillFile]:
        """Download every file below a skill's directory.

        Returns:
            Files with paths relative to the skill directory
        """
        base_dir = descriptor.source_path.strip("/")
        files: list[CreateSkillFile] = []
        queue: deque[str] = deque([base_dir])

        while queue:
            current = queue.popleft()
            contents = await self.list_contents(
                descriptor.owner, descriptor.repository, current, descriptor.revision
            )

            for item in contents:
                item_type = item.get("type")
                item_path = str(item.get("path", ""))
                if item_type == "dir":
                    queue.append(item_path)
                elif item_type == "file":
                    if item.get("download_url"):
                        content = await self.download(item["download_url"])
                    else:
                        content = await self.fetch_file_bytes(
                            descriptor.owner,
                            descriptor.repository,
                            item_path,
                            descriptor.revision,
                        )
                    files.append(
                        CreateSkillFile(
                            relative_path=_relative_to(item_path, base_dir),
                            content=content,
                        )
                    )

        return files


def _relative_to(path: str, base_dir: str) -> str:
    if base_dir and path.startswith(base_dir + "/"):
        return path[len(base_dir) + 1:]
    return path.lstrip("/")
