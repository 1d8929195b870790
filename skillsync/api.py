"""skillsync public API.

SkillSyncAPI is the single surface consumers call: the CLI, or any other
front end. It wires the repository list, catalog cache, fetcher, sync
coordinator and installation manager together.

Usage:
    from skillsync.api import SkillSyncAPI

    async with SkillSyncAPI.from_config() as api:
        result = await api.sync_repositories()
        for skill in await api.get_cached_skills():
            print(skill.id, skill.name)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Optional

from skillsync.cache import SkillCache, VersionedStore
from skillsync.config import (
    SkillSyncConfig,
    get_cache_directory,
    get_config,
    get_repositories_path,
    get_skills_directory,
)
from skillsync.github import CatalogFetcher, GitHubCatalogFetcher
from skillsync.installer import InstallationManager
from skillsync.models import (
    CreateSkillFile,
    InstalledSkillRecord,
    RepositoryReference,
    SkillDescriptor,
    SyncResult,
)
from skillsync.repositories import RepositoryStore
from skillsync.resolver import resolve
from skillsync.state import ClientStateCoordinator
from skillsync.sync import SyncCoordinator


logger = logging.getLogger(__name__)


class SkillSyncAPI:
    """Operation surface of the skill sync engine.

    Args:
        repositories: Configured repository list
        cache: Catalog cache
        fetcher: Remote catalog fetcher
        skills_dir: Root directory for installed skills
    """

    def __init__(
        self,
        repositories: RepositoryStore,
        cache: SkillCache,
        fetcher: CatalogFetcher,
        skills_dir: Path,
    ):
        self.repositories = repositories
        self.cache = cache
        self.fetcher = fetcher
        self.syncer = SyncCoordinator(repositories, fetcher, cache)
        self.installer = InstallationManager(skills_dir, cache, fetcher)

    @classmethod
    def from_config(cls, config: Optional[SkillSyncConfig] = None) -> SkillSyncAPI:
        """Build an API instance from the layered configuration."""
        config = config or get_config()
        store = VersionedStore()
        return cls(
            repositories=RepositoryStore(get_repositories_path()),
            cache=SkillCache(store, get_cache_directory(config)),
            fetcher=GitHubCatalogFetcher.from_config(config),
            skills_dir=get_skills_directory(config),
        )

    def client_state(self) -> ClientStateCoordinator:
        """View state for a consumer, sharing the catalog's store."""
        return ClientStateCoordinator(self, self.cache.store)

    async def aclose(self) -> None:
        aclose = getattr(self.fetcher, "aclose", None)
        if aclose is not None:
            await aclose()

    async def __aenter__(self) -> SkillSyncAPI:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # =========================================================================
    # Catalog
    # =========================================================================

    async def fetch_catalog(self, owner: str, repo: str) -> list[SkillDescriptor]:
        return await self.syncer.fetch_catalog(owner, repo)

    async def sync_repositories(self) -> SyncResult:
        return await self.syncer.sync()

    async def force_sync_repositories(self) -> SyncResult:
        return await self.syncer.force_sync()

    async def get_cached_skills(self) -> list[SkillDescriptor]:
        """Cached catalog, warmed from disk snapshots when memory is empty."""
        if self.cache.is_empty():
            await self.syncer.load_snapshots()
        return self.syncer.get_cached()

    # =========================================================================
    # Installed skills
    # =========================================================================

    async def list_installed_skills(self) -> list[InstalledSkillRecord]:
        return await asyncio.to_thread(self.installer.list_installed)

    async def is_skill_installed(self, name: str) -> bool:
        return await asyncio.to_thread(self.installer.is_installed, name)

    async def install_skill(self, id: str) -> Path:
        """Install a catalog skill, reading the catalog from disk if needed."""
        if self.cache.is_empty():
            await self.syncer.load_snapshots()
        return await self.installer.install(id)

    async def uninstall_skill(self, name: str) -> None:
        await self.installer.uninstall(name)

    def get_skills_directory(self) -> Path:
        return self.installer.skills_dir

    async def get_skill_content(self, name: str) -> str:
        return await asyncio.to_thread(self.installer.get_skill_content, name)

    async def create_custom_skill(
        self,
        name: str,
        description: str,
        instructions: str,
        examples: Optional[str] = None,
        resources: Optional[Sequence[CreateSkillFile]] = None,
    ) -> Path:
        return await self.installer.create_custom(
            name, description, instructions, examples=examples, resources=resources
        )

    # =========================================================================
    # Repositories
    # =========================================================================

    async def list_repositories(self) -> list[RepositoryReference]:
        return await self.repositories.list_all()

    async def add_repository(
        self,
        owner: str,
        repo: str,
        base_path: Optional[str] = None,
        revision: Optional[str] = None,
    ) -> RepositoryReference:
        """Add a custom repository, or update the revision of a known one.

        Raises:
            RepositoryError: If owner or repository name are invalid
        """
        ref, changed = await self.repositories.add(owner, repo, base_path, revision)
        if changed:
            # A new revision makes any snapshot of the old one stale.
            await asyncio.to_thread(self.cache.clear_snapshot, ref.id)
        return ref

    async def add_repository_from_input(self, text: str) -> RepositoryReference:
        """Resolve free-form input (URL, SSH or owner/name) and add it.

        Raises:
            ParseError: If the input cannot be resolved
        """
        ref = resolve(text)
        return await self.add_repository(ref.owner, ref.name, ref.base_path, ref.revision)

    async def remove_repository(self, id: str) -> bool:
        """Remove a custom repository and drop its skills from the catalog.

        Returns:
            False if the repository is unknown or builtin
        """
        removed = await self.repositories.remove(id)
        if not removed:
            return False

        await asyncio.to_thread(self.cache.clear_snapshot, id)
        remaining = [d for d in self.cache.entries() if d.source_reference != id]
        if len(remaining) != len(self.cache):
            self.cache.replace_all(remaining)
        logger.info("Dropped skills of removed repository %s", id)
        return True
