"""Configured repository list.

The list lives in ``repositories.yaml`` next to the user config. A missing
file is seeded with the builtin repository. Builtin entries can never be
removed; custom entries are added and removed by the user.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from skillsync.config import load_config_file, save_config_file
from skillsync.errors import ConfigError, ParseError, RepositoryError
from skillsync.models import RepositoryReference
from skillsync.resolver import build_reference


logger = logging.getLogger(__name__)

BUILTIN_OWNER = "ComposioHQ"
BUILTIN_NAME = "awesome-claude-skills"


def default_repositories() -> list[RepositoryReference]:
    """Repositories every fresh installation starts with."""
    return [build_reference(BUILTIN_OWNER, BUILTIN_NAME, is_builtin=True)]


class RepositoryStore:
    """Persistent, lock-protected list of repository references.

    All mutations and every sync that reads the list go through ``lock``,
    so a repository cannot be added or removed halfway through a sync.

    Args:
        path: Location of the YAML file
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self.lock = asyncio.Lock()

    # -------------------------------------------------------------------------
    # File access (caller holds the lock)
    # -------------------------------------------------------------------------

    def load(self) -> list[RepositoryReference]:
        """Read the list, seeding defaults when the file does not exist.

        Raises:
            ConfigError: If the file is unreadable or malformed
        """
        if not self.path.exists():
            repositories = default_repositories()
            self.save(repositories)
            return repositories

        data = load_config_file(self.path)
        try:
            return [RepositoryReference.from_dict(item) for item in data.get("repositories", [])]
        except (KeyError, TypeError, AttributeError) as e:
            raise ConfigError(f"Invalid repository entry in {self.path}: {e}") from e

    def save(self, repositories: list[RepositoryReference]) -> None:
        save_config_file(self.path, {"repositories": [r.to_dict() for r in repositories]})

    def apply_sync_stats(self, stats: dict[str, int]) -> None:
        """Stamp ``last_synced_at`` and ``item_count`` for synced repositories.

        Must be called with ``lock`` held.
        """
        if not stats:
            return

        now = datetime.now(timezone.utc).isoformat()
        repositories = self.load()
        for ref in repositories:
            if ref.id in stats:
                ref.last_synced_at = now
                ref.item_count = stats[ref.id]
        self.save(repositories)

    # -------------------------------------------------------------------------
    # Locked operations
    # -------------------------------------------------------------------------

    @asynccontextmanager
    async def reading(self) -> AsyncIterator[list[RepositoryReference]]:
        """Hold the lock and yield the current list."""
        async with self.lock:
            yield await asyncio.to_thread(self.load)

    async def list_all(self) -> list[RepositoryReference]:
        async with self.lock:
            return await asyncio.to_thread(self.load)

    async def get(self, repo_id: str) -> Optional[RepositoryReference]:
        for ref in await self.list_all():
            if ref.id == repo_id:
                return ref
        return None

    async def add(
        self,
        owner: str,
        repo: str,
        base_path: Optional[str] = None,
        revision: Optional[str] = None,
    ) -> tuple[RepositoryReference, bool]:
        """Add a custom repository.

        Adding a repository that is already configured updates its revision
        when a new one is given instead of creating a duplicate.

        Returns:
            Tuple of (stored reference, whether anything changed)

        Raises:
            RepositoryError: If owner or repository name are invalid
        """
        try:
            new_ref = build_reference(owner, repo, base_path=base_path, revision=revision)
        except ParseError as e:
            raise RepositoryError(str(e)) from e

        async with self.lock:
            return await asyncio.to_thread(self._add, new_ref)

    def _add(self, new_ref: RepositoryReference) -> tuple[RepositoryReference, bool]:
        repositories = self.load()

        for existing in repositories:
            if existing.id != new_ref.id:
                continue
            if new_ref.revision and existing.revision != new_ref.revision:
                existing.revision = new_ref.revision
                existing.last_synced_at = None
                existing.item_count = None
                self.save(repositories)
                logger.info("Updated repository %s to revision %s", existing.id, new_ref.revision)
                return existing, True
            return existing, False

        repositories.append(new_ref)
        self.save(repositories)
        logger.info("Added repository %s", new_ref.display_name)
        return new_ref, True

    async def remove(self, repo_id: str) -> bool:
        """Remove a custom repository.

        Returns:
            False if the repository is unknown or builtin
        """
        async with self.lock:
            return await asyncio.to_thread(self._remove, repo_id)

    def _remove(self, repo_id: str) -> bool:
        repositories = self.load()

        target = next((r for r in repositories if r.id == repo_id), None)
        if target is None:
            return False
        if target.is_builtin:
            logger.info("Refusing to remove builtin repository %s", repo_id)
            return False

        self.save([r for r in repositories if r.id != repo_id])
        logger.info("Removed repository %s", repo_id)
        return True
