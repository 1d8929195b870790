"""Client-side view state.

Consumers read three cached views from a VersionedStore: the installed
skills, the store catalog and the repository list. Mutations go through
this coordinator, which invalidates the affected views once the backend
call succeeds. Uninstall is optimistic: the entry disappears from the
installed view at once and comes back if the backend fails.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Iterator, Sequence
from contextlib import contextmanager
from typing import Any, Callable, Optional, Protocol

from skillsync.cache import VersionedStore
from skillsync.errors import MutationInProgressError
from skillsync.models import (
    CreateSkillFile,
    InstalledSkillRecord,
    RepositoryReference,
    SkillDescriptor,
    SyncResult,
)


logger = logging.getLogger(__name__)

INSTALLED_VIEW = "installed"
STORE_VIEW = "store"
REPOSITORIES_VIEW = "repositories"

# In-flight key shared by sync and force-sync
SYNC_KEY = "sync"


class StateBackend(Protocol):
    """The operations the coordinator forwards to."""

    async def list_installed_skills(self) -> list[InstalledSkillRecord]:
        ...

    async def get_cached_skills(self) -> list[SkillDescriptor]:
        ...

    async def list_repositories(self) -> list[RepositoryReference]:
        ...

    async def sync_repositories(self) -> SyncResult:
        ...

    async def force_sync_repositories(self) -> SyncResult:
        ...

    async def install_skill(self, id: str) -> Any:
        ...

    async def uninstall_skill(self, name: str) -> Any:
        ...

    async def create_custom_skill(
        self,
        name: str,
        description: str,
        instructions: str,
        examples: Optional[str] = None,
        resources: Optional[Sequence[CreateSkillFile]] = None,
    ) -> Any:
        ...

    async def add_repository(
        self,
        owner: str,
        repo: str,
        base_path: Optional[str] = None,
        revision: Optional[str] = None,
    ) -> RepositoryReference:
        ...

    async def remove_repository(self, id: str) -> bool:
        ...


class OptimisticUpdate:
    """Apply a change to a view now and undo it if the real work fails.

    Usage:
        with OptimisticUpdate(store, "installed") as update:
            update.apply(lambda items: [i for i in items if i.id != name])
            await backend.uninstall_skill(name)

    Leaving the block normally commits; an exception rolls the view back
    to the snapshot taken by ``apply`` and propagates.
    """

    def __init__(self, store: VersionedStore, key: str):
        self.store = store
        self.key = key
        self._snapshot: Any = None
        self._had_value = False
        self._applied = False
        self._committed = False

    def apply(self, update: Callable[[Any], Any]) -> None:
        """Snapshot the view and replace it with ``update(snapshot)``.

        A view that is not loaded is left alone.
        """
        self._had_value = self.key in self.store
        self._snapshot = self.store.get(self.key)
        self._applied = True
        if self._had_value:
            self.store.replace(self.key, update(self._snapshot))

    def commit(self) -> None:
        self._committed = True

    def rollback(self) -> None:
        """Restore the snapshot taken by ``apply``."""
        if not self._applied or self._committed:
            return
        if self._had_value:
            self.store.replace(self.key, self._snapshot)
        else:
            self.store.invalidate(self.key)
        self._applied = False
        logger.debug("Rolled back optimistic update of %s", self.key)

    def __enter__(self) -> OptimisticUpdate:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.commit()
        else:
            self.rollback()


class ClientStateCoordinator:
    """Cached views plus mutation bookkeeping for a consumer.

    Skill mutations are keyed on the skill's directory name, so an install
    and an uninstall of the same skill exclude each other.

    Args:
        backend: Object providing the skill operations (usually SkillSyncAPI)
        store: Store the views are kept in
    """

    def __init__(self, backend: StateBackend, store: VersionedStore):
        self.backend = backend
        self.store = store
        self._in_flight: set[str] = set()

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    async def _read_through(self, key: str, load: Callable[[], Awaitable[list]]) -> list:
        if key in self.store:
            return list(self.store.get(key))

        version = self.store.version(key)
        value = tuple(await load())
        # Only publish if nobody invalidated the view while loading.
        if self.store.version(key) == version:
            self.store.replace(key, value)
        return list(value)

    async def installed(self) -> list[InstalledSkillRecord]:
        return await self._read_through(INSTALLED_VIEW, self.backend.list_installed_skills)

    async def store_catalog(self) -> list[SkillDescriptor]:
        return await self._read_through(STORE_VIEW, self.backend.get_cached_skills)

    async def repositories(self) -> list[RepositoryReference]:
        return await self._read_through(REPOSITORIES_VIEW, self.backend.list_repositories)

    def invalidate(self, *keys: str) -> None:
        for key in keys or (INSTALLED_VIEW, STORE_VIEW, REPOSITORIES_VIEW):
            self.store.invalidate(key)

    def is_pending(self, key: str) -> bool:
        """Whether a mutation for ``key`` is in flight."""
        return key in self._in_flight

    @contextmanager
    def _mutation(self, key: str) -> Iterator[None]:
        if key in self._in_flight:
            raise MutationInProgressError(f"Operation already in progress for {key}")
        self._in_flight.add(key)
        try:
            yield
        finally:
            self._in_flight.discard(key)

    async def _install_name(self, skill_id: str) -> str:
        """Directory name a catalog id installs to, or the id if unknown."""
        for skill in await self.store_catalog():
            if skill.id == skill_id:
                return skill.install_path
        return skill_id

    # -------------------------------------------------------------------------
    # Catalog mutations
    # -------------------------------------------------------------------------

    async def sync(self) -> SyncResult:
        with self._mutation(SYNC_KEY):
            result = await self.backend.sync_repositories()
        self.invalidate(STORE_VIEW, REPOSITORIES_VIEW)
        return result

    async def force_sync(self) -> SyncResult:
        with self._mutation(SYNC_KEY):
            result = await self.backend.force_sync_repositories()
        self.invalidate(STORE_VIEW, REPOSITORIES_VIEW)
        return result

    # -------------------------------------------------------------------------
    # Skill mutations
    # -------------------------------------------------------------------------

    async def install(self, skill_id: str) -> Any:
        """Install a catalog skill.

        Raises:
            MutationInProgressError: If the target directory is already
                being changed
        """
        name = await self._install_name(skill_id)
        with self._mutation(name):
            result = await self.backend.install_skill(skill_id)
        self.invalidate(INSTALLED_VIEW, STORE_VIEW)
        return result

    async def uninstall(self, name: str) -> None:
        """Uninstall with the entry removed from the installed view up front.

        Raises:
            MutationInProgressError: If ``name`` is already being changed
        """
        with self._mutation(name):
            with OptimisticUpdate(self.store, INSTALLED_VIEW) as update:
                update.apply(lambda items: tuple(i for i in items if i.id != name))
                await self.backend.uninstall_skill(name)
        self.invalidate(INSTALLED_VIEW, STORE_VIEW)

    async def create_custom_skill(
        self,
        name: str,
        description: str,
        instructions: str,
        examples: Optional[str] = None,
        resources: Optional[Sequence[CreateSkillFile]] = None,
    ) -> Any:
        with self._mutation(name):
            result = await self.backend.create_custom_skill(
                name, description, instructions, examples=examples, resources=resources
            )
        self.invalidate(INSTALLED_VIEW)
        return result

    # -------------------------------------------------------------------------
    # Repository mutations
    # -------------------------------------------------------------------------

    async def add_repository(
        self,
        owner: str,
        repo: str,
        base_path: Optional[str] = None,
        revision: Optional[str] = None,
    ) -> RepositoryReference:
        ref = await self.backend.add_repository(owner, repo, base_path, revision)
        self.invalidate(REPOSITORIES_VIEW)
        return ref

    async def remove_repository(self, id: str) -> bool:
        """Remove a repository; its skills leave the store view too."""
        removed = await self.backend.remove_repository(id)
        if removed:
            self.invalidate(REPOSITORIES_VIEW, STORE_VIEW)
        return removed
