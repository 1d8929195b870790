"""Synchronization of the skill catalog.

A sync fetches every configured repository concurrently, merges the
results and swaps them into the cache in one step. One failing repository
never aborts the others: its earlier entries are kept and the failure is
reported in the SyncResult.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from skillsync.cache import SkillCache
from skillsync.errors import FetchError, FetchErrorKind
from skillsync.github import CatalogFetcher
from skillsync.models import RepositoryReference, SkillDescriptor, SyncResult
from skillsync.repositories import RepositoryStore
from skillsync.resolver import build_reference


logger = logging.getLogger(__name__)


@dataclass
class _Outcome:
    """Result of fetching one repository."""

    ref: RepositoryReference
    skills: Optional[list[SkillDescriptor]] = None
    error: Optional[FetchError] = None


class SyncCoordinator:
    """Fetch, merge and cache the catalogs of all configured repositories.

    Args:
        repositories: Configured repository list
        fetcher: Remote catalog fetcher
        cache: Catalog cache to replace
        fetch_timeout: Optional upper bound in seconds per repository
    """

    def __init__(
        self,
        repositories: RepositoryStore,
        fetcher: CatalogFetcher,
        cache: SkillCache,
        fetch_timeout: Optional[float] = None,
    ):
        self.repositories = repositories
        self.fetcher = fetcher
        self.cache = cache
        self.fetch_timeout = fetch_timeout

    def get_cached(self) -> list[SkillDescriptor]:
        """Current catalog. Never fetches."""
        return self.cache.entries()

    async def load_snapshots(self) -> int:
        """Fill an empty in-memory catalog from on-disk snapshots.

        Returns:
            Number of descriptors loaded
        """
        if not self.cache.is_empty():
            return len(self.cache)

        async with self.repositories.reading() as refs:
            merged: list[SkillDescriptor] = []
            for ref in refs:
                snapshot = await asyncio.to_thread(self.cache.load_snapshot, ref.id)
                if snapshot:
                    merged.extend(snapshot)
            if merged:
                self.cache.replace_all(merged)

        logger.debug("Loaded %d cached skills from snapshots", len(merged))
        return len(merged)

    async def fetch_catalog(self, owner: str, repo: str) -> list[SkillDescriptor]:
        """Scan one repository without adding it to the configuration.

        The result is returned only; the cache is not modified.

        Raises:
            ParseError: If owner or repo are invalid
            FetchError: On remote failure
        """
        return await self.fetcher.fetch(build_reference(owner, repo))

    async def sync(self) -> SyncResult:
        """Fetch all repositories and replace the catalog."""
        return await self._sync(force=False)

    async def force_sync(self) -> SyncResult:
        """Discard the whole cache, then sync.

        Failed repositories contribute nothing afterwards, so failures are
        never masked by stale entries.
        """
        return await self._sync(force=True)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _fetch_one(self, ref: RepositoryReference) -> _Outcome:
        try:
            if self.fetch_timeout is not None:
                skills = await asyncio.wait_for(self.fetcher.fetch(ref), self.fetch_timeout)
            else:
                skills = await self.fetcher.fetch(ref)
        except asyncio.TimeoutError:
            error = FetchError(FetchErrorKind.NETWORK, f"Timed out after {self.fetch_timeout}s")
            logger.warning("Sync of %s timed out", ref.display_name)
            return _Outcome(ref, error=error)
        except FetchError as e:
            logger.warning("Sync of %s failed: %s", ref.display_name, e)
            return _Outcome(ref, error=e)
        return _Outcome(ref, skills=skills)

    async def _previous_contribution(self, ref: RepositoryReference) -> list[SkillDescriptor]:
        contribution = self.cache.contribution(ref.id)
        if contribution:
            return contribution
        return await asyncio.to_thread(self.cache.load_snapshot, ref.id) or []

    async def _sync(self, force: bool) -> SyncResult:
        label = "Force synced" if force else "Synced"

        async with self.repositories.reading() as refs:
            if force:
                await asyncio.to_thread(self.cache.clear)
                logger.info("Cache cleared")

            logger.info("%s: fetching %d repositories", label, len(refs))
            outcomes = await asyncio.gather(*(self._fetch_one(ref) for ref in refs))

            merged: list[SkillDescriptor] = []
            failures: dict[str, str] = {}
            stats: dict[str, int] = {}

            for outcome in outcomes:
                if outcome.skills is not None:
                    merged.extend(outcome.skills)
                    stats[outcome.ref.id] = len(outcome.skills)
                    try:
                        await asyncio.to_thread(
                            self.cache.save_snapshot, outcome.ref.id, outcome.skills
                        )
                    except OSError as e:
                        logger.warning("Could not save snapshot for %s: %s", outcome.ref.id, e)
                else:
                    failures[outcome.ref.id] = str(outcome.error)
                    merged.extend(await self._previous_contribution(outcome.ref))

            rate_limited = any(
                o.error is not None and o.error.kind == FetchErrorKind.RATE_LIMITED
                for o in outcomes
            )
            all_rate_limited = bool(outcomes) and all(
                o.error is not None and o.error.kind == FetchErrorKind.RATE_LIMITED
                for o in outcomes
            )

            if all_rate_limited and not self.cache.is_empty():
                kept = len(self.cache)
                logger.warning("All repositories rate limited; keeping %d cached skills", kept)
                return SyncResult(
                    success=False,
                    items_found=kept,
                    message=(
                        f"Rate limited by GitHub; showing {kept} cached skills. "
                        "Try again later."
                    ),
                    rate_limited=True,
                    failures=failures,
                )

            self.cache.replace_all(merged)
            await asyncio.to_thread(self.repositories.apply_sync_stats, stats)

        total = len(self.cache)
        if failures:
            details = "; ".join(
                f"{o.ref.display_name}: {o.error}" for o in outcomes if o.error is not None
            )
            message = f"{label} {total} skills with {len(failures)} errors: {details}"
        else:
            message = f"{label} {total} skills from {len(refs)} repositories"

        logger.info(message)
        return SyncResult(
            success=not failures,
            items_found=total,
            message=message,
            rate_limited=rate_limited,
            failures=failures,
        )
