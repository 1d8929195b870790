"""Shared fixtures for skillsync tests."""

from __future__ import annotations

import asyncio
from typing import Optional, Union

import pytest

from skillsync.cache import SkillCache, VersionedStore
from skillsync.github import make_skill_id
from skillsync.models import (
    CreateSkillFile,
    RepositoryReference,
    SkillCategory,
    SkillDescriptor,
)
from skillsync.repositories import RepositoryStore


def make_descriptor(
    ref_id: str = "acme-skills",
    path: str = "pdf",
    name: Optional[str] = None,
    description: str = "Work with PDF documents",
    category: SkillCategory = SkillCategory.OTHER,
) -> SkillDescriptor:
    """Build a catalog entry as the fetcher would."""
    owner, _, repo = ref_id.partition("-")
    folder = path.rsplit("/", 1)[-1] if path else repo
    return SkillDescriptor(
        id=make_skill_id(ref_id, path),
        name=name or folder,
        description=description,
        source_reference=ref_id,
        owner=owner,
        repository=repo,
        source_path=path,
        install_path=folder,
        category=category,
    )


SKILL_MD = b"---\nname: pdf\ndescription: Work with PDF documents\n---\n\n# PDF\n"

CatalogEntry = Union[list[SkillDescriptor], Exception]


class FakeFetcher:
    """In-memory CatalogFetcher.

    ``catalogs`` maps reference ids to descriptors or to an exception to
    raise. ``files`` maps skill ids to their file trees. Setting ``gate``
    makes downloads wait until the event is set.
    """

    def __init__(self):
        self.catalogs: dict[str, CatalogEntry] = {}
        self.files: dict[str, Union[list[CreateSkillFile], Exception]] = {}
        self.fetched: list[str] = []
        self.downloads: list[str] = []
        self.gate: Optional[asyncio.Event] = None
        self.closed = False

    async def fetch(self, ref: RepositoryReference) -> list[SkillDescriptor]:
        self.fetched.append(ref.id)
        entry = self.catalogs.get(ref.id, [])
        if isinstance(entry, Exception):
            raise entry
        return list(entry)

    async def download_skill_files(self, descriptor: SkillDescriptor) -> list[CreateSkillFile]:
        self.downloads.append(descriptor.id)
        if self.gate is not None:
            await self.gate.wait()
        entry = self.files.get(descriptor.id)
        if isinstance(entry, Exception):
            raise entry
        if entry is None:
            return [CreateSkillFile(relative_path="SKILL.md", content=SKILL_MD)]
        return list(entry)

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def store() -> VersionedStore:
    return VersionedStore()


@pytest.fixture
def cache(store, tmp_path) -> SkillCache:
    return SkillCache(store, tmp_path / "cache")


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def repo_store(tmp_path) -> RepositoryStore:
    return RepositoryStore(tmp_path / "config" / "repositories.yaml")
