"""skillsync - Sync, cache, and install agent skills from GitHub repositories."""

__version__ = "0.1.0"

from skillsync.api import SkillSyncAPI
from skillsync.cache import SkillCache, VersionedStore
from skillsync.errors import (
    ConfigError,
    FetchError,
    FetchErrorKind,
    InstallError,
    InstallErrorKind,
    MutationInProgressError,
    ParseError,
    RepositoryError,
    SkillSyncError,
)
from skillsync.github import CatalogFetcher, GitHubCatalogFetcher
from skillsync.installer import InstallationManager
from skillsync.models import (
    CreateSkillFile,
    InstalledSkillRecord,
    RepositoryReference,
    SkillCategory,
    SkillDescriptor,
    SkillMetadata,
    SyncResult,
)
from skillsync.repositories import RepositoryStore
from skillsync.resolver import resolve
from skillsync.state import ClientStateCoordinator, OptimisticUpdate
from skillsync.sync import SyncCoordinator

__all__ = [
    "__version__",
    # API
    "SkillSyncAPI",
    # Components
    "SyncCoordinator",
    "InstallationManager",
    "ClientStateCoordinator",
    "OptimisticUpdate",
    "RepositoryStore",
    "SkillCache",
    "VersionedStore",
    "CatalogFetcher",
    "GitHubCatalogFetcher",
    "resolve",
    # Models
    "RepositoryReference",
    "SkillDescriptor",
    "SkillMetadata",
    "SkillCategory",
    "InstalledSkillRecord",
    "CreateSkillFile",
    "SyncResult",
    # Errors
    "SkillSyncError",
    "ConfigError",
    "ParseError",
    "RepositoryError",
    "MutationInProgressError",
    "FetchError",
    "FetchErrorKind",
    "InstallError",
    "InstallErrorKind",
]
