"""Exception hierarchy for skillsync.

Every error raised by the engine derives from SkillSyncError so callers
can catch the whole family in one place. Fetch and install failures carry
a ``kind`` so the consumer can decide whether a retry makes sense.
"""

from __future__ import annotations

from enum import Enum


class SkillSyncError(Exception):
    """Base exception for all skillsync errors."""

    pass


class ConfigError(SkillSyncError):
    """Raised when configuration is invalid or unreadable."""

    pass


class ParseError(SkillSyncError):
    """Raised when a repository reference cannot be parsed."""

    pass


class RepositoryError(SkillSyncError):
    """Raised when a repository list operation fails."""

    pass


class MutationInProgressError(SkillSyncError):
    """Raised when a mutation for the same skill is already in flight."""

    pass


# =============================================================================
# Fetch Errors
# =============================================================================


class FetchErrorKind(str, Enum):
    """Failure categories reported by the remote catalog fetcher."""

    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    NETWORK = "network"
    PARSE = "parse"


class FetchError(SkillSyncError):
    """Raised when the remote host cannot deliver a catalog or file."""

    def __init__(self, kind: FetchErrorKind, message: str):
        self.kind = kind
        self.message = message
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        """Whether a manual re-sync may succeed later."""
        return self.kind in (FetchErrorKind.RATE_LIMITED, FetchErrorKind.NETWORK)

    def __str__(self) -> str:
        if self.kind == FetchErrorKind.RATE_LIMITED:
            return f"Rate limited: {self.message}"
        if self.kind == FetchErrorKind.NOT_FOUND:
            return f"Not found: {self.message}"
        if self.kind == FetchErrorKind.NETWORK:
            return f"Network error: {self.message}"
        return f"Parse error: {self.message}"


# =============================================================================
# Install Errors
# =============================================================================


class InstallErrorKind(str, Enum):
    """Failure categories for local install, uninstall and create."""

    NOT_FOUND = "not_found"
    ALREADY_INSTALLED = "already_installed"
    IO = "io"
    INVALID_NAME = "invalid_name"


class InstallError(SkillSyncError):
    """Raised when a local skill operation fails."""

    def __init__(self, kind: InstallErrorKind, message: str):
        self.kind = kind
        self.message = message
        super().__init__(message)

    def __str__(self) -> str:
        if self.kind == InstallErrorKind.NOT_FOUND:
            return f"Skill not found: {self.message}"
        if self.kind == InstallErrorKind.ALREADY_INSTALLED:
            return f"Already installed: {self.message}"
        if self.kind == InstallErrorKind.INVALID_NAME:
            return f"Invalid skill name: {self.message}"
        return f"IO error: {self.message}"
