"""Repository reference resolution.

Turns the many ways people point at a GitHub repository into one
canonical RepositoryReference. Supported inputs:

- ``owner/name[/sub/path]``
- ``https://github.com/owner/name[/tree|blob/<revision>/<path>]``
- ``https://raw.githubusercontent.com/owner/name/<revision>/<path>``
- ``git@github.com:owner/name.git``

Resolution is a pure string transformation and never touches the network.
"""

from __future__ import annotations

import re
from typing import Optional
from urllib.parse import urlsplit

from skillsync.descriptor import DESCRIPTOR_FILENAME
from skillsync.errors import ParseError
from skillsync.models import RepositoryReference


# =============================================================================
# Constants
# =============================================================================

WEB_HOSTS = frozenset({"github.com", "www.github.com"})
RAW_HOST = "raw.githubusercontent.com"
SSH_PREFIX = "git@github.com:"

# GitHub owners: alphanumerics and single hyphens, no leading hyphen
OWNER_PATTERN = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9-]*[A-Za-z0-9])?$")
REPO_NAME_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")


# =============================================================================
# Normalization Helpers
# =============================================================================


def strip_git_suffix(name: str) -> str:
    """Remove a trailing ``.git`` (any case) from a repository name."""
    if name.lower().endswith(".git"):
        return name[: -len(".git")]
    return name


def normalize_base_path(base_path: Optional[str]) -> Optional[str]:
    """Normalize a path inside a repository.

    Strips surrounding separators, drops a trailing descriptor filename so
    the path points at its directory, and turns an empty result into None.
    """
    if base_path is None:
        return None

    parts = [p for p in base_path.strip().split("/") if p]
    if parts and parts[-1].lower() == DESCRIPTOR_FILENAME.lower():
        parts = parts[:-1]

    if not parts:
        return None
    return "/".join(parts)


def normalize_revision(revision: Optional[str]) -> Optional[str]:
    """Trim a revision, turning a blank value into None."""
    if revision is None:
        return None
    revision = revision.strip()
    return revision or None


def make_repository_id(owner: str, name: str, base_path: Optional[str] = None) -> str:
    """Derive the stable id of a repository reference.

    Examples:
        >>> make_repository_id("Octocat", "Hello-World")
        'octocat-hello-world'
        >>> make_repository_id("o", "r", "skills/foo")
        'o-r-skills-foo'
    """
    repo_id = f"{owner}-{name}"
    if base_path:
        repo_id += "-" + base_path.replace("/", "-")
    return repo_id.lower()


def build_reference(
    owner: str,
    name: str,
    base_path: Optional[str] = None,
    revision: Optional[str] = None,
    is_builtin: bool = False,
) -> RepositoryReference:
    """Validate parts and assemble a RepositoryReference.

    Raises:
        ParseError: If owner or name are not valid GitHub identifiers
    """
    owner = owner.strip()
    name = strip_git_suffix(name.strip())

    if not OWNER_PATTERN.match(owner):
        raise ParseError(f"Invalid repository owner: {owner!r}")
    if not REPO_NAME_PATTERN.match(name) or name in (".", ".."):
        raise ParseError(f"Invalid repository name: {name!r}")

    base_path = normalize_base_path(base_path)
    return RepositoryReference(
        id=make_repository_id(owner, name, base_path),
        owner=owner,
        name=name,
        base_path=base_path,
        revision=normalize_revision(revision),
        is_builtin=is_builtin,
    )


# =============================================================================
# Resolution
# =============================================================================


def resolve(text: str) -> RepositoryReference:
    """Parse user input into a canonical repository reference.

    Args:
        text: Bare ``owner/name`` path, GitHub web URL, raw-content URL,
            or SSH clone URL

    Returns:
        The normalized RepositoryReference

    Raises:
        ParseError: If the input is empty, malformed, or names an
            unsupported host
    """
    raw = (text or "").strip()
    if not raw:
        raise ParseError("Repository reference is empty")

    if raw.startswith(("http://", "https://")):
        return _resolve_url(raw)

    if raw.startswith("git@"):
        return _resolve_ssh(raw)

    if "://" in raw:
        raise ParseError(f"Unsupported URL scheme: {raw}")

    return _resolve_bare(raw)


def _resolve_bare(raw: str) -> RepositoryReference:
    if any(ch.isspace() for ch in raw):
        raise ParseError(f"Invalid repository reference: {raw!r}")

    parts = [p for p in raw.split("/") if p]
    if len(parts) < 2:
        raise ParseError(f"Expected owner/name, got: {raw!r}")

    base_path = "/".join(parts[2:]) if len(parts) > 2 else None
    return build_reference(parts[0], parts[1], base_path=base_path)


def _resolve_url(raw: str) -> RepositoryReference:
    try:
        url = urlsplit(raw)
        host = (url.hostname or "").lower()
    except ValueError as e:
        raise ParseError(f"Malformed URL: {raw}") from e

    parts = [p for p in url.path.split("/") if p]
    if len(parts) < 2:
        raise ParseError(f"URL does not name a repository: {raw}")

    if host == RAW_HOST:
        # raw.githubusercontent.com/<owner>/<name>/<revision>/<path...>
        if len(parts) < 3:
            raise ParseError(f"Raw URL is missing a revision: {raw}")
        return build_reference(
            parts[0],
            parts[1],
            base_path="/".join(parts[3:]),
            revision=parts[2],
        )

    if host not in WEB_HOSTS:
        raise ParseError(f"Unsupported host: {host or raw}")

    revision = None
    base_path = None
    if len(parts) > 2 and parts[2] in ("tree", "blob"):
        if len(parts) < 4:
            raise ParseError(f"URL is missing a revision after '{parts[2]}': {raw}")
        revision = parts[3]
        base_path = "/".join(parts[4:])

    return build_reference(parts[0], parts[1], base_path=base_path, revision=revision)


def _resolve_ssh(raw: str) -> RepositoryReference:
    if not raw.startswith(SSH_PREFIX):
        raise ParseError(f"Unsupported SSH host: {raw}")

    rest = raw[len(SSH_PREFIX):]
    parts = [p for p in rest.split("/") if p]
    if len(parts) != 2:
        raise ParseError(f"Expected git@github.com:owner/name.git, got: {raw}")

    return build_reference(parts[0], parts[1])
