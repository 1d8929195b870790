"""Data models for skillsync."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


# =============================================================================
# Categories
# =============================================================================


class SkillCategory(str, Enum):
    """Closed set of catalog categories."""

    DEVELOPMENT = "development"
    DATA = "data"
    WRITING = "writing"
    BUSINESS = "business"
    CREATIVE = "creative"
    PRODUCTIVITY = "productivity"
    OTHER = "other"

    @classmethod
    def parse(cls, value: Optional[str]) -> SkillCategory:
        """Parse a stored category value, defaulting to OTHER."""
        try:
            return cls((value or "").lower())
        except ValueError:
            return cls.OTHER


@dataclass(frozen=True)
class CategoryStyle:
    """Presentation hints for a category."""

    icon: str
    color: str


def category_style(category: SkillCategory) -> CategoryStyle:
    """Map a category to its presentation style.

    Raises:
        ValueError: If the category has no style (a new member was added
            without extending this function)
    """
    if category is SkillCategory.DEVELOPMENT:
        return CategoryStyle(icon="</>", color="blue")
    if category is SkillCategory.DATA:
        return CategoryStyle(icon="▦", color="green")
    if category is SkillCategory.WRITING:
        return CategoryStyle(icon="✎", color="magenta")
    if category is SkillCategory.BUSINESS:
        return CategoryStyle(icon="$", color="dark_orange")
    if category is SkillCategory.CREATIVE:
        return CategoryStyle(icon="✦", color="bright_magenta")
    if category is SkillCategory.PRODUCTIVITY:
        return CategoryStyle(icon="⚡", color="yellow")
    if category is SkillCategory.OTHER:
        return CategoryStyle(icon="•", color="white")
    raise ValueError(f"No style for category: {category!r}")


# =============================================================================
# Repository References
# =============================================================================


@dataclass
class RepositoryReference:
    """A normalized pointer to a GitHub repository hosting skills."""

    id: str
    owner: str
    name: str
    base_path: Optional[str] = None
    revision: Optional[str] = None
    is_builtin: bool = False
    last_synced_at: Optional[str] = None
    item_count: Optional[int] = None

    @property
    def slug(self) -> str:
        """The ``owner/name`` form of the reference."""
        return f"{self.owner}/{self.name}"

    @property
    def display_name(self) -> str:
        if self.base_path:
            return f"{self.slug}/{self.base_path}"
        return self.slug

    @property
    def web_url(self) -> str:
        url = f"https://github.com/{self.slug}"
        if self.revision or self.base_path:
            url += f"/tree/{self.revision or 'HEAD'}"
            if self.base_path:
                url += f"/{self.base_path}"
        return url

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        result: dict[str, Any] = {
            "id": self.id,
            "owner": self.owner,
            "name": self.name,
            "is_builtin": self.is_builtin,
        }
        if self.base_path:
            result["base_path"] = self.base_path
        if self.revision:
            result["revision"] = self.revision
        if self.last_synced_at:
            result["last_synced_at"] = self.last_synced_at
        if self.item_count is not None:
            result["item_count"] = self.item_count
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RepositoryReference:
        """Create from dictionary."""
        return cls(
            id=data["id"],
            owner=data["owner"],
            name=data["name"],
            base_path=data.get("base_path"),
            revision=data.get("revision"),
            is_builtin=data.get("is_builtin", False),
            last_synced_at=data.get("last_synced_at"),
            item_count=data.get("item_count"),
        )


# =============================================================================
# Skills
# =============================================================================


@dataclass(frozen=True)
class SkillMetadata:
    """Frontmatter fields read from a SKILL.md file."""

    name: Optional[str] = None
    description: Optional[str] = None
    author: Optional[str] = None
    tags: Optional[tuple[str, ...]] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.name is not None:
            result["name"] = self.name
        if self.description is not None:
            result["description"] = self.description
        if self.author is not None:
            result["author"] = self.author
        if self.tags is not None:
            result["tags"] = list(self.tags)
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SkillMetadata:
        tags = data.get("tags")
        return cls(
            name=data.get("name"),
            description=data.get("description"),
            author=data.get("author"),
            tags=tuple(tags) if tags is not None else None,
        )


@dataclass(frozen=True)
class SkillDescriptor:
    """A skill discovered in a synchronized catalog.

    Attributes:
        id: ``<reference id>:<path inside the repository>``
        name: Display name
        description: One-line description
        source_reference: Id of the RepositoryReference it came from
        owner: Repository owner
        repository: Repository name
        source_path: Directory of the skill inside the repository
        revision: Branch, tag or commit the skill was read from
        install_path: Directory name the skill installs to
        category: Catalog category
        long_description: Full descriptor text, when fetched
        metadata: Parsed frontmatter
        installed_at: Install timestamp, when known
    """

    id: str
    name: str
    description: str
    source_reference: str
    owner: str
    repository: str
    source_path: str
    install_path: str
    category: SkillCategory = SkillCategory.OTHER
    revision: Optional[str] = None
    long_description: Optional[str] = None
    metadata: Optional[SkillMetadata] = None
    installed_at: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        result: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "source_reference": self.source_reference,
            "owner": self.owner,
            "repository": self.repository,
            "source_path": self.source_path,
            "install_path": self.install_path,
            "category": self.category.value,
        }
        if self.revision:
            result["revision"] = self.revision
        if self.long_description is not None:
            result["long_description"] = self.long_description
        if self.metadata is not None:
            result["metadata"] = self.metadata.to_dict()
        if self.installed_at:
            result["installed_at"] = self.installed_at
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SkillDescriptor:
        """Create from dictionary."""
        metadata = data.get("metadata")
        return cls(
            id=data["id"],
            name=data["name"],
            description=data.get("description", ""),
            source_reference=data["source_reference"],
            owner=data["owner"],
            repository=data["repository"],
            source_path=data.get("source_path", ""),
            install_path=data["install_path"],
            category=SkillCategory.parse(data.get("category")),
            revision=data.get("revision"),
            long_description=data.get("long_description"),
            metadata=SkillMetadata.from_dict(metadata) if metadata is not None else None,
            installed_at=data.get("installed_at"),
        )


@dataclass(frozen=True)
class InstalledSkillRecord:
    """A skill present in the local skills directory."""

    id: str
    name: str
    description: str
    path: str
    installed_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "path": self.path,
            "installed_at": self.installed_at,
        }


@dataclass(frozen=True)
class CreateSkillFile:
    """An auxiliary file to write when creating a skill."""

    relative_path: str
    content: bytes


@dataclass
class SyncResult:
    """Outcome of one synchronization run."""

    success: bool
    items_found: int
    message: str
    rate_limited: bool = False
    failures: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "items_found": self.items_found,
            "message": self.message,
            "rate_limited": self.rate_limited,
            "failures": dict(self.failures),
        }
