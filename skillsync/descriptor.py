"""SKILL.md descriptor reading.

The descriptor is treated as an opaque record: only the frontmatter keys
``name``, ``description``, ``author`` and ``tags`` are read, plus the first
paragraph of the body as a fallback description.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import yaml

from skillsync.models import SkillCategory, SkillMetadata


logger = logging.getLogger(__name__)

DESCRIPTOR_FILENAME = "SKILL.md"

# Shorter lines are usually badges or fragments, not a description
MIN_PARAGRAPH_LENGTH = 20

# Checked in order; the first category with a matching keyword wins
CATEGORY_KEYWORDS: tuple[tuple[SkillCategory, tuple[str, ...]], ...] = (
    (SkillCategory.DEVELOPMENT, ("code", "develop", "test", "git")),
    (SkillCategory.DATA, ("data", "csv", "sql", "analy")),
    (SkillCategory.WRITING, ("writ", "article", "content", "doc")),
    (SkillCategory.BUSINESS, ("business", "market", "lead", "sales")),
    (SkillCategory.CREATIVE, ("image", "video", "creative", "design")),
    (SkillCategory.PRODUCTIVITY, ("productiv", "organiz", "file", "automat")),
)


def split_frontmatter(content: str) -> tuple[Optional[str], str]:
    """Split a descriptor into (frontmatter, body).

    Returns None for the frontmatter when the file does not start with
    a ``---`` fence or the closing fence is missing.
    """
    if not content.startswith("---"):
        return None, content

    rest = content[3:]
    end = rest.find("\n---")
    if end == -1:
        return None, content

    frontmatter = rest[:end]
    body = rest[end + len("\n---"):]
    return frontmatter, body.lstrip("\n")


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_tags(value: Any) -> Optional[tuple[str, ...]]:
    if value is None:
        return None
    if isinstance(value, str):
        inner = value.strip()
        if inner.startswith("[") and inner.endswith("]"):
            inner = inner[1:-1]
        items = [t.strip().strip("\"'") for t in inner.split(",")]
    elif isinstance(value, (list, tuple)):
        items = [str(t).strip() for t in value]
    else:
        return None
    tags = tuple(t for t in items if t)
    return tags or None


def parse_frontmatter(frontmatter: str) -> SkillMetadata:
    """Read the known keys from a YAML frontmatter block.

    Invalid YAML yields empty metadata rather than an error.
    """
    try:
        data = yaml.safe_load(frontmatter)
    except yaml.YAMLError as e:
        logger.debug("Ignoring invalid frontmatter: %s", e)
        return SkillMetadata()

    if not isinstance(data, dict):
        return SkillMetadata()

    return SkillMetadata(
        name=_as_text(data.get("name")),
        description=_as_text(data.get("description")),
        author=_as_text(data.get("author")),
        tags=_parse_tags(data.get("tags")),
    )


def extract_first_paragraph(body: str) -> Optional[str]:
    """Return the first line that reads like prose.

    Headings, list items, fences and short lines are skipped.
    """
    in_fence = False
    for line in body.splitlines():
        text = line.strip()
        if text.startswith("```"):
            in_fence = not in_fence
            continue
        if in_fence or not text:
            continue
        if text.startswith(("#", "-", "*", ">", "|", "<!--")):
            continue
        if len(text) > MIN_PARAGRAPH_LENGTH:
            return text
    return None


def parse_skill_md(content: str) -> tuple[SkillMetadata, Optional[str]]:
    """Parse descriptor text.

    Returns:
        Tuple of (frontmatter metadata, first body paragraph or None)
    """
    frontmatter, body = split_frontmatter(content)
    metadata = parse_frontmatter(frontmatter) if frontmatter is not None else SkillMetadata()
    return metadata, extract_first_paragraph(body)


def describe(content: str) -> Optional[str]:
    """Best description available in descriptor text."""
    metadata, paragraph = parse_skill_md(content)
    return metadata.description or paragraph


def categorize_skill(
    name: str,
    description: str,
    tags: Optional[tuple[str, ...]] = None,
) -> SkillCategory:
    """Guess a category from keywords in the name, description and tags."""
    text = " ".join([name, description, *(tags or ())]).lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return category
    return SkillCategory.OTHER
