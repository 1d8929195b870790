"""Pure path helpers for skill names and resource files.

Nothing in this module touches the filesystem, so every rule can be
tested with plain strings.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from pathlib import PurePosixPath, PureWindowsPath
from typing import Optional

from skillsync.models import CreateSkillFile


RESOURCES_DIR = "resources"
MAX_SEGMENT_LENGTH = 120

_SEPARATORS = re.compile(r"[\\/]+")
_DOT_RUNS = re.compile(r"\.+")
_DISALLOWED_SEGMENT_CHARS = re.compile(r"[^\w.\- ]+", re.ASCII)
_DISALLOWED_NAME_CHARS = re.compile(r"[^a-z0-9_-]+")
_HYPHEN_RUNS = re.compile(r"-{2,}")

SCRIPT_SUFFIXES = (".sh", ".command")


def slugify_skill_name(name: str) -> str:
    """Turn a display name into a directory-safe skill id.

    Lowercases, maps spaces to hyphens and drops everything outside
    ``[a-z0-9_-]``.

    Examples:
        >>> slugify_skill_name("My Cool Skill!")
        'my-cool-skill'
    """
    slug = name.strip().lower().replace(" ", "-")
    slug = _DISALLOWED_NAME_CHARS.sub("", slug)
    slug = _HYPHEN_RUNS.sub("-", slug)
    return slug.strip("-")


def sanitize_path_segment(segment: str) -> str:
    """Clean one path segment.

    Separators become hyphens, runs of dots collapse to one dot, characters
    outside word characters, dot, hyphen and space are removed, and the
    result is trimmed and capped in length.
    """
    cleaned = _SEPARATORS.sub("-", segment)
    cleaned = _DOT_RUNS.sub(".", cleaned)
    cleaned = _DISALLOWED_SEGMENT_CHARS.sub("", cleaned)
    return cleaned.strip()[:MAX_SEGMENT_LENGTH].strip()


def sanitize_segments(segments: Iterable[str]) -> list[str]:
    """Sanitize raw path segments, dropping empty and relative ones."""
    safe = []
    for raw in segments:
        raw = raw.strip()
        if not raw or raw in (".", ".."):
            continue
        segment = sanitize_path_segment(raw)
        if segment and segment not in (".", ".."):
            safe.append(segment)
    return safe


def sanitize_relative_path(path: str) -> list[str]:
    """Split a user-supplied path on either separator and sanitize it.

    Traversal segments are dropped, so the result always stays below
    the directory it is joined to.
    """
    return sanitize_segments(_SEPARATORS.split(path))


def resolve_collision(path: str, used: set[str]) -> str:
    """Return ``path`` or a numbered variant not present in ``used``.

    Comparison is case-insensitive; ``used`` holds lowercased paths and is
    updated with the chosen path.

    Examples:
        >>> resolve_collision("resources/a.txt", {"resources/a.txt"})
        'resources/a-2.txt'
    """
    candidate = path
    if candidate.lower() in used:
        slash = path.rfind("/")
        dot = path.rfind(".")
        if dot > slash + 1:
            stem, ext = path[:dot], path[dot:]
        else:
            stem, ext = path, ""
        index = 2
        while f"{stem}-{index}{ext}".lower() in used:
            index += 1
        candidate = f"{stem}-{index}{ext}"

    used.add(candidate.lower())
    return candidate


def plan_resource_paths(
    files: Sequence[CreateSkillFile],
    prefix: str = RESOURCES_DIR,
    reserved: Optional[Iterable[str]] = None,
) -> list[CreateSkillFile]:
    """Assign every resource file a safe, unique target path.

    Files with a blank path are skipped. Paths that sanitize to nothing are
    stored as ``file``. Every target lives under ``prefix``.

    Args:
        files: Raw files as supplied by the user
        prefix: Subdirectory that holds resources
        reserved: Paths already taken (for example the descriptor)

    Returns:
        Files with sanitized ``relative_path`` values, in input order
    """
    used = {p.lower() for p in (reserved or ())}
    planned = []

    for item in files:
        if not item.relative_path.strip():
            continue

        segments = sanitize_relative_path(item.relative_path)
        if segments and segments[0] == prefix:
            segments = segments[1:]
        target = "/".join([prefix, *(segments or ["file"])])

        planned.append(
            CreateSkillFile(
                relative_path=resolve_collision(target, used),
                content=item.content,
            )
        )

    return planned


def is_safe_relative_path(path: str) -> bool:
    """Check that a path is relative and never climbs out of its root."""
    if not path or not path.strip():
        return False
    posix = PurePosixPath(path.replace("\\", "/"))
    if posix.is_absolute() or PureWindowsPath(path).drive:
        return False
    return ".." not in posix.parts


def is_executable_resource(path: str) -> bool:
    """Whether a file should be marked executable after install."""
    normalized = path.replace("\\", "/")
    return "scripts" in normalized.split("/") or normalized.endswith(SCRIPT_SUFFIXES)
