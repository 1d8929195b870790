"""Installation manager for local skill directories.

Skills live one directory per skill under the skills root
(``~/.claude/skills`` by default). A directory that already exists is
a conflict: installs never overwrite.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import sys
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import yaml

from skillsync.cache import SkillCache
from skillsync.descriptor import DESCRIPTOR_FILENAME, parse_skill_md
from skillsync.errors import InstallError, InstallErrorKind
from skillsync.github import CatalogFetcher
from skillsync.models import CreateSkillFile, InstalledSkillRecord
from skillsync.paths import (
    is_executable_resource,
    is_safe_relative_path,
    plan_resource_paths,
    slugify_skill_name,
)


logger = logging.getLogger(__name__)

EXECUTABLE_MODE = 0o755


def render_skill_md(
    slug: str,
    name: str,
    description: str,
    instructions: str,
    examples: Optional[str] = None,
) -> str:
    """Render the SKILL.md of a locally created skill."""
    frontmatter = yaml.safe_dump(
        {"name": slug, "description": description, "author": "custom"},
        sort_keys=False,
        allow_unicode=True,
        width=10_000,
    )
    content = (
        f"---\n{frontmatter}---\n\n"
        f"# {name.strip()}\n\n"
        f"{description}\n\n"
        f"## Instructions\n\n"
        f"{instructions}\n"
    )
    if examples and examples.strip():
        content += f"\n## Examples\n\n{examples}\n"
    return content


def _ignore_missing(func, path, exc) -> None:
    # rmtree passes an exception (onexc) or an exc_info tuple (onerror)
    error = exc[1] if isinstance(exc, tuple) else exc
    if isinstance(error, FileNotFoundError):
        return
    raise error


def remove_tree(path: Path) -> None:
    """Delete a directory tree, ignoring entries that are already gone."""
    if sys.version_info >= (3, 12):
        shutil.rmtree(path, onexc=_ignore_missing)
    else:
        shutil.rmtree(path, onerror=_ignore_missing)


class InstallationManager:
    """Install, remove and create skills in the skills directory.

    Args:
        skills_dir: Root directory holding one directory per skill
        cache: Catalog the install ids are looked up in
        fetcher: Source of skill files
    """

    def __init__(self, skills_dir: Path, cache: SkillCache, fetcher: CatalogFetcher):
        self._skills_dir = Path(skills_dir)
        self.cache = cache
        self.fetcher = fetcher
        # target path -> [lock, number of users]
        self._locks: dict[str, list] = {}

    @property
    def skills_dir(self) -> Path:
        return self._skills_dir

    @asynccontextmanager
    async def _target_lock(self, target: Path) -> AsyncIterator[None]:
        """Serialize work on one skill directory.

        The lock entry is dropped once its last user leaves, so the table
        only holds directories with work in progress.
        """
        key = str(target)
        entry = self._locks.get(key)
        if entry is None:
            entry = self._locks[key] = [asyncio.Lock(), 0]
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    def target_path(self, name: str) -> Path:
        """Directory a skill named ``name`` lives in.

        Raises:
            InstallError: INVALID_NAME unless ``name`` is a single plain segment
        """
        if (
            not name
            or name in (".", "..")
            or "/" in name
            or "\\" in name
            or name != name.strip()
        ):
            raise InstallError(InstallErrorKind.INVALID_NAME, repr(name))
        return self._skills_dir / name

    # -------------------------------------------------------------------------
    # Install / uninstall
    # -------------------------------------------------------------------------

    async def install(self, skill_id: str) -> Path:
        """Install a catalog skill.

        Args:
            skill_id: Catalog id of the skill

        Returns:
            The created skill directory

        Raises:
            InstallError: NOT_FOUND, ALREADY_INSTALLED or IO
            FetchError: If downloading the skill files fails
        """
        descriptor = self.cache.get(skill_id)
        if descriptor is None:
            raise InstallError(InstallErrorKind.NOT_FOUND, f"Skill not in catalog: {skill_id}")

        target = self.target_path(descriptor.install_path)
        async with self._target_lock(target):
            await asyncio.to_thread(self._create_target, target)
            try:
                files = await self.fetcher.download_skill_files(descriptor)
            except (Exception, asyncio.CancelledError):
                await asyncio.to_thread(self._remove_partial, target)
                raise
            await self._write_shielded(target, files)

        logger.info("Installed %s to %s", skill_id, target)
        return target

    async def uninstall(self, name: str) -> None:
        """Remove an installed skill directory.

        Raises:
            InstallError: NOT_FOUND if absent, IO if removal fails
        """
        target = self.target_path(name)
        async with self._target_lock(target):
            if not await asyncio.to_thread(target.is_dir):
                raise InstallError(InstallErrorKind.NOT_FOUND, name)
            try:
                await asyncio.to_thread(remove_tree, target)
            except OSError as e:
                raise InstallError(InstallErrorKind.IO, f"Could not remove {target}: {e}") from e

        logger.info("Uninstalled %s", name)

    async def create_custom(
        self,
        name: str,
        description: str,
        instructions: str,
        examples: Optional[str] = None,
        resources: Optional[Sequence[CreateSkillFile]] = None,
    ) -> Path:
        """Create a new skill from user input.

        Resource files are stored under ``resources/`` with sanitized,
        collision-free names.

        Raises:
            InstallError: INVALID_NAME if the name has no usable characters,
                ALREADY_INSTALLED or IO as for install
        """
        slug = slugify_skill_name(name)
        if not slug:
            raise InstallError(InstallErrorKind.INVALID_NAME, repr(name))

        content = render_skill_md(slug, name, description, instructions, examples)
        files = [
            CreateSkillFile(relative_path=DESCRIPTOR_FILENAME, content=content.encode("utf-8")),
            *plan_resource_paths(resources or [], reserved=[DESCRIPTOR_FILENAME]),
        ]

        target = self.target_path(slug)
        async with self._target_lock(target):
            await asyncio.to_thread(self._create_target, target)
            await self._write_shielded(target, files)

        logger.info("Created skill %s at %s", slug, target)
        return target

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def is_installed(self, name: str) -> bool:
        try:
            return self.target_path(name).is_dir()
        except InstallError:
            return False

    def get_skill_content(self, name: str) -> str:
        """Text of an installed skill's SKILL.md.

        Raises:
            InstallError: NOT_FOUND if missing, IO if unreadable
        """
        skill_md = self.target_path(name) / DESCRIPTOR_FILENAME
        if not skill_md.is_file():
            raise InstallError(InstallErrorKind.NOT_FOUND, name)
        try:
            return skill_md.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise InstallError(InstallErrorKind.IO, f"Could not read {skill_md}: {e}") from e

    def list_installed(self) -> list[InstalledSkillRecord]:
        """Every skill directory with a readable SKILL.md, sorted by id."""
        if not self._skills_dir.is_dir():
            return []

        records = []
        for item in self._skills_dir.iterdir():
            record = self._read_record(item)
            if record is not None:
                records.append(record)

        return sorted(records, key=lambda r: r.id)

    def _read_record(self, item: Path) -> Optional[InstalledSkillRecord]:
        if not item.is_dir():
            return None

        skill_md = item / DESCRIPTOR_FILENAME
        try:
            content = skill_md.read_text(encoding="utf-8")
            mtime = item.stat().st_mtime
        except (OSError, UnicodeDecodeError) as e:
            logger.debug("Skipping %s: %s", item, e)
            return None

        metadata, paragraph = parse_skill_md(content)
        return InstalledSkillRecord(
            id=item.name,
            name=metadata.name or item.name,
            description=metadata.description or paragraph or f"Skill: {item.name}",
            path=str(item),
            installed_at=datetime.fromtimestamp(mtime, tz=timezone.utc).isoformat(),
        )

    # -------------------------------------------------------------------------
    # Filesystem steps
    # -------------------------------------------------------------------------

    def _create_target(self, target: Path) -> None:
        try:
            self._skills_dir.mkdir(parents=True, exist_ok=True)
            target.mkdir(exist_ok=False)
        except FileExistsError as e:
            raise InstallError(InstallErrorKind.ALREADY_INSTALLED, target.name) from e
        except OSError as e:
            raise InstallError(InstallErrorKind.IO, f"Could not create {target}: {e}") from e

    def _remove_partial(self, target: Path) -> None:
        try:
            remove_tree(target)
        except OSError as e:
            logger.warning("Could not clean up %s: %s", target, e)

    async def _write_shielded(self, target: Path, files: Sequence[CreateSkillFile]) -> None:
        # Once writing starts it runs to completion even if the caller is cancelled.
        write = asyncio.ensure_future(asyncio.to_thread(self._write_files, target, files))
        try:
            await asyncio.shield(write)
        except asyncio.CancelledError:
            logger.warning("Caller cancelled while writing %s; files are kept", target)
            raise
        except InstallError:
            await asyncio.to_thread(self._remove_partial, target)
            raise
        except OSError as e:
            await asyncio.to_thread(self._remove_partial, target)
            raise InstallError(InstallErrorKind.IO, f"Could not write {target}: {e}") from e

    def _write_files(self, target: Path, files: Sequence[CreateSkillFile]) -> None:
        root = target.resolve()
        for item in files:
            if not is_safe_relative_path(item.relative_path):
                raise InstallError(
                    InstallErrorKind.IO, f"Refusing unsafe path: {item.relative_path}"
                )

            path = (target / item.relative_path.replace("\\", "/")).resolve()
            if root not in path.parents:
                raise InstallError(
                    InstallErrorKind.IO, f"Refusing path outside skill: {item.relative_path}"
                )

            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(item.content)
            if os.name == "posix" and is_executable_resource(item.relative_path):
                path.chmod(EXECUTABLE_MODE)
