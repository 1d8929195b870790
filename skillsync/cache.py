"""Catalog cache.

Two layers:

- VersionedStore: a process-wide key/value store whose contents are
  replaced by swapping immutable snapshots, so readers never see a
  half-applied update. Components receive it by injection.
- SkillCache: the synchronized catalog kept in the store, plus one JSON
  snapshot per repository on disk so the catalog survives restarts.
"""

from __future__ import annotations

import json
import logging
import os
import re
from collections.abc import Iterable, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any, Optional

from skillsync.models import SkillDescriptor


logger = logging.getLogger(__name__)

CATALOG_KEY = "catalog"

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


# =============================================================================
# Versioned Store
# =============================================================================


class VersionedStore:
    """Copy-on-write key/value store with per-key versions.

    Every write builds a new read-only mapping and swaps it in with a single
    assignment. Versions increase on every replace or invalidate, which lets
    readers detect that a value they hold is stale.
    """

    def __init__(self) -> None:
        self._values: Mapping[str, Any] = MappingProxyType({})
        self._versions: Mapping[str, int] = MappingProxyType({})

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def __contains__(self, key: str) -> bool:
        return key in self._values

    def version(self, key: str) -> int:
        return self._versions.get(key, 0)

    def snapshot(self) -> Mapping[str, Any]:
        """The current contents as a read-only mapping."""
        return self._values

    def replace(self, key: str, value: Any) -> int:
        """Set ``key`` to ``value`` and return the new version."""
        values = dict(self._values)
        values[key] = value
        return self._swap(key, values)

    def invalidate(self, key: str) -> int:
        """Drop ``key`` so the next reader has to reload it."""
        values = dict(self._values)
        values.pop(key, None)
        return self._swap(key, values)

    def _swap(self, key: str, values: dict[str, Any]) -> int:
        versions = dict(self._versions)
        versions[key] = versions.get(key, 0) + 1
        self._values = MappingProxyType(values)
        self._versions = MappingProxyType(versions)
        return versions[key]


# =============================================================================
# Skill Cache
# =============================================================================


def snapshot_filename(reference_id: str) -> str:
    """File name of the on-disk snapshot for a reference."""
    return _UNSAFE_FILENAME_CHARS.sub("_", reference_id) + ".json"


class SkillCache:
    """The merged catalog of every configured repository.

    Args:
        store: Shared store the catalog lives in
        snapshot_dir: Directory for per-repository JSON snapshots
    """

    def __init__(self, store: VersionedStore, snapshot_dir: Path):
        self.store = store
        self.snapshot_dir = Path(snapshot_dir)

    # -- in-memory catalog ----------------------------------------------------

    def _catalog(self) -> Mapping[str, SkillDescriptor]:
        return self.store.get(CATALOG_KEY) or MappingProxyType({})

    @property
    def version(self) -> int:
        return self.store.version(CATALOG_KEY)

    def entries(self) -> list[SkillDescriptor]:
        """All cached descriptors, in merge order."""
        return list(self._catalog().values())

    def get(self, skill_id: str) -> Optional[SkillDescriptor]:
        return self._catalog().get(skill_id)

    def __len__(self) -> int:
        return len(self._catalog())

    def is_empty(self) -> bool:
        return len(self) == 0

    def contribution(self, reference_id: str) -> list[SkillDescriptor]:
        """Descriptors that came from one repository."""
        return [d for d in self._catalog().values() if d.source_reference == reference_id]

    def replace_all(self, descriptors: Iterable[SkillDescriptor]) -> int:
        """Swap in a new catalog in one step.

        Later duplicates of an id are dropped.

        Returns:
            The new catalog version
        """
        catalog: dict[str, SkillDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.id in catalog:
                logger.warning("Duplicate catalog id ignored: %s", descriptor.id)
                continue
            catalog[descriptor.id] = descriptor
        return self.store.replace(CATALOG_KEY, MappingProxyType(catalog))

    def clear(self) -> None:
        """Forget the in-memory catalog and every on-disk snapshot."""
        self.store.invalidate(CATALOG_KEY)
        self.clear_snapshots()

    # -- on-disk snapshots ----------------------------------------------------

    def snapshot_path(self, reference_id: str) -> Path:
        return self.snapshot_dir / snapshot_filename(reference_id)

    def load_snapshot(self, reference_id: str) -> Optional[list[SkillDescriptor]]:
        """Read a repository snapshot.

        Returns:
            The cached descriptors, or None when there is no usable snapshot
        """
        path = self.snapshot_path(reference_id)
        if not path.exists():
            return None

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return [SkillDescriptor.from_dict(item) for item in data.get("skills", [])]
        except (OSError, json.JSONDecodeError, KeyError, TypeError, AttributeError) as e:
            logger.warning("Ignoring unreadable snapshot %s: %s", path, e)
            return None

    def save_snapshot(self, reference_id: str, descriptors: Iterable[SkillDescriptor]) -> Path:
        """Write a repository snapshot atomically."""
        self.snapshot_dir.mkdir(parents=True, exist_ok=True)
        path = self.snapshot_path(reference_id)
        data = {
            "reference": reference_id,
            "skills": [d.to_dict() for d in descriptors],
        }
        tmp_path = path.with_name(path.name + ".tmp")
        tmp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        os.replace(tmp_path, path)
        return path

    def clear_snapshot(self, reference_id: str) -> bool:
        """Delete one repository snapshot. Returns True if one existed."""
        path = self.snapshot_path(reference_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    def clear_snapshots(self) -> int:
        """Delete every snapshot. Returns how many were removed."""
        if not self.snapshot_dir.exists():
            return 0

        removed = 0
        for path in self.snapshot_dir.glob("*.json"):
            try:
                path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
        return removed
