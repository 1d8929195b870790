"""Tests for skillsync.api module."""

import pytest

from conftest import FakeFetcher, make_descriptor
from skillsync.api import SkillSyncAPI
from skillsync.cache import SkillCache, VersionedStore
from skillsync.config import SkillSyncConfig
from skillsync.errors import InstallError, ParseError
from skillsync.github import GitHubCatalogFetcher
from skillsync.state import ClientStateCoordinator


BUILTIN_ID = "composiohq-awesome-claude-skills"


@pytest.fixture
def api(repo_store, cache, fetcher, tmp_path) -> SkillSyncAPI:
    return SkillSyncAPI(repo_store, cache, fetcher, tmp_path / "skills")


class TestConstruction:
    """Tests for building and closing the API."""

    @pytest.mark.asyncio
    async def test_from_config(self, tmp_path):
        config = SkillSyncConfig(
            skills_dir=str(tmp_path / "skills"),
            cache_dir=str(tmp_path / "cache"),
        )
        async with SkillSyncAPI.from_config(config) as api:
            assert api.get_skills_directory() == tmp_path / "skills"
            assert api.cache.snapshot_dir == tmp_path / "cache"
            assert isinstance(api.fetcher, GitHubCatalogFetcher)

    @pytest.mark.asyncio
    async def test_context_closes_fetcher(self, api, fetcher):
        async with api:
            pass
        assert fetcher.closed

    def test_client_state_shares_store(self, api, cache):
        state = api.client_state()
        assert isinstance(state, ClientStateCoordinator)
        assert state.store is cache.store


class TestCatalog:
    """Tests for sync and cached reads through the API."""

    @pytest.mark.asyncio
    async def test_sync_then_read(self, api, fetcher):
        fetcher.catalogs[BUILTIN_ID] = [make_descriptor(BUILTIN_ID, "a")]

        result = await api.sync_repositories()
        skills = await api.get_cached_skills()

        assert result.success
        assert [s.id for s in skills] == [f"{BUILTIN_ID}:a"]

    @pytest.mark.asyncio
    async def test_force_sync(self, api, fetcher):
        fetcher.catalogs[BUILTIN_ID] = [make_descriptor(BUILTIN_ID, "a")]
        result = await api.force_sync_repositories()
        assert result.message.startswith("Force synced")

    @pytest.mark.asyncio
    async def test_cached_skills_warm_from_snapshots(self, repo_store, store, tmp_path):
        """Test a new process serves the last sync without network access."""
        first_fetcher = FakeFetcher()
        first_fetcher.catalogs[BUILTIN_ID] = [make_descriptor(BUILTIN_ID, "a")]
        first = SkillSyncAPI(repo_store, SkillCache(store, tmp_path / "cache"), first_fetcher, tmp_path)
        await first.sync_repositories()

        second_fetcher = FakeFetcher()
        fresh_cache = SkillCache(VersionedStore(), tmp_path / "cache")
        second = SkillSyncAPI(repo_store, fresh_cache, second_fetcher, tmp_path)

        skills = await second.get_cached_skills()

        assert [s.id for s in skills] == [f"{BUILTIN_ID}:a"]
        assert second_fetcher.fetched == []

    @pytest.mark.asyncio
    async def test_fetch_catalog(self, api, fetcher):
        fetcher.catalogs["acme-skills"] = [make_descriptor("acme-skills", "x")]
        skills = await api.fetch_catalog("acme", "skills")
        assert len(skills) == 1
        assert await api.get_cached_skills() == []


class TestInstalledSkills:
    """Tests for install operations through the API."""

    @pytest.mark.asyncio
    async def test_install_list_uninstall(self, api, fetcher):
        fetcher.catalogs[BUILTIN_ID] = [make_descriptor(BUILTIN_ID, "skills/pdf")]
        await api.sync_repositories()

        path = await api.install_skill(f"{BUILTIN_ID}:skills/pdf")

        assert path == api.get_skills_directory() / "pdf"
        assert await api.is_skill_installed("pdf")
        assert [r.id for r in await api.list_installed_skills()] == ["pdf"]
        assert "Work with PDF documents" in await api.get_skill_content("pdf")

        await api.uninstall_skill("pdf")
        assert await api.list_installed_skills() == []

    @pytest.mark.asyncio
    async def test_install_after_sync_in_another_process(self, repo_store, tmp_path):
        """Test an install finds ids synced by an earlier, separate instance."""
        syncing_fetcher = FakeFetcher()
        syncing_fetcher.catalogs[BUILTIN_ID] = [make_descriptor(BUILTIN_ID, "skills/pdfkit")]
        first = SkillSyncAPI(
            repo_store,
            SkillCache(VersionedStore(), tmp_path / "cache"),
            syncing_fetcher,
            tmp_path / "skills",
        )
        assert (await first.sync_repositories()).success

        second = SkillSyncAPI(
            repo_store,
            SkillCache(VersionedStore(), tmp_path / "cache"),
            FakeFetcher(),
            tmp_path / "skills",
        )
        path = await second.install_skill(f"{BUILTIN_ID}:skills/pdfkit")

        assert path == tmp_path / "skills" / "pdfkit"
        assert second.fetcher.fetched == []

    @pytest.mark.asyncio
    async def test_create_custom_skill(self, api):
        path = await api.create_custom_skill("Meeting Notes", "Summarize meetings", "List decisions.")
        assert path.name == "meeting-notes"
        assert await api.is_skill_installed("meeting-notes")

    @pytest.mark.asyncio
    async def test_uninstall_unknown(self, api):
        with pytest.raises(InstallError):
            await api.uninstall_skill("nope")


class TestRepositories:
    """Tests for repository list operations through the API."""

    @pytest.mark.asyncio
    async def test_add_from_url(self, api):
        ref = await api.add_repository_from_input("https://github.com/acme/skills/tree/main/catalog")
        assert ref.id == "acme-skills-catalog"
        assert ref.revision == "main"
        assert [r.id for r in await api.list_repositories()] == [BUILTIN_ID, ref.id]

    @pytest.mark.asyncio
    async def test_add_from_bad_input(self, api):
        with pytest.raises(ParseError):
            await api.add_repository_from_input("https://gitlab.com/acme/skills")

    @pytest.mark.asyncio
    async def test_new_revision_clears_snapshot(self, api, cache):
        await api.add_repository("acme", "skills", revision="v1")
        cache.save_snapshot("acme-skills", [make_descriptor("acme-skills", "x")])

        await api.add_repository("acme", "skills", revision="v2")

        assert cache.load_snapshot("acme-skills") is None

    @pytest.mark.asyncio
    async def test_same_add_keeps_snapshot(self, api, cache):
        await api.add_repository("acme", "skills")
        cache.save_snapshot("acme-skills", [make_descriptor("acme-skills", "x")])

        await api.add_repository("acme", "skills")

        assert cache.load_snapshot("acme-skills") is not None

    @pytest.mark.asyncio
    async def test_remove_drops_skills(self, api, fetcher, cache):
        """Test removing a repository drops its skills and snapshot at once."""
        await api.add_repository("acme", "skills")
        fetcher.catalogs[BUILTIN_ID] = [make_descriptor(BUILTIN_ID, "a")]
        fetcher.catalogs["acme-skills"] = [make_descriptor("acme-skills", "b")]
        await api.sync_repositories()

        assert await api.remove_repository("acme-skills") is True

        assert [s.id for s in await api.get_cached_skills()] == [f"{BUILTIN_ID}:a"]
        assert cache.load_snapshot("acme-skills") is None
        assert cache.load_snapshot(BUILTIN_ID) is not None

    @pytest.mark.asyncio
    async def test_remove_builtin_refused(self, api):
        assert await api.remove_repository(BUILTIN_ID) is False
        assert len(await api.list_repositories()) == 1
