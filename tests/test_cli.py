"""Tests for the skillsync CLI."""

from unittest.mock import patch

import pytest
import yaml
from typer.testing import CliRunner

from conftest import make_descriptor
from skillsync.api import SkillSyncAPI
from skillsync.cache import SkillCache, VersionedStore
from skillsync.cli import app
from skillsync import config as config_module
from skillsync.config import CONFIG_VERSION, SkillSyncConfig, reset_config, set_config
from skillsync.errors import ConfigError, FetchError, FetchErrorKind
from skillsync.models import SkillCategory
from skillsync.repositories import RepositoryStore

runner = CliRunner()

BUILTIN_ID = "composiohq-awesome-claude-skills"
PDF_ID = f"{BUILTIN_ID}:skills/pdfkit"


@pytest.fixture
def workspace(tmp_path, fetcher):
    """Run every command against temp directories and the fake fetcher."""
    set_config(
        SkillSyncConfig(
            skills_dir=str(tmp_path / "skills"),
            cache_dir=str(tmp_path / "cache"),
        )
    )

    def make_api():
        # Each command starts with an empty in-memory catalog, like a new process.
        return SkillSyncAPI(
            RepositoryStore(tmp_path / "config" / "repositories.yaml"),
            SkillCache(VersionedStore(), tmp_path / "cache"),
            fetcher,
            tmp_path / "skills",
        )

    with patch("skillsync.cli._make_api", make_api):
        yield tmp_path
    reset_config()


@pytest.fixture
def synced(workspace, fetcher):
    fetcher.catalogs[BUILTIN_ID] = [
        make_descriptor(BUILTIN_ID, "skills/pdfkit", description="Reads PDF files"),
        make_descriptor(
            BUILTIN_ID, "skills/csvtool", description="Cleans CSV data", category=SkillCategory.DATA
        ),
    ]
    result = runner.invoke(app, ["sync"])
    assert result.exit_code == 0
    return workspace


def test_app_help():
    """Test that the CLI shows help without errors."""
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "skillsync" in result.output.lower()


class TestSyncCommand:
    """Tests for the sync command."""

    def test_sync_success(self, workspace, fetcher):
        fetcher.catalogs[BUILTIN_ID] = [make_descriptor(BUILTIN_ID, "skills/pdfkit")]
        result = runner.invoke(app, ["sync"])
        assert result.exit_code == 0
        assert "Synced 1 skills from 1 repositories" in result.output

    def test_force_sync(self, workspace, fetcher):
        fetcher.catalogs[BUILTIN_ID] = [make_descriptor(BUILTIN_ID, "skills/pdfkit")]
        result = runner.invoke(app, ["sync", "--force"])
        assert result.exit_code == 0
        assert "Force synced" in result.output

    def test_sync_failure(self, workspace, fetcher):
        fetcher.catalogs[BUILTIN_ID] = FetchError(FetchErrorKind.NOT_FOUND, "gone")
        result = runner.invoke(app, ["sync"])
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_sync_rate_limited(self, workspace, fetcher):
        """Test rate limiting is a warning with a token hint."""
        fetcher.catalogs[BUILTIN_ID] = FetchError(FetchErrorKind.RATE_LIMITED, "slow down")
        result = runner.invoke(app, ["sync"])
        assert result.exit_code == 1
        assert "Warning:" in result.output
        assert "GITHUB_TOKEN" in result.output


class TestListCommand:
    """Tests for the list command."""

    def test_list_empty(self, workspace):
        result = runner.invoke(app, ["list"])
        assert result.exit_code == 0
        assert "No skills found" in result.output

    def test_list_after_sync(self, synced):
        result = runner.invoke(app, ["list"])
        assert result.exit_code == 0
        assert "Skills" in result.output
        assert "pdfkit" in result.output
        assert "csvtool" in result.output

    def test_list_by_category(self, synced):
        result = runner.invoke(app, ["list", "--category", "data"])
        assert result.exit_code == 0
        assert "csvtool" in result.output
        assert "pdfkit" not in result.output

    def test_list_by_query(self, synced):
        result = runner.invoke(app, ["list", "-q", "pdf"])
        assert "pdfkit" in result.output
        assert "csvtool" not in result.output

    def test_unknown_category(self, workspace):
        result = runner.invoke(app, ["list", "-c", "cooking"])
        assert result.exit_code == 1
        assert "Unknown category" in result.output


class TestInstallCommands:
    """Tests for install, installed, show and uninstall."""

    def test_install(self, synced):
        result = runner.invoke(app, ["install", PDF_ID])
        assert result.exit_code == 0
        assert "Installed:" in result.output
        assert (synced / "skills" / "pdfkit" / "SKILL.md").exists()

    def test_install_twice_warns(self, synced):
        runner.invoke(app, ["install", PDF_ID])
        result = runner.invoke(app, ["install", PDF_ID])
        assert result.exit_code == 1
        assert "Warning:" in result.output
        assert "Already installed" in result.output

    def test_install_unknown(self, workspace):
        result = runner.invoke(app, ["install", "nope:nothing"])
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_installed_empty(self, workspace):
        result = runner.invoke(app, ["installed"])
        assert result.exit_code == 0
        assert "No skills installed" in result.output

    def test_installed_lists_skill(self, synced):
        runner.invoke(app, ["install", PDF_ID])
        result = runner.invoke(app, ["installed"])
        assert result.exit_code == 0
        assert "pdfkit" in result.output

    def test_show(self, synced):
        runner.invoke(app, ["install", PDF_ID])
        result = runner.invoke(app, ["show", "pdfkit"])
        assert result.exit_code == 0
        assert "Work with PDF documents" in result.output

    def test_uninstall(self, synced):
        runner.invoke(app, ["install", PDF_ID])
        result = runner.invoke(app, ["uninstall", "pdfkit"])
        assert result.exit_code == 0
        assert "Uninstalled:" in result.output
        assert not (synced / "skills" / "pdfkit").exists()

    def test_uninstall_missing(self, workspace):
        result = runner.invoke(app, ["uninstall", "pdfkit"])
        assert result.exit_code == 1
        assert "Not found:" in result.output

    @pytest.mark.parametrize(
        "args",
        [
            ["show", "pdfkit"],
            ["install", PDF_ID],
            ["uninstall", "pdfkit"],
            ["create", "Notes", "-d", "d", "-i", "i"],
        ],
    )
    def test_setup_error_reported(self, workspace, args):
        """Test a failure building the API is an error message, not a traceback."""
        with patch("skillsync.cli._make_api", side_effect=ConfigError("Cannot load CA bundle x")):
            result = runner.invoke(app, args)
        assert result.exit_code == 1
        assert "Error:" in result.output
        assert "Cannot load CA bundle" in result.output
        assert not isinstance(result.exception, ConfigError)


class TestCreateCommand:
    """Tests for the create command."""

    def test_create_with_resource(self, workspace):
        resource = workspace / "template.md"
        resource.write_text("# Template\n")

        result = runner.invoke(
            app,
            ["create", "Notes", "-d", "Keeps notes", "-i", "Be brief.", "-r", str(resource)],
        )

        assert result.exit_code == 0
        assert "Created:" in result.output
        skill_dir = workspace / "skills" / "notes"
        assert (skill_dir / "SKILL.md").exists()
        assert (skill_dir / "resources" / "template.md").read_text() == "# Template\n"

    def test_create_missing_resource(self, workspace):
        result = runner.invoke(
            app,
            ["create", "Notes", "-d", "d", "-i", "i", "-r", str(workspace / "missing.md")],
        )
        assert result.exit_code == 1
        assert "Cannot read" in result.output

    def test_create_bad_name(self, workspace):
        result = runner.invoke(app, ["create", "!!!", "-d", "d", "-i", "i"])
        assert result.exit_code == 1
        assert "Invalid skill name" in result.output

    def test_dir(self, workspace):
        result = runner.invoke(app, ["dir"])
        assert result.exit_code == 0
        assert "skills" in result.output


class TestRepoCommands:
    """Tests for the repo sub-commands."""

    def test_repo_list(self, workspace):
        result = runner.invoke(app, ["repo", "list"])
        assert result.exit_code == 0
        assert "Repositories" in result.output
        assert "builtin" in result.output

    def test_repo_add(self, workspace):
        result = runner.invoke(app, ["repo", "add", "acme/skills"])
        assert result.exit_code == 0
        assert "Added repository:" in result.output
        assert "acme-skills" in result.output

    def test_repo_add_invalid(self, workspace):
        result = runner.invoke(app, ["repo", "add", "not-a-repo"])
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_repo_remove(self, workspace):
        runner.invoke(app, ["repo", "add", "acme/skills"])
        result = runner.invoke(app, ["repo", "remove", "acme-skills"])
        assert result.exit_code == 0
        assert "Removed repository:" in result.output

    def test_repo_remove_builtin(self, workspace):
        result = runner.invoke(app, ["repo", "remove", BUILTIN_ID])
        assert result.exit_code == 1
        assert "Not removed:" in result.output


class TestConfigCommands:
    """Tests for the config sub-commands."""

    @pytest.fixture
    def user_config(self, workspace):
        path = workspace / "config" / "config.yml"
        with patch.object(config_module, "USER_CONFIG_FILE", path), patch.object(
            config_module, "REPOSITORIES_FILE", workspace / "config" / "repositories.yaml"
        ):
            yield path

    def test_show(self, user_config):
        result = runner.invoke(app, ["config", "show"])
        assert result.exit_code == 0
        assert "max_retries: 3" in result.output
        assert "Warning:" not in result.output

    def test_show_reports_problems(self, user_config):
        set_config(SkillSyncConfig(max_retries=0))
        result = runner.invoke(app, ["config", "show"])
        assert result.exit_code == 1
        assert "max_retries must be at least 1" in result.output

    def test_path(self, user_config):
        result = runner.invoke(app, ["config", "path"])
        assert result.exit_code == 0
        assert "config.yml" in result.output
        assert "not created" in result.output

    def test_init(self, user_config):
        result = runner.invoke(app, ["config", "init"])
        assert result.exit_code == 0
        assert "Created config:" in result.output
        data = yaml.safe_load(user_config.read_text())
        assert data["version"] == CONFIG_VERSION
        assert "github_token" not in data

    def test_init_existing(self, user_config):
        user_config.parent.mkdir(parents=True)
        user_config.write_text("max_retries: 5\n")

        result = runner.invoke(app, ["config", "init"])
        assert result.exit_code == 1
        assert "already exists" in result.output
        assert user_config.read_text() == "max_retries: 5\n"

        result = runner.invoke(app, ["config", "init", "--force"])
        assert result.exit_code == 0
        assert yaml.safe_load(user_config.read_text())["max_retries"] == 3
