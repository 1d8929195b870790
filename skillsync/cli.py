"""skillsync CLI - Sync, browse and install skills from GitHub."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.syntax import Syntax
from rich.table import Table

from skillsync.api import SkillSyncAPI
from skillsync.config import (
    SkillSyncConfig,
    get_config,
    get_repositories_path,
    get_skills_directory,
    get_user_config_path,
    save_user_config,
    validate_config,
)
from skillsync.errors import (
    ConfigError,
    InstallError,
    InstallErrorKind,
    SkillSyncError,
)
from skillsync.models import CreateSkillFile, SkillCategory, category_style

app = typer.Typer(
    name="skillsync",
    help="Sync, browse, and install agent skills from GitHub repositories.",
    no_args_is_help=True,
)
console = Console()

T = TypeVar("T")


def _make_api() -> SkillSyncAPI:
    return SkillSyncAPI.from_config(get_config())


def _run(operation: Callable[[SkillSyncAPI], Awaitable[T]]) -> T:
    """Run one API coroutine on a fresh event loop."""

    async def runner() -> T:
        async with _make_api() as api:
            return await operation(api)

    return asyncio.run(runner())


def _truncate(text: str, width: int) -> str:
    text = " ".join(text.split())
    if len(text) > width:
        return text[: width - 3] + "..."
    return text


@app.callback()
def main(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show debug logging",
    ),
) -> None:
    """Sync, browse, and install agent skills from GitHub repositories."""
    try:
        level = "DEBUG" if verbose else get_config().log_level.value.upper()
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)],
        force=True,
    )


# =============================================================================
# Catalog Commands
# =============================================================================


@app.command("sync")
def sync_cmd(
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Discard the cache before syncing",
    ),
) -> None:
    """Sync the skill catalog from all configured repositories.

    Example:

    \b
        skillsync sync
        skillsync sync --force
    """
    console.print("[dim]Syncing repositories...[/dim]")

    try:
        if force:
            result = _run(lambda api: api.force_sync_repositories())
        else:
            result = _run(lambda api: api.sync_repositories())
    except SkillSyncError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    console.print()
    if result.success:
        console.print(f"[green]✓[/green] {result.message}")
        return

    if result.rate_limited:
        console.print(f"[yellow]Warning:[/yellow] {result.message}")
        console.print("[dim]Set SKILLSYNC_GITHUB_TOKEN or GITHUB_TOKEN to raise the limit.[/dim]")
    else:
        console.print(f"[red]Error:[/red] {result.message}")
    raise typer.Exit(code=1)


@app.command("list")
def list_cmd(
    category: Optional[str] = typer.Option(
        None,
        "--category",
        "-c",
        help="Only show skills in this category",
    ),
    query: Optional[str] = typer.Option(
        None,
        "--query",
        "-q",
        help="Only show skills whose name or description contains this text",
    ),
) -> None:
    """List skills in the cached catalog.

    Example:

    \b
        skillsync list
        skillsync list --category development
        skillsync list -q pdf
    """
    wanted: Optional[SkillCategory] = None
    if category:
        try:
            wanted = SkillCategory(category.lower())
        except ValueError:
            choices = ", ".join(c.value for c in SkillCategory)
            console.print(f"[red]Error:[/red] Unknown category: {category}")
            console.print(f"[dim]Available: {choices}[/dim]")
            raise typer.Exit(code=1)

    try:
        skills = _run(lambda api: api.get_cached_skills())
    except SkillSyncError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    if wanted is not None:
        skills = [s for s in skills if s.category == wanted]
    if query:
        needle = query.lower()
        skills = [
            s for s in skills
            if needle in s.name.lower() or needle in s.description.lower()
        ]

    if not skills:
        console.print("[yellow]No skills found[/yellow]")
        console.print()
        console.print("[dim]Fetch the catalog with:[/dim] skillsync sync")
        return

    console.print()
    table = Table(title="Skills", show_header=True, header_style="bold")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Category")
    table.add_column("Description")

    for skill in sorted(skills, key=lambda s: s.name.lower()):
        style = category_style(skill.category)
        table.add_row(
            skill.id,
            skill.name,
            f"[{style.color}]{style.icon} {skill.category.value}[/{style.color}]",
            _truncate(skill.description, 60),
        )

    console.print(table)
    console.print()
    console.print(f"[dim]{len(skills)} skills. Install one with: skillsync install <id>[/dim]")


# =============================================================================
# Local Skill Commands
# =============================================================================


@app.command("installed")
def installed_cmd(
    paths: bool = typer.Option(
        False,
        "--paths",
        "-p",
        help="Show the directory of each skill",
    ),
) -> None:
    """List installed skills.

    Example:

    \b
        skillsync installed
        skillsync installed --paths
    """
    try:
        records = _run(lambda api: api.list_installed_skills())
    except SkillSyncError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    if not records:
        console.print("[yellow]No skills installed[/yellow]")
        return

    console.print()
    table = Table(title="Installed Skills", show_header=True, header_style="bold")
    table.add_column("ID", style="cyan")
    table.add_column("Description")
    table.add_column("Installed", style="dim")
    if paths:
        table.add_column("Path", style="dim")

    for record in records:
        row = [record.id, _truncate(record.description, 50), record.installed_at[:19]]
        if paths:
            row.append(record.path)
        table.add_row(*row)

    console.print(table)


@app.command("show")
def show_cmd(
    name: str = typer.Argument(..., help="Name of an installed skill"),
) -> None:
    """Show the SKILL.md of an installed skill.

    Example:

    \b
        skillsync show pdf-processor
    """
    try:
        content = _run(lambda api: api.get_skill_content(name))
    except SkillSyncError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    console.print(Syntax(content, "markdown", theme="monokai", word_wrap=True))


@app.command("install")
def install_cmd(
    skill_id: str = typer.Argument(..., help="Catalog id of the skill (see 'skillsync list')"),
) -> None:
    """Install a skill from the catalog.

    Example:

    \b
        skillsync install composiohq-awesome-claude-skills:pdf
    """
    try:
        target = _run(lambda api: api.install_skill(skill_id))
    except InstallError as e:
        if e.kind == InstallErrorKind.ALREADY_INSTALLED:
            console.print(f"[yellow]Warning:[/yellow] {e}")
        else:
            console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)
    except SkillSyncError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    console.print(f"[green]✓ Installed:[/green] {skill_id}")
    console.print(f"  [dim]Location: {target}[/dim]")


@app.command("uninstall")
def uninstall_cmd(
    name: str = typer.Argument(..., help="Name of the installed skill"),
) -> None:
    """Uninstall a skill.

    Example:

    \b
        skillsync uninstall pdf-processor
    """
    try:
        _run(lambda api: api.uninstall_skill(name))
    except InstallError as e:
        if e.kind == InstallErrorKind.NOT_FOUND:
            console.print(f"[yellow]Not found:[/yellow] {name}")
        else:
            console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)
    except SkillSyncError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    console.print(f"[green]✓ Uninstalled:[/green] {name}")


@app.command("create")
def create_cmd(
    name: str = typer.Argument(..., help="Name for the skill"),
    description: str = typer.Option(
        ...,
        "--description",
        "-d",
        help="What the skill does and when to use it",
    ),
    instructions: str = typer.Option(
        ...,
        "--instructions",
        "-i",
        help="Instructions the agent should follow",
    ),
    examples: Optional[str] = typer.Option(
        None,
        "--examples",
        "-e",
        help="Usage examples",
    ),
    resources: Optional[list[Path]] = typer.Option(
        None,
        "--resource",
        "-r",
        help="File to bundle under resources/ (repeatable)",
    ),
) -> None:
    """Create a new skill in the skills directory.

    Example:

    \b
        skillsync create "PDF Helper" -d "Work with PDFs" -i "Use pdftotext."
        skillsync create notes -d "Notes" -i "Be brief." -r template.md
    """
    files = []
    for path in resources or []:
        try:
            files.append(CreateSkillFile(relative_path=path.name, content=path.read_bytes()))
        except OSError as e:
            console.print(f"[red]Error:[/red] Cannot read {path}: {e}")
            raise typer.Exit(code=1)

    try:
        target = _run(
            lambda api: api.create_custom_skill(
                name, description, instructions, examples=examples, resources=files
            )
        )
    except InstallError as e:
        if e.kind == InstallErrorKind.ALREADY_INSTALLED:
            console.print(f"[yellow]Warning:[/yellow] {e}")
        else:
            console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)
    except SkillSyncError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    console.print(f"[green]✓ Created:[/green] {target.name}")
    console.print(f"  [dim]Location: {target}[/dim]")


@app.command("dir")
def dir_cmd() -> None:
    """Print the skills directory."""
    try:
        console.print(str(get_skills_directory(get_config())))
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)


# =============================================================================
# Repository Commands
# =============================================================================

repo_app = typer.Typer(
    help="Manage skill repositories",
    no_args_is_help=True,
)
app.add_typer(repo_app, name="repo")


@repo_app.command("list")
def repo_list_cmd() -> None:
    """List configured repositories.

    Example:

    \b
        skillsync repo list
    """
    try:
        repositories = _run(lambda api: api.list_repositories())
    except SkillSyncError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    console.print()
    table = Table(title="Repositories", show_header=True, header_style="bold")
    table.add_column("ID", style="cyan")
    table.add_column("Repository")
    table.add_column("Revision")
    table.add_column("Skills", justify="right")
    table.add_column("Last synced", style="dim")

    for ref in repositories:
        label = ref.display_name
        if ref.is_builtin:
            label += " [dim](builtin)[/dim]"
        table.add_row(
            ref.id,
            label,
            ref.revision or "-",
            str(ref.item_count) if ref.item_count is not None else "-",
            (ref.last_synced_at or "never")[:19],
        )

    console.print(table)


@repo_app.command("add")
def repo_add_cmd(
    source: str = typer.Argument(..., help="owner/name, GitHub URL, or git@github.com:owner/name"),
) -> None:
    """Add a skill repository.

    Example:

    \b
        skillsync repo add anthropics/skills
        skillsync repo add https://github.com/owner/repo/tree/main/skills
    """
    try:
        ref = _run(lambda api: api.add_repository_from_input(source))
    except SkillSyncError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    console.print(f"[green]✓ Added repository:[/green] {ref.display_name}")
    console.print(f"  ID: {ref.id}")
    console.print()
    console.print("[dim]Fetch its skills with: skillsync sync[/dim]")


@repo_app.command("remove")
def repo_remove_cmd(
    repo_id: str = typer.Argument(..., help="Repository id (see 'skillsync repo list')"),
) -> None:
    """Remove a skill repository.

    Builtin repositories cannot be removed.

    Example:

    \b
        skillsync repo remove anthropics-skills
    """
    try:
        removed = _run(lambda api: api.remove_repository(repo_id))
    except SkillSyncError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    if removed:
        console.print(f"[green]✓ Removed repository:[/green] {repo_id}")
    else:
        console.print(f"[yellow]Not removed:[/yellow] {repo_id}")
        console.print("[dim]Repository is unknown or builtin[/dim]")
        raise typer.Exit(code=1)


# =============================================================================
# Config Commands
# =============================================================================

config_app = typer.Typer(
    help="Manage skillsync configuration",
    no_args_is_help=True,
)
app.add_typer(config_app, name="config")


@config_app.command("show")
def config_show_cmd() -> None:
    """Show the merged configuration and any problems with it.

    The GitHub token is never shown.

    Example:

    \b
        skillsync config show
    """
    try:
        config = get_config()
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    console.print(Syntax(config.to_yaml(), "yaml", theme="monokai"))

    problems = validate_config(config)
    for problem in problems:
        console.print(f"[yellow]Warning:[/yellow] {problem}")
    if problems:
        raise typer.Exit(code=1)


@config_app.command("path")
def config_path_cmd() -> None:
    """Show configuration file paths.

    Example:

    \b
        skillsync config path
    """
    for label, path in (
        ("User config: ", get_user_config_path()),
        ("Repositories:", get_repositories_path()),
    ):
        exists = "[green]exists[/green]" if path.exists() else "[dim]not created[/dim]"
        console.print(f"{label} {path} ({exists})")


@config_app.command("init")
def config_init_cmd(
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite existing config",
    ),
) -> None:
    """Write a user config file with default values.

    Example:

    \b
        skillsync config init
        skillsync config init --force
    """
    config_path = get_user_config_path()
    if config_path.exists() and not force:
        console.print(f"[yellow]Config already exists:[/yellow] {config_path}")
        console.print("[dim]Use --force to overwrite[/dim]")
        raise typer.Exit(code=1)

    try:
        path = save_user_config(SkillSyncConfig())
    except OSError as e:
        console.print(f"[red]Error:[/red] Cannot write {config_path}: {e}")
        raise typer.Exit(code=1)

    console.print(f"[green]✓ Created config:[/green] {path}")


if __name__ == "__main__":
    app()
