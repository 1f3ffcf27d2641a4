"""Skill commands: list, info, link, unlink, delete, doctor."""
from __future__ import annotations

from typing import TYPE_CHECKING

import typer
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from skillsync_registry import ScopeKind

from skillsync_cli.commands.common import (
    console,
    require_skill,
    run_with_registry,
    short_path,
)

if TYPE_CHECKING:
    from skillsync_registry import CanonicalSkill, SkillRegistry


def _agents_cell(skill: CanonicalSkill) -> str:
    if not skill.installations:
        return "[dim]-[/dim]"
    parts = []
    for inst in skill.installations:
        if inst.is_inherited:
            parts.append(f"[dim]{inst.agent_id} (via {inst.inherited_from})[/dim]")
        elif inst.is_symlink:
            parts.append(f"{inst.agent_id}")
        else:
            parts.append(f"[bold]{inst.agent_id}[/bold]")
    return ", ".join(parts)


def _scope_label(skill: CanonicalSkill) -> str:
    scope = skill.scope
    if scope.kind is ScopeKind.SHARED_GLOBAL:
        return "global"
    if scope.kind is ScopeKind.AGENT_LOCAL:
        return f"local ({scope.agent_id})"
    return f"project ({short_path(scope.path)})" if scope.path else "project"


def skill_list(
    ctx: typer.Context,
    agent: str | None = typer.Option(
        None, "--agent", "-a", help="Only skills visible to this agent"
    ),
) -> None:
    """List every skill and which agents can see it."""

    async def _body(registry: SkillRegistry) -> None:
        snapshot = registry.current
        if agent is not None:
            registry.catalog.get(agent)
            skills = snapshot.for_agent(agent)
        else:
            skills = list(snapshot.skills)

        if not skills:
            console.print(
                "[yellow]No skills found.[/yellow] "
                f"Place skill directories in {short_path(registry.catalog.shared_directory)}."
            )
            return

        table = Table(
            title="Skills" if agent is None else f"Skills visible to {agent}",
            show_header=True,
            header_style="bold cyan",
        )
        table.add_column("ID", style="bold")
        table.add_column("Name")
        table.add_column("Scope")
        table.add_column("Agents")

        for skill in skills:
            name = skill.display_name
            if skill.parse_error:
                name = f"[red]{name} (unparsed)[/red]"
            table.add_row(skill.id, name, _scope_label(skill), _agents_cell(skill))

        console.print(table)
        console.print(f"\n[dim]{len(skills)} skill(s) found.[/dim]")
        if snapshot.diagnostics:
            console.print(
                f"[yellow]{len(snapshot.diagnostics)} problem(s) found; "
                "run `skillsync doctor` for details.[/yellow]"
            )

    run_with_registry(ctx, _body)


def skill_info(
    ctx: typer.Context,
    skill_id: str = typer.Argument(..., help="Id (directory name) of the skill"),
) -> None:
    """Show detailed information about a skill."""

    async def _body(registry: SkillRegistry) -> None:
        skill = require_skill(registry, skill_id)
        meta = skill.metadata

        meta_lines = [
            f"[bold]Name:[/bold]        {skill.display_name}",
            f"[bold]Description:[/bold] {skill.description or '-'}",
            f"[bold]Scope:[/bold]       {_scope_label(skill)}",
            f"[bold]Path:[/bold]        {skill.canonical_path}",
        ]
        if meta is not None:
            if meta.version:
                meta_lines.append(f"[bold]Version:[/bold]     {meta.version}")
            if meta.author:
                meta_lines.append(f"[bold]Author:[/bold]      {meta.author}")
            if meta.license:
                meta_lines.append(f"[bold]License:[/bold]     {meta.license}")
            if meta.allowed_tools:
                meta_lines.append(f"[bold]Allowed tools:[/bold] {meta.allowed_tools}")
        if skill.parse_error:
            meta_lines.append(f"[bold red]Parse error:[/bold red] {skill.parse_error}")

        entry = skill.manifest_entry
        if entry is not None:
            meta_lines.append(f"[bold]Source:[/bold]      {entry.source} ({entry.source_type})")
            if entry.updated_at:
                meta_lines.append(f"[bold]Updated:[/bold]     {entry.updated_at}")

        console.print(Panel(
            "\n".join(meta_lines),
            title=f"Skill: {skill.id}",
            border_style="cyan",
        ))

        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("Agent", style="bold")
        table.add_column("Path")
        table.add_column("Kind")
        for inst in skill.installations:
            if inst.is_inherited:
                kind = f"inherited from {inst.inherited_from}"
            elif inst.is_symlink:
                kind = "symlink"
            else:
                kind = "original"
            table.add_row(inst.agent_id, short_path(inst.path), kind)
        if skill.installations:
            console.print(table)
        else:
            console.print("[dim]Not installed for any agent.[/dim]")

        if skill.body:
            preview = skill.body
            if len(preview) > 2000:
                preview = preview[:2000] + "\n\n... (truncated)"
            console.print()
            console.print(Panel(
                Syntax(preview, "markdown", theme="monokai", word_wrap=True),
                title="Instructions",
                border_style="dim",
            ))

    run_with_registry(ctx, _body)


def skill_link(
    ctx: typer.Context,
    skill_id: str = typer.Argument(..., help="Id of the skill to install"),
    agent: str = typer.Argument(..., help="Agent to install it for"),
) -> None:
    """Install a skill for an agent by linking it into the agent's directory."""

    async def _body(registry: SkillRegistry) -> None:
        skill = require_skill(registry, skill_id)
        installation = await registry.add_installation(skill, agent)
        console.print(
            f"[green]Linked[/green] {skill.id} -> {agent} "
            f"[dim]({short_path(installation.path)})[/dim]"
        )

    run_with_registry(ctx, _body)


def skill_unlink(
    ctx: typer.Context,
    skill_id: str = typer.Argument(..., help="Id of the skill to remove"),
    agent: str = typer.Argument(..., help="Agent to remove it from"),
) -> None:
    """Remove an agent's link to a skill.  Inherited access cannot be removed."""

    async def _body(registry: SkillRegistry) -> None:
        skill = require_skill(registry, skill_id)
        existing = skill.installation_for(agent)
        removed = await registry.remove_installation(skill, agent)
        if removed is not None:
            console.print(f"[green]Unlinked[/green] {skill.id} from {agent}")
        elif existing is not None and existing.is_inherited:
            console.print(
                f"[yellow]{agent} reads {skill.id} from {existing.inherited_from}; "
                "remove it there instead.[/yellow]"
            )
        else:
            console.print(f"[dim]{skill.id} is not installed for {agent}.[/dim]")

    run_with_registry(ctx, _body)


def skill_delete(
    ctx: typer.Context,
    skill_id: str = typer.Argument(..., help="Id of the skill to delete"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Delete a skill's files, every link to it and its lock file entry."""

    async def _body(registry: SkillRegistry) -> None:
        skill = require_skill(registry, skill_id)
        if not yes:
            typer.confirm(
                f"Delete {skill.canonical_path} and {len(skill.installations)} installation(s)?",
                abort=True,
            )
        await registry.delete_skill(skill)
        console.print(f"[green]Deleted[/green] {skill.id}")

    run_with_registry(ctx, _body)


def doctor(ctx: typer.Context) -> None:
    """Report broken links, unreadable directories and malformed skills."""

    async def _body(registry: SkillRegistry) -> None:
        diagnostics = registry.current.diagnostics
        if not diagnostics:
            console.print(
                f"[green]No problems found[/green] across {len(registry.current)} skill(s)."
            )
            return

        table = Table(title="Problems", show_header=True, header_style="bold cyan")
        table.add_column("Kind", style="bold yellow")
        table.add_column("Agent")
        table.add_column("Message")
        for diag in diagnostics:
            table.add_row(diag.kind.value, diag.agent_id or "-", diag.message)
        console.print(table)
        raise typer.Exit(1)

    run_with_registry(ctx, _body)
