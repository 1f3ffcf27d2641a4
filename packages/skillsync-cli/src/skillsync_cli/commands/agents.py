"""Agent commands: agents, watch."""
from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import typer
from rich.table import Table

from skillsync_cli.commands.common import console, run_with_registry, short_path

if TYPE_CHECKING:
    from skillsync_registry import RegistrySnapshot, SkillRegistry


def _yes_no(value: bool) -> str:
    return "[green]yes[/green]" if value else "[dim]no[/dim]"


def agents(ctx: typer.Context) -> None:
    """Show every known agent, whether it is installed and what it reads."""

    async def _body(registry: SkillRegistry) -> None:
        statuses = await registry.detect_agents()
        snapshot = registry.current

        table = Table(title="Agents", show_header=True, header_style="bold cyan")
        table.add_column("Agent", style="bold")
        table.add_column("Installed", justify="center")
        table.add_column("Skills dir")
        table.add_column("Own", justify="right")
        table.add_column("Visible", justify="right")
        table.add_column("Also reads")

        for status in statuses:
            agent = status.agent
            reads = ", ".join(source for _, source in agent.additional_readable) or "-"
            table.add_row(
                f"{agent.display_name} [dim]({agent.agent_id})[/dim]",
                _yes_no(status.is_installed),
                short_path(agent.skills_dir)
                + ("" if status.skills_dir_exists else " [dim](missing)[/dim]"),
                str(status.skill_count),
                str(len(snapshot.for_agent(agent.agent_id))),
                reads,
            )

        console.print(table)

    run_with_registry(ctx, _body)


def watch(ctx: typer.Context) -> None:
    """Rescan whenever a skill directory or the lock file changes (Ctrl+C to stop)."""

    def _report(snapshot: RegistrySnapshot) -> None:
        console.print(
            f"[cyan]rescanned[/cyan] {len(snapshot)} skill(s), "
            f"{len(snapshot.diagnostics)} problem(s)"
        )

    async def _body(registry: SkillRegistry) -> None:
        unsubscribe = registry.subscribe(_report)
        await registry.start_watching()
        console.print(
            f"Watching {len(registry.catalog.watch_paths())} location(s). "
            "[dim]Press Ctrl+C to stop.[/dim]"
        )
        try:
            await asyncio.Event().wait()
        finally:
            unsubscribe()
            await registry.stop_watching()

    try:
        run_with_registry(ctx, _body)
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped.[/dim]")
