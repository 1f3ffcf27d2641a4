"""Helpers shared by the CLI commands."""
from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING

import typer
from rich.console import Console
from skillsync_core import SkillsyncConfig, SkillsyncError, setup_logging
from skillsync_registry import SkillRegistry

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from typing import TypeVar

    from skillsync_registry import CanonicalSkill

    T = TypeVar("T")

console = Console()


def load_config(ctx: typer.Context) -> SkillsyncConfig:
    """Config chosen by the root callback, or the layered default."""
    obj = ctx.find_root().obj
    if isinstance(obj, SkillsyncConfig):
        return obj
    return SkillsyncConfig.load()


def run_with_registry(
    ctx: typer.Context,
    body: Callable[[SkillRegistry], Awaitable[T]],
) -> T:
    """Scan once, run *body* against the registry, exit 1 on registry errors."""
    config = load_config(ctx)
    setup_logging(config.logging.level, config.logging.json, config.logging.levels)

    async def _main() -> T:
        async with SkillRegistry.from_config(config) as registry:
            await registry.scan()
            return await body(registry)

    try:
        return asyncio.run(_main())
    except SkillsyncError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1) from None


def require_skill(registry: SkillRegistry, skill_id: str) -> CanonicalSkill:
    skill = registry.current.get(skill_id)
    if skill is not None:
        return skill
    console.print(f"[red]Skill not found:[/red] '{skill_id}'")
    available = [s.id for s in registry.current.skills]
    if available:
        console.print(f"[dim]Available skills: {', '.join(sorted(available))}[/dim]")
    raise typer.Exit(1)


def short_path(path: Path) -> str:
    """Render *path* relative to the home directory where possible."""
    try:
        return f"~/{path.relative_to(Path.home())}"
    except ValueError:
        return str(path)
