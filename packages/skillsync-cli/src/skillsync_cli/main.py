from __future__ import annotations

from pathlib import Path

import typer
from skillsync_core import ConfigError, SkillsyncConfig, __version__

from skillsync_cli.commands.agents import agents, watch
from skillsync_cli.commands.common import console
from skillsync_cli.commands.skills import (
    doctor,
    skill_delete,
    skill_info,
    skill_link,
    skill_list,
    skill_unlink,
)

app = typer.Typer(
    name="skillsync",
    help="Skillsync: one view of the skills every coding agent can see",
    no_args_is_help=True,
)

app.command("list")(skill_list)
app.command("info")(skill_info)
app.command("link")(skill_link)
app.command("unlink")(skill_unlink)
app.command("delete")(skill_delete)
app.command("doctor")(doctor)
app.command("agents")(agents)
app.command("watch")(watch)


@app.callback()
def _root(
    ctx: typer.Context,
    config: Path | None = typer.Option(
        None, "--config", "-c", help="Read settings from this TOML file only"
    ),
) -> None:
    """Load configuration once for every subcommand."""
    try:
        ctx.obj = (
            SkillsyncConfig.from_toml(config)
            if config is not None
            else SkillsyncConfig.load()
        )
    except ConfigError as exc:
        console.print(f"[red]Invalid configuration:[/red] {exc}")
        raise typer.Exit(1) from None


@app.command()
def version() -> None:
    """Show the skillsync version."""
    console.print(f"skillsync {__version__}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
