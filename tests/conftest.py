from __future__ import annotations

import textwrap
from typing import TYPE_CHECKING

import pytest
from skillsync_registry import (
    AgentCatalog,
    AgentDescriptor,
    ManifestStore,
    RegistryScanner,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path


def skill_md(name: str, description: str = "A test skill", body: str = "Do the thing.") -> str:
    return textwrap.dedent(f"""\
        ---
        name: {name}
        description: {description}
        ---

        {body}
    """)


@pytest.fixture
def home(tmp_path: Path) -> Path:
    """A fake home directory with symlinks already resolved."""
    path = tmp_path / "home"
    path.mkdir()
    return path.resolve()


@pytest.fixture
def shared_dir(home: Path) -> Path:
    return home / ".agents" / "skills"


@pytest.fixture
def alpha_dir(home: Path) -> Path:
    return home / ".alpha" / "skills"


@pytest.fixture
def beta_dir(home: Path) -> Path:
    return home / ".beta" / "skills"


@pytest.fixture
def catalog(home: Path, shared_dir: Path, alpha_dir: Path, beta_dir: Path) -> AgentCatalog:
    """Two agents: ``beta`` also reads everything in ``alpha``'s directory."""
    return AgentCatalog(
        [
            AgentDescriptor(
                agent_id="alpha",
                display_name="Alpha",
                skills_dir=alpha_dir,
                config_dir=home / ".alpha",
            ),
            AgentDescriptor(
                agent_id="beta",
                display_name="Beta",
                skills_dir=beta_dir,
                config_dir=home / ".beta",
                additional_readable=((alpha_dir, "alpha"),),
            ),
        ],
        shared_dir,
    )


@pytest.fixture
def make_skill() -> Callable[..., Path]:
    """Create ``parent/<skill_id>/SKILL.md`` and return the skill directory."""

    def _make(
        parent: Path,
        skill_id: str,
        *,
        name: str | None = None,
        description: str = "A test skill",
        content: str | None = None,
    ) -> Path:
        skill_dir = parent / skill_id
        skill_dir.mkdir(parents=True, exist_ok=True)
        text = content if content is not None else skill_md(name or skill_id, description)
        (skill_dir / "SKILL.md").write_text(text, encoding="utf-8")
        return skill_dir

    return _make


@pytest.fixture
def link() -> Callable[[Path, Path], Path]:
    """Create a directory symlink *at* pointing to *target*."""

    def _link(target: Path, at: Path) -> Path:
        at.parent.mkdir(parents=True, exist_ok=True)
        at.symlink_to(target, target_is_directory=True)
        return at

    return _link


@pytest.fixture
def manifest_store(home: Path) -> ManifestStore:
    return ManifestStore(home / ".agents" / ".skill-lock.json")


@pytest.fixture
def scanner(catalog: AgentCatalog, manifest_store: ManifestStore) -> RegistryScanner:
    return RegistryScanner(catalog, manifest_store=manifest_store)
