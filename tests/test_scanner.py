"""Tests for the registry scanner: grouping, inheritance, scope and diagnostics."""
from __future__ import annotations

import json
from typing import TYPE_CHECKING

from skillsync_registry.scanner import RegistryScanner
from skillsync_registry.types import DiagnosticKind, ScopeKind

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from skillsync_registry.catalog import AgentCatalog
    from skillsync_registry.manifest import ManifestStore


def _kinds(snapshot) -> list[DiagnosticKind]:
    return [d.kind for d in snapshot.diagnostics]


# ── Grouping & inheritance ───────────────────────────────────────────


class TestInstallations:
    def test_scan_is_idempotent(
        self, scanner: RegistryScanner, shared_dir: Path, alpha_dir: Path,
        make_skill: Callable[..., Path], link: Callable[[Path, Path], Path],
    ) -> None:
        pdf = make_skill(shared_dir, "pdf")
        link(pdf, alpha_dir / "pdf")
        make_skill(alpha_dir, "local-only")

        assert scanner.scan() == scanner.scan()

    def test_shared_skill_without_installations(
        self, scanner: RegistryScanner, shared_dir: Path, make_skill: Callable[..., Path],
    ) -> None:
        make_skill(shared_dir, "pdf")

        snapshot = scanner.scan()

        skill = snapshot.get("pdf")
        assert skill is not None
        assert skill.installations == ()
        assert skill.scope.kind is ScopeKind.SHARED_GLOBAL
        assert snapshot.diagnostics == ()

    def test_direct_link_suppresses_inherited(
        self, scanner: RegistryScanner, shared_dir: Path, alpha_dir: Path, beta_dir: Path,
        make_skill: Callable[..., Path], link: Callable[[Path, Path], Path],
    ) -> None:
        pdf = make_skill(shared_dir, "pdf")
        link(pdf, alpha_dir / "pdf")
        link(pdf, beta_dir / "pdf")

        skill = scanner.scan().get("pdf")

        assert skill is not None
        assert skill.installed_agents == ["alpha", "beta"]
        beta = skill.installation_for("beta")
        assert beta is not None
        assert beta.is_inherited is False
        assert beta.is_symlink is True
        assert beta.path == beta_dir / "pdf"

    def test_inherited_when_not_linked(
        self, scanner: RegistryScanner, shared_dir: Path, alpha_dir: Path,
        make_skill: Callable[..., Path], link: Callable[[Path, Path], Path],
    ) -> None:
        pdf = make_skill(shared_dir, "pdf")
        link(pdf, alpha_dir / "pdf")

        skill = scanner.scan().get("pdf")

        assert skill is not None
        beta = skill.installation_for("beta")
        assert beta is not None
        assert beta.is_inherited is True
        assert beta.inherited_from == "alpha"
        assert beta.path == alpha_dir / "pdf"

    def test_aliases_collapse_to_one_installation(
        self, scanner: RegistryScanner, shared_dir: Path, alpha_dir: Path,
        make_skill: Callable[..., Path], link: Callable[[Path, Path], Path],
    ) -> None:
        pdf = make_skill(shared_dir, "pdf")
        link(pdf, alpha_dir / "pdf")
        link(pdf, alpha_dir / "pdf-again")

        snapshot = scanner.scan()

        assert len(snapshot) == 1
        assert snapshot.skills[0].installed_agents.count("alpha") == 1

    def test_non_skill_entries_ignored(
        self, scanner: RegistryScanner, alpha_dir: Path, make_skill: Callable[..., Path],
    ) -> None:
        make_skill(alpha_dir, ".hidden")
        (alpha_dir / "no-definition").mkdir(parents=True)
        (alpha_dir / "README.md").write_text("not a skill")

        snapshot = scanner.scan()

        assert len(snapshot) == 0
        assert snapshot.diagnostics == ()

    def test_missing_agent_directories_are_quiet(self, scanner: RegistryScanner) -> None:
        snapshot = scanner.scan()
        assert len(snapshot) == 0
        assert snapshot.diagnostics == ()

    def test_sorted_by_display_name(
        self, scanner: RegistryScanner, shared_dir: Path, make_skill: Callable[..., Path],
    ) -> None:
        make_skill(shared_dir, "a-id", name="zeta")
        make_skill(shared_dir, "b-id", name="Alpha")
        make_skill(shared_dir, "c-id", name="beta")

        names = [s.display_name for s in scanner.scan()]

        assert names == ["Alpha", "beta", "zeta"]


# ── Scope ────────────────────────────────────────────────────────────


class TestScope:
    def test_agent_local_original(
        self, scanner: RegistryScanner, alpha_dir: Path, make_skill: Callable[..., Path],
    ) -> None:
        make_skill(alpha_dir, "notes")

        skill = scanner.scan().get("notes")

        assert skill is not None
        assert skill.scope.kind is ScopeKind.AGENT_LOCAL
        assert skill.scope.agent_id == "alpha"
        alpha = skill.installation_for("alpha")
        assert alpha is not None
        assert alpha.is_symlink is False
        beta = skill.installation_for("beta")
        assert beta is not None and beta.is_inherited

    def test_project_scope(
        self, scanner: RegistryScanner, home: Path, beta_dir: Path,
        make_skill: Callable[..., Path], link: Callable[[Path, Path], Path],
    ) -> None:
        project_skills = home / "work" / "repo" / ".skills"
        lint = make_skill(project_skills, "lint")
        link(lint, beta_dir / "lint")

        skill = scanner.scan().get("lint")

        assert skill is not None
        assert skill.scope.kind is ScopeKind.PROJECT
        assert skill.scope.path == project_skills
        assert skill.canonical_path == lint


# ── Diagnostics ──────────────────────────────────────────────────────


class TestDiagnostics:
    def test_broken_link_does_not_abort(
        self, scanner: RegistryScanner, home: Path, shared_dir: Path, alpha_dir: Path,
        make_skill: Callable[..., Path], link: Callable[[Path, Path], Path],
    ) -> None:
        make_skill(shared_dir, "pdf")
        link(home / "vanished", alpha_dir / "ghost")

        snapshot = scanner.scan()

        assert snapshot.get("pdf") is not None
        assert _kinds(snapshot) == [DiagnosticKind.BROKEN_LINK]
        assert snapshot.diagnostics[0].agent_id == "alpha"
        assert snapshot.diagnostics[0].path == alpha_dir / "ghost"

    def test_cyclic_link(
        self, scanner: RegistryScanner, alpha_dir: Path, link: Callable[[Path, Path], Path],
    ) -> None:
        link(alpha_dir / "loop-b", alpha_dir / "loop-a")
        link(alpha_dir / "loop-a", alpha_dir / "loop-b")

        snapshot = scanner.scan()

        assert len(snapshot) == 0
        assert _kinds(snapshot) == [DiagnosticKind.CYCLIC_LINK] * 2

    def test_parse_failure_keeps_skill(
        self, scanner: RegistryScanner, shared_dir: Path, make_skill: Callable[..., Path],
    ) -> None:
        make_skill(shared_dir, "broken", content="no frontmatter here\n")

        snapshot = scanner.scan()

        skill = snapshot.get("broken")
        assert skill is not None
        assert skill.metadata is None
        assert skill.parse_error is not None
        assert skill.display_name == "broken"
        assert _kinds(snapshot) == [DiagnosticKind.PARSE_FAILURE]

    def test_duplicate_ids(
        self, scanner: RegistryScanner, home: Path, shared_dir: Path, beta_dir: Path,
        make_skill: Callable[..., Path], link: Callable[[Path, Path], Path],
    ) -> None:
        make_skill(shared_dir, "pdf")
        other = make_skill(home / "elsewhere", "pdf", name="pdf-fork")
        link(other, beta_dir / "pdf-fork")

        snapshot = scanner.scan()

        assert len(snapshot.find("pdf")) == 2
        assert _kinds(snapshot) == [DiagnosticKind.DUPLICATE_ID] * 2
        preferred = snapshot.get("pdf")
        assert preferred is not None
        assert preferred.scope.kind is ScopeKind.SHARED_GLOBAL


# ── Manifest ─────────────────────────────────────────────────────────


class TestManifestAttachment:
    def test_entry_attached_by_id(
        self, scanner: RegistryScanner, manifest_store: ManifestStore,
        shared_dir: Path, make_skill: Callable[..., Path],
    ) -> None:
        make_skill(shared_dir, "pdf")
        manifest_store.path.write_text(json.dumps({
            "version": 3,
            "skills": {"pdf": {
                "source": "example-org/skills",
                "sourceType": "github",
                "sourceUrl": "https://github.com/example-org/skills.git",
            }},
        }))

        skill = scanner.scan().get("pdf")

        assert skill is not None
        assert skill.manifest_entry is not None
        assert skill.manifest_entry.source == "example-org/skills"

    def test_corrupt_manifest_is_a_diagnostic(
        self, scanner: RegistryScanner, manifest_store: ManifestStore,
        shared_dir: Path, make_skill: Callable[..., Path],
    ) -> None:
        make_skill(shared_dir, "pdf")
        manifest_store.path.write_text("{corrupt")

        snapshot = scanner.scan()

        assert snapshot.get("pdf") is not None
        assert snapshot.get("pdf").manifest_entry is None
        assert _kinds(snapshot) == [DiagnosticKind.MANIFEST_CORRUPT]

    def test_works_without_manifest_store(
        self, catalog: AgentCatalog, shared_dir: Path, make_skill: Callable[..., Path],
    ) -> None:
        make_skill(shared_dir, "pdf")
        snapshot = RegistryScanner(catalog).scan()
        assert snapshot.get("pdf").manifest_entry is None
