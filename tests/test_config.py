from __future__ import annotations

import tempfile
from pathlib import Path

import pytest
from skillsync_core.config import SkillsyncConfig, WatcherConfig
from skillsync_core.errors import ConfigError


class TestConfig:
    def test_default_config(self):
        config = SkillsyncConfig()
        assert config.scanner.max_symlink_hops == 32
        assert config.scanner.definition_filename == "SKILL.md"
        assert config.watcher.debounce_ms == 500
        assert config.watcher.polling is False
        assert config.logging.level == "INFO"
        assert config.agents == {}

    def test_default_paths(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HOME", str(tmp_path))
        config = SkillsyncConfig()
        assert config.home_dir == tmp_path
        assert config.shared_skills_path == tmp_path / ".agents" / "skills"
        assert config.manifest_file == tmp_path / ".agents" / ".skill-lock.json"

    def test_from_toml_missing_file(self):
        config = SkillsyncConfig.from_toml("/nonexistent/path/skillsync.toml")
        assert config.watcher.debounce_ms == 500  # Returns defaults

    def test_from_toml(self):
        with tempfile.NamedTemporaryFile(mode="w", suffix=".toml", delete=False) as f:
            f.write('''
[paths]
home = "/srv/agent-home"
manifest_path = "/srv/lock.json"

[scanner]
max_symlink_hops = 8

[watcher]
debounce_ms = 250
polling = true

[logging]
level = "DEBUG"
json = true

[logging.levels]
"registry.watcher" = "WARNING"

[agents.cursor]
reads = []

[agents.my-agent]
skills_dir = ".my-agent/skills"
reads = ["claude-code"]
unknown_key = "ignored"
''')
            f.flush()
            config = SkillsyncConfig.from_toml(f.name)

        assert config.home_dir == Path("/srv/agent-home")
        assert config.shared_skills_path == Path("/srv/agent-home/.agents/skills")
        assert config.manifest_file == Path("/srv/lock.json")
        assert config.scanner.max_symlink_hops == 8
        assert config.watcher.debounce_ms == 250
        assert config.watcher.polling is True
        assert config.logging.json is True
        assert config.logging.levels == {"registry.watcher": "WARNING"}
        assert config.agents["cursor"].reads == []
        assert config.agents["my-agent"].skills_dir == ".my-agent/skills"

        Path(f.name).unlink()

    def test_project_overrides_global(self, monkeypatch, tmp_path):
        home = tmp_path / "home"
        (home / ".skillsync").mkdir(parents=True)
        (home / ".skillsync" / "config.toml").write_text(
            '[watcher]\ndebounce_ms = 900\npoll_interval_ms = 2000\n'
        )
        project = tmp_path / "project"
        project.mkdir()
        (project / "skillsync.toml").write_text('[watcher]\ndebounce_ms = 100\n')
        monkeypatch.setenv("HOME", str(home))

        config = SkillsyncConfig.load(project)

        assert config.watcher.debounce_ms == 100
        assert config.watcher.poll_interval_ms == 2000

    @pytest.mark.parametrize(
        "content",
        [
            "[watcher]\ndebounce_ms = 0\n",
            "[scanner]\nmax_symlink_hops = 0\n",
            '[scanner]\ndefinition_filename = "a/b.md"\n',
            '[agents]\ncursor = "nope"\n',
            '[agents.cursor]\nreads = "claude-code"\n',
            '[logging]\nlevel = "LOUD"\n',
            '[logging.levels]\n"registry.scanner" = "nope"\n',
        ],
    )
    def test_invalid_values(self, tmp_path, content):
        path = tmp_path / "skillsync.toml"
        path.write_text(content)
        with pytest.raises(ConfigError):
            SkillsyncConfig.from_toml(path)

    def test_watcher_validation(self):
        with pytest.raises(ConfigError):
            WatcherConfig(poll_interval_ms=-1)
