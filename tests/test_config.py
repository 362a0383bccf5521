"""Tests for TOML config loading and semantic validation."""

from __future__ import annotations

import tomllib
from pathlib import Path

import pytest

from phase_engine.config import EngineConfig, load_config, validate_config


def _write(tmp_path: Path, body: str) -> Path:
	path = tmp_path / "phase-engine.toml"
	path.write_text(body)
	return path


FULL_CONFIG = """\
[target]
name = "shop"
path = "{path}"
vision = "Add a login page"

[exploration]
max_files_to_read = 5
enable_validation = true

[planning]
constraints = ["offline only"]
complexity = "Complex"

[completion]
dry_run = true
deploy_target = "staging"

[coordinator]
max_phase_retries = 3

[tools]
timeout = 10
search_endpoint = "https://search.example/api"

[tools.validation_commands]
test = "npm run test:ci"

[tracing]
enabled = true
exporter = "none"

[logging]
level = "debug"
json_format = true
"""


class TestLoadConfig:
	def test_full_config(self, tmp_path: Path) -> None:
		config = load_config(_write(tmp_path, FULL_CONFIG.format(path=tmp_path)))

		assert config.target.name == "shop"
		assert config.target.resolved_path == tmp_path
		assert config.exploration.max_files_to_read == 5
		assert config.exploration.enable_validation
		assert not config.exploration.enable_healing
		assert config.planning.constraints == ["offline only"]
		assert config.planning.complexity == "complex"
		assert config.completion.dry_run
		assert config.completion.validate_changes
		assert config.completion.deploy_target == "staging"
		assert config.coordinator.max_phase_retries == 3
		assert config.tools.timeout == 10
		assert config.tools.validation_commands == {"test": "npm run test:ci"}
		assert config.tracing.enabled
		assert config.tracing.exporter == "none"
		assert config.logging.level == "DEBUG"
		assert config.logging.json_format

	def test_missing_sections_keep_defaults(self, tmp_path: Path) -> None:
		config = load_config(_write(tmp_path, '[target]\nvision = "x"\n'))
		defaults = EngineConfig()
		assert config.target.path == "."
		assert config.tools == defaults.tools
		assert config.coordinator.max_phase_retries == 2
		assert config.exploration.max_files_to_read == 10

	def test_missing_file(self, tmp_path: Path) -> None:
		with pytest.raises(FileNotFoundError):
			load_config(tmp_path / "nope.toml")

	def test_invalid_toml(self, tmp_path: Path) -> None:
		with pytest.raises(tomllib.TOMLDecodeError):
			load_config(_write(tmp_path, "[target\n"))

	def test_home_expansion(self) -> None:
		config = EngineConfig()
		config.target.path = "~/projects"
		assert config.target.resolved_path == Path.home() / "projects"


class TestValidateConfig:
	def test_defaults_only_warn_about_vision(self) -> None:
		assert validate_config(EngineConfig()) == [("warning", "target.vision is empty")]

	def test_clean_config(self, tmp_path: Path) -> None:
		config = EngineConfig()
		config.target.path = str(tmp_path)
		config.target.vision = "Add a login page"
		assert validate_config(config) == []

	def test_missing_and_non_directory_paths(self, tmp_path: Path) -> None:
		config = EngineConfig()
		config.target.vision = "x"
		config.target.path = str(tmp_path / "absent")
		assert validate_config(config)[0][0] == "error"
		file_path = tmp_path / "file.txt"
		file_path.write_text("")
		config.target.path = str(file_path)
		assert "not a directory" in validate_config(config)[0][1]

	def test_errors(self, tmp_path: Path) -> None:
		config = EngineConfig()
		config.target.path = str(tmp_path)
		config.target.vision = "x"
		config.exploration.max_files_to_read = -1
		config.planning.complexity = "epic"
		config.coordinator.max_phase_retries = -1
		config.tools.timeout = 0
		config.tools.search_endpoint = "ftp://example"
		config.tracing.exporter = "zipkin"
		config.logging.level = "LOUD"

		issues = validate_config(config)

		assert [level for level, _ in issues] == ["error"] * 7

	def test_warnings(self, tmp_path: Path) -> None:
		config = EngineConfig()
		config.target.path = str(tmp_path)
		config.target.vision = "x"
		config.exploration.max_files_to_read = 50
		config.exploration.enable_healing = True
		config.coordinator.max_phase_retries = 9

		issues = validate_config(config)

		assert [level for level, _ in issues] == ["warning"] * 3
		assert any("healing has no effect" in msg for _, msg in issues)

	def test_command_timeout_must_stay_below_tool_timeout(self, tmp_path: Path) -> None:
		config = EngineConfig()
		config.target.path = str(tmp_path)
		config.target.vision = "x"
		assert config.tools.command_timeout < config.tools.timeout

		config.tools.command_timeout = 120
		issues = validate_config(config)

		assert issues == [("error", "tools.command_timeout (120s) must be below tools.timeout (30s)")]
		config.tools.command_timeout = config.tools.timeout
		assert validate_config(config)[0][0] == "error"
