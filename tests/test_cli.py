"""Tests for the CLI."""

import pytest
from typer.testing import CliRunner

from release_intel import __version__
from release_intel.cli.main import app
from release_intel.ingestion.registry import reset_default_registry
from release_intel.ingestion.run_state import reset_default_tracker

runner = CliRunner()

SOURCES_YAML = """
global:
  inter_source_delay_seconds: 0
sources:
  - id: tcg-api
    name: "TCG API"
    url: "https://api.example.test/v2/sets"
    tier: A
    source_type: official
    category: pokemon
    extractor: pokemontcg_sets
    custom_config:
      max_age_days: 90
  - id: rumor-board
    name: "Rumor Board"
    url: "https://rumors.example.test/"
    tier: C
    source_type: community
    category: pokemon
    enabled: false
"""


@pytest.fixture
def sources_config(tmp_path, monkeypatch):
    """Point the default registry at a temporary sources.yaml."""
    path = tmp_path / "sources.yaml"
    path.write_text(SOURCES_YAML, encoding="utf-8")
    monkeypatch.setenv("SOURCES_CONFIG_PATH", str(path))
    reset_default_registry()
    yield path
    reset_default_registry()


@pytest.fixture
def memory_tracker(monkeypatch):
    """Use the in-memory run-state backend."""
    monkeypatch.setenv("RUN_STATE_BACKEND", "memory")
    reset_default_tracker()
    yield
    reset_default_tracker()


class TestMainCommands:
    """Tests for top-level commands."""

    def test_version(self) -> None:
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert __version__ in result.output


class TestSourcesCommands:
    """Tests for ingest sources commands."""

    def test_list_enabled(self, sources_config) -> None:
        result = runner.invoke(app, ["ingest", "sources", "list"])
        assert result.exit_code == 0
        assert "tcg-api" in result.output
        assert "rumor-board" not in result.output

    def test_list_all(self, sources_config) -> None:
        result = runner.invoke(app, ["ingest", "sources", "list", "--all"])
        assert result.exit_code == 0
        assert "rumor-board" in result.output

    def test_show(self, sources_config) -> None:
        result = runner.invoke(app, ["ingest", "sources", "show", "tcg-api"])
        assert result.exit_code == 0
        assert "max_age_days: 90" in result.output
        assert "PokemonTcgSetsExtractor" in result.output

    def test_show_missing(self, sources_config) -> None:
        result = runner.invoke(app, ["ingest", "sources", "show", "nope"])
        assert result.exit_code == 1
        assert "not found" in result.output


class TestStatusCommand:
    """Tests for ingest status."""

    def test_idle(self, memory_tracker) -> None:
        result = runner.invoke(app, ["ingest", "status"])
        assert result.exit_code == 0
        assert "idle" in result.output
