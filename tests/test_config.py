"""Tests for configuration loading."""

import pytest

from venue_agent.core.config import (
    AppConfig,
    ImageScoringConfig,
    get_default_config,
    load_config,
    reset_default_config,
)
from venue_agent.core.errors import ConfigError


@pytest.fixture(autouse=True)
def _fresh_default_config():
    reset_default_config()
    yield
    reset_default_config()


class TestLoadConfig:
    """Tests for load_config."""

    def test_overrides_and_defaults(self, tmp_path) -> None:
        """Test that YAML values override defaults and the rest keep theirs."""
        path = tmp_path / "pipeline.yaml"
        path.write_text(
            "pipeline:\n"
            "  default_city: Manchester\n"
            "  quality_gate:\n"
            "    enabled: false\n"
            "image_scoring:\n"
            "  max_candidates: 10\n"
            "  gates:\n"
            "    min_side: 300\n"
            "  weights:\n"
            "    own_site: 20\n"
            "services:\n"
            "  actors:\n"
            "    poll_interval: 0.5\n"
        )

        config = load_config(path)

        assert config.pipeline.default_city == "Manchester"
        assert config.pipeline.quality_gate_enabled is False
        assert config.pipeline.web_max_concurrency == 12
        assert config.scoring.max_candidates == 10
        assert config.scoring.min_side == 300
        assert config.scoring.own_site_points == 20.0
        assert config.scoring.min_pixels == ImageScoringConfig().min_pixels
        assert config.services.poll_interval == 0.5
        assert config.config_path == path.resolve()

    def test_empty_file_gives_defaults(self, tmp_path) -> None:
        path = tmp_path / "pipeline.yaml"
        path.write_text("")

        assert load_config(path).pipeline == AppConfig().pipeline

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_non_mapping_root(self, tmp_path) -> None:
        path = tmp_path / "pipeline.yaml"
        path.write_text("- just\n- a list\n")

        with pytest.raises(ConfigError, match="must be a mapping"):
            load_config(path)

    def test_invalid_value(self, tmp_path) -> None:
        """Test that a value of the wrong type is a configuration error."""
        path = tmp_path / "pipeline.yaml"
        path.write_text("image_scoring:\n  max_candidates: lots\n")

        with pytest.raises(ConfigError, match="Invalid configuration"):
            load_config(path)


class TestDefaultConfig:
    """Tests for get_default_config."""

    def test_env_var_path(self, tmp_path, monkeypatch) -> None:
        """Test that VENUE_AGENT_CONFIG selects the config file."""
        path = tmp_path / "custom.yaml"
        path.write_text("pipeline:\n  default_city: Leeds\n")
        monkeypatch.setenv("VENUE_AGENT_CONFIG", str(path))

        assert get_default_config().pipeline.default_city == "Leeds"

    def test_shipped_config_matches_defaults(self, monkeypatch) -> None:
        """Test that config/pipeline.yaml restates the built-in defaults."""
        monkeypatch.delenv("VENUE_AGENT_CONFIG", raising=False)

        config = get_default_config()

        assert config.pipeline == AppConfig().pipeline
        assert config.scoring == AppConfig().scoring
