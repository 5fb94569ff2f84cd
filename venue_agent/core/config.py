"""
Configuration Module
====================

Pipeline settings loaded from YAML. Every value has a default so the
pipeline runs without a config file; the YAML file only overrides.
Secrets (API keys, tokens) are read from the environment, never from YAML.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from venue_agent.core.errors import ConfigError

DEFAULT_SIZE_TIERS: list[tuple[int, float]] = [
    (2_000_000, 30.0),
    (1_000_000, 25.0),
    (500_000, 20.0),
    (200_000, 15.0),
]

DEFAULT_RATIO_TIERS: list[tuple[float, float, float]] = [
    (0.8, 1.5, 15.0),
    (0.6, 2.0, 10.0),
]

# Host fragment -> source-authority points. The venue's own domain is scored
# separately through ``own_site_points``.
DEFAULT_SOURCE_WEIGHTS: dict[str, float] = {
    "opentable.": 20.0,
    "tripadvisor.": 18.0,
    "googleusercontent.": 15.0,
    "timeout.": 16.0,
    "hot-dinners.": 16.0,
    "hardens.": 16.0,
    "squaremeal.": 16.0,
    "designboom.": 14.0,
    "dexigner.": 14.0,
    "archello.": 14.0,
    "eater.": 12.0,
    "seriouseats.": 12.0,
    "thehungryhuy.": 12.0,
    "instagram.": 10.0,
    "cdninstagram.": 10.0,
}

DEFAULT_CONTENT_KEYWORDS: list[str] = [
    "food",
    "dish",
    "menu",
    "dining",
    "restaurant",
    "kitchen",
    "interior",
    "ambiance",
]

DEFAULT_TYPE_KEYWORDS: list[tuple[list[str], float]] = [
    (["interior", "ambiance", "ambience", "decor"], 10.0),
    (["food", "dish", "plate"], 9.0),
    (["exterior", "facade", "entrance"], 8.0),
]

DEFAULT_MENU_PATHS: list[str] = [
    "/menu",
    "/menus",
    "/food",
    "/eat",
    "/pages/menu",
    "/pages/lunch-menu",
]


@dataclass
class ImageScoringConfig:
    """Hard-gate thresholds and scoring weights for image candidates."""

    min_side: int = 200
    min_pixels: int = 30_000
    min_aspect_ratio: float = 0.33
    max_aspect_ratio: float = 3.0
    max_candidates: int = 15
    search_max_results: int = 50
    assumed_width: int = 800
    assumed_height: int = 600
    size_tiers: list[tuple[int, float]] = field(default_factory=lambda: list(DEFAULT_SIZE_TIERS))
    size_floor_points: float = 10.0
    ratio_tiers: list[tuple[float, float, float]] = field(
        default_factory=lambda: list(DEFAULT_RATIO_TIERS)
    )
    ratio_floor_points: float = 5.0
    own_site_points: float = 25.0
    generic_source_points: float = 5.0
    source_weights: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_SOURCE_WEIGHTS))
    relevance_both_points: float = 15.0
    relevance_one_points: float = 10.0
    keyword_bonus_points: float = 5.0
    relevance_max_points: float = 20.0
    content_keywords: list[str] = field(default_factory=lambda: list(DEFAULT_CONTENT_KEYWORDS))
    type_keywords: list[tuple[list[str], float]] = field(
        default_factory=lambda: [(list(words), pts) for words, pts in DEFAULT_TYPE_KEYWORDS]
    )
    type_default_points: float = 5.0
    high_quality_threshold: float = 85.0
    medium_quality_threshold: float = 60.0

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ImageScoringConfig:
        """Create from dictionary, using defaults for missing values."""
        if data is None:
            return cls()
        defaults = cls()
        gates = data.get("gates", {})
        weights = data.get("weights", {})
        quality = data.get("quality_bands", {})
        return cls(
            min_side=int(gates.get("min_side", defaults.min_side)),
            min_pixels=int(gates.get("min_pixels", defaults.min_pixels)),
            min_aspect_ratio=float(gates.get("min_aspect_ratio", defaults.min_aspect_ratio)),
            max_aspect_ratio=float(gates.get("max_aspect_ratio", defaults.max_aspect_ratio)),
            max_candidates=int(data.get("max_candidates", defaults.max_candidates)),
            search_max_results=int(data.get("search_max_results", defaults.search_max_results)),
            assumed_width=int(data.get("assumed_width", defaults.assumed_width)),
            assumed_height=int(data.get("assumed_height", defaults.assumed_height)),
            size_tiers=[
                (int(t[0]), float(t[1])) for t in weights.get("size_tiers", defaults.size_tiers)
            ],
            size_floor_points=float(weights.get("size_floor", defaults.size_floor_points)),
            ratio_tiers=[
                (float(t[0]), float(t[1]), float(t[2]))
                for t in weights.get("ratio_tiers", defaults.ratio_tiers)
            ],
            ratio_floor_points=float(weights.get("ratio_floor", defaults.ratio_floor_points)),
            own_site_points=float(weights.get("own_site", defaults.own_site_points)),
            generic_source_points=float(
                weights.get("generic_source", defaults.generic_source_points)
            ),
            source_weights={
                str(k): float(v)
                for k, v in weights.get("sources", defaults.source_weights).items()
            },
            relevance_both_points=float(
                weights.get("relevance_both", defaults.relevance_both_points)
            ),
            relevance_one_points=float(weights.get("relevance_one", defaults.relevance_one_points)),
            keyword_bonus_points=float(weights.get("keyword_bonus", defaults.keyword_bonus_points)),
            relevance_max_points=float(weights.get("relevance_max", defaults.relevance_max_points)),
            content_keywords=list(data.get("content_keywords", defaults.content_keywords)),
            type_keywords=[
                (list(entry["words"]), float(entry["points"]))
                for entry in data["type_keywords"]
            ]
            if "type_keywords" in data
            else defaults.type_keywords,
            type_default_points=float(weights.get("type_default", defaults.type_default_points)),
            high_quality_threshold=float(quality.get("high", defaults.high_quality_threshold)),
            medium_quality_threshold=float(
                quality.get("medium", defaults.medium_quality_threshold)
            ),
        )


@dataclass
class PipelineConfig:
    """Orchestration settings for a single venue run."""

    default_city: str = "London"
    default_country: str = "United Kingdom"
    web_max_concurrency: int = 12
    search_url_template: str = "https://www.google.com/search?q={query}"
    max_menu_links: int = 3
    menu_paths: list[str] = field(default_factory=lambda: list(DEFAULT_MENU_PATHS))
    max_images_to_process: int = 15
    quality_gate_enabled: bool = True
    quality_threshold: float = 7.0
    min_quality_width: int = 500

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> PipelineConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        defaults = cls()
        quality = data.get("quality_gate", {})
        return cls(
            default_city=data.get("default_city", defaults.default_city),
            default_country=data.get("default_country", defaults.default_country),
            web_max_concurrency=int(data.get("web_max_concurrency", defaults.web_max_concurrency)),
            search_url_template=data.get("search_url_template", defaults.search_url_template),
            max_menu_links=int(data.get("max_menu_links", defaults.max_menu_links)),
            menu_paths=list(data.get("menu_paths", defaults.menu_paths)),
            max_images_to_process=int(
                data.get("max_images_to_process", defaults.max_images_to_process)
            ),
            quality_gate_enabled=bool(quality.get("enabled", defaults.quality_gate_enabled)),
            quality_threshold=float(quality.get("threshold", defaults.quality_threshold)),
            min_quality_width=int(quality.get("min_width", defaults.min_quality_width)),
        )


@dataclass
class ServiceConfig:
    """Endpoints and tuning for the external services."""

    actor_base_url: str = "https://api.apify.com/v2"
    business_actor: str = "compass~crawler-google-places"
    image_search_actor: str = "hooli~google-images-scraper"
    business_max_images: int = 20
    poll_interval: float = 2.0
    max_poll_attempts: int = 60
    scrape_base_url: str = "https://api.firecrawl.dev/v1"
    request_timeout: float = 60.0
    user_agent: str = "VenueAgent/0.1"
    content_provider: str = "anthropic"
    content_model: str | None = None
    vision_provider: str = "anthropic"
    vision_model: str | None = None
    quality_provider: str = "openai"
    quality_model: str | None = "gpt-4o-mini"
    storage_path: str = "~/.venue_agent/storage"
    storage_base_url: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ServiceConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        defaults = cls()
        actors = data.get("actors", {})
        ai = data.get("ai", {})
        storage = data.get("storage", {})
        return cls(
            actor_base_url=actors.get("base_url", defaults.actor_base_url),
            business_actor=actors.get("business", defaults.business_actor),
            image_search_actor=actors.get("image_search", defaults.image_search_actor),
            business_max_images=int(actors.get("max_images", defaults.business_max_images)),
            poll_interval=float(actors.get("poll_interval", defaults.poll_interval)),
            max_poll_attempts=int(actors.get("max_poll_attempts", defaults.max_poll_attempts)),
            scrape_base_url=data.get("scrape_base_url", defaults.scrape_base_url),
            request_timeout=float(data.get("request_timeout", defaults.request_timeout)),
            user_agent=data.get("user_agent", defaults.user_agent),
            content_provider=ai.get("content_provider", defaults.content_provider),
            content_model=ai.get("content_model", defaults.content_model),
            vision_provider=ai.get("vision_provider", defaults.vision_provider),
            vision_model=ai.get("vision_model", defaults.vision_model),
            quality_provider=ai.get("quality_provider", defaults.quality_provider),
            quality_model=ai.get("quality_model", defaults.quality_model),
            storage_path=storage.get("path", defaults.storage_path),
            storage_base_url=storage.get("base_url", defaults.storage_base_url),
        )


@dataclass
class AppConfig:
    """Top-level configuration."""

    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    scoring: ImageScoringConfig = field(default_factory=ImageScoringConfig)
    services: ServiceConfig = field(default_factory=ServiceConfig)
    config_path: Path | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> AppConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        return cls(
            pipeline=PipelineConfig.from_dict(data.get("pipeline")),
            scoring=ImageScoringConfig.from_dict(data.get("image_scoring")),
            services=ServiceConfig.from_dict(data.get("services")),
        )


def load_config(config_path: Path | str) -> AppConfig:
    """
    Load configuration from a YAML file.

    Args:
        config_path: Path to the pipeline.yaml file

    Returns:
        Parsed AppConfig

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigError: If the file is not a YAML mapping or a value is invalid.
    """
    config_path = Path(config_path).expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path) as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ConfigError(f"Configuration root must be a mapping: {config_path}")

    try:
        config = AppConfig.from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigError(f"Invalid configuration in {config_path}: {e}") from e
    config.config_path = config_path
    return config


# Global config instance
_default_config: AppConfig | None = None


def get_default_config() -> AppConfig:
    """
    Get the default configuration.

    Loads from VENUE_AGENT_CONFIG env var or config/pipeline.yaml in the
    project root; falls back to built-in defaults when neither exists.
    """
    global _default_config
    if _default_config is None:
        config_path = os.environ.get("VENUE_AGENT_CONFIG")
        if config_path:
            _default_config = load_config(config_path)
        else:
            project_root = Path(__file__).parent.parent.parent
            default_path = project_root / "config" / "pipeline.yaml"
            if default_path.exists():
                _default_config = load_config(default_path)
            else:
                _default_config = AppConfig()
    return _default_config


def reset_default_config() -> None:
    """Reset the default configuration (useful for testing)."""
    global _default_config
    _default_config = None
