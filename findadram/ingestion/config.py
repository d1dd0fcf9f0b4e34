"""
Trawler Configuration Module
============================

Manages pipeline settings loaded from a YAML file. Every section has
defaults, so a missing file or missing keys fall back to safe values.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

DEFAULT_USER_AGENT = "FindADram/1.0 (menu-data-collection; +https://findadram.com)"


@dataclass
class SafetyConfig:
    """URL safety validation settings."""

    max_url_length: int = 2048
    allowed_ports: list[int] = field(default_factory=lambda: [80, 443])
    dns_timeout: float = 5.0
    blocked_hostnames: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> SafetyConfig:
        """Create from dictionary, using defaults for missing values."""
        if data is None:
            return cls()
        return cls(
            max_url_length=int(data.get("max_url_length", 2048)),
            allowed_ports=[int(p) for p in data.get("allowed_ports", [80, 443])],
            dns_timeout=float(data.get("dns_timeout", 5.0)),
            blocked_hostnames=list(data.get("blocked_hostnames", [])),
        )


@dataclass
class FetchConfig:
    """Content fetcher settings."""

    user_agent: str = DEFAULT_USER_AGENT
    timeout: float = 15.0
    max_redirects: int = 3
    max_response_bytes: int = 5 * 1024 * 1024

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> FetchConfig:
        """Create from dictionary, using defaults for missing values."""
        if data is None:
            return cls()
        return cls(
            user_agent=data.get("user_agent", DEFAULT_USER_AGENT),
            timeout=float(data.get("timeout", 15.0)),
            max_redirects=int(data.get("max_redirects", 3)),
            max_response_bytes=int(data.get("max_response_bytes", 5 * 1024 * 1024)),
        )


@dataclass
class ExtractionConfig:
    """Menu extractor settings."""

    max_text_chars: int = 50_000
    max_image_bytes: int = 25 * 1024 * 1024
    review_threshold: float = 0.5
    cache_ttl_seconds: float = 3600.0
    cache_max_entries: int = 256

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ExtractionConfig:
        """Create from dictionary, using defaults for missing values."""
        if data is None:
            return cls()
        return cls(
            max_text_chars=int(data.get("max_text_chars", 50_000)),
            max_image_bytes=int(data.get("max_image_bytes", 25 * 1024 * 1024)),
            review_threshold=float(data.get("review_threshold", 0.5)),
            cache_ttl_seconds=float(data.get("cache_ttl_seconds", 3600.0)),
            cache_max_entries=int(data.get("cache_max_entries", 256)),
        )


@dataclass
class MatchingConfig:
    """Whiskey matching thresholds."""

    fuzzy_threshold: float = 0.85
    token_threshold: float = 0.90
    judge_similarity_floor: float = 0.6
    judge_token_floor: float = 0.7
    judge_confidence: float = 0.7
    max_judge_calls: int = 5
    use_ai_judge: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> MatchingConfig:
        """Create from dictionary, using defaults for missing values."""
        if data is None:
            return cls()
        thresholds = data.get("thresholds", {})
        return cls(
            fuzzy_threshold=float(thresholds.get("fuzzy", 0.85)),
            token_threshold=float(thresholds.get("token", 0.90)),
            judge_similarity_floor=float(thresholds.get("judge_similarity_floor", 0.6)),
            judge_token_floor=float(thresholds.get("judge_token_floor", 0.7)),
            judge_confidence=float(thresholds.get("judge_confidence", 0.7)),
            max_judge_calls=int(data.get("max_judge_calls", 5)),
            use_ai_judge=bool(data.get("use_ai_judge", True)),
        )


@dataclass
class BatchConfig:
    """Batch coordinator settings."""

    delay_seconds: float = 2.0

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> BatchConfig:
        """Create from dictionary, using defaults for missing values."""
        if data is None:
            return cls()
        return cls(delay_seconds=float(data.get("delay_seconds", 2.0)))


@dataclass
class TrawlerConfig:
    """All pipeline settings."""

    safety: SafetyConfig = field(default_factory=SafetyConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)
    config_path: Path | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> TrawlerConfig:
        """Create from dictionary."""
        data = data or {}
        return cls(
            safety=SafetyConfig.from_dict(data.get("safety")),
            fetch=FetchConfig.from_dict(data.get("fetch")),
            extraction=ExtractionConfig.from_dict(data.get("extraction")),
            matching=MatchingConfig.from_dict(data.get("matching")),
            batch=BatchConfig.from_dict(data.get("batch")),
        )

    @classmethod
    def load(cls, config_path: Path | str) -> TrawlerConfig:
        """
        Load configuration from a YAML file.

        Args:
            config_path: Path to the trawler.yaml file
        """
        config_path = Path(config_path).expanduser().resolve()
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path) as f:
            data = yaml.safe_load(f)

        config = cls.from_dict(data)
        config.config_path = config_path
        return config


# Global config instance
_default_config: TrawlerConfig | None = None


def get_default_config() -> TrawlerConfig:
    """
    Get the default trawler configuration.

    Loads from the path in the TRAWLER_CONFIG_PATH environment variable,
    or falls back to config/trawler.yaml, or to built-in defaults.
    """
    global _default_config

    if _default_config is None:
        config_path = os.environ.get("TRAWLER_CONFIG_PATH")
        if config_path:
            path = Path(config_path)
        else:
            project_root = Path(__file__).parent.parent.parent
            path = project_root / "config" / "trawler.yaml"

        if path.exists():
            _default_config = TrawlerConfig.load(path)
        else:
            _default_config = TrawlerConfig()

    return _default_config


def reset_default_config() -> None:
    """Reset the default config (useful for testing)."""
    global _default_config
    _default_config = None
