"""ChameleonQA configuration management."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from chameleonqa.models import (
    AUTH_KEYWORDS,
    CONFIG_FILE_NAMES,
    CONTAINER_KEYWORDS,
    DEFAULT_ANCHOR_BONUS,
    DEFAULT_GLOBAL_BONUS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_PLAYWRIGHT_PROJECT,
    DEFAULT_STYLE_SAMPLE_SIZE,
    DEFAULT_TIE_MARGIN,
    DEFAULT_WRAPPER_LOCATOR_ATTRIBUTE,
    GLOBAL_KEYWORDS,
    TEST_DATA_DEFAULTS,
    UNKNOWN_PAGE_CLASS,
)


class ChameleonConfigError(Exception):
    """Raised when configuration is invalid or the target repository is missing."""

    pass


class PipelineTimeoutError(ChameleonConfigError):
    """Raised when the overall run deadline expires."""

    pass


@dataclass
class ScoringWeights:
    """Tunable constants of the mapping engine's semantic scoring."""

    anchor_bonus: float = DEFAULT_ANCHOR_BONUS
    global_bonus: float = DEFAULT_GLOBAL_BONUS
    tie_margin: float = DEFAULT_TIE_MARGIN
    unknown_class: str = UNKNOWN_PAGE_CLASS


@dataclass
class ChameleonConfig:
    """Configuration for a ChameleonQA run."""

    # Discovery overrides (relative to the repository root)
    page_object_dir: str | None = None
    test_dir: str | None = None
    fixture_file: str | None = None
    style_sample_size: int = DEFAULT_STYLE_SAMPLE_SIZE

    # Verification
    max_retries: int = DEFAULT_MAX_RETRIES
    playwright_project: str = DEFAULT_PLAYWRIGHT_PROJECT
    test_command: str | None = None
    timeout: float | None = None

    # Synthesis
    create_missing_page_objects: bool = False
    wrapper_locator_attribute: str = DEFAULT_WRAPPER_LOCATOR_ATTRIBUTE
    test_data: dict[str, str] = field(default_factory=lambda: dict(TEST_DATA_DEFAULTS))

    # Heuristics
    scoring: ScoringWeights = field(default_factory=ScoringWeights)
    auth_keywords: tuple[str, ...] = AUTH_KEYWORDS
    container_keywords: tuple[str, ...] = CONTAINER_KEYWORDS
    global_keywords: tuple[str, ...] = GLOBAL_KEYWORDS

    @classmethod
    def from_file(cls, config_path: Path) -> ChameleonConfig:
        """Load config from a YAML file."""
        if not config_path.exists():
            raise ChameleonConfigError(
                f"Config file not found: {config_path}\n\n"
                "To fix: create chameleonqa.yaml in the target repository or drop --config"
            )
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ChameleonConfigError(f"Config file must be a YAML mapping: {config_path}")
        return cls._from_dict(data)

    @classmethod
    def discover(cls, repo_root: Path) -> ChameleonConfig:
        """Load the repository's own config file if it has one, else defaults."""
        for name in CONFIG_FILE_NAMES:
            candidate = repo_root / name
            if candidate.is_file():
                return cls.from_file(candidate)
        return cls()

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> ChameleonConfig:
        """Create config from a dictionary."""
        config = cls()

        for key in ("page_object_dir", "test_dir", "fixture_file", "test_command", "playwright_project"):
            if data.get(key) is not None:
                setattr(config, key, str(data[key]))

        if "style_sample_size" in data:
            config.style_sample_size = int(data["style_sample_size"])
        if "max_retries" in data:
            config.max_retries = int(data["max_retries"])
            if config.max_retries < 1:
                raise ChameleonConfigError(f"max_retries must be at least 1, got: {config.max_retries}")
        if data.get("timeout") is not None:
            config.timeout = float(data["timeout"])
        if "create_missing_page_objects" in data:
            config.create_missing_page_objects = bool(data["create_missing_page_objects"])
        if "wrapper_locator_attribute" in data:
            config.wrapper_locator_attribute = str(data["wrapper_locator_attribute"])

        scoring = data.get("scoring", {})
        if isinstance(scoring, dict):
            for key in ("anchor_bonus", "global_bonus", "tie_margin"):
                if key in scoring:
                    setattr(config.scoring, key, float(scoring[key]))
            if "unknown_class" in scoring:
                config.scoring.unknown_class = str(scoring["unknown_class"])

        keywords = data.get("keywords", {})
        if isinstance(keywords, dict):
            for key in ("auth", "container", "global"):
                if key in keywords:
                    values = keywords[key]
                    if not isinstance(values, list):
                        raise ChameleonConfigError(f"keywords.{key} must be a list, got: {values!r}")
                    setattr(config, f"{key}_keywords", tuple(str(v).lower() for v in values))

        test_data = data.get("test_data", {})
        if isinstance(test_data, dict):
            for key in TEST_DATA_DEFAULTS:
                if key in test_data:
                    config.test_data[key] = str(test_data[key])

        return config
