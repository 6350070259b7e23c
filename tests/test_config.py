"""Unit tests for chameleonqa.config — ChameleonConfig loading and validation."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from chameleonqa.config import ChameleonConfig, ChameleonConfigError, PipelineTimeoutError
from chameleonqa.models import AUTH_KEYWORDS, DEFAULT_MAX_RETRIES, UNKNOWN_PAGE_CLASS


def _write_config(directory: Path, data: dict, name: str = "chameleonqa.yaml") -> Path:
    path = directory / name
    path.write_text(yaml.dump(data, default_flow_style=False), encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# 1. Defaults
# ---------------------------------------------------------------------------

class TestDefaults:
    """A bare ChameleonConfig carries the documented defaults."""

    def test_default_values(self):
        config = ChameleonConfig()
        assert config.max_retries == DEFAULT_MAX_RETRIES
        assert config.playwright_project == "chromium"
        assert config.timeout is None
        assert config.create_missing_page_objects is False
        assert config.wrapper_locator_attribute == "controlLocator"

    def test_default_scoring(self):
        scoring = ChameleonConfig().scoring
        assert scoring.anchor_bonus == 0.5
        assert scoring.global_bonus == 0.2
        assert scoring.tie_margin == 0.1
        assert scoring.unknown_class == UNKNOWN_PAGE_CLASS

    def test_email_is_not_an_auth_keyword(self):
        assert "email" not in ChameleonConfig().auth_keywords
        assert "password" in AUTH_KEYWORDS

    def test_instances_do_not_share_mutable_state(self):
        a, b = ChameleonConfig(), ChameleonConfig()
        a.test_data["email_default"] = "x@y.z"
        a.scoring.anchor_bonus = 9.0
        assert b.test_data["email_default"] == "test@example.com"
        assert b.scoring.anchor_bonus == 0.5

    def test_timeout_error_is_config_error(self):
        assert issubclass(PipelineTimeoutError, ChameleonConfigError)


# ---------------------------------------------------------------------------
# 2. from_file
# ---------------------------------------------------------------------------

class TestFromFile:
    """from_file reads YAML and validates it."""

    def test_loads_values(self, tmp_path: Path):
        path = _write_config(
            tmp_path,
            {
                "page_object_dir": "src/po",
                "max_retries": 5,
                "timeout": 120,
                "create_missing_page_objects": True,
                "test_command": "pnpm exec playwright test",
                "scoring": {"anchor_bonus": 0.7, "unknown_class": "OrphanPage"},
                "keywords": {"global": ["Header", "toolbar"]},
                "test_data": {"email_env": "QA_EMAIL"},
            },
        )
        config = ChameleonConfig.from_file(path)
        assert config.page_object_dir == "src/po"
        assert config.max_retries == 5
        assert config.timeout == 120.0
        assert config.create_missing_page_objects is True
        assert config.test_command == "pnpm exec playwright test"
        assert config.scoring.anchor_bonus == 0.7
        assert config.scoring.global_bonus == 0.2
        assert config.scoring.unknown_class == "OrphanPage"
        assert config.global_keywords == ("header", "toolbar")
        assert config.test_data["email_env"] == "QA_EMAIL"
        assert config.test_data["password_env"] == "TEST_PASSWORD"

    def test_missing_file_raises(self, tmp_path: Path):
        with pytest.raises(ChameleonConfigError, match="Config file not found"):
            ChameleonConfig.from_file(tmp_path / "nope.yaml")

    def test_empty_file_gives_defaults(self, tmp_path: Path):
        path = tmp_path / "chameleonqa.yaml"
        path.write_text("", encoding="utf-8")
        assert ChameleonConfig.from_file(path).max_retries == DEFAULT_MAX_RETRIES

    def test_non_mapping_rejected(self, tmp_path: Path):
        path = tmp_path / "chameleonqa.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ChameleonConfigError, match="mapping"):
            ChameleonConfig.from_file(path)

    def test_zero_retries_rejected(self, tmp_path: Path):
        path = _write_config(tmp_path, {"max_retries": 0})
        with pytest.raises(ChameleonConfigError, match="max_retries"):
            ChameleonConfig.from_file(path)

    def test_keywords_must_be_list(self, tmp_path: Path):
        path = _write_config(tmp_path, {"keywords": {"auth": "password"}})
        with pytest.raises(ChameleonConfigError, match="keywords.auth"):
            ChameleonConfig.from_file(path)


# ---------------------------------------------------------------------------
# 3. discover
# ---------------------------------------------------------------------------

class TestDiscover:
    """discover looks for the repository's own config file."""

    def test_defaults_without_file(self, tmp_path: Path):
        assert ChameleonConfig.discover(tmp_path) == ChameleonConfig()

    def test_finds_primary_name(self, tmp_path: Path):
        _write_config(tmp_path, {"max_retries": 2})
        assert ChameleonConfig.discover(tmp_path).max_retries == 2

    def test_finds_dotfile(self, tmp_path: Path):
        _write_config(tmp_path, {"playwright_project": "firefox"}, name=".chameleonqa.yaml")
        assert ChameleonConfig.discover(tmp_path).playwright_project == "firefox"
