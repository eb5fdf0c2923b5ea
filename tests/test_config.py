import json
from pathlib import Path

import pytest

from folio import config as config_util


def test_defaults_without_file_or_env() -> None:
    settings = config_util.load_settings(env={})
    assert settings.catalog_url == config_util.DEFAULT_CATALOG_URL
    assert settings.download_attempts == 3
    assert settings.download_backoff == 3.0
    assert settings.clean_rules is None


def test_file_values_are_coerced_and_paths_resolved(tmp_path: Path) -> None:
    config_path = tmp_path / "folio.json"
    config_path.write_text(
        json.dumps(
            {
                "api_url": "https://api.example.com",
                "max_books": "25",
                "batch_delay": 1,
                "clean_rules": "rules/clean.json",
            }
        ),
        encoding="utf-8",
    )
    settings = config_util.load_settings(config_path, env={})
    assert settings.api_url == "https://api.example.com"
    assert settings.max_books == 25
    assert settings.batch_delay == 1.0
    assert settings.clean_rules == (tmp_path / "rules" / "clean.json").resolve()


def test_environment_overrides_file(tmp_path: Path) -> None:
    config_path = tmp_path / "folio.json"
    config_path.write_text(json.dumps({"api_key": "from-file"}), encoding="utf-8")
    env = {"FOLIO_API_KEY": "from-env", "FOLIO_MAX_BOOKS": "2", "FOLIO_PUBLIC_URL": ""}
    settings = config_util.load_settings(config_path, env=env)
    assert settings.api_key == "from-env"
    assert settings.max_books == 2
    assert settings.public_url == ""


def test_unknown_keys_are_rejected(tmp_path: Path) -> None:
    config_path = tmp_path / "folio.json"
    config_path.write_text(json.dumps({"api_token": "x"}), encoding="utf-8")
    with pytest.raises(ValueError, match="api_token"):
        config_util.load_settings(config_path, env={})


def test_invalid_numbers_are_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        config_util.load_settings(env={"FOLIO_BATCH_DELAY": "soon"})
    with pytest.raises(ValueError):
        config_util.load_settings(env={"FOLIO_MAX_BOOKS": "-1"})


def test_config_must_be_an_object(tmp_path: Path) -> None:
    config_path = tmp_path / "folio.json"
    config_path.write_text("[]", encoding="utf-8")
    with pytest.raises(ValueError):
        config_util.load_settings(config_path, env={})
