from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Dict, Mapping, Optional

DEFAULT_CATALOG_URL = "https://gutendex.com"
DEFAULT_API_URL = "http://localhost:8787"
CONFIG_FILENAME = "folio.json"

ENV_KEYS = {
    "FOLIO_CATALOG_URL": "catalog_url",
    "FOLIO_API_URL": "api_url",
    "FOLIO_API_KEY": "api_key",
    "FOLIO_ADMIN_TOKEN": "admin_token",
    "FOLIO_PUBLIC_URL": "public_url",
    "FOLIO_BATCH_DELAY": "batch_delay",
    "FOLIO_MAX_BOOKS": "max_books",
    "FOLIO_CLEAN_RULES": "clean_rules",
    "FOLIO_QUALITY_WEIGHTS": "quality_weights",
}


@dataclass(frozen=True)
class Settings:
    catalog_url: str = DEFAULT_CATALOG_URL
    api_url: str = DEFAULT_API_URL
    api_key: str = ""
    admin_token: str = ""
    public_url: str = ""
    request_timeout: float = 30.0
    download_timeout: float = 120.0
    download_attempts: int = 3
    download_backoff: float = 3.0
    max_books: int = 10
    batch_delay: float = 5.0
    clean_rules: Optional[Path] = None
    quality_weights: Optional[Path] = None


_FIELD_TYPES = {
    "request_timeout": float,
    "download_timeout": float,
    "download_backoff": float,
    "batch_delay": float,
    "download_attempts": int,
    "max_books": int,
}
_PATH_FIELDS = {"clean_rules", "quality_weights"}


def _load_json(path: Path) -> dict:
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Config must be a JSON object: {path}")
    return data


def _coerce(name: str, value: object, base_dir: Optional[Path] = None) -> object:
    if name in _PATH_FIELDS:
        if value in (None, ""):
            return None
        path = Path(str(value)).expanduser()
        if base_dir is not None and not path.is_absolute():
            path = (base_dir / path).resolve()
        return path
    caster = _FIELD_TYPES.get(name)
    if caster is None:
        return str(value or "").strip()
    try:
        coerced = caster(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Config value '{name}' must be {caster.__name__}: {value!r}") from exc
    if coerced < 0:
        raise ValueError(f"Config value '{name}' must not be negative: {value!r}")
    return coerced


def load_settings(
    path: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Build settings from defaults, an optional JSON file, then the environment."""
    settings = Settings()
    known = {field.name for field in fields(Settings)}

    if path is not None:
        path = Path(path)
        data = _load_json(path)
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown config key(s) in {path}: {', '.join(unknown)}")
        updates: Dict[str, object] = {
            key: _coerce(key, value, base_dir=path.parent) for key, value in data.items()
        }
        settings = replace(settings, **updates)

    environ = os.environ if env is None else env
    overrides: Dict[str, object] = {}
    for env_key, name in ENV_KEYS.items():
        value = environ.get(env_key)
        if value is None or value == "":
            continue
        overrides[name] = _coerce(name, value)
    if overrides:
        settings = replace(settings, **overrides)
    return settings
