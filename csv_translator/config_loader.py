"""Configuration loader for csv-translator."""
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .rate_limiter import DEFAULT_DELAY_S
from .runtime_adapter import DEEPL_FREE_ENDPOINT, DEFAULT_SOURCE_LANG, load_api_key

DEFAULT_LIMIT = 60000
OVER_LIMIT_POLICIES = ("stop", "drop", "pass")


@dataclass
class TranslatorConfig:
    """Resolved settings for one run."""
    separator: str = ";"
    api_key: str = ""
    limit: Optional[int] = DEFAULT_LIMIT
    endpoint: str = DEEPL_FREE_ENDPOINT
    source_lang: str = DEFAULT_SOURCE_LANG
    over_limit: str = "stop"
    rate_limit: Dict[str, Any] = field(
        default_factory=lambda: {"policy": "fixed", "delay_s": DEFAULT_DELAY_S}
    )
    max_retries: int = 0
    timeout_s: Optional[float] = None
    resume: bool = False
    checkpoint: Optional[str] = None


def load_yaml_config(path: str) -> Dict[str, Any]:
    """
    Load a YAML config file.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        yaml.YAMLError: If YAML parsing fails.
        ValueError: If the top level is not a mapping.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping: {config_path}")
    return data


def load_env_config() -> Dict[str, Any]:
    """Collect DEEPL_* environment settings that are actually set."""
    env: Dict[str, Any] = {}
    api_key = load_api_key()
    if api_key:
        env["api_key"] = api_key
    endpoint = os.getenv("DEEPL_ENDPOINT", "").strip()
    if endpoint:
        env["endpoint"] = endpoint
    timeout = os.getenv("DEEPL_TIMEOUT_S", "").strip()
    if timeout:
        env["timeout_s"] = float(timeout)
    return env


def validate_config(config: TranslatorConfig) -> List[str]:
    """Return validation errors (empty if valid)."""
    errors = []
    if len(config.separator) != 1:
        errors.append(f"separator must be a single character, got {config.separator!r}")
    if config.limit is not None and config.limit < 0:
        errors.append(f"limit must be >= 0, got {config.limit}")
    if config.over_limit not in OVER_LIMIT_POLICIES:
        errors.append(f"over_limit must be one of {', '.join(OVER_LIMIT_POLICIES)}, got {config.over_limit!r}")
    if config.max_retries < 0:
        errors.append(f"max_retries must be >= 0, got {config.max_retries}")
    if not isinstance(config.rate_limit, dict):
        errors.append("rate_limit must be a mapping")
    return errors


def load_config(path: Optional[str] = None,
                overrides: Optional[Dict[str, Any]] = None) -> TranslatorConfig:
    """
    Resolve configuration.

    Priority: overrides (CLI) > environment > YAML file > defaults.
    Overrides set to None are ignored; rate_limit mappings are merged key by key.
    """
    known = {f.name for f in fields(TranslatorConfig)}
    config = TranslatorConfig()

    layers = []
    if path:
        layers.append(load_yaml_config(path))
    layers.append(load_env_config())
    layers.append({k: v for k, v in (overrides or {}).items() if v is not None})

    for layer in layers:
        unknown = set(layer) - known
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(sorted(unknown))}")
        for key, value in layer.items():
            if key == "rate_limit":
                merged = dict(config.rate_limit)
                merged.update(value or {})
                value = merged
            setattr(config, key, value)

    errors = validate_config(config)
    if errors:
        raise ValueError("Invalid configuration: " + "; ".join(errors))
    return config
