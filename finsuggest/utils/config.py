import os
import json
from typing import Any, Dict, Optional

from jsonschema import ValidationError, validate

from .logger import logger

"""
Configuration loader for FinSuggest.

Behavior:
- Looks for config path in env var `FINSUGGEST_CONFIG`.
- Falls back to `finsuggest/config.json` next to the package.
- If not found, attempts to load `finsuggest/config.json.example`, then conservative defaults.

Every section is optional; get_section() merges a section over its defaults.
"""

_DEFAULT_CONFIG: Dict[str, Any] = {
    "provider": "ollama",
    "providers": {"ollama": {"base_url": "http://localhost:11434", "model": "llama3"}},
    "circuit_breaker": {"failure_threshold": 5, "success_threshold": 2, "open_timeout": 60},
    "rate_limit": {"min_interval": 2.0, "base_delay": 5.0, "max_delay": 30.0, "max_attempts": 3},
    "cascade": {"min_text_chars": 50, "ai_min_confidence": 70, "max_prompt_chars": 12000},
    "duplicates": {"amount_tolerance": 0.02, "date_window_days": 3},
    "thread_cache": {"optimization_level": "high"},
    "download_queue": {"max_concurrent": 2, "max_retries": 3, "retry_delays": [30, 120, 300]},
    "ocr": {"languages": "spa+eng"},
    "log_level": "INFO",
}

_config_cache: Dict[str, Any] = {}

_SCHEMA_PATH = os.path.join(
    os.path.dirname(__file__), "..", "json_schema", "config.schema.json"
)


def _default_config_path() -> str:
    base_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    return os.path.join(base_dir, "config.json")


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from JSON with sensible fallbacks.

    Candidates are tried in order (explicit path, FINSUGGEST_CONFIG,
    config.json, config.json.example). Invalid files are logged and skipped.
    """
    global _config_cache
    if _config_cache:
        return _config_cache

    env_path = os.environ.get("FINSUGGEST_CONFIG")
    candidates = []
    if path:
        candidates.append(path)
    if env_path:
        candidates.append(env_path)
    candidates.append(_default_config_path())
    candidates.append(
        os.path.join(os.path.dirname(__file__), "..", "config.json.example")
    )

    for p in candidates:
        p_abs = os.path.abspath(p)
        if not os.path.exists(p_abs):
            continue
        try:
            with open(p_abs, "r", encoding="utf-8") as f:
                cfg = json.load(f)
            validate_config(cfg)
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON in config file {p}: {e}")
            continue
        except (ValidationError, ValueError) as e:
            logger.warning(f"Config {p} failed validation: {e}")
            continue
        except OSError as e:
            logger.warning(f"Failed to read config {p}: {e}")
            continue

        _config_cache = cfg
        logger.info(f"Configuration loaded from {p_abs}")
        return cfg

    logger.warning(
        "No config found; using default conservative configuration. Create 'finsuggest/config.json' to customize."
    )
    _config_cache = json.loads(json.dumps(_DEFAULT_CONFIG))
    return _config_cache


def reset_config_cache() -> None:
    """Forget the loaded configuration (tests, reload)."""
    global _config_cache
    _config_cache = {}


def get_section(cfg: Dict[str, Any], name: str) -> Dict[str, Any]:
    """Return a config section merged over its defaults."""
    merged = dict(_DEFAULT_CONFIG.get(name, {}))
    merged.update(cfg.get(name) or {})
    return merged


def validate_config(cfg: Dict[str, Any]) -> None:
    """Validate configuration using a JSON Schema.

    This uses the schema defined in `finsuggest/json_schema/config.schema.json`.
    Raises jsonschema.ValidationError on invalid configs.
    """
    if not isinstance(cfg, dict):
        raise ValueError("Configuration must be a JSON object/dict")

    with open(_SCHEMA_PATH, "r", encoding="utf-8") as f:
        schema_data = json.load(f)

    validate(instance=cfg, schema=schema_data)


if __name__ == "__main__":
    # Simple CLI for debugging
    cfg = load_config()
    print(json.dumps(cfg, indent=2))
