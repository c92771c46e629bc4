"""Configuration management."""
import os
import yaml
from pathlib import Path

_config = None
CONFIG_DIR = Path(__file__).parent
_DEFAULT_CONFIG = CONFIG_DIR / "default_config.yaml"

REQUIRED_SECTIONS = ["app", "logging", "rate_limit", "alerts", "feature_flags", "health", "metrics", "web"]

ENV_MAP = {
    "GOVERNOR_ENV": ("app", "environment"),
    "GOVERNOR_LOG_LEVEL": ("logging", "level"),
    "GOVERNOR_HEALTH_URL": ("health", "url"),
    "GOVERNOR_RATE_LIMIT_MAX": ("rate_limit", "default_max_requests"),
    "GOVERNOR_RATE_LIMIT_WINDOW_MS": ("rate_limit", "default_window_ms"),
    "GOVERNOR_EVAL_INTERVAL": ("alerts", "evaluation_interval_seconds"),
}


def load_config(path=None, environ=None):
    """Load config from YAML, merging defaults with optional overrides."""
    global _config
    environ = os.environ if environ is None else environ

    with open(_DEFAULT_CONFIG) as f:
        config = yaml.safe_load(f)

    if path and Path(path).exists():
        with open(path) as f:
            overrides = yaml.safe_load(f) or {}
        config = _deep_merge(config, overrides)

    # Environment variable overrides
    for env_key, config_path in ENV_MAP.items():
        val = environ.get(env_key)
        if val:
            d = config
            for k in config_path[:-1]:
                d = d.setdefault(k, {})
            try:
                d[config_path[-1]] = int(val)
            except ValueError:
                d[config_path[-1]] = val

    _validate_config(config)
    _config = config
    return config


def get_config():
    """Return cached config, loading defaults if needed."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def resolve_path(path):
    """Resolve a config-relative data file (e.g. thresholds YAML) to an absolute path."""
    p = Path(path)
    if p.is_absolute() or p.exists():
        return p
    return CONFIG_DIR.parent / p


def _deep_merge(base, override):
    """Recursively merge override into base dict."""
    result = base.copy()
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _validate_config(config):
    """Basic config validation."""
    for section in REQUIRED_SECTIONS:
        if not isinstance(config.get(section), dict):
            raise ValueError(f"Missing required config section: {section}")

    rl = config["rate_limit"]
    if not isinstance(rl.get("default_max_requests"), int) or rl["default_max_requests"] < 1:
        raise ValueError("rate_limit.default_max_requests must be an integer >= 1")
    if not isinstance(rl.get("default_window_ms"), int) or rl["default_window_ms"] < 1:
        raise ValueError("rate_limit.default_window_ms must be an integer >= 1")

    if config["alerts"].get("evaluation_interval_seconds", 0) < 1:
        raise ValueError("alerts.evaluation_interval_seconds must be >= 1")
