"""Startup load paths for feature flags: a YAML defaults file and environment variables."""
import os
import json
import logging
import yaml
from pathlib import Path

from models.flags import FeatureFlag

logger = logging.getLogger("governor.feature_flags.loader")

ENV_PREFIX = "FEATURE_FLAG_"
ENABLED_SUFFIX = "_ENABLED"


def load_flags_file(path="config/feature_flags.yaml"):
    """Read flag definitions from YAML. Entries without a key are skipped."""
    path = Path(path)
    if not path.exists():
        logger.warning(f"Feature flags file not found: {path}")
        return []
    with open(path) as f:
        data = yaml.safe_load(f) or {}

    flags = []
    for raw in data.get("flags", []):
        try:
            flags.append(FeatureFlag.from_dict(raw))
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"Invalid feature flag {raw.get('key', '?')}: {e}")
    logger.info(f"Loaded {len(flags)} feature flags from {path}")
    return flags


def _parse_value(raw):
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def load_from_environment(manager, environ=None):
    """Apply FEATURE_FLAG_<KEY>[_ENABLED] variables to ``manager``.

    ``FEATURE_FLAG_<KEY>_ENABLED=true|false`` toggles a flag;
    ``FEATURE_FLAG_<KEY>=<json or text>`` sets its value and enables it.
    Keys are lower-cased; unknown keys create a new flag. Returns the
    number of variables applied.
    """
    environ = os.environ if environ is None else environ
    applied = 0
    for name, raw in sorted(environ.items()):
        if not name.startswith(ENV_PREFIX) or name == ENV_PREFIX:
            continue
        key = name[len(ENV_PREFIX):].lower()

        if name.endswith(ENABLED_SUFFIX):
            key = key[:-len(ENABLED_SUFFIX)]
            updates = {"enabled": raw.strip().lower() == "true"}
        else:
            updates = {"value": _parse_value(raw), "enabled": True}

        if not key:
            continue
        if not manager.update_flag(key, **updates):
            manager.add_flag(FeatureFlag(key=key, name=key, **updates))
        applied += 1
        logger.debug(f"Feature flag {key} set from environment ({name})")
    return applied
