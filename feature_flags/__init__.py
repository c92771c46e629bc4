"""Deterministic feature flag rollout."""
from feature_flags.manager import FeatureFlagManager
from feature_flags.loader import load_flags_file, load_from_environment
