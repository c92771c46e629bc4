"""Feature flag evaluation for controlled rollouts and experiments."""
import logging
import threading

from models.flags import FeatureFlag, UserContext
from utils.cache import TTLCache
from utils.clock import SystemClock
from utils.hashing import stable_hash

logger = logging.getLogger("governor.feature_flags")

_MISSING = object()


class FeatureFlagManager:
    """Evaluates flags for the current user context.

    Rules are checked in priority order and the first one that decides
    wins: override, unknown key, disabled, environment, date window,
    segment, rollout bucket, enabled. Results are cached per key for
    ``cache_ttl_seconds``; any change to a flag or override drops that
    key, and a context change drops everything.
    """

    def __init__(self, flags=None, clock=None, environment="development",
                 cache_ttl_seconds=60, metrics=None):
        self.clock = clock or SystemClock()
        self.environment = environment
        self.cache_ttl = cache_ttl_seconds
        self.metrics = metrics
        self._flags = {}
        self._overrides = {}
        self._context = UserContext()
        self._cache = TTLCache(clock=self.clock)
        self._lock = threading.RLock()
        for flag in flags or []:
            self._flags[flag.key] = flag

    # ── context ──────────────────────────────────────

    def set_user_context(self, context):
        if isinstance(context, dict):
            context = UserContext.from_dict(context)
        with self._lock:
            self._context = self._context.merged(context)
            self._cache.clear()
        logger.debug(f"Feature flag user context updated: user={context.user_id} tier={context.tier}")

    def get_user_context(self) -> UserContext:
        with self._lock:
            return UserContext.from_dict(self._context.to_dict())

    def reset_user_context(self):
        with self._lock:
            self._context = UserContext()
            self._cache.clear()

    # ── flag definitions ─────────────────────────────

    def add_flag(self, flag: FeatureFlag):
        with self._lock:
            self._flags[flag.key] = flag
            self._cache.invalidate(flag.key)
        logger.debug(f"Feature flag added: {flag.key} (enabled={flag.enabled})")

    def update_flag(self, key, **updates) -> bool:
        with self._lock:
            existing = self._flags.get(key)
            if existing is None:
                return False
            self._flags[key] = existing.updated(**updates)
            self._cache.invalidate(key)
        logger.debug(f"Feature flag updated: {key} {updates}")
        return True

    def remove_flag(self, key) -> bool:
        with self._lock:
            removed = self._flags.pop(key, None)
            self._overrides.pop(key, None)
            self._cache.invalidate(key)
        if removed:
            logger.debug(f"Feature flag removed: {key}")
        return removed is not None

    def get_flag(self, key):
        with self._lock:
            return self._flags.get(key)

    def get_all_flags(self):
        with self._lock:
            return list(self._flags.values())

    # ── overrides ────────────────────────────────────

    def override(self, key, value):
        """Force ``key`` to ``value`` regardless of every other rule."""
        with self._lock:
            self._overrides[key] = value
            self._cache.invalidate(key)
        logger.debug(f"Feature flag overridden: {key}={value!r}")

    def clear_override(self, key):
        with self._lock:
            self._overrides.pop(key, None)
            self._cache.invalidate(key)

    def clear_all_overrides(self):
        with self._lock:
            self._overrides.clear()
            self._cache.clear()

    # ── evaluation ───────────────────────────────────

    def is_enabled(self, key, default=False) -> bool:
        return bool(self._safe_evaluate(key, default))

    def get_value(self, key, default=None):
        return self._safe_evaluate(key, default)

    def evaluate_for(self, context, key, default=None):
        """Evaluate ``key`` for ``context`` alone.

        The shared user context and the result cache are neither read nor
        changed, so concurrent callers with different contexts cannot see
        each other's results. Overrides still apply.
        """
        if isinstance(context, dict):
            context = UserContext.from_dict(context)
        return self._safe_evaluate(key, default, context)

    def evaluate_multiple(self, keys):
        return {key: self._safe_evaluate(key, False) for key in keys}

    def bucket(self, key, user_id=None) -> int:
        """Rollout bucket 0-99 of ``user_id`` (default: context user) for ``key``."""
        if user_id is None:
            user_id = self._context.user_id
        return stable_hash(user_id or "anonymous", key) % 100

    def _safe_evaluate(self, key, default, context=None):
        try:
            return self._evaluate(key, default, context)
        except Exception as e:
            logger.error(f"Feature flag evaluation failed for {key}: {e}")
            return default

    def _evaluate(self, key, default, context=None):
        # the cache only holds results for the shared context
        use_cache = context is None
        with self._lock:
            if use_cache:
                cached = self._cache.get(key, _MISSING)
                if cached is not _MISSING:
                    return cached

            if key in self._overrides:
                value = self._overrides[key]
                if use_cache:
                    self._cache.set(key, value, ttl=self.cache_ttl)
                return value

            flag = self._flags.get(key)
            if flag is None:
                logger.debug(f"Feature flag not found: {key}")
                return default

            if context is None:
                context = self._context
            passed = self._passes_gates(flag, context)
            value = flag.enabled_value if passed else flag.disabled_value
            if use_cache:
                self._cache.set(key, value, ttl=self.cache_ttl)

        if passed:
            if self.metrics is not None:
                self.metrics.track_usage("feature_flags", "flag_evaluation",
                                         {"flag_key": key, "result": value}, user_id=context.user_id)
            logger.debug(f"Feature flag evaluated: {key}={value!r} user={context.user_id}")
        return value

    def _passes_gates(self, flag, context) -> bool:
        if not flag.enabled:
            return False

        if flag.environments:
            env = context.environment or self.environment
            if env not in flag.environments:
                return False

        if flag.start_date or flag.end_date:
            now = self.clock.utcnow()
            if flag.start_date and now < flag.start_date:
                return False
            if flag.end_date and now > flag.end_date:
                return False

        if flag.user_segments:
            user_segments = set(context.segments or [])
            if not any(s in user_segments or s == context.tier for s in flag.user_segments):
                return False

        if flag.rollout_percentage is not None and flag.rollout_percentage < 100:
            if self.bucket(flag.key, context.user_id) >= flag.rollout_percentage:
                return False

        return True

    # ── experiments ──────────────────────────────────

    def is_in_experiment(self, experiment_name) -> bool:
        return self._context.experiment == experiment_name

    def get_experiment_variant(self, experiment_name):
        """Stable variant for the current user, or None if the experiment flag is off."""
        key = f"experiment_{experiment_name}"
        flag = self.get_flag(key)
        if flag is None or not self.is_enabled(key):
            return None
        variants = flag.metadata.get("variants") or ["control", "treatment"]
        user_id = self._context.user_id or "anonymous"
        return variants[stable_hash(user_id, experiment_name) % len(variants)]

    # ── bulk config ──────────────────────────────────

    def export_configuration(self) -> dict:
        with self._lock:
            return {
                "flags": [f.to_dict() for f in self._flags.values()],
                "userContext": self._context.to_dict(),
                "overrides": dict(self._overrides),
            }

    def import_configuration(self, config: dict):
        for raw in config.get("flags") or []:
            self.add_flag(FeatureFlag.from_dict(raw))
        if config.get("userContext"):
            self.set_user_context(UserContext.from_dict(config["userContext"]))
        for key, value in (config.get("overrides") or {}).items():
            self.override(key, value)

    def get_evaluation_stats(self) -> dict:
        flags = self.get_all_flags()
        return {
            "totalFlags": len(flags),
            "enabledFlags": sum(1 for f in flags if f.enabled),
            "flagsWithRollout": sum(1 for f in flags
                                    if f.rollout_percentage is not None and f.rollout_percentage < 100),
            "flagsWithSegments": sum(1 for f in flags if f.user_segments),
            "cacheSize": len(self._cache),
            "overrideCount": len(self._overrides),
        }
