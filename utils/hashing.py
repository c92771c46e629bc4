"""Stable string hashing for rollout bucketing."""
import hashlib


def stable_hash(user_id: str, key: str) -> int:
    """Deterministic non-negative hash of (user_id, key).

    Depends only on the two strings, so the same user lands in the same
    bucket for a flag across processes and restarts.
    """
    raw = f"{user_id}_{key}".encode("utf-8")
    return int.from_bytes(hashlib.md5(raw).digest()[:8], "big")


def bucket_for(user_id: str, key: str, buckets: int = 100) -> int:
    return stable_hash(user_id, key) % buckets
