"""Utility modules for Request Governor."""
from utils.logger import setup_logging
from utils.cache import TTLCache
from utils.clock import SystemClock, now_ms
from utils.hashing import stable_hash, bucket_for
from utils.http_client import HTTPClient, APIError
