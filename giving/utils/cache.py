import os
import socket

import redis

REDIS_URL = os.getenv("REDIS_URL", "redis://127.0.0.1:6379/0")
_client = None

# value stored under a claim, so a stuck key can be traced to its worker
WORKER_ID = f"{socket.gethostname()}:{os.getpid()}"


def r():
    global _client
    if _client is None:
        _client = redis.Redis.from_url(REDIS_URL, decode_responses=True)
    return _client


def claim_once(key: str, ttl_seconds: int) -> bool:
    """
    Atomically claim `key` for `ttl_seconds`. Returns False when another
    worker already holds it.
    """
    return bool(r().set(key, WORKER_ID, nx=True, ex=ttl_seconds))