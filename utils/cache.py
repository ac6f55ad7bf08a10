# utils/cache.py
from typing import Any, Callable, Optional
from fastapi_cache import FastAPICache
from fastapi_cache.backends.redis import RedisBackend
from fastapi_cache.coder import Coder
from redis import asyncio as aioredis
import hashlib
import json
import datetime
from pydantic import BaseModel

class JSONEncoder(json.JSONEncoder):
    """JSON encoder for route results: pydantic models, timestamps and bytes"""
    def default(self, obj):
        if isinstance(obj, BaseModel):
            return obj.model_dump()
        if isinstance(obj, (datetime.datetime, datetime.date)):
            return obj.isoformat()
        if isinstance(obj, bytes):
            return obj.decode('utf-8')
        return super().default(obj)

class CustomCoder(Coder):
    @classmethod
    def decode(cls, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, bytes):
            value = value.decode()
        if isinstance(value, str):
            return json.loads(value)
        return value

    @classmethod
    def encode(cls, value: Any) -> str:
        return json.dumps(value, cls=JSONEncoder)

def is_json_serializable(obj: Any) -> bool:
    try:
        json.dumps(obj, cls=JSONEncoder)
        return True
    except (TypeError, ValueError, OverflowError):
        return False

def create_cache_key_builder(namespace: str) -> Callable:
    """Key builder hashing only the plain route parameters (store handles are skipped)"""
    def key_builder(
        func: Callable,
        namespace: str = namespace,
        *,
        request: Any = None,
        response: Any = None,
        args: Any = (),
        kwargs: Optional[dict] = None,
    ) -> str:
        cache_params = {
            key: value
            for key, value in (kwargs or {}).items()
            if not key.startswith("_") and is_json_serializable(value)
        }
        param_str = json.dumps(cache_params, sort_keys=True, cls=JSONEncoder)
        param_hash = hashlib.md5(param_str.encode()).hexdigest()[:8]
        return f"{namespace}:{func.__module__}:{func.__name__}:{param_hash}"

    return key_builder

LEADERBOARD_CACHE = create_cache_key_builder("leaderboard")
STATS_CACHE = create_cache_key_builder("stats")

async def setup_cache(redis_url: str):
    """Initialize the Redis cache backend; returns the client so it can be shared"""
    redis = aioredis.from_url(
        redis_url,
        encoding="utf8",
        decode_responses=True,
        max_connections=50,
        socket_timeout=5,
        socket_connect_timeout=5,
        socket_keepalive=True,
        health_check_interval=30,
        retry_on_timeout=True
    )

    FastAPICache.init(
        RedisBackend(redis),
        prefix="bmt-cache",
        key_builder=LEADERBOARD_CACHE,
        coder=CustomCoder
    )
    return redis
