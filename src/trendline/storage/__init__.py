"""Storage layer: PostgreSQL (asyncpg), Redis, in-memory request cache."""

from trendline.storage.database import Database, close_database, get_database, init_database
from trendline.storage.redis import close_redis, init_redis
from trendline.storage.request_cache import ResilientCache, create_cache_key

__all__ = [
    "Database",
    "ResilientCache",
    "close_database",
    "close_redis",
    "create_cache_key",
    "get_database",
    "init_database",
    "init_redis",
]
