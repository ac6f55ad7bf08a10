# database.py
import asyncpg
import asyncio
from contextlib import asynccontextmanager
from typing import Optional, Dict, Any
from config import settings
from utils.logging import logger
import json
import time
import backoff

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        wallet_address TEXT UNIQUE NOT NULL,
        username TEXT,
        virtual_balance DOUBLE PRECISION NOT NULL DEFAULT 0,
        total_mined DOUBLE PRECISION NOT NULL DEFAULT 0,
        total_hash_rate DOUBLE PRECISION NOT NULL DEFAULT 0,
        last_active TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_users_total_mined ON users(total_mined DESC);",
    """
    CREATE TABLE IF NOT EXISTS mining_records (
        id TEXT PRIMARY KEY,
        session_id TEXT UNIQUE NOT NULL,
        user_id TEXT NOT NULL REFERENCES users(id),
        start_time TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        end_time TIMESTAMPTZ,
        hash_rate DOUBLE PRECISION NOT NULL DEFAULT 0,
        duration DOUBLE PRECISION NOT NULL DEFAULT 0,
        coins_earned DOUBLE PRECISION NOT NULL DEFAULT 0,
        tokens_earned DOUBLE PRECISION NOT NULL DEFAULT 0,
        algorithm TEXT NOT NULL DEFAULT 'NEXA',
        difficulty TEXT NOT NULL DEFAULT 'medium',
        gpu_info JSONB,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_mining_records_user ON mining_records(user_id, created_at DESC);",
    """
    CREATE INDEX IF NOT EXISTS idx_mining_records_unsettled
        ON mining_records(end_time) WHERE tokens_earned = 0 AND end_time IS NOT NULL;
    """,
    """
    CREATE TABLE IF NOT EXISTS benchmark_results (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL REFERENCES users(id),
        score DOUBLE PRECISION NOT NULL,
        hash_rate DOUBLE PRECISION NOT NULL,
        duration DOUBLE PRECISION NOT NULL,
        algorithm TEXT NOT NULL,
        difficulty TEXT NOT NULL,
        tokens_earned DOUBLE PRECISION NOT NULL,
        gpu_info JSONB,
        timestamp TIMESTAMPTZ NOT NULL DEFAULT NOW()
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_benchmark_results_score ON benchmark_results(score DESC);",
    "CREATE INDEX IF NOT EXISTS idx_benchmark_results_user ON benchmark_results(user_id, timestamp DESC);",
    """
    CREATE TABLE IF NOT EXISTS wallet_transactions (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL REFERENCES users(id),
        type TEXT NOT NULL DEFAULT 'WITHDRAWAL',
        amount DOUBLE PRECISION NOT NULL,
        to_address TEXT,
        status TEXT NOT NULL DEFAULT 'PENDING',
        tx_hash TEXT,
        failure_reason TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        processed_at TIMESTAMPTZ
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_wallet_transactions_user ON wallet_transactions(user_id, created_at DESC);",
    "CREATE INDEX IF NOT EXISTS idx_wallet_transactions_status ON wallet_transactions(status, updated_at);",
    """
    CREATE TABLE IF NOT EXISTS token_pool (
        id INTEGER PRIMARY KEY DEFAULT 1 CHECK (id = 1),
        total_supply DOUBLE PRECISION NOT NULL,
        circulating_supply DOUBLE PRECISION NOT NULL DEFAULT 0,
        reserve_balance DOUBLE PRECISION NOT NULL DEFAULT 0,
        total_mining_rewards DOUBLE PRECISION NOT NULL DEFAULT 0,
        total_benchmark_rewards DOUBLE PRECISION NOT NULL DEFAULT 0,
        mining_reward_rate DOUBLE PRECISION NOT NULL,
        benchmark_reward_rate DOUBLE PRECISION NOT NULL,
        minimum_withdrawal DOUBLE PRECISION NOT NULL,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    );
    """,
]

class DatabasePool:
    _instance: Optional[asyncpg.Pool] = None
    _lock = asyncio.Lock()
    _last_connection_time: Dict[int, float] = {}
    _connection_attempts = 0

    @classmethod
    async def get_pool(cls) -> asyncpg.Pool:
        if not cls._instance:
            async with cls._lock:
                if not cls._instance:
                    cls._instance = await cls._create_pool()
        return cls._instance

    @classmethod
    @backoff.on_exception(
        backoff.expo,
        (asyncpg.TooManyConnectionsError, asyncpg.CannotConnectNowError, OSError),
        max_tries=3,
        max_time=30
    )
    async def _create_pool(cls) -> asyncpg.Pool:
        """Create the connection pool shared by request handlers and scheduled jobs"""
        try:
            pool = await asyncpg.create_pool(
                host=settings.DB_HOST,
                port=settings.DB_PORT,
                user=settings.DB_USER,
                password=settings.DB_PASSWORD,
                database=settings.DB_NAME,
                min_size=settings.POOL_MIN_SIZE,
                max_size=settings.POOL_MAX_SIZE,
                max_inactive_connection_lifetime=600.0,
                timeout=settings.CONNECTION_TIMEOUT,
                command_timeout=settings.COMMAND_TIMEOUT,
                setup=cls._setup_connection,
                init=cls._init_connection,
            )
            logger.info(
                "Created database pool",
                extra={"min_size": settings.POOL_MIN_SIZE, "max_size": settings.POOL_MAX_SIZE}
            )
            return pool
        except Exception as e:
            logger.error(f"Failed to create connection pool: {str(e)}")
            raise

    @staticmethod
    async def _init_connection(conn: asyncpg.Connection):
        """Decode JSONB columns (gpu_info) to Python objects"""
        await conn.set_type_codec(
            'jsonb', encoder=json.dumps, decoder=json.loads, schema='pg_catalog'
        )

    @staticmethod
    async def _setup_connection(conn: asyncpg.Connection):
        await conn.execute(f'SET statement_timeout = {int(settings.STATEMENT_TIMEOUT)}')
        await conn.execute("SET application_name TO 'bmt-rewards'")

    @classmethod
    async def migrate(cls):
        """Create tables and indexes (idempotent)"""
        async with cls.acquire() as conn:
            for statement in SCHEMA:
                await conn.execute(statement)
        logger.info("Database schema ensured")

    @classmethod
    @asynccontextmanager
    async def acquire(cls):
        """Acquire a pooled connection, tracking how long it is held"""
        pool = await cls.get_pool()
        try:
            async with pool.acquire() as connection:
                conn_id = id(connection)
                cls._last_connection_time[conn_id] = time.time()
                cls._connection_attempts += 1
                try:
                    yield connection
                finally:
                    cls._last_connection_time.pop(conn_id, None)
        except asyncpg.TooManyConnectionsError:
            logger.warning("Too many database connections")
            raise

    @classmethod
    async def close(cls):
        if cls._instance:
            await cls._instance.close()
            cls._instance = None
            cls._last_connection_time.clear()
            cls._connection_attempts = 0
            logger.info("Database pool closed and reset")

    @classmethod
    async def get_pool_stats(cls) -> Dict[str, Any]:
        if not cls._instance:
            return {"status": "not_initialized"}

        return {
            "active_connections": len(cls._last_connection_time),
            "total_connection_attempts": cls._connection_attempts,
            "pool_min_size": cls._instance.get_min_size(),
            "pool_max_size": cls._instance.get_max_size(),
            "pool_size": cls._instance.get_size(),
            "pool_available": cls._instance.get_idle_size(),
        }
