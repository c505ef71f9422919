import os
from pathlib import Path
from contextlib import asynccontextmanager
from urllib.parse import urlparse
import asyncpg
import aiosql
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

SCHEMA = "smartlink"


def _parse_database_url():
    """Parse DATABASE_URL into individual components."""
    url = os.getenv("DATABASE_URL")
    if not url:
        return None

    parsed = urlparse(url)
    return {
        "host": parsed.hostname,
        "port": parsed.port or 5432,
        "database": parsed.path.lstrip("/"),
        "user": parsed.username,
        "password": parsed.password,
    }


def get_db_config() -> dict:
    """DATABASE_URL first (production), then SMARTLINK_DB_* vars (local dev)."""
    return _parse_database_url() or {
        "host": os.getenv("SMARTLINK_DB_HOST", "localhost"),
        "port": int(os.getenv("SMARTLINK_DB_PORT", "5432")),
        "database": os.getenv("SMARTLINK_DB_NAME", "smartlink"),
        "user": os.getenv("SMARTLINK_DB_USER"),
        "password": os.getenv("SMARTLINK_DB_PASSWORD"),
    }


# Load queries from SQL files
queries = aiosql.from_path(
    Path(__file__).parent / "queries",
    "asyncpg",
)

# Global connection pool
_pool = None


async def _init_connection(conn):
    """Initialize each connection with search_path."""
    await conn.execute(f"SET search_path TO {SCHEMA}, public")


async def init_db():
    """Initialize connection pool once at startup."""
    global _pool
    if _pool is None:
        db_config = get_db_config()
        _pool = await asyncpg.create_pool(
            **db_config,
            min_size=1,
            max_size=10,
            command_timeout=60,
            max_inactive_connection_lifetime=300,
            statement_cache_size=0,  # Required for pgbouncer/Supavisor transaction mode
            init=_init_connection,
        )
    return _pool


@asynccontextmanager
async def get_conn():
    """Get connection from pool (recommended pattern from asyncpg docs)."""
    pool = await init_db()
    async with pool.acquire() as conn:
        yield conn


async def close_db():
    """Gracefully close all connections."""
    global _pool
    if _pool:
        await _pool.close()
        _pool = None
