from datetime import datetime, timezone
from urllib.parse import urlparse, parse_qs, urlencode, urlunparse

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from marketplace.config import settings


def prepare_engine_args(raw_url: str) -> tuple[str, dict, dict]:
    """Turn ``DATABASE_URL`` into (url, connect_args, engine kwargs).

    asyncpg rejects ``sslmode`` and ``channel_binding`` in the query string,
    so they are stripped and SSL is passed as ``connect_args={"ssl": True}``
    for remote hosts or an explicit ``sslmode=require``. PgBouncer pooler
    endpoints run in transaction mode, which breaks asyncpg's prepared
    statement cache, so it is disabled for them.

    SQLite URLs (used by the test suite and local tooling) get none of this
    and no pool sizing, since aiosqlite does not use a QueuePool.
    """
    parsed = urlparse(raw_url)
    if not parsed.scheme.startswith("postgresql"):
        return raw_url, {}, {}

    params = parse_qs(parsed.query, keep_blank_values=True)
    sslmode = params.pop("sslmode", [None])[0]
    params.pop("channel_binding", None)

    new_query = urlencode({k: v[0] for k, v in params.items()})
    clean_url = urlunparse(parsed._replace(query=new_query))

    connect_args: dict = {}

    is_local = parsed.hostname in ("localhost", "127.0.0.1", None)
    if sslmode in ("require", "verify-ca", "verify-full") or not is_local:
        connect_args["ssl"] = True

    if parsed.hostname and "-pooler." in parsed.hostname:
        connect_args["statement_cache_size"] = 0

    return clean_url, connect_args, {"pool_size": 10, "max_overflow": 20}


_DB_URL, _CONNECT_ARGS, _POOL_ARGS = prepare_engine_args(settings.DATABASE_URL)

engine = create_async_engine(
    _DB_URL,
    echo=False,
    pool_pre_ping=True,
    connect_args=_CONNECT_ARGS,
    **_POOL_ARGS,
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    expire_on_commit=False,
    class_=AsyncSession,
)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncSession:
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)
