from __future__ import annotations

import asyncio
import re

import asyncpg
import structlog
from sqlalchemy.engine import make_url

from referral_ledger.core.config import get_settings
from referral_ledger.core.integration_db_safety import assert_safe_integration_db
from referral_ledger.core.logging import configure_logging

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
logger = structlog.get_logger("scripts.ensure_test_db")


async def _ensure_database_exists(database_url: str) -> None:
    assert_safe_integration_db(database_url)
    parsed = make_url(database_url)
    db_name = (parsed.database or "").strip()
    if IDENTIFIER_RE.fullmatch(db_name) is None:
        raise RuntimeError(
            f"Unsupported database name '{db_name}'. Only [A-Za-z0-9_] identifiers are supported."
        )
    if parsed.username is None:
        raise RuntimeError("DATABASE_URL username is required.")

    host = parsed.host or "localhost"
    port = int(parsed.port or 5432)
    conn = await asyncpg.connect(
        host=host,
        port=port,
        user=parsed.username,
        password=parsed.password,
        database="postgres",
    )
    try:
        exists = await conn.fetchval("SELECT 1 FROM pg_database WHERE datname = $1", db_name)
        if exists:
            logger.info("ensure_test_db_exists", database=db_name, host=host, port=port)
            return

        await conn.execute(f'CREATE DATABASE "{db_name}"')
        logger.info("ensure_test_db_created", database=db_name, host=host, port=port)
    finally:
        await conn.close()


def main() -> int:
    settings = get_settings()
    configure_logging(settings.log_level)
    asyncio.run(_ensure_database_exists(settings.database_url))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
