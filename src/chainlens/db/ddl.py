"""Schema DDL location and initialization."""
from __future__ import annotations
import logging
from pathlib import Path

import asyncpg

logger = logging.getLogger(__name__)

DDL_PATH = Path(__file__).parent / "schema.sql"


async def init_schema(conn: asyncpg.Connection) -> None:
    """Create extensions, tables and indexes if missing.

    Args:
        conn: Connection to the target database
    """
    with open(DDL_PATH, 'r') as f:
        ddl_sql = f.read()

    await conn.execute(ddl_sql)
    logger.info(f"Applied schema from {DDL_PATH.name}")
