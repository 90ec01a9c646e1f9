"""
Schema bootstrap for the kv table.

Timestamps are written by the store itself in UTC with millisecond
precision; the update trigger owns ``updated_at``.
"""

from __future__ import annotations

from sqlkv.client import Client
from sqlkv.logging import get_logger
from sqlkv.query import NOW, TABLE, Statement

logger = get_logger(__name__)

CREATE_TABLE = f"""
    CREATE TABLE IF NOT EXISTS {TABLE} (
        k TEXT PRIMARY KEY,
        v BLOB NOT NULL,
        created_at TEXT NOT NULL DEFAULT ({NOW}),
        updated_at TEXT NOT NULL DEFAULT ({NOW})
    ) WITHOUT ROWID
"""

CREATE_UPDATE_TRIGGER = f"""
    CREATE TRIGGER IF NOT EXISTS update_{TABLE}
    AFTER UPDATE OF v ON {TABLE}
    FOR EACH ROW
    BEGIN
        UPDATE {TABLE} SET updated_at = {NOW} WHERE k = NEW.k;
    END
"""


async def setup_database(client: Client) -> None:
    """Create the kv table and its update trigger if they do not exist."""
    await client.batch([Statement(CREATE_TABLE), Statement(CREATE_UPDATE_TRIGGER)])
    logger.debug("Schema ready", table=TABLE)
