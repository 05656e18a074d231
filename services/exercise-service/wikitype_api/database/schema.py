"""DDL for the ``exercises`` table.

One statement is valid on PostgreSQL, MySQL and SQLite. Timestamps are
stored as epoch seconds so every engine compares them the same way.
"""

from __future__ import annotations

import logging
from contextlib import closing

from .backends import ExerciseStore

logger = logging.getLogger(__name__)

EXERCISES_DDL = """
CREATE TABLE IF NOT EXISTS exercises (
    id VARCHAR(36) NOT NULL PRIMARY KEY,
    title VARCHAR(255) NOT NULL,
    body TEXT NOT NULL,
    topic VARCHAR(255),
    created_on BIGINT NOT NULL,
    modified_on BIGINT NOT NULL
)
"""


def ensure_schema(store: ExerciseStore) -> None:
    """Create the ``exercises`` table when it does not exist yet.

    Meant for local development and tests; managed databases should apply
    the same statement through their migration tooling.
    """
    with store.connection() as conn:
        with closing(conn.cursor()) as cur:
            cur.execute(EXERCISES_DDL)
    logger.info("exercises table ready on %s", store.dialect.name)
