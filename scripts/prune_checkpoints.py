#!/usr/bin/env python3
"""
Prune old checkpoints for every stored session.

Keeps the N most recent checkpoints per session (checkpoints.keep_count from
survey_config.yaml unless --keep is given) and deletes the rest together
with their backups. The engine never prunes on its own; run this from cron
or by hand.
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Dict, Optional

import structlog

from wda.core.config import settings
from wda.persistence.database import init_database
from wda.persistence.repositories.session_repo import SessionRepository
from wda.persistence.store import SqliteStore
from wda.services.checkpoint_service import CheckpointService

log = structlog.get_logger(__name__)


async def prune_checkpoints(
    db_path: Optional[Path] = None, keep_count: Optional[int] = None
) -> Dict[str, int]:
    """
    Apply checkpoint retention to all sessions.

    Returns:
        Removed checkpoint count per session id (sessions with nothing
        removed are omitted)
    """
    db_path = await init_database(db_path or settings.database_path)
    store = SqliteStore(db_path)
    checkpoints = CheckpointService(store)

    removed: Dict[str, int] = {}
    for session in await SessionRepository(store).list_all():
        count = await checkpoints.cleanup_checkpoints(session.id, keep_count)
        if count:
            removed[session.id] = count

    log.info(
        "checkpoints_pruned",
        path=str(db_path),
        sessions=len(removed),
        removed=sum(removed.values()),
    )
    return removed


def main() -> int:
    parser = argparse.ArgumentParser(description="Prune old session checkpoints")
    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="SQLite database (defaults to DATABASE_PATH / data/wda.db)",
    )
    parser.add_argument(
        "--keep",
        type=int,
        default=None,
        help="Checkpoints to keep per session (defaults to survey_config.yaml)",
    )
    args = parser.parse_args()

    if args.keep is not None and args.keep < 0:
        parser.error("--keep must be >= 0")

    removed = asyncio.run(prune_checkpoints(args.db, args.keep))
    print(f"Removed {sum(removed.values())} checkpoints from {len(removed)} sessions")
    return 0


if __name__ == "__main__":
    sys.exit(main())
