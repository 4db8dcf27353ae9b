#!/usr/bin/env python3
"""Run one ingestion for a user from the command line.

Hey future me - this drains all five sources for the user, sets the completion flag on
success and exits non-zero otherwise. A failed run can simply be started again, every
write is idempotent.

Usage:
    python scripts/run_ingestion.py <user-id>

    # Throwaway database without running migrations first:
    DATABASE_URL=sqlite+aiosqlite:///./tmp.db python scripts/run_ingestion.py --create-tables <user-id>

    # Just check whether the user's data is complete:
    python scripts/run_ingestion.py --status <user-id>

Exit codes:
    0 - run completed (or --status: flag is set)
    1 - run failed (or --status: flag not set)
    2 - unknown user / run already in progress / bad configuration
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from songsync.domain.exceptions import (  # noqa: E402
    ConfigurationError,
    EntityNotFoundException,
    IngestionFailedError,
    InvalidStateException,
)
from songsync.infrastructure.lifecycle import app_context  # noqa: E402

logger = logging.getLogger("songsync.scripts.run_ingestion")


async def _main(user_id: str, status_only: bool, create_tables: bool) -> int:
    try:
        async with app_context(create_tables=create_tables) as service:
            if status_only:
                complete = await service.is_complete(user_id)
                print(f"{user_id}: {'complete' if complete else 'not complete'}")
                return 0 if complete else 1

            run = await service.run_for_user(user_id)
            totals = run.totals
            print(
                f"Run {run.run_id} completed: {totals.total} records, "
                f"{totals.new_memberships} new, {totals.skipped} skipped"
            )
            return 0
    except IngestionFailedError as e:
        print(f"Ingestion failed: {e.message}", file=sys.stderr)
        return 1
    except (EntityNotFoundException, InvalidStateException, ConfigurationError) as e:
        print(f"ERROR: {e.message}", file=sys.stderr)
        return 2


def main() -> int:
    parser = argparse.ArgumentParser(description="Ingest a user's Spotify library.")
    parser.add_argument("user_id", help="Internal user id")
    parser.add_argument(
        "--status",
        action="store_true",
        help="Only print whether the user's song data is complete",
    )
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables instead of relying on alembic migrations",
    )
    args = parser.parse_args()
    return asyncio.run(_main(args.user_id, args.status, args.create_tables))


if __name__ == "__main__":
    sys.exit(main())
