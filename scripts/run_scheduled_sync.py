"""Run one scheduled incremental sync (invoke from cron with SYNC_CRON_SCHEDULE)."""

import asyncio
import sys
from pathlib import Path

# Add the parent directory to the path so we can import from docsync
sys.path.insert(0, str(Path(__file__).parent.parent))

from docsync.config.settings import settings
from docsync.db.db import close_db, init_db
from docsync.services.container import build_services
from docsync.services.scheduler import run_scheduled_sync
from docsync.utils.cron import next_cron_execution


async def main() -> int:
    session_maker = await init_db()
    services = build_services(session_maker)
    try:
        result = await run_scheduled_sync(services)
    finally:
        await services.aclose()
        await close_db()

    print("=" * 50)
    if result is None:
        print("No sync result (skipped or failed, see logs)")
    else:
        print(f"Files processed: {result.files_processed}")
        print(f"Vectors upserted: {result.vectors_upserted}")
        print(f"Vectors deleted: {result.vectors_deleted}")
        print(f"Errors: {result.errors}")
        print(f"Duration: {result.duration_ms}ms")
    print(f"Next scheduled sync: {next_cron_execution(settings.SYNC_CRON_SCHEDULE)}")
    print("=" * 50)
    return 0 if result is not None else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
