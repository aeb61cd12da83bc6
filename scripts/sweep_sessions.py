#!/usr/bin/env python3
"""
Session Sweep Script

Deletes chat sessions idle longer than CHAT_SESSION_TTL_MINUTES. Useful from
cron when the in-process sweeper is disabled
(SESSION_SWEEP_INTERVAL_SECONDS=0).

Usage:
    python scripts/sweep_sessions.py
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Load environment variables
from dotenv import load_dotenv
load_dotenv()


async def main() -> int:
    """Run one sweep and report the number of deleted sessions."""
    from app.config import settings
    from app.core.conversation.session import SessionStore, SqlSessionDb
    from app.infra.database import async_session_factory, close_db

    store = SessionStore(SqlSessionDb(async_session_factory))
    try:
        deleted = await store.sweep()
    except Exception as e:
        print(f"  [FAIL] Session sweep failed - {type(e).__name__}: {e}")
        return 1
    finally:
        await close_db()

    print(
        f"  [PASS] Deleted {deleted} session(s) idle for more than "
        f"{settings.chat_session_ttl_minutes} minutes"
    )
    return 0


if __name__ == "__main__":
    exit_code = asyncio.run(main())
    sys.exit(exit_code)
