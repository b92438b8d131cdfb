#!/usr/bin/env python3
"""
Global Janitor Script for Connect Four Online Games

This script finishes `playing` games that have not seen a move for a while.
Expired games end with no winner, and connected clients receive the final row.
The API server runs the same sweep periodically; this script is for one-off runs.

Usage:
    python backend/scripts/cleanup_games.py [--minutes 60]
"""

import argparse
import asyncio
import sys
import os
from datetime import timedelta

# Add parent directories to path for imports
sys.path.append(os.path.dirname(os.path.dirname(os.path.dirname(__file__))))

from backend.app.core.config import settings
from backend.app.core.database import build_engine, build_session_maker, get_database_url
from backend.app.services.game_service import game_service

async def cleanup_abandoned_games(minutes: int):
    """
    Finish games that are:
    - Status is playing
    - Last updated more than `minutes` ago
    """
    # Initialize database connection
    engine = build_engine(get_database_url())
    async_session_maker = build_session_maker(engine)

    async with async_session_maker() as db:
        try:
            expired = await game_service.expire_abandoned_games(db, timedelta(minutes=minutes))

            if not expired:
                print("No stale games found. Database is clean.")
                return

            for game_id in expired:
                print(f"Finished abandoned game {game_id}")
            print(f"✅ Successfully expired {len(expired)} games")

        except Exception as e:
            print(f"❌ Error during cleanup: {e}")
            await db.rollback()
        finally:
            await engine.dispose()

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Expire abandoned online games")
    parser.add_argument("--minutes", type=int, default=settings.online.abandon_after_minutes,
                        help="Inactivity threshold in minutes")
    args = parser.parse_args()

    print("🧹 Starting Connect Four game cleanup...")
    asyncio.run(cleanup_abandoned_games(args.minutes))
    print("🧹 Cleanup complete!")
