#!/usr/bin/env python3
"""
Script to dispatch swap notifications that were committed but never delivered,
either because the dispatcher failed or because the worker holding the claim died.
Safe to run from cron while the API is serving; a row is only sent by whoever claims it.

Usage:
    python redeliver_notifications.py
"""

import logging
import sys
from pathlib import Path

# Add the apps/api directory to the path so we can import from shiftswap
api_dir = Path(__file__).parent / "apps" / "api"
sys.path.insert(0, str(api_dir))

from shiftswap.core.config import settings  # noqa: E402
from shiftswap.core.database import SessionLocal  # noqa: E402
from shiftswap.services.notifications import LoggingDispatcher, NotificationOutbox  # noqa: E402


def redeliver_notifications() -> int:
    """Redeliver pending notifications and return how many went out."""
    db = SessionLocal()
    try:
        events = NotificationOutbox(db, LoggingDispatcher()).redeliver_pending()
        print(f"✅ Redelivered {len(events)} notification(s)")
        return len(events)
    finally:
        db.close()

if __name__ == "__main__":
    logging.basicConfig(level=settings.log_level.upper())
    redeliver_notifications()
