#!/usr/bin/env python3
"""
Hourly pass over activity open/close times.

Marks closed activities as completed, announces newly opened activities to
enrolled students and queues deadline reminders into the notification
outbox. Meant to run from cron at the top of every hour.

Usage: python scripts/scan_schedule.py [--at 2025-01-01T09:00:00+00:00]
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

# Add the backend directory to the path
sys.path.append(str(Path(__file__).parent.parent))

from sqlmodel import Session
from database.database import engine, init_db
from scripts.config import get_scoring_settings
from services.activity_service import scan_activity_schedule
from services.clock import FixedClock, SystemClock
from services.notification_service import OutboxNotificationSink

logger = logging.getLogger(__name__)


def run_scan(at: datetime | None = None):
    settings = get_scoring_settings()
    clock = FixedClock(at) if at else SystemClock()

    init_db()
    with Session(engine) as db:
        return scan_activity_schedule(
            db,
            clock,
            OutboxNotificationSink(db, clock),
            reminder_windows_hours=settings["reminder_windows_hours"],
        )


def main():
    import argparse

    parser = argparse.ArgumentParser(description='Scan activity schedules and queue notifications')
    parser.add_argument('--at', type=datetime.fromisoformat, default=None,
                        help='Run as if the current time were this ISO timestamp')
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
    result = run_scan(args.at)
    print(f"Completed activities: {result.completed or 'none'}")
    print(f"Activity started notices: {result.started_notices}")
    print(f"Deadline reminders: {result.reminders}")


if __name__ == "__main__":
    main()
