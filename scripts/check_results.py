#!/usr/bin/env python3
"""
One results-check pass from the command line: update fixtures from the feed, then process
the trailing window of rounds for every active contest.
Run from project root: python3 scripts/check_results.py [--window 3] [--no-feed]
"""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

# Ensure project root on path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from lastman.config import get_config
from lastman.errors import FeedNotConfigured
from lastman.feed import MatchFeedClient
from lastman.log import setup_logging
from lastman.persistence import get_connection, init_db, set_db_path
from lastman.services.poller import run_results_check


def main() -> int:
    config = get_config()
    parser = argparse.ArgumentParser(description="Run one Last Man Standing results check.")
    parser.add_argument("--db", type=Path, default=None, help="SQLite database path (default: LMS_DB_PATH)")
    parser.add_argument("--window", type=int, default=config.poll_window, help="Trailing rounds to process")
    parser.add_argument("--no-feed", action="store_true", help="Skip the feed update; only process rounds")
    args = parser.parse_args()

    setup_logging(config)
    if args.db is not None:
        set_db_path(args.db)
    init_db()

    feed = None
    if not args.no_feed:
        try:
            feed = MatchFeedClient.from_config(config)
        except FeedNotConfigured:
            feed = None

    conn = get_connection()
    try:
        report = run_results_check(conn, feed, window=args.window)
    finally:
        conn.close()
    print(json.dumps(report.to_dict(), indent=2))
    return 1 if report.failures else 0


if __name__ == "__main__":
    sys.exit(main())
