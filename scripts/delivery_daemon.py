"""
Daemon that periodically delivers messages whose delivery date has passed.
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from timecapsule.config import get_settings
from timecapsule.dependencies import build_scheduler

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Time capsule message delivery daemon")
    parser.add_argument(
        "--interval-ms",
        type=int,
        default=None,
        help="Milliseconds between sweeps (defaults to MESSAGE_CHECK_INTERVAL)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single sweep and exit",
    )
    args = parser.parse_args()

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )

    interval_seconds = None
    if args.interval_ms and args.interval_ms > 0:
        interval_seconds = args.interval_ms / 1000.0
    scheduler = build_scheduler(interval_seconds)

    if args.once:
        ran = scheduler.run_once()
        if not ran:
            logger.warning("Another delivery sweep holds the lock; nothing to do")
        return 0

    stopped = threading.Event()

    def _handle_signal(signum, frame):
        logger.info("Received signal %s, shutting down", signum)
        stopped.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    scheduler.start()
    stopped.wait()
    scheduler.stop(timeout=settings.delivery_call_timeout_seconds)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
