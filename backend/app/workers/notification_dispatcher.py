"""
Notification outbox worker

Polls the outbox and delivers pending notifications until stopped:

    python -m app.workers.notification_dispatcher --interval 10
"""
import argparse
import signal
import time
from typing import Optional, Sequence

from app.core.config import settings
from app.db.session import SessionLocal
from app.logging_config import get_logger, setup_logging
from app.services.notification_service import InboxNotifier, LoggingNotifier, NotificationDispatcher

logger = get_logger(__name__)


class DispatcherWorker:
    def __init__(self, dispatcher: NotificationDispatcher, interval: float, batch_size: int):
        self.dispatcher = dispatcher
        self.interval = interval
        self.batch_size = batch_size
        self.running = True

    def stop(self, signum=None, frame=None) -> None:
        logger.info("Shutdown signal received, stopping dispatcher", extra={"signal": signum})
        self.running = False

    def run_once(self) -> int:
        sent, failed = self.dispatcher.dispatch_pending(self.batch_size)
        return sent + failed

    def run(self) -> None:
        logger.info(
            "Notification dispatcher started",
            extra={"interval": self.interval, "batch_size": self.batch_size},
        )
        while self.running:
            try:
                handled = self.run_once()
            except Exception:
                logger.error("Error in dispatcher loop", exc_info=True)
                handled = 0

            # A full batch means more rows are probably waiting
            if handled >= self.batch_size:
                continue
            self._sleep()

        logger.info("Notification dispatcher stopped")

    def _sleep(self) -> None:
        deadline = time.monotonic() + self.interval
        while self.running and time.monotonic() < deadline:
            time.sleep(min(0.5, max(0.0, deadline - time.monotonic())))


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Deliver pending notifications from the outbox")
    parser.add_argument(
        "--interval",
        type=float,
        default=settings.NOTIFY_POLL_INTERVAL,
        help=f"Seconds between polls (default: {settings.NOTIFY_POLL_INTERVAL})",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=settings.NOTIFY_BATCH_SIZE,
        help=f"Rows delivered per pass (default: {settings.NOTIFY_BATCH_SIZE})",
    )
    parser.add_argument(
        "--log-only",
        action="store_true",
        help="Log notifications instead of writing them to user inboxes",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single pass and exit",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging()

    notifier_factory = LoggingNotifier if args.log_only else InboxNotifier
    dispatcher = NotificationDispatcher(SessionLocal, notifier_factory=notifier_factory)
    worker = DispatcherWorker(dispatcher, interval=args.interval, batch_size=args.batch_size)

    if args.once:
        worker.run_once()
        return 0

    signal.signal(signal.SIGINT, worker.stop)
    signal.signal(signal.SIGTERM, worker.stop)
    worker.run()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
