"""
Reminder Worker
Background worker that sends booking reminders (SMS/Email) ahead of each job.

Run as separate process:
    python -m leadflow.workers.reminder_worker
"""
import asyncio
import logging
import signal
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from dotenv import load_dotenv

from leadflow.core.config import get_config_manager, get_settings
from leadflow.core.container import ServiceContainer, build_container
from leadflow.domain.models.booking import Booking, BookingStatus

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


class ReminderWorker:
    """
    Background worker for booking reminders.

    Responsibilities:
    - Scan for scheduled bookings starting within the reminder window
    - Send the reminder by SMS and/or email
    - Record ``reminder_sent_at`` so each booking is reminded once
    - Give up on a booking after MAX_RETRIES failed attempts
    """

    # Worker configuration
    POLL_INTERVAL = 60.0  # Seconds between scans
    MAX_CONSECUTIVE_ERRORS = 10
    MAX_RETRIES = 3

    def __init__(self, container: Optional[ServiceContainer] = None):
        self.running = False
        self._container = container
        self._owns_container = container is None
        self._failures: Dict[str, int] = defaultdict(int)

        # Stats
        self._reminders_sent = 0
        self._reminders_failed = 0

    async def initialize(self) -> None:
        """Build services from configuration unless a container was given."""
        if self._container is not None:
            return
        logger.info("Initializing Reminder Worker...")
        settings = get_settings()
        self._container = await build_container(get_config_manager(), storage_backend=settings.storage_backend)
        logger.info("Reminder Worker initialized successfully")

    async def run(self) -> None:
        """
        Main worker loop.

        Continuously sends due reminders, then sleeps POLL_INTERVAL seconds.
        """
        await self.initialize()

        self.running = True
        consecutive_errors = 0

        logger.info("Reminder Worker started - scanning for upcoming bookings")

        while self.running:
            try:
                processed = await self.process_due_reminders()

                if processed > 0:
                    logger.info(f"Processed {processed} reminders")
                consecutive_errors = 0

                await asyncio.sleep(self.POLL_INTERVAL)

            except asyncio.CancelledError:
                logger.info("Worker received cancellation signal")
                break
            except Exception as e:
                consecutive_errors += 1
                logger.error(f"Worker error ({consecutive_errors}): {e}", exc_info=True)

                if consecutive_errors >= self.MAX_CONSECUTIVE_ERRORS:
                    logger.critical("Too many consecutive errors, stopping worker")
                    break

                await asyncio.sleep(min(5 * consecutive_errors, 60))

        await self.shutdown()

    async def process_due_reminders(self, now: Optional[datetime] = None) -> int:
        """
        Send reminders for bookings starting within the reminder window.

        Returns:
            Number of bookings a reminder was attempted for
        """
        now = now or datetime.now(timezone.utc)
        window = timedelta(hours=self._container.settings.reminder_lead_hours)

        bookings = await self._container.repository.list_bookings(
            status=BookingStatus.SCHEDULED,
            start_from=now,
            start_to=now + window,
        )
        # Bookings that left the window no longer need their failure count
        in_window = {booking.id for booking in bookings}
        for booking_id in [key for key in self._failures if key not in in_window]:
            del self._failures[booking_id]

        due = [
            booking for booking in bookings
            if booking.reminder_sent_at is None and self._failures.get(booking.id, 0) < self.MAX_RETRIES
        ]

        if not due:
            return 0

        logger.info(f"Found {len(due)} bookings due for a reminder")

        for booking in due:
            await self._process_booking(booking, now)

        return len(due)

    async def _process_booking(self, booking: Booking, now: datetime) -> None:
        message = self._container.composer.compose_reminder(booking)
        delivery = await self._container.notifier.deliver(
            message,
            email=booking.customer_email,
            phone=booking.customer_phone,
        )

        if delivery.delivered:
            updated = booking.model_copy(update={"reminder_sent_at": now})
            await self._container.repository.update_booking(updated)
            self._failures.pop(booking.id, None)
            self._reminders_sent += 1
            logger.info(f"Reminder for booking {booking.id} sent (sms={delivery.sms_sent}, email={delivery.email_sent})")
            return

        self._failures[booking.id] += 1
        attempts = self._failures[booking.id]
        if attempts >= self.MAX_RETRIES:
            self._reminders_failed += 1
            logger.error(f"Reminder for booking {booking.id} failed after {attempts} attempts: {delivery.errors}")
        else:
            logger.warning(f"Reminder for booking {booking.id} failed (attempt {attempts}/{self.MAX_RETRIES}): {delivery.errors}")

    async def shutdown(self) -> None:
        """Graceful shutdown."""
        logger.info("Shutting down Reminder Worker...")
        self.running = False

        if self._owns_container and self._container is not None:
            await self._container.close()

        logger.info(
            f"Reminder Worker shutdown complete. "
            f"Sent: {self._reminders_sent}, "
            f"Failed: {self._reminders_failed}"
        )

    def get_stats(self) -> dict:
        """Get worker statistics."""
        return {
            "running": self.running,
            "reminders_sent": self._reminders_sent,
            "reminders_failed": self._reminders_failed
        }


async def main():
    """Entry point for running reminder worker as separate process."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    worker = ReminderWorker()

    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        worker.running = False

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, signal_handler)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass

    try:
        await worker.run()
    except KeyboardInterrupt:
        logger.info("Worker interrupted by user")


def run_main():
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run_main()
