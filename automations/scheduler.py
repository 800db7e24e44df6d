import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from automations.notification_worker import process_notifications
from config import config
from logging_config import get_logger
from repositories.store import Store
from utils import background
from utils.delivery import DeliveryGateway

logger = get_logger("notification_scheduler")

SWEEP_JOB_ID = "notification_sweep"


class NotificationWorker:
    """
    Process-wide handle for the periodic notification sweep.

    - start() is safe to call more than once (app reloads, duplicate imports)
    - one sweep at a time: the job runs with max_instances=1
    - a failed sweep is logged and the next tick tries again
    """

    def __init__(
        self,
        interval_seconds: int = config.NOTIFICATION_WORKER_INTERVAL_SECONDS,
        startup_delay_seconds: int = config.NOTIFICATION_WORKER_STARTUP_DELAY_SECONDS,
    ):
        self.interval_seconds = interval_seconds
        self.startup_delay_seconds = startup_delay_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._store: Optional[Store] = None
        self._gateway: Optional[DeliveryGateway] = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self, store: Store, gateway: DeliveryGateway) -> None:
        """Start the sweep loop on the running event loop. No-op if already started."""
        if self._scheduler is not None:
            logger.info("Notification worker already running, skipping initialization")
            return

        self._store = store
        self._gateway = gateway

        self._scheduler = AsyncIOScheduler(event_loop=asyncio.get_running_loop(), timezone="UTC")
        self._scheduler.add_job(
            self._run_sweep,
            trigger="interval",
            seconds=self.interval_seconds,
            # Give the server a moment to finish booting before the first sweep
            next_run_time=datetime.now(timezone.utc) + timedelta(seconds=self.startup_delay_seconds),
            id=SWEEP_JOB_ID,
            replace_existing=True,
            max_instances=1,      # Never two sweeps at once
            coalesce=True,        # Merge missed runs
        )
        self._scheduler.start()

        logger.info(
            f"Notification worker started (interval: {self.interval_seconds}s, "
            f"first sweep in {self.startup_delay_seconds}s)"
        )

    async def stop(self) -> None:
        """Stop the loop and wait for in-flight background deliveries."""
        if self._scheduler is None:
            return
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        await background.drain()
        logger.info("Notification worker stopped")

    async def _run_sweep(self) -> None:
        try:
            await process_notifications(self._store, self._gateway)
        except Exception:
            logger.exception("Notification sweep failed")

    async def run_now(self, store: Store, gateway: DeliveryGateway, scope_user_id: Optional[str] = None) -> Dict[str, int]:
        """Synchronous counterpart of the periodic sweep, used by "check now" triggers."""
        return await process_notifications(store, gateway, scope_user_id=scope_user_id)


notification_worker = NotificationWorker()
