"""Overdue Scheduler - periodic overdue promotion

Runs TicketService.promote_overdue on an interval so ticket statuses reflect
the current date without depending on reads.
"""
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config.settings import Settings, get_settings
from ..domain.errors import DomainError
from ..services.ticket_service import TicketService
from ..utils.idgen import generate_correlation_id
from ..utils.logger import get_logger, set_correlation_id

logger = get_logger(__name__)

JOB_ID = "promote_overdue"


class OverdueScheduler:
    """APScheduler wrapper around the overdue pass"""

    def __init__(self, ticket_service: TicketService, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.ticket_service = ticket_service
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._is_running = False
        self._run_count = 0

    def start(self) -> None:
        """Start the scheduler (must be called with a running event loop)"""
        if self._is_running:
            logger.warning("Overdue scheduler already running")
            return

        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            self.run_once,
            trigger=IntervalTrigger(seconds=self.settings.overdue_sweep_interval_seconds),
            id=JOB_ID,
            name="Promote overdue tickets",
            replace_existing=True,
            max_instances=1,
            coalesce=True
        )
        self.scheduler.start()
        self._is_running = True
        logger.info(
            f"Overdue scheduler started, every {self.settings.overdue_sweep_interval_seconds}s"
        )

    def stop(self) -> None:
        """Stop the scheduler"""
        if self.scheduler and self._is_running:
            self.scheduler.shutdown(wait=False)
            self._is_running = False
            logger.info("Overdue scheduler stopped")

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running"""
        return self._is_running

    @property
    def run_count(self) -> int:
        return self._run_count

    async def run_once(self) -> int:
        """
        One overdue pass

        Domain errors are logged so the next interval still runs.

        Returns:
            Number of tickets promoted
        """
        set_correlation_id(generate_correlation_id())
        self._run_count += 1
        try:
            promoted = await self.ticket_service.promote_overdue()
        except DomainError as e:
            logger.error(f"Overdue pass failed: {e.message}", extra={"error_code": e.error_code})
            return 0
        return len(promoted)
