"""
Periodic token refresh sweep using APScheduler.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..drive.tokens import AccountCredentials, TokenRefreshOutcome
from ..exceptions import ConfigurationError, create_error_context, handle_unexpected_error

logger = logging.getLogger(__name__)

TOKEN_REFRESH_JOB_ID = "token-refresh-sweep"


class TokenRefreshScheduler:
    """Owns the background job that keeps every account's token fresh.

    Created during application startup and stopped by its shutdown hook, so
    no timer outlives the application that started it.
    """

    def __init__(
        self,
        credentials: AccountCredentials,
        interval_minutes: int = 30,
        run_immediately: bool = True,
        timezone: str = "UTC"
    ):
        """Initialize the scheduler.

        Args:
            credentials: Credential handler whose ``refresh_all`` is swept
            interval_minutes: Minutes between sweeps
            run_immediately: Run the first sweep right after start
            timezone: Timezone for scheduling (default: UTC)
        """
        self.credentials = credentials
        self.interval_minutes = interval_minutes
        self.run_immediately = run_immediately
        self.timezone = timezone

        self.scheduler = AsyncIOScheduler(timezone=timezone)

        self.last_run: Optional[datetime] = None
        self.last_outcomes: List[TokenRefreshOutcome] = []
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the token refresh sweep."""
        if self._running:
            logger.warning("Token refresh scheduler already running")
            return

        if self.interval_minutes <= 0:
            raise ConfigurationError(
                message=f"Invalid token refresh interval: {self.interval_minutes} minutes",
                error_code="SCHEDULER_INVALID_INTERVAL",
                context=create_error_context(operation="scheduler_start"),
                user_message="The token refresh interval must be positive."
            )

        logger.info(f"Starting token refresh scheduler (every {self.interval_minutes} minutes)")

        job_options: Dict[str, Any] = {}
        if self.run_immediately:
            job_options["next_run_time"] = datetime.now(self.scheduler.timezone)

        try:
            self.scheduler.start()
            self.scheduler.add_job(
                func=self.run_sweep,
                trigger=IntervalTrigger(minutes=self.interval_minutes, timezone=self.timezone),
                id=TOKEN_REFRESH_JOB_ID,
                name="Token refresh sweep",
                replace_existing=True,
                misfire_grace_time=300,
                coalesce=True,  # Run once if multiple sweeps were missed
                max_instances=1,
                **job_options
            )
            self._running = True

        except Exception as e:
            logger.error(f"Failed to start token refresh scheduler: {e}")
            raise ConfigurationError(
                message=f"Failed to start scheduler: {str(e)}",
                error_code="SCHEDULER_START_FAILED",
                context=create_error_context(operation="scheduler_start"),
                user_message="Failed to start the token refresh scheduler. Please check the configuration.",
                cause=e
            )

    async def stop(self, wait: bool = False) -> None:
        """Stop the token refresh sweep.

        Args:
            wait: Wait for a running sweep to complete
        """
        if not self._running:
            logger.warning("Token refresh scheduler not running")
            return

        logger.info("Stopping token refresh scheduler...")
        self.scheduler.shutdown(wait=wait)
        self._running = False
        logger.info("Token refresh scheduler stopped")

    async def run_sweep(self) -> List[TokenRefreshOutcome]:
        """Refresh every active account's token once. Never raises."""
        try:
            outcomes = await self.credentials.refresh_all()
        except Exception as e:
            error = handle_unexpected_error(e)
            logger.error(f"Token refresh sweep failed: {error.to_log_string()}")
            outcomes = []

        self.last_run = datetime.utcnow()
        self.last_outcomes = outcomes
        return outcomes

    def get_status(self) -> Dict[str, Any]:
        """Get scheduler status for the admin surface."""
        job = self.scheduler.get_job(TOKEN_REFRESH_JOB_ID) if self._running else None
        return {
            "running": self._running,
            "interval_minutes": self.interval_minutes,
            "next_run": job.next_run_time.isoformat() if job and job.next_run_time else None,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "last_outcomes": [outcome.to_dict() for outcome in self.last_outcomes],
        }
