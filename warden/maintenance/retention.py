"""Data retention manager: periodic cleanup of aged access-log events."""

from datetime import datetime, timezone

from ..config import clamp_retention_days
from ..engine.access_log import AccessLog
from ..utils.logging import get_logger

logger = get_logger("maintenance.retention")


class RetentionManager:
    """Deletes access-log events older than the configured retention window."""

    def __init__(self, access_log: AccessLog, config):
        self._access_log = access_log
        self._config = config
        self._last_run: datetime | None = None
        self._last_summary: dict | None = None

    @property
    def retention_days(self) -> int:
        return clamp_retention_days(getattr(self._config, "log_retention_days", 7))

    async def run_cleanup(self, retention_days: int | None = None) -> dict:
        """Run retention cleanup.

        Returns a summary dict with the number of deleted events and the
        retention window actually applied.
        """
        days = self.retention_days if retention_days is None else clamp_retention_days(retention_days)
        deleted = await self._access_log.prune(days)

        summary = {
            "access_logs": deleted,
            "retention_days": days,
        }
        self._last_run = datetime.now(timezone.utc)
        self._last_summary = summary
        logger.info("retention_cleanup_complete", summary=summary)
        return summary

    def describe(self) -> dict:
        """Current retention settings and the outcome of the last run."""
        return {
            "log_retention_days": self.retention_days,
            "retention_cleanup_interval_hours": getattr(
                self._config, "retention_cleanup_interval_hours", 24
            ),
            "last_run": self._last_run.isoformat() if self._last_run else None,
            "last_summary": self._last_summary,
        }
