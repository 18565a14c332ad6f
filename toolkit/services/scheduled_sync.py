from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.orm import Session
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from toolkit.config import get_settings
from toolkit.database import SessionLocal
from toolkit.schemas import SyncDirection
from toolkit.services.apps_script import AppsScriptClient
from toolkit.services.sync_engine import SyncEngine

logger = logging.getLogger(__name__)

JOB_ID = "scheduled-catalog-pull"


class ScheduledSyncEngine:
    """Runs the spreadsheet pull on the configured cron schedule."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        *,
        client_factory: Callable[[], AppsScriptClient] = AppsScriptClient,
    ) -> None:
        self._session_factory = session_factory
        self._client_factory = client_factory
        self._scheduler: AsyncIOScheduler | None = None

    def start(self) -> None:
        settings = get_settings()
        if not settings.sync_schedule_cron:
            logger.info("Scheduled catalog sync disabled; no cron expression configured")
            return
        if self._scheduler is not None and self._scheduler.running:
            return
        trigger = self._build_trigger(settings.sync_schedule_cron, settings.sync_schedule_timezone)
        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(self.run_once, trigger=trigger, id=JOB_ID, replace_existing=True)
        self._scheduler.start()
        logger.info("Scheduled catalog pull with expression %s", settings.sync_schedule_cron)

    def shutdown(self) -> None:
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None

    def run_once(self) -> None:
        try:
            client = self._client_factory()
        except ValueError as exc:
            logger.error("Skipping scheduled sync: %s", exc)
            return
        engine = SyncEngine(self._session_factory, client=client)
        engine.run_sync(SyncDirection.PULL, triggered_by="cron")

    @staticmethod
    def _build_trigger(expression: str, tz_name: str | None) -> CronTrigger:
        tz = timezone.utc
        if tz_name:
            try:
                tz = ZoneInfo(tz_name)
            except ZoneInfoNotFoundError:
                logger.warning("Unknown timezone %s for scheduled sync; falling back to UTC", tz_name)
        return CronTrigger.from_crontab(expression, timezone=tz)


scheduled_sync_engine = ScheduledSyncEngine()
