from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from walletbot.core.container import ServiceHub
from walletbot.services.alerts import SweepResult

logger = logging.getLogger(__name__)


async def run_alert_sweep(hub: ServiceHub) -> SweepResult:
    """One sweep, shared by the timer job and the HTTP cron trigger."""
    if hub.alerts_service is None:
        return SweepResult(status="not_configured")
    result = await hub.alerts_service.process_alerts(hub.notify)
    log = logger.info if result.ok else logger.warning
    log(
        "alerts_processed",
        extra={
            "event": "alerts_processed",
            "status": result.status,
            "considered": result.considered,
            "count": result.triggered,
        },
    )
    return result


class WorkerScheduler:
    def __init__(self, hub: ServiceHub) -> None:
        self.hub = hub
        self.scheduler = AsyncIOScheduler(timezone="UTC")

    async def _process_alerts(self) -> None:
        try:
            await run_alert_sweep(self.hub)
        except Exception as exc:  # noqa: BLE001
            logger.exception("alerts_task_failed", extra={"event": "alerts_task_failed", "error": str(exc)})

    def start(self) -> None:
        self.scheduler.add_job(
            self._process_alerts,
            "interval",
            seconds=self.hub.settings.alert_check_interval_sec,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
