from __future__ import annotations

import asyncio
import logging

from aiogram import Dispatcher
from aiogram.webhook.aiohttp_server import SimpleRequestHandler, setup_application
from aiohttp import web

from walletbot.bot.handlers import init_handlers, router
from walletbot.core.config import get_settings
from walletbot.core.container import ServiceHub, build_hub
from walletbot.core.logging import setup_logging
from walletbot.web.server import WEBHOOK_PATH, create_app
from walletbot.workers.scheduler import WorkerScheduler, run_alert_sweep

logger = logging.getLogger(__name__)


def build_web_app(hub: ServiceHub, dp: Dispatcher) -> web.Application:
    settings = hub.settings

    async def sweep():
        return await run_alert_sweep(hub)

    app = create_app(
        hub.link_service,
        sweep,
        cron_secret=settings.cron_secret,
        allowed_origins=settings.link_allowed_origins_list(),
    )
    if settings.webhook_mode:
        SimpleRequestHandler(
            dispatcher=dp,
            bot=hub.bot,
            secret_token=settings.webhook_secret or None,
        ).register(app, path=WEBHOOK_PATH)
        setup_application(app, dp, bot=hub.bot)
    return app


async def main() -> None:
    settings = get_settings()
    setup_logging(settings.log_level)

    hub = build_hub(settings)
    init_handlers(hub)
    dp = Dispatcher()
    dp.include_router(router)

    scheduler = WorkerScheduler(hub)
    if settings.alert_scheduler_enabled and hub.alerts_service is not None:
        scheduler.start()

    app = build_web_app(hub, dp)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, settings.web_host, settings.web_port)
    await site.start()
    logger.info("web_started", extra={"event": "web_started", "status": f"{settings.web_host}:{settings.web_port}"})

    try:
        if settings.webhook_mode:
            url = settings.webhook_base_url.rstrip("/") + WEBHOOK_PATH
            await hub.bot.set_webhook(
                url,
                allowed_updates=["message"],
                secret_token=settings.webhook_secret or None,
            )
            logger.info("webhook_set", extra={"event": "webhook_set"})
            await asyncio.Event().wait()
        else:
            await hub.bot.delete_webhook(drop_pending_updates=False)
            await dp.start_polling(hub.bot, allowed_updates=["message"])
    finally:
        scheduler.stop()
        await runner.cleanup()
        await hub.close()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
