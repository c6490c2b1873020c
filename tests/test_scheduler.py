from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace

import pytest

from walletbot.core.config import Settings
from walletbot.workers.scheduler import run_alert_sweep


@pytest.mark.asyncio
async def test_sweep_without_store_reports_not_configured() -> None:
    result = await run_alert_sweep(SimpleNamespace(alerts_service=None))
    assert result.status == "not_configured"


@pytest.mark.asyncio
async def test_sweep_delivers_through_hub_notifier(users, alerts, notifier) -> None:
    await users.ensure_user(4)
    await alerts.create_alert(4, "above", Decimal("0.9"))
    hub = SimpleNamespace(alerts_service=alerts, notify=notifier)

    result = await run_alert_sweep(hub)
    assert result.ok
    assert [chat_id for chat_id, _ in notifier.sent] == [4]


def test_settings_derived_flags() -> None:
    settings = Settings(
        _env_file=None,
        telegram_bot_token="t",
        database_url="",
        webhook_base_url="https://bot.example.org",
        rpc_urls="https://a.rpc, https://b.rpc ,",
    )
    assert settings.store_configured is False
    assert settings.webhook_mode is True
    assert settings.rpc_urls_list() == ["https://a.rpc", "https://b.rpc"]
