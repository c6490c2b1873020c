from __future__ import annotations

import pytest

from walletbot.bot import templates
from walletbot.bot.router import CommandRouter, InboundMessage, Reply, parse_command
from walletbot.core.errors import CollaboratorUnavailable, InvalidInputError


def _msg(text: str | None, participant_id: int = 100, username: str | None = "alice") -> InboundMessage:
    return InboundMessage(participant_id=participant_id, chat_id=participant_id, text=text, username=username)


class BrokenUsers:
    def __init__(self) -> None:
        self.calls = 0

    async def ensure_user(self, telegram_id, username=None):
        self.calls += 1
        raise CollaboratorUnavailable("db down")


def test_parse_command_variants() -> None:
    assert parse_command("/price") == ("price", "")
    assert parse_command("  /Alert above 0.5 ") == ("alert", "above 0.5")
    assert parse_command("/price@acme_bot", "acme_bot") == ("price", "")
    assert parse_command("/price@other_bot", "acme_bot") is None
    assert parse_command("hello") is None
    assert parse_command("") is None
    assert parse_command(None) is None


@pytest.mark.asyncio
async def test_noise_creates_no_identity(command_router, users) -> None:
    assert await command_router.dispatch(_msg("gm everyone")) is None
    assert await command_router.dispatch(_msg(None)) is None
    assert await users.get(100) is None


@pytest.mark.asyncio
async def test_unknown_command_does_not_touch_store(command_router, users) -> None:
    reply = await command_router.dispatch(_msg("/nope"))
    assert reply == Reply(templates.UNKNOWN_COMMAND)
    assert await users.get(100) is None


@pytest.mark.asyncio
async def test_store_failure_yields_unavailable_notice() -> None:
    broken = BrokenUsers()

    async def handler(ctx):
        raise AssertionError("handler must not run")

    router = CommandRouter(broken, {"price": handler})
    reply = await router.dispatch(_msg("/price"))
    assert reply.text == templates.SERVICE_UNAVAILABLE
    assert broken.calls == 1


@pytest.mark.asyncio
async def test_unconfigured_store_short_circuits() -> None:
    router = CommandRouter(None, {})
    reply = await router.dispatch(_msg("/start"))
    assert reply.text == templates.SERVICE_UNAVAILABLE
    assert await router.dispatch(_msg("just chatting")) is None


@pytest.mark.asyncio
async def test_handler_errors_become_replies(users) -> None:
    async def rejects(ctx):
        raise InvalidInputError("Bad <input>")

    async def crashes(ctx):
        raise ZeroDivisionError

    router = CommandRouter(users, {"reject": rejects, "crash": crashes})
    assert (await router.dispatch(_msg("/reject"))).text == "Bad &lt;input&gt;"
    assert (await router.dispatch(_msg("/crash"))).text == templates.GENERIC_ERROR


@pytest.mark.asyncio
async def test_first_command_creates_identity_and_refreshes_username(command_router, users) -> None:
    await command_router.dispatch(_msg("/start"))
    user = await users.get(100)
    assert user is not None
    assert user.username == "alice"
    assert len(user.referral_code) == 8
    assert user.notifications_enabled is True

    await command_router.dispatch(_msg("/help", username="alice2"))
    refreshed = await users.get(100)
    assert refreshed.username == "alice2"
    assert refreshed.referral_code == user.referral_code


@pytest.mark.asyncio
async def test_referral_binding_rules(command_router, users) -> None:
    await command_router.dispatch(_msg("/start", participant_id=1))
    referrer = await users.get(1)

    # Self-referral is ignored.
    await command_router.dispatch(_msg(f"/start {referrer.referral_code}", participant_id=1))
    assert (await users.get(1)).referred_by is None

    await command_router.dispatch(_msg(f"/start {referrer.referral_code.lower()}", participant_id=2))
    assert (await users.get(2)).referred_by == 1

    reply = await command_router.dispatch(_msg("/referrals", participant_id=1))
    assert reply.text == "Total referrals: 1"

    # A second code never rebinds.
    await command_router.dispatch(_msg("/start", participant_id=3))
    other = await users.get(3)
    await command_router.dispatch(_msg(f"/start {other.referral_code}", participant_id=2))
    assert (await users.get(2)).referred_by == 1


@pytest.mark.asyncio
async def test_alert_quota_through_commands(command_router) -> None:
    for i in range(5):
        reply = await command_router.dispatch(_msg(f"/alert above {i + 1}"))
        assert reply.text.startswith("Alert set: above")

    reply = await command_router.dispatch(_msg("/alert below 0.5"))
    assert reply.text == "Max 5 alerts. Delete some first."

    assert (await command_router.dispatch(_msg("/deletealert 1"))).text == "Alert deleted."
    assert (await command_router.dispatch(_msg("/deletealert 9"))).text == "Alert not found."
    assert (await command_router.dispatch(_msg("/alert below 0.5"))).text.startswith("Alert set: below")


@pytest.mark.asyncio
async def test_alert_rejects_bad_input(command_router) -> None:
    assert (await command_router.dispatch(_msg("/alert sideways 1"))).text == "Invalid. Use: /alert above [price]"
    assert (await command_router.dispatch(_msg("/alert above"))).text == "Usage: /alert above 0.001"
    assert (await command_router.dispatch(_msg("/alert above -3"))).text == "Price must be a positive number."


@pytest.mark.asyncio
async def test_notify_toggles(command_router) -> None:
    assert (await command_router.dispatch(_msg("/notify"))).text == "Notifications disabled."
    assert (await command_router.dispatch(_msg("/notify"))).text == "Notifications enabled."


@pytest.mark.asyncio
async def test_link_reply_carries_button(command_router) -> None:
    reply = await command_router.dispatch(_msg("/link"))
    assert reply.link_url.startswith("https://example.org/link-telegram?code=")


@pytest.mark.asyncio
async def test_portfolio_requires_linked_wallet(command_router) -> None:
    assert (await command_router.dispatch(_msg("/balance"))).text == templates.NO_WALLET


@pytest.mark.asyncio
async def test_support_ticket(command_router) -> None:
    assert (await command_router.dispatch(_msg("/support hi"))).text == "Usage: /support [your message]"
    assert (await command_router.dispatch(_msg("/support cannot link wallet"))).text == "Support request submitted."


@pytest.mark.asyncio
async def test_convert_bounds(command_router) -> None:
    assert (await command_router.dispatch(_msg("/convert 2000"))).text == "2.00K = $2.00K"
    assert (await command_router.dispatch(_msg("/convert 1e999999999"))).text == "Usage: /convert [amount]"
    assert (await command_router.dispatch(_msg("/convert abc"))).text == "Usage: /convert [amount]"
