from __future__ import annotations

import asyncio
from decimal import Decimal, InvalidOperation

from walletbot.adapters.chain import ChainReader
from walletbot.adapters.prices import PriceFeed
from walletbot.bot import templates
from walletbot.bot.router import CommandContext, CommandHandler, Reply
from walletbot.core.errors import AlreadyLinkedError, BotError, InvalidInputError, NotFoundError
from walletbot.core.fmt import fmt_amount, fmt_decimal, fmt_usd, safe_html, shorten_address
from walletbot.services.alerts import ALERT_TYPES, AlertsService, parse_target_price
from walletbot.services.linking import LinkService
from walletbot.services.referrals import ReferralService
from walletbot.services.support import SupportService
from walletbot.services.users import UserService
from walletbot.services.watchlist import WatchlistService

MAX_CONVERT_AMOUNT = Decimal("1e15")


class BotCommands:
    """Handlers behind the chat commands. ``table()`` is what the router dispatches on."""

    def __init__(
        self,
        users: UserService,
        links: LinkService,
        alerts: AlertsService,
        watchlist: WatchlistService,
        referrals: ReferralService,
        support: SupportService,
        price_feed: PriceFeed,
        chain: ChainReader,
        project_name: str,
        bot_username: str,
        token_address: str,
        link_ttl_minutes: int,
    ) -> None:
        self.users = users
        self.links = links
        self.alerts = alerts
        self.watchlist = watchlist
        self.referrals = referrals
        self.support = support
        self.price_feed = price_feed
        self.chain = chain
        self.project_name = project_name
        self.bot_username = bot_username.lstrip("@")
        self.token_address = token_address
        self.link_ttl_minutes = link_ttl_minutes

    def table(self) -> dict[str, CommandHandler]:
        return {
            "start": self.start,
            "help": self.help,
            "link": self.link,
            "unlink": self.unlink,
            "notify": self.notify,
            "portfolio": self.portfolio,
            "balance": self.portfolio,
            "staking": self.staking,
            "price": self.price,
            "gas": self.gas,
            "convert": self.convert,
            "alert": self.alert,
            "alerts": self.list_alerts,
            "deletealert": self.delete_alert,
            "watch": self.watch,
            "watchlist": self.show_watchlist,
            "unwatch": self.unwatch,
            "refer": self.refer,
            "referrals": self.count_referrals,
            "contract": self.contract,
            "faq": self.faq,
            "support": self.open_support,
        }

    # --- account ---

    async def start(self, ctx: CommandContext) -> str:
        if ctx.args:
            await self.referrals.bind(ctx.user, ctx.args.split()[0])
        return templates.start_text(self.project_name, ctx.user.wallet_address)

    async def help(self, ctx: CommandContext) -> str:
        return templates.help_text(self.project_name, self.chain.staking_enabled)

    async def link(self, ctx: CommandContext) -> Reply:
        try:
            request = await self.links.issue(ctx.user)
        except AlreadyLinkedError:
            fresh = await self.users.get(ctx.user.telegram_id)
            wallet = fresh.wallet_address if fresh else ctx.user.wallet_address
            return Reply(templates.already_linked_text(wallet))
        return Reply(templates.link_text(request.url, self.link_ttl_minutes), link_url=request.url)

    async def unlink(self, ctx: CommandContext) -> str:
        if await self.users.unlink_wallet(ctx.user.telegram_id):
            return "Wallet unlinked."
        return "No wallet linked."

    async def notify(self, ctx: CommandContext) -> str:
        enabled = await self.users.toggle_notifications(ctx.user.telegram_id)
        return "Notifications enabled." if enabled else "Notifications disabled."

    async def refer(self, ctx: CommandContext) -> str:
        return f"Your referral link:\n\nhttps://t.me/{self.bot_username}?start={ctx.user.referral_code}"

    async def count_referrals(self, ctx: CommandContext) -> str:
        return f"Total referrals: {await self.referrals.count_referred(ctx.user.telegram_id)}"

    # --- portfolio / market ---

    async def _quote_or_none(self):
        try:
            return await self.price_feed.get_quote()
        except BotError:
            return None

    async def portfolio(self, ctx: CommandContext) -> str:
        if not ctx.user.wallet_address:
            return templates.NO_WALLET
        balance, quote = await asyncio.gather(
            self.chain.token_balance(ctx.user.wallet_address),
            self._quote_or_none(),
        )
        return templates.portfolio_text(balance.amount, quote)

    async def staking(self, ctx: CommandContext) -> str:
        if not self.chain.staking_enabled:
            return "Staking not configured."
        if not ctx.user.wallet_address:
            return templates.NO_WALLET
        return templates.staking_text(await self.chain.staking_position(ctx.user.wallet_address))

    async def price(self, ctx: CommandContext) -> str:
        return templates.price_text(await self.price_feed.get_quote())

    async def gas(self, ctx: CommandContext) -> str:
        gwei = await self.chain.gas_price_gwei()
        return f"Gas: {gwei:.4f} Gwei"

    async def convert(self, ctx: CommandContext) -> str:
        try:
            amount = Decimal(ctx.args.split()[0]) if ctx.args else Decimal(0)
        except InvalidOperation:
            amount = Decimal(0)
        if not amount.is_finite() or amount <= 0 or amount > MAX_CONVERT_AMOUNT:
            raise InvalidInputError("Usage: /convert [amount]")
        quote = await self.price_feed.get_quote()
        return f"{fmt_amount(amount)} = {fmt_usd(amount * quote.price)}"

    async def contract(self, ctx: CommandContext) -> str:
        if not self.token_address:
            return "Contract address not configured."
        return f"<b>Contract</b>\n\n<code>{safe_html(self.token_address)}</code>"

    # --- alerts ---

    async def alert(self, ctx: CommandContext) -> str:
        parts = ctx.args.split()
        if len(parts) < 2:
            raise InvalidInputError("Usage: /alert above 0.001")
        alert_type = parts[0].lower()
        if alert_type not in ALERT_TYPES:
            raise InvalidInputError("Invalid. Use: /alert above [price]")
        target = parse_target_price(parts[1])
        alert = await self.alerts.create_alert(ctx.user.telegram_id, alert_type, target)
        return f"Alert set: {alert.alert_type} ${fmt_decimal(target)}"

    async def list_alerts(self, ctx: CommandContext) -> str:
        return templates.alerts_text(await self.alerts.list_alerts(ctx.user.telegram_id))

    async def delete_alert(self, ctx: CommandContext) -> str:
        try:
            position = int(ctx.args.split()[0]) if ctx.args else 0
        except ValueError:
            raise NotFoundError("Alert not found.") from None
        await self.alerts.delete_alert(ctx.user.telegram_id, position)
        return "Alert deleted."

    # --- watchlist ---

    async def watch(self, ctx: CommandContext) -> str:
        parts = ctx.args.split(maxsplit=1)
        address = parts[0] if parts else ""
        nickname = parts[1] if len(parts) > 1 else None
        entry = await self.watchlist.watch(ctx.user.telegram_id, address, nickname)
        label = safe_html(entry.nickname) if entry.nickname else shorten_address(entry.wallet_address)
        return f"Watching: {label}"

    async def show_watchlist(self, ctx: CommandContext) -> str:
        return templates.watchlist_text(await self.watchlist.list_with_balances(ctx.user.telegram_id))

    async def unwatch(self, ctx: CommandContext) -> str:
        parts = ctx.args.split()
        await self.watchlist.unwatch(ctx.user.telegram_id, parts[0] if parts else "")
        return "Removed."

    # --- other ---

    async def faq(self, ctx: CommandContext) -> str:
        return templates.faq_text()

    async def open_support(self, ctx: CommandContext) -> str:
        await self.support.open_ticket(ctx.user.telegram_id, ctx.args)
        return "Support request submitted."
