from __future__ import annotations

from decimal import Decimal

from walletbot.adapters.chain import StakingPosition
from walletbot.adapters.prices import PriceQuote
from walletbot.core.fmt import fmt_amount, fmt_decimal, fmt_usd, safe_html, shorten_address
from walletbot.db.models import PriceAlert
from walletbot.services.watchlist import WatchedWallet

SERVICE_UNAVAILABLE = "Service unavailable."
UNKNOWN_COMMAND = "Unknown command. Use /help"
GENERIC_ERROR = "Something went wrong. Try again in a moment."
SLOW_DOWN = "Too many requests. Slow down a little."
NO_WALLET = "No wallet linked. Use /link first."


def start_text(project_name: str, wallet_address: str | None) -> str:
    lines = [f"Welcome to <b>{safe_html(project_name)} Bot</b>!", ""]
    if wallet_address:
        lines += [
            f"Wallet: <code>{shorten_address(wallet_address)}</code>",
            "",
            "/portfolio - Your balance",
            "/price - Token price",
            "/help - All commands",
        ]
    else:
        lines += ["Use /link to connect your wallet", "/help - See all commands"]
    return "\n".join(lines)


def help_text(project_name: str, staking_enabled: bool) -> str:
    portfolio = "/portfolio - Token balance\n"
    if staking_enabled:
        portfolio += "/staking - Staking status\n"
    return (
        f"<b>{safe_html(project_name)} Bot Commands</b>\n\n"
        "<b>Account</b>\n"
        "/link - Link wallet\n"
        "/unlink - Unlink wallet\n"
        "/notify - Toggle notifications\n\n"
        "<b>Portfolio</b>\n"
        f"{portfolio}\n"
        "<b>Market</b>\n"
        "/price - Token price\n"
        "/gas - Gas price\n"
        "/convert [amount] - To USD\n\n"
        "<b>Alerts</b>\n"
        "/alert above/below [price]\n"
        "/alerts - View alerts\n"
        "/deletealert [#]\n\n"
        "<b>Watchlist</b>\n"
        "/watch [address] [name]\n"
        "/watchlist - View list\n"
        "/unwatch [address]\n\n"
        "<b>Referrals</b>\n"
        "/refer - Your link\n"
        "/referrals - Your invites\n\n"
        "<b>Other</b>\n"
        "/contract - Contract address\n"
        "/faq - FAQ\n"
        "/support [message]"
    )


def faq_text() -> str:
    return (
        "<b>FAQ</b>\n\n"
        "<b>How do I link my wallet?</b>\n"
        "Use /link and follow the instructions.\n\n"
        "<b>How do alerts work?</b>\n"
        "Set with /alert above [price]. You'll be notified when triggered."
    )


def link_text(url: str, ttl_minutes: int) -> str:
    return f'<a href="{safe_html(url)}">Click here to link your wallet</a>\n\nExpires in {ttl_minutes} minutes.'


def already_linked_text(wallet_address: str | None) -> str:
    if not wallet_address:
        return "Wallet already linked.\n\nUse /unlink first."
    return f"Wallet already linked:\n<code>{safe_html(wallet_address)}</code>\n\nUse /unlink first."


def portfolio_text(balance: Decimal, quote: PriceQuote | None) -> str:
    usd = ""
    if quote is not None and balance > 0:
        usd = f" ({fmt_usd(balance * quote.price)})"
    return f"<b>Your Portfolio</b>\n\nBalance: {fmt_amount(balance)}{usd}"


def staking_text(position: StakingPosition) -> str:
    return (
        "<b>Staking Status</b>\n\n"
        f"Staked: {fmt_amount(position.staked)}\n"
        f"Rewards: {position.rewards:.4f}"
    )


def price_text(quote: PriceQuote) -> str:
    up = quote.change_24h >= 0
    emoji = "📈" if up else "📉"
    sign = "+" if up else ""
    return (
        "<b>Token Price</b>\n\n"
        f"Price: ${fmt_amount(quote.price)}\n"
        f"{emoji} 24h: {sign}{quote.change_24h:.2f}%\n"
        f"Volume: {fmt_usd(quote.volume_24h)}\n"
        f"MCap: {fmt_usd(quote.market_cap)}"
    )


def alerts_text(alerts: list[PriceAlert]) -> str:
    if not alerts:
        return "No active alerts."
    lines = ["<b>Your Alerts</b>", ""]
    lines += [f"{i}. {a.alert_type} ${fmt_decimal(a.target_price)}" for i, a in enumerate(alerts, start=1)]
    return "\n".join(lines)


def watchlist_text(wallets: list[WatchedWallet]) -> str:
    if not wallets:
        return "Watchlist empty."
    lines = ["<b>Watchlist</b>", ""]
    for w in wallets:
        label = safe_html(w.nickname) if w.nickname else shorten_address(w.wallet_address)
        balance = fmt_amount(w.balance) if w.balance is not None else "n/a"
        lines.append(f"{label}: {balance}")
    return "\n".join(lines)
