from __future__ import annotations

from decimal import Decimal


def safe_html(text: str) -> str:
    """Escape special HTML characters so dynamic content is safe in HTML parse_mode."""
    return str(text).replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def fmt_amount(v: float | Decimal) -> str:
    """Compact token amount: 1.23B, 4.56M, 7.89K, 12.34, 0.000123"""
    v = float(v)
    if v >= 1e9:
        return f"{v / 1e9:.2f}B"
    if v >= 1e6:
        return f"{v / 1e6:.2f}M"
    if v >= 1e3:
        return f"{v / 1e3:.2f}K"
    if v >= 1:
        return f"{v:.2f}"
    return f"{v:.6f}"


def fmt_usd(v: float | Decimal) -> str:
    v = float(v)
    if v >= 1e6:
        return f"${v / 1e6:.2f}M"
    if v >= 1e3:
        return f"${v / 1e3:.2f}K"
    return f"${v:.2f}"


def fmt_decimal(v: Decimal) -> str:
    """Plain decimal without exponent or trailing zeros: Decimal('1E-7') -> '0.0000001'"""
    text = format(v, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


def shorten_address(addr: str) -> str:
    if len(addr) <= 12:
        return addr
    return f"{addr[:6]}...{addr[-4:]}"
