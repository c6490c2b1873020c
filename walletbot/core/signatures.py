from __future__ import annotations

import re

from eth_account import Account
from eth_account.messages import encode_defunct

from walletbot.core.errors import MalformedSignatureError

ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_SIGNATURE_RE = re.compile(r"^(0x)?[0-9a-fA-F]{130}$")


def challenge_message(token: str) -> str:
    """Text the wallet owner signs. The web page rebuilds it from the token alone."""
    return f"Link wallet to Telegram\n\nCode: {token}"


def is_address(value: str) -> bool:
    return bool(ADDRESS_RE.match(value or ""))


def recover_address(message: str, signature: str) -> str:
    """Recover the lower-cased signer of an EIP-191 personal_sign message."""
    signature = (signature or "").strip()
    if not _SIGNATURE_RE.match(signature):
        raise MalformedSignatureError("Signature must be 65 hex-encoded bytes.")
    try:
        recovered = Account.recover_message(encode_defunct(text=message), signature=signature)
    except Exception as exc:  # noqa: BLE001
        raise MalformedSignatureError(f"Signature could not be recovered: {exc}") from exc
    return recovered.lower()
