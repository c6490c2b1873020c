from __future__ import annotations

from datetime import timedelta

import pytest
from eth_account import Account
from eth_account.messages import encode_defunct

from walletbot.core.errors import (
    AlreadyLinkedError,
    ExpiredError,
    InvalidInputError,
    MalformedSignatureError,
    NotFoundError,
    SignatureMismatchError,
)
from walletbot.core.signatures import challenge_message, recover_address
from walletbot.db.models import utcnow
from walletbot.services.linking import LinkService

OWNER = Account.from_key("0x" + "11" * 32)
STRANGER = Account.from_key("0x" + "22" * 32)


def _sign(account, token: str) -> str:
    signed = account.sign_message(encode_defunct(text=challenge_message(token)))
    return "0x" + signed.signature.hex().removeprefix("0x")


def test_challenge_message_format() -> None:
    assert challenge_message("abc") == "Link wallet to Telegram\n\nCode: abc"


def test_recover_address_roundtrip_and_malformed() -> None:
    sig = _sign(OWNER, "deadbeef")
    assert recover_address(challenge_message("deadbeef"), sig) == OWNER.address.lower()
    with pytest.raises(MalformedSignatureError):
        recover_address("anything", "0x1234")


@pytest.mark.asyncio
async def test_issue_creates_single_use_token(users, links, notifier) -> None:
    user = await users.ensure_user(7, "bob")
    request = await links.issue(user)
    assert len(request.token) == 32
    assert request.url == f"https://example.org/link-telegram?code={request.token}"

    result = await links.verify(request.token, OWNER.address, _sign(OWNER, request.token))
    assert result.wallet_address == OWNER.address.lower()

    linked = await users.get(7)
    assert linked.wallet_address == OWNER.address.lower()
    assert linked.link_code is None
    assert linked.linked_at is not None
    assert notifier.sent and notifier.sent[0][0] == 7

    with pytest.raises(NotFoundError):
        await links.verify(request.token, OWNER.address, _sign(OWNER, request.token))


@pytest.mark.asyncio
async def test_address_match_is_case_insensitive(users, links) -> None:
    user = await users.ensure_user(8)
    request = await links.issue(user)
    result = await links.verify(request.token, OWNER.address.upper().replace("0X", "0x"), _sign(OWNER, request.token))
    assert result.wallet_address == OWNER.address.lower()


@pytest.mark.asyncio
async def test_wrong_signer_leaves_token_usable(users, links) -> None:
    user = await users.ensure_user(9)
    request = await links.issue(user)
    with pytest.raises(SignatureMismatchError):
        await links.verify(request.token, OWNER.address, _sign(STRANGER, request.token))
    with pytest.raises(MalformedSignatureError):
        await links.verify(request.token, OWNER.address, "0xnot-a-signature")
    with pytest.raises(InvalidInputError):
        await links.verify(request.token, "0x123", _sign(OWNER, request.token))

    assert (await users.get(9)).wallet_address is None
    await links.verify(request.token, OWNER.address, _sign(OWNER, request.token))


@pytest.mark.asyncio
async def test_expired_token_is_rejected(users, notifier) -> None:
    now = utcnow()
    clock = {"now": now}
    links = LinkService(users, "https://example.org", notifier=notifier, clock=lambda: clock["now"])
    user = await users.ensure_user(10)
    request = await links.issue(user)

    clock["now"] = now + timedelta(minutes=16)
    with pytest.raises(ExpiredError):
        await links.verify(request.token, OWNER.address, _sign(OWNER, request.token))
    assert (await users.get(10)).wallet_address is None


@pytest.mark.asyncio
async def test_reissue_invalidates_previous_token(users, links) -> None:
    user = await users.ensure_user(11)
    first = await links.issue(user)
    second = await links.issue(user)
    assert first.token != second.token
    with pytest.raises(NotFoundError):
        await links.verify(first.token, OWNER.address, _sign(OWNER, first.token))
    await links.verify(second.token, OWNER.address, _sign(OWNER, second.token))


@pytest.mark.asyncio
async def test_issue_refused_when_already_linked(users, links) -> None:
    user = await users.ensure_user(12)
    request = await links.issue(user)
    await links.verify(request.token, OWNER.address, _sign(OWNER, request.token))
    with pytest.raises(AlreadyLinkedError):
        await links.issue(await users.get(12))

    # A stale snapshot still cannot overwrite the binding.
    with pytest.raises(AlreadyLinkedError):
        await links.issue(user)


@pytest.mark.asyncio
async def test_unknown_token(links) -> None:
    with pytest.raises(NotFoundError):
        await links.verify("f" * 32, OWNER.address, _sign(OWNER, "f" * 32))
    with pytest.raises(NotFoundError):
        await links.verify("", OWNER.address, _sign(OWNER, "x"))


@pytest.mark.asyncio
async def test_notifier_failure_does_not_undo_link(users, links, notifier) -> None:
    notifier.fail = True
    user = await users.ensure_user(13)
    request = await links.issue(user)
    await links.verify(request.token, OWNER.address, _sign(OWNER, request.token))
    assert (await users.get(13)).wallet_address == OWNER.address.lower()
