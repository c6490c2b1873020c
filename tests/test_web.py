from __future__ import annotations

import pytest
import pytest_asyncio
from aiohttp import test_utils
from eth_account import Account
from eth_account.messages import encode_defunct

from walletbot.core.signatures import challenge_message
from walletbot.services.alerts import SweepResult
from walletbot.web.server import create_app

OWNER = Account.from_key("0x" + "33" * 32)
STRANGER = Account.from_key("0x" + "44" * 32)
ORIGIN = "https://example.org"


def _sign(account, token: str) -> str:
    signed = account.sign_message(encode_defunct(text=challenge_message(token)))
    return "0x" + signed.signature.hex().removeprefix("0x")


async def _client(app) -> test_utils.TestClient:
    client = test_utils.TestClient(test_utils.TestServer(app))
    await client.start_server()
    return client


@pytest_asyncio.fixture
async def sweeps():
    calls: list[int] = []

    async def sweep() -> SweepResult:
        calls.append(1)
        return SweepResult(status="ok", considered=2, triggered=1, notified=1)

    sweep.calls = calls
    return sweep


@pytest_asyncio.fixture
async def client(links, sweeps):
    c = await _client(create_app(links, sweeps, cron_secret="s3cret", allowed_origins=[ORIGIN]))
    yield c
    await c.close()


@pytest.mark.asyncio
async def test_verify_link_success_then_replay(client, users, links) -> None:
    user = await users.ensure_user(5)
    request = await links.issue(user)
    body = {"code": request.token, "walletAddress": OWNER.address, "signature": _sign(OWNER, request.token)}

    resp = await client.post("/api/telegram/verify-link", json=body, headers={"Origin": ORIGIN})
    assert resp.status == 200
    assert (await resp.json())["success"] is True
    assert resp.headers["Access-Control-Allow-Origin"] == ORIGIN

    replay = await client.post("/api/telegram/verify-link", json=body)
    assert replay.status == 404


@pytest.mark.asyncio
async def test_verify_link_error_statuses(client, users, links) -> None:
    user = await users.ensure_user(6)
    request = await links.issue(user)
    token = request.token

    resp = await client.post("/api/telegram/verify-link", json={"token": token})
    assert resp.status == 400

    resp = await client.post("/api/telegram/verify-link", data=b"not json")
    assert resp.status == 400

    resp = await client.post(
        "/api/telegram/verify-link",
        json={"token": token, "walletAddress": OWNER.address, "signature": _sign(STRANGER, token)},
    )
    assert resp.status == 403
    assert (await resp.json())["error"] == "bad_signature"

    resp = await client.post(
        "/api/telegram/verify-link",
        json={"token": token, "walletAddress": OWNER.address, "signature": "0xzz"},
    )
    assert resp.status == 403


@pytest.mark.asyncio
async def test_preflight_only_echoes_allowed_origin(client) -> None:
    resp = await client.options("/api/telegram/verify-link", headers={"Origin": ORIGIN})
    assert resp.status == 204
    assert resp.headers["Access-Control-Allow-Origin"] == ORIGIN

    resp = await client.options("/api/telegram/verify-link", headers={"Origin": "https://evil.test"})
    assert "Access-Control-Allow-Origin" not in resp.headers


@pytest.mark.asyncio
async def test_verify_link_without_store(sweeps) -> None:
    client = await _client(create_app(None, sweeps))
    try:
        resp = await client.post("/api/telegram/verify-link", json={"token": "a", "walletAddress": "b", "signature": "c"})
        assert resp.status == 503
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_cron_requires_bearer_secret(client, sweeps) -> None:
    resp = await client.get("/api/cron/check-alerts")
    assert resp.status == 401
    resp = await client.get("/api/cron/check-alerts", headers={"Authorization": "Bearer wrong"})
    assert resp.status == 401
    assert sweeps.calls == []

    resp = await client.post("/api/cron/check-alerts", headers={"Authorization": "Bearer s3cret"})
    assert resp.status == 200
    payload = await resp.json()
    assert payload["triggered"] == 1
    assert sweeps.calls == [1]


@pytest.mark.asyncio
async def test_cron_degraded_sweep_returns_503() -> None:
    async def sweep() -> SweepResult:
        return SweepResult(status="price_unavailable")

    client = await _client(create_app(None, sweep, cron_secret="s3cret"))
    try:
        resp = await client.get("/api/cron/check-alerts", headers={"Authorization": "Bearer s3cret"})
        assert resp.status == 503
        assert (await resp.json())["status"] == "price_unavailable"

        assert (await client.get("/healthz")).status == 200
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_cron_disabled_without_secret(sweeps) -> None:
    client = await _client(create_app(None, sweeps))
    try:
        resp = await client.get("/api/cron/check-alerts", headers={"Authorization": "Bearer "})
        assert resp.status == 503
    finally:
        await client.close()
