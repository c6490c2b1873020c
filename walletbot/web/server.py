from __future__ import annotations

import hmac
import logging
from typing import Awaitable, Callable

from aiohttp import web
from sqlalchemy.exc import SQLAlchemyError

from walletbot.core.errors import (
    CollaboratorUnavailable,
    ExpiredError,
    InvalidInputError,
    MalformedSignatureError,
    NotConfiguredError,
    NotFoundError,
    SignatureMismatchError,
)
from walletbot.services.alerts import SweepResult
from walletbot.services.linking import LinkService

logger = logging.getLogger(__name__)

VERIFY_LINK_PATH = "/api/telegram/verify-link"
CHECK_ALERTS_PATH = "/api/cron/check-alerts"
WEBHOOK_PATH = "/api/telegram/webhook"

LINK_SERVICE = web.AppKey("link_service", object)
SWEEP = web.AppKey("sweep", object)
CRON_SECRET = web.AppKey("cron_secret", str)
ALLOWED_ORIGINS = web.AppKey("allowed_origins", frozenset)

Sweep = Callable[[], Awaitable[SweepResult]]


def _error(status: int, code: str, message: str) -> web.Response:
    return web.json_response({"success": False, "error": code, "message": message}, status=status)


def _cors_headers(request: web.Request) -> dict[str, str]:
    origin = request.headers.get("Origin", "")
    allowed = request.app[ALLOWED_ORIGINS]
    if not origin or not ("*" in allowed or origin in allowed):
        return {}
    return {
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Methods": "POST, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type",
        "Vary": "Origin",
    }


@web.middleware
async def cors_middleware(request: web.Request, handler):
    if request.path != VERIFY_LINK_PATH:
        return await handler(request)
    if request.method == "OPTIONS":
        return web.Response(status=204, headers=_cors_headers(request))
    response = await handler(request)
    response.headers.update(_cors_headers(request))
    return response


async def verify_link(request: web.Request) -> web.Response:
    links: LinkService | None = request.app[LINK_SERVICE]
    if links is None:
        return _error(503, "not_configured", "Database not configured")

    try:
        body = await request.json()
    except ValueError:
        return _error(400, "invalid_request", "Body must be JSON")
    if not isinstance(body, dict):
        return _error(400, "invalid_request", "Body must be a JSON object")

    token = body.get("token") or body.get("code")
    wallet = body.get("walletAddress")
    signature = body.get("signature")
    if not all(isinstance(v, str) and v for v in (token, wallet, signature)):
        return _error(400, "invalid_request", "Missing required fields")

    try:
        result = await links.verify(token, wallet, signature)
    except NotFoundError:
        return _error(404, "not_found", "Invalid or expired link code")
    except ExpiredError:
        return _error(410, "expired", "Link code expired")
    except (SignatureMismatchError, MalformedSignatureError):
        return _error(403, "bad_signature", "Invalid signature")
    except InvalidInputError as exc:
        return _error(400, "invalid_request", str(exc))
    except NotConfiguredError:
        return _error(503, "not_configured", "Database not configured")
    except (CollaboratorUnavailable, SQLAlchemyError, OSError) as exc:
        logger.warning("verify_link_unavailable", extra={"event": "verify_link_unavailable", "error": str(exc)})
        return _error(502, "unavailable", "Verification failed")

    return web.json_response({"success": True, "walletAddress": result.wallet_address})


def _authorized(request: web.Request) -> bool:
    secret = request.app[CRON_SECRET]
    supplied = request.headers.get("Authorization", "")
    return bool(secret) and hmac.compare_digest(supplied.encode(), f"Bearer {secret}".encode())


async def check_alerts(request: web.Request) -> web.Response:
    if not request.app[CRON_SECRET]:
        return _error(503, "not_configured", "Cron secret not configured")
    if not _authorized(request):
        return _error(401, "unauthorized", "Unauthorized")
    result: SweepResult = await request.app[SWEEP]()
    return web.json_response(result.as_dict(), status=200 if result.ok else 503)


async def healthz(request: web.Request) -> web.Response:
    return web.json_response({"ok": True})


def create_app(
    link_service: LinkService | None,
    sweep: Sweep,
    cron_secret: str = "",
    allowed_origins: list[str] | None = None,
) -> web.Application:
    app = web.Application(middlewares=[cors_middleware])
    app[LINK_SERVICE] = link_service
    app[SWEEP] = sweep
    app[CRON_SECRET] = cron_secret
    app[ALLOWED_ORIGINS] = frozenset(allowed_origins or [])

    app.router.add_post(VERIFY_LINK_PATH, verify_link)
    app.router.add_route("OPTIONS", VERIFY_LINK_PATH, verify_link)
    app.router.add_get(CHECK_ALERTS_PATH, check_alerts)
    app.router.add_post(CHECK_ALERTS_PATH, check_alerts)
    app.router.add_get("/healthz", healthz)
    return app
