"""
REST / HTTP API for the staking engine.

Built on ``aiohttp``.  All amounts travel as integer base units (JSON
numbers or decimal strings).

Endpoints
---------
GET  /health                    Liveness + invariant check
GET  /stats                     Global staking statistics
GET  /stake/{account}           Current (or last closed) stake
GET  /stake/{account}/yield     Accrued and projected yield, closure quote
POST /stake                     Open a stake                   (X-Account-Key)
POST /stake/close_early         Early closure                  (X-Account-Key)
POST /stake/close               Scheduled closure              (X-Account-Key)
POST /admin/top_up              Daily reward-pool top-up       (X-Admin-Key)
POST /admin/sweep               Emergency sweep                (X-Admin-Key)
POST /admin/pause               Pause new stakes               (X-Admin-Key)
POST /admin/unpause             Resume new stakes              (X-Admin-Key)
POST /admin/treasury/withdraw   Pay out the treasury balance   (X-Admin-Key)

The stake POST routes act for the body's ``account`` only when
``X-Account-Key`` matches the key configured for that account in
``APIConfig.account_keys``; with no keys configured they answer 403.

Engine errors are returned as ``{"error": <code>, "message": ...}`` with a
status that reflects the failure class.

Usage:
    api = APIServer(engine, api_config=cfg.api)
    await api.start()
    ...
    await api.stop()
"""

from __future__ import annotations

import hmac
import json
import logging
from typing import TYPE_CHECKING, Any

from aiohttp import web

from sharestake_core import errors

if TYPE_CHECKING:
    from sharestake_core.config import APIConfig
    from sharestake_core.engine import StakingEngine

logger = logging.getLogger("sharestake.api")

_STATUS_BY_ERROR: dict[type[errors.StakingError], int] = {
    errors.InvalidInput: 400,
    errors.InvalidShareCount: 400,
    errors.Unauthorized: 403,
    errors.NoActiveStake: 404,
    errors.AlreadyActive: 409,
    errors.PeriodNotComplete: 409,
    errors.PeriodAlreadyComplete: 409,
    errors.TransferFailure: 502,
    errors.StakingPaused: 503,
    errors.InvariantViolation: 500,
}


def _json_dumps(obj: Any) -> str:
    return json.dumps(obj, default=str)


def _safe_int(value: Any, name: str = "value") -> int:
    """Convert *value* to a non-negative int, rejecting floats and junk."""
    if isinstance(value, bool) or isinstance(value, float):
        raise web.HTTPBadRequest(text=f"{name} must be an integer")
    try:
        n = int(value)
    except (TypeError, ValueError):
        raise web.HTTPBadRequest(text=f"{name} must be an integer")
    if n < 0:
        raise web.HTTPBadRequest(text=f"{name} must be non-negative")
    return n


def _error_response(exc: errors.StakingError) -> web.Response:
    status = _STATUS_BY_ERROR.get(type(exc), 400)
    return web.json_response(exc.to_dict(), status=status)


@web.middleware
async def staking_error_middleware(request: web.Request, handler):
    """Translate engine errors into JSON error responses."""
    try:
        return await handler(request)
    except errors.StakingError as exc:
        logger.info(f"{request.method} {request.path} rejected: {exc.code}")
        return _error_response(exc)


def _make_api_key_middleware(api_key: str):
    """Require ``X-API-Key`` on POST requests (timing-safe comparison)."""

    @web.middleware
    async def api_key_middleware(request: web.Request, handler):
        if request.method == "POST":
            key = request.headers.get("X-API-Key", "")
            if not hmac.compare_digest(key, api_key):
                raise web.HTTPUnauthorized(text="Invalid or missing API key")
        return await handler(request)

    return api_key_middleware


class APIServer:
    """Thin aiohttp wrapper around a ``StakingEngine``."""

    def __init__(
        self,
        engine: StakingEngine,
        host: str = "127.0.0.1",
        port: int = 8080,
        *,
        api_config: APIConfig | None = None,
    ):
        self.engine = engine
        self.host = api_config.host if api_config else host
        self.port = api_config.port if api_config else port
        self._api_config = api_config
        self._app: web.Application | None = None
        self._runner: web.AppRunner | None = None

    # ── lifecycle ────────────────────────────────────────────────

    def build_app(self) -> web.Application:
        middlewares: list = [staking_error_middleware]
        max_body = 65_536
        if self._api_config is not None:
            max_body = self._api_config.max_body_bytes
            if self._api_config.api_key:
                middlewares.insert(0, _make_api_key_middleware(self._api_config.api_key))
        app = web.Application(middlewares=middlewares, client_max_size=max_body)
        self._register_routes(app)
        self._app = app
        return app

    async def start(self) -> None:
        app = self.build_app()
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info(f"API listening on http://{self.host}:{self.port}")

    async def stop(self) -> None:
        if self._runner:
            await self._runner.cleanup()

    # ── routes ───────────────────────────────────────────────────

    def _register_routes(self, app: web.Application) -> None:
        app.router.add_get("/health", self._health)
        app.router.add_get("/stats", self._stats)
        app.router.add_get("/stake/{account}", self._stake_info)
        app.router.add_get("/stake/{account}/yield", self._stake_yield)
        app.router.add_post("/stake", self._open_stake)
        app.router.add_post("/stake/close_early", self._close_early)
        app.router.add_post("/stake/close", self._close_scheduled)
        app.router.add_post("/admin/top_up", self._admin_top_up)
        app.router.add_post("/admin/sweep", self._admin_sweep)
        app.router.add_post("/admin/pause", self._admin_pause)
        app.router.add_post("/admin/unpause", self._admin_unpause)
        app.router.add_post("/admin/treasury/withdraw", self._admin_withdraw_treasury)

    @staticmethod
    async def _body(request: web.Request) -> dict:
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise web.HTTPBadRequest(text="Invalid JSON body") from exc
        if not isinstance(body, dict):
            raise web.HTTPBadRequest(text="JSON object expected")
        return body

    def _account(self, request: web.Request, body: dict) -> str:
        """Return the body's account once ``X-Account-Key`` proves the caller owns it."""
        account = body.get("account", "")
        if not isinstance(account, str) or not account:
            raise web.HTTPBadRequest(text="account required")
        keys = self._api_config.account_keys if self._api_config else {}
        if not keys:
            raise web.HTTPForbidden(text="Account endpoints not configured")
        provided = request.headers.get("X-Account-Key", "")
        expected = keys.get(account, "")
        if not hmac.compare_digest(provided, expected) or not expected:
            logger.warning(f"Account key mismatch for {account} on {request.path}")
            raise web.HTTPForbidden(text=f"Not authorised to act for {account}")
        return account

    # ── handlers ─────────────────────────────────────────────────

    async def _health(self, _request: web.Request) -> web.Response:
        ok, msg = self.engine.verify_share_supply()
        if ok:
            ok, msg = self.engine.verify_solvency()
        return web.json_response(
            {"ok": ok, "detail": msg or "consistent"},
            status=200 if ok else 503,
        )

    async def _stats(self, _request: web.Request) -> web.Response:
        return web.json_response(self.engine.get_staking_stats(), dumps=_json_dumps)

    async def _stake_info(self, request: web.Request) -> web.Response:
        account = request.match_info["account"]
        stake = self.engine.get_stake(account)
        if stake is None:
            raise errors.NoActiveStake(f"account {account} has never staked")
        return web.json_response(stake.to_dict(), dumps=_json_dumps)

    async def _stake_yield(self, request: web.Request) -> web.Response:
        account = request.match_info["account"]
        return web.json_response({
            "account": account,
            "accrued_yield": self.engine.accrued_yield(account),
            "projected_yield": self.engine.projected_yield(account),
            "elapsed_days": self.engine.elapsed_days(account),
            "period_complete": self.engine.is_period_complete(account),
            "closure_quote": self.engine.quote_closure(account).to_dict(),
        }, dumps=_json_dumps)

    async def _open_stake(self, request: web.Request) -> web.Response:
        """
        POST /stake
        Body: {"account": "alice", "amount": "1000000000000000000000", "duration_days": 365}
        """
        body = await self._body(request)
        account = self._account(request, body)
        amount = _safe_int(body.get("amount", 0), "amount")
        days = _safe_int(body.get("duration_days", 0), "duration_days")
        stake = self.engine.open_stake(account, amount, days)
        return web.json_response(
            {"status": "staked", "stake": stake.to_dict()}, dumps=_json_dumps,
        )

    async def _close_early(self, request: web.Request) -> web.Response:
        body = await self._body(request)
        quote = self.engine.close_early(self._account(request, body))
        return web.json_response(
            {"status": "closed", "kind": "early", "result": quote.to_dict()},
            dumps=_json_dumps,
        )

    async def _close_scheduled(self, request: web.Request) -> web.Response:
        body = await self._body(request)
        quote = self.engine.close_scheduled(self._account(request, body))
        return web.json_response(
            {"status": "closed", "kind": "scheduled", "result": quote.to_dict()},
            dumps=_json_dumps,
        )

    # ── admin ────────────────────────────────────────────────────

    def _check_admin_key(self, request: web.Request) -> str:
        """Validate the admin key and return the admin account to act as."""
        admin_key = self._api_config.admin_key if self._api_config else ""
        if not admin_key:
            raise web.HTTPForbidden(text="Admin endpoints not configured")
        provided = request.headers.get("X-Admin-Key", "")
        if not hmac.compare_digest(provided, admin_key):
            logger.warning(f"Invalid admin key on {request.path}")
            raise web.HTTPForbidden(text="Invalid admin key")
        return self.engine.state.admin

    async def _admin_top_up(self, request: web.Request) -> web.Response:
        """POST /admin/top_up  Body: {"current_supply": "1000000000"}"""
        caller = self._check_admin_key(request)
        body = await self._body(request)
        supply = _safe_int(body.get("current_supply", 0), "current_supply")
        added = self.engine.top_up_daily(caller, supply)
        return web.json_response({
            "status": "ok",
            "added": added,
            "reward_pool": self.engine.state.pool.balance,
        }, dumps=_json_dumps)

    async def _admin_sweep(self, request: web.Request) -> web.Response:
        caller = self._check_admin_key(request)
        moved = self.engine.emergency_sweep(caller)
        return web.json_response({"status": "swept", "amount": moved}, dumps=_json_dumps)

    async def _admin_pause(self, request: web.Request) -> web.Response:
        self.engine.pause(self._check_admin_key(request))
        return web.json_response({"status": "paused"})

    async def _admin_unpause(self, request: web.Request) -> web.Response:
        self.engine.unpause(self._check_admin_key(request))
        return web.json_response({"status": "unpaused"})

    async def _admin_withdraw_treasury(self, request: web.Request) -> web.Response:
        caller = self._check_admin_key(request)
        amount = self.engine.withdraw_treasury(caller)
        return web.json_response({"status": "ok", "amount": amount}, dumps=_json_dumps)
