"""The Gatekeeper: per-address gating middleware in front of the host's routes."""

import math
import time
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from ..dependencies import ADMIN_KEY_HEADER, get_protection_service, is_admin_key
from ..engine.events import AccessResult, ActionKind
from ..engine.protection import GateDecision
from ..utils.ip_network import is_public_ip, is_valid_ip
from ..utils.logging import get_logger

logger = get_logger("middleware.rate_limit")

# Checked in order; the first public address wins
FORWARDED_HEADERS = (
    "cf-connecting-ip",
    "client-ip",
    "x-forwarded-for",
    "x-forwarded",
    "x-cluster-client-ip",
    "forwarded-for",
    "forwarded",
)

SKIP_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}
ADMIN_PATH_PREFIX = "/api/v1/"


def _first_element(value: str) -> str:
    candidate = value.split(",")[0].strip()
    # RFC 7239 style: for=203.0.113.9;proto=https
    if candidate.lower().startswith("for="):
        candidate = candidate[4:].split(";")[0].strip().strip('"')
    return candidate


def get_client_ip(request: Request, trust_forwarded: bool = True) -> str:
    """Resolve the client address, preferring public addresses from proxy headers."""
    if trust_forwarded:
        for header in FORWARDED_HEADERS:
            value = request.headers.get(header)
            if not value:
                continue
            candidate = _first_element(value)
            if is_valid_ip(candidate) and is_public_ip(candidate):
                return candidate
    return request.client.host if request.client else "0.0.0.0"


class GatekeeperMiddleware(BaseHTTPMiddleware):
    """Gates every request through the protection service.

    Denied addresses get 403, rate-limited addresses get 429 with
    ``Retry-After``. Outcomes are written to the access log without
    delaying the response.
    """

    def __init__(self, app, service_provider: Optional[Callable] = None):
        super().__init__(app)
        self._service_provider = service_provider

    def _get_service(self):
        if self._service_provider is None:
            self._service_provider = get_protection_service
        return self._service_provider()

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path
        if path in SKIP_PATHS or path.startswith(ADMIN_PATH_PREFIX):
            return await call_next(request)

        service = self._get_service()
        config = service.config

        if is_admin_key(request.headers.get(ADMIN_KEY_HEADER), config):
            return await call_next(request)

        client_ip = get_client_ip(request, config.trust_forwarded_headers)
        user_agent = request.headers.get("user-agent", "")
        result = service.evaluate_request(client_ip, user_agent)

        if result.decision is GateDecision.DENY:
            self._record(
                service, request, client_ip, user_agent,
                (ActionKind.BLOCKED_ACCESS, AccessResult.BLOCKED, {"bypassed": True}),
            )
            logger.warning("gate_denied_request", ip=client_ip, path=path)
            return JSONResponse(
                status_code=403,
                content={"detail": "Access denied."},
            )

        if result.decision is GateDecision.BLOCK:
            if result.newly_blocked:
                self._record(
                    service, request, client_ip, user_agent,
                    (ActionKind.IP_BLOCKED, AccessResult.BLOCKED, {"suspicious": True}),
                    (ActionKind.SUSPICIOUS_ACTIVITY, AccessResult.BLOCKED, {"bypassed": True}),
                )
            else:
                self._record(
                    service, request, client_ip, user_agent,
                    (ActionKind.BLOCKED_ACCESS, AccessResult.BLOCKED, {"bypassed": True}),
                )
            retry_after = self._retry_after(service, client_ip)
            logger.warning("gate_blocked_request", ip=client_ip, path=path, retry_after=retry_after)
            return JSONResponse(
                status_code=429,
                content={"detail": "Too many requests. Try again later."},
                headers={"Retry-After": str(retry_after)},
            )

        response = await call_next(request)
        self._record(
            service, request, client_ip, user_agent,
            (ActionKind.PAGE_VIEW, AccessResult.VIEWED, {"is_crawler": result.crawler is not None or None}),
        )
        return response

    @staticmethod
    def _retry_after(service, client_ip: str) -> int:
        until = service.rate_limiter.blocked_until(client_ip)
        if until is None:
            return service.config.block_duration_seconds
        return max(1, math.ceil(until - time.time()))

    @staticmethod
    def _record(service, request: Request, client_ip: str, user_agent: str, *outcomes) -> None:
        """Log gate outcomes fire-and-forget.

        Each outcome is ``(action_kind, result, flags)`` where ``flags`` holds
        ``bypassed``, ``suspicious`` or ``is_crawler`` overrides.
        """
        try:
            events = [
                service.build_event(
                    client_ip,
                    kind,
                    result,
                    user_agent=user_agent,
                    referrer=request.headers.get("referer", ""),
                    request_path=request.url.path,
                    **flags,
                )
                for kind, result, flags in outcomes
            ]
            service.record_event(*events)
        except Exception as e:
            logger.error("gate_record_failed", ip=client_ip, error=str(e))
