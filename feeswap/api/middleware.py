from __future__ import annotations

import hmac
import logging
from typing import Awaitable, Callable, Mapping, Protocol

from aiohttp import web

from feeswap.common import SwapServiceError, UnauthorizedError, log_event

from .context import AuthClaims

CLAIMS_KEY = "feeswap.claims"

AiohttpHandler = Callable[[web.Request], Awaitable[web.StreamResponse]]


class TokenVerifier(Protocol):
    async def verify(self, token: str) -> AuthClaims:
        ...


class StaticTokenVerifier:
    """Bearer tokens configured as ``user_id:token`` pairs."""

    def __init__(self, tokens: Mapping[str, str]) -> None:
        self._tokens = dict(tokens)

    @classmethod
    def from_entries(cls, entries: tuple[str, ...] | list[str]) -> "StaticTokenVerifier":
        tokens: dict[str, str] = {}
        for entry in entries:
            user_id, separator, token = entry.partition(":")
            if not separator or not user_id.strip() or not token.strip():
                raise ValueError("API_AUTH_TOKENS entries must look like user_id:token")
            tokens[token.strip()] = user_id.strip()
        return cls(tokens)

    async def verify(self, token: str) -> AuthClaims:
        for candidate, user_id in self._tokens.items():
            if hmac.compare_digest(candidate.encode("utf-8"), token.encode("utf-8")):
                return AuthClaims(user_id=user_id)
        raise UnauthorizedError("Invalid token")


def _bearer_token(request: web.Request) -> str | None:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def auth_middleware(verifier: TokenVerifier) -> Callable[..., Awaitable[web.StreamResponse]]:
    @web.middleware
    async def middleware(request: web.Request, handler: AiohttpHandler) -> web.StreamResponse:
        route_handler = request.match_info.route.handler
        if not getattr(route_handler, "authenticated", False):
            return await handler(request)

        token = _bearer_token(request)
        if token is None:
            raise UnauthorizedError("Missing token")
        request[CLAIMS_KEY] = await verifier.verify(token)
        return await handler(request)

    return middleware


def error_middleware(logger: logging.Logger) -> Callable[..., Awaitable[web.StreamResponse]]:
    @web.middleware
    async def middleware(request: web.Request, handler: AiohttpHandler) -> web.StreamResponse:
        try:
            return await handler(request)
        except web.HTTPException:
            raise
        except SwapServiceError as error:
            log_event(
                logger,
                level="warning" if error.status < 500 else "error",
                event="request_failed",
                message="Request failed",
                method=request.method,
                path=request.path,
                status=error.status,
                code=error.code,
                error=error.message,
            )
            return web.json_response({"error": error.to_dict()}, status=error.status)
        except Exception as error:
            logger.exception(
                "Unhandled request error",
                extra={"event": "request_crashed", "path": request.path, "error": str(error)},
            )
            return web.json_response(
                {"error": {"code": "internal", "message": "Internal server error"}},
                status=500,
            )

    return middleware
