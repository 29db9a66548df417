from __future__ import annotations

import json
import logging
from typing import Any

from aiohttp import web

from feeswap.common import BadRequestError

from .context import ApiServices, RequestContext
from .middleware import CLAIMS_KEY, AiohttpHandler, TokenVerifier, auth_middleware, error_middleware
from .routes import ROUTES, RouteSpec

SERVICES_KEY = web.AppKey("services", ApiServices)


async def _read_body(request: web.Request) -> dict[str, Any]:
    if request.method == "GET" or not request.can_read_body:
        return {}
    try:
        body = await request.json()
    except json.JSONDecodeError as error:
        raise BadRequestError("Request body must be valid JSON") from error
    if not isinstance(body, dict):
        raise BadRequestError("Request body must be a JSON object")
    return body


def _endpoint(spec: RouteSpec) -> AiohttpHandler:
    async def endpoint(request: web.Request) -> web.StreamResponse:
        ctx = RequestContext(
            services=request.app[SERVICES_KEY],
            body=await _read_body(request),
            query=dict(request.query),
            claims=request.get(CLAIMS_KEY),
        )
        return web.json_response(await spec.handler(ctx))

    endpoint.authenticated = spec.authenticated  # type: ignore[attr-defined]
    return endpoint


def create_app(
    *,
    services: ApiServices,
    verifier: TokenVerifier,
    logger: logging.Logger,
    routes: list[RouteSpec] | None = None,
) -> web.Application:
    app = web.Application(middlewares=[error_middleware(logger), auth_middleware(verifier)])
    app[SERVICES_KEY] = services
    for spec in routes if routes is not None else ROUTES:
        app.router.add_route(spec.method, spec.path, _endpoint(spec))
    return app
