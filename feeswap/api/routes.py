from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from feeswap.common import UnauthorizedError
from feeswap.swaps.types import EXACT_IN, TradeParams

from .context import RequestContext

Handler = Callable[[RequestContext], Awaitable[dict[str, Any]]]


@dataclass(slots=True, frozen=True)
class RouteSpec:
    method: str
    path: str
    handler: Handler
    authenticated: bool = False


def _trade_params(ctx: RequestContext) -> TradeParams:
    return TradeParams(
        input_mint=ctx.require_str("inputMint"),
        output_mint=ctx.require_str("outputMint"),
        amount=ctx.require_int("amount"),
        slippage_bps=ctx.require_int("slippageBps"),
        dynamic_slippage=ctx.optional_bool("dynamicSlippage", True),
        referral_slug=ctx.optional_str("referralSlug"),
        swap_mode=ctx.optional_str("swapMode") or EXACT_IN,
    )


async def create_quote(ctx: RequestContext) -> dict[str, Any]:
    quote = await ctx.services.swaps.create_quote(
        _trade_params(ctx),
        user_public_key=ctx.optional_str("userPublicKey"),
    )
    return quote.to_dict()


async def build_from_quote(ctx: RequestContext) -> dict[str, Any]:
    response = await ctx.services.swaps.build_swap_from_quote_id(
        ctx.require_str("quoteId"),
        user_public_key=ctx.require_str("userPublicKey"),
        input_mint=ctx.optional_str("inputMint"),
        amount=ctx.optional_int("amount"),
    )
    return response.to_dict()


async def quote_and_build(ctx: RequestContext) -> dict[str, Any]:
    response = await ctx.services.swaps.build_swap(
        _trade_params(ctx),
        user_public_key=ctx.require_str("userPublicKey"),
    )
    return response.to_dict()


async def create_referral(ctx: RequestContext) -> dict[str, Any]:
    if ctx.claims is None:
        raise UnauthorizedError("Missing user claims")
    referral = await ctx.services.referrals.create_referral(
        ctx.claims.user_id,
        ctx.require_int("feeAmountBps"),
        slug=ctx.optional_str("slug"),
        description=ctx.optional_str("description"),
        is_active=ctx.optional_bool("isActive", True),
    )
    return referral.to_dict()


async def health(ctx: RequestContext) -> dict[str, Any]:
    if ctx.services.healthcheck is not None:
        await ctx.services.healthcheck()
    return {"status": "ok"}


ROUTES: list[RouteSpec] = [
    RouteSpec("POST", "/swaps/quote", create_quote),
    RouteSpec("POST", "/swaps/transactions", build_from_quote),
    RouteSpec("POST", "/swaps/quote-transactions", quote_and_build),
    RouteSpec("POST", "/referrals", create_referral, authenticated=True),
    RouteSpec("GET", "/health", health),
]
