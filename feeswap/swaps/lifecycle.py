from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from solders.transaction import VersionedTransaction

from feeswap.common import (
    BadRequestError,
    NotFoundError,
    ResourceExpiredError,
    SimulationFailedError,
    ValidationError,
    guarded_call,
    log_event,
)

from .aggregator import JupiterClient
from .builder import AtomicSwapBuilder
from .fee_policy import assert_bps
from .keys import load_keypair
from .ledger import LedgerClient
from .types import (
    EXACT_IN,
    MAX_BPS,
    BuildRequest,
    FeeSide,
    IdentityStore,
    Quote,
    QuoteStore,
    Referral,
    ReferralLink,
    ReferrerConfig,
    SimulationMode,
    SimulationOutcome,
    SwapBuildResponse,
    TradeParams,
    UserRecord,
    utc_now,
)


@dataclass(slots=True, frozen=True)
class SwapServiceConfig:
    fee_vault_public_key: str
    treasury_public_key: str
    default_platform_fee_bps: int = 20
    quote_ttl_seconds: int = 60
    fee_side: FeeSide = "input"
    fee_cross_check: bool = True
    simulation_mode: SimulationMode = "advisory"
    dynamic_compute_unit_limit: bool = True


class SwapService:
    """Quote-to-transaction lifecycle.

    Loaded -> Validated -> (ReferralResolved | NoReferral) -> Built -> (Simulated) -> Returned.
    Nothing here mutates persisted state except the create-if-absent quote write.
    """

    def __init__(
        self,
        *,
        config: SwapServiceConfig,
        quote_store: QuoteStore,
        identity_store: IdentityStore,
        aggregator: JupiterClient,
        builder: AtomicSwapBuilder,
        ledger: LedgerClient,
        fee_vault_secret: Callable[[], str],
        logger: logging.Logger,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._config = config
        self._quote_store = quote_store
        self._identity_store = identity_store
        self._aggregator = aggregator
        self._builder = builder
        self._ledger = ledger
        self._fee_vault_secret = fee_vault_secret
        self._logger = logger
        self._clock = clock

    async def create_quote(self, params: TradeParams, *, user_public_key: str | None = None) -> Quote:
        if params.swap_mode != EXACT_IN:
            raise BadRequestError("Only ExactIn supported for deterministic fee math")
        if isinstance(params.amount, bool) or not isinstance(params.amount, int) or params.amount <= 0:
            raise ValidationError("amount must be a positive integer amount of atoms")
        assert_bps(params.slippage_bps, "slippage_bps")

        referral: Referral | None = None
        if params.referral_slug:
            referral = await self._identity_store.get_referral_by_slug(params.referral_slug)
            if referral is None or not referral.is_active:
                raise NotFoundError(f"Referral with slug {params.referral_slug} not found")

        if referral is not None:
            platform_fee_bps = referral.platform_fee_bps
            referrer_fee_bps = referral.referrer_fee_bps
        else:
            platform_fee_bps = self._config.default_platform_fee_bps
            referrer_fee_bps = 0
        assert_bps(platform_fee_bps, "platform_fee_bps")
        assert_bps(referrer_fee_bps, "referrer_fee_bps")
        if platform_fee_bps + referrer_fee_bps > MAX_BPS:
            raise BadRequestError(
                f"Total fee of {platform_fee_bps + referrer_fee_bps} bps exceeds {MAX_BPS} bps"
            )

        route = await self._aggregator.quote(
            input_mint=params.input_mint,
            output_mint=params.output_mint,
            amount=params.amount,
            slippage_bps=params.slippage_bps,
            platform_fee_bps=platform_fee_bps + referrer_fee_bps,
            dynamic_slippage=params.dynamic_slippage,
            swap_mode=params.swap_mode,
        )

        quote = Quote.create(
            quote_id=self._quote_store.new_quote_id(),
            input_mint=params.input_mint,
            output_mint=params.output_mint,
            amount=params.amount,
            slippage_bps=params.slippage_bps,
            dynamic_slippage=params.dynamic_slippage,
            platform_fee_bps=platform_fee_bps,
            referrer_fee_bps=referrer_fee_bps,
            route=route,
            ttl_seconds=self._config.quote_ttl_seconds,
            referral=(
                ReferralLink(referral_id=referral.referral_id, slug=referral.slug, user_id=referral.user_id)
                if referral
                else None
            ),
            user_public_key=user_public_key,
            swap_mode=params.swap_mode,
            now=self._clock(),
        )
        stored = await self._quote_store.create_quote(quote)
        log_event(
            self._logger,
            level="info",
            event="quote_created",
            message="Stored aggregator quote",
            quote_id=stored.quote_id,
            input_mint=stored.input_mint,
            output_mint=stored.output_mint,
            amount=str(stored.amount),
            total_fee_bps=stored.total_fee_bps,
            referral_slug=stored.referral.slug if stored.referral else None,
        )
        return stored

    async def build_swap(self, params: TradeParams, *, user_public_key: str) -> SwapBuildResponse:
        """Recompute a fresh quote server-side and build from it."""
        quote = await self.create_quote(params, user_public_key=user_public_key)
        return await self._build_from_quote(quote, user_public_key=user_public_key)

    async def build_swap_from_quote_id(
        self,
        quote_id: str,
        *,
        user_public_key: str,
        input_mint: str | None = None,
        amount: int | None = None,
    ) -> SwapBuildResponse:
        quote = await self._quote_store.get_quote(quote_id)
        if quote is None:
            raise NotFoundError("Quote not found")

        now = self._clock()
        if quote.is_expired(now=now):
            log_event(
                self._logger,
                level="info",
                event="quote_expired",
                message="Quote has expired",
                quote_id=quote_id,
                expires_at=quote.expires_at.isoformat(),
                current_time=now.isoformat(),
            )
            raise ResourceExpiredError("Quote has expired")

        if input_mint is not None and input_mint != quote.input_mint:
            raise ValidationError("inputMint does not match the quote")
        if amount is not None and amount != quote.amount:
            raise ValidationError("amount does not match the quote")

        return await self._build_from_quote(quote, user_public_key=user_public_key)

    async def _resolve_referrer(
        self, quote: Quote
    ) -> tuple[Referral | None, UserRecord | None, ReferrerConfig | None]:
        if quote.referral is None:
            return None, None, None

        link = quote.referral
        referral = await self._identity_store.get_referral(link.user_id, link.referral_id)
        if referral is None:
            log_event(
                self._logger,
                level="error",
                event="referral_missing",
                message="Referral not found for quote with referral",
                quote_id=quote.quote_id,
                referral_slug=link.slug,
            )
            raise NotFoundError("Referral not found")

        referrer_user = await self._identity_store.get_user(link.user_id)
        if referrer_user is None:
            log_event(
                self._logger,
                level="error",
                event="referrer_user_missing",
                message="Referrer user not found for quote with referral",
                quote_id=quote.quote_id,
                referral_slug=link.slug,
            )
            raise NotFoundError("Referrer user not found")
        if not referrer_user.wallet_address:
            raise NotFoundError("Referrer wallet address not found")

        return referral, referrer_user, ReferrerConfig(
            owner=referrer_user.wallet_address,
            fee_bps=quote.referrer_fee_bps,
        )

    async def _build_from_quote(self, quote: Quote, *, user_public_key: str) -> SwapBuildResponse:
        if quote.swap_mode != EXACT_IN:
            raise BadRequestError("Only ExactIn supported for deterministic fee math")
        if quote.total_fee_bps > MAX_BPS:
            raise BadRequestError(f"Total fee of {quote.total_fee_bps} bps exceeds {MAX_BPS} bps")

        referral, referrer_user, referrer_config = await self._resolve_referrer(quote)

        request = BuildRequest(
            route=quote.route,
            input_mint=quote.input_mint,
            input_amount=quote.amount,
            user_public_key=user_public_key,
            fee_vault_owner=self._config.fee_vault_public_key,
            fee_vault_keypair=load_keypair(self._fee_vault_secret()),
            treasury_owner=self._config.treasury_public_key,
            total_fee_bps=quote.total_fee_bps,
            referrer=referrer_config,
            dynamic_slippage=quote.dynamic_slippage,
            dynamic_compute_unit_limit=self._config.dynamic_compute_unit_limit,
            fee_side=self._config.fee_side,
            fee_cross_check=self._config.fee_cross_check,
        )
        build = await self._builder.build(request)
        simulation = await self._simulate(build.transaction_base64, quote_id=quote.quote_id)

        return SwapBuildResponse(
            build=build,
            quote=quote,
            referral=referral,
            referrer_user=referrer_user,
            simulation=simulation,
        )

    async def _simulate(self, transaction_base64: str, *, quote_id: str) -> SimulationOutcome | None:
        mode = self._config.simulation_mode
        if mode == "off":
            return None

        transaction = VersionedTransaction.from_bytes(base64.b64decode(transaction_base64))
        if mode == "strict":
            outcome = await self._ledger.simulate(transaction)
        else:
            outcome = await guarded_call(
                lambda: self._ledger.simulate(transaction),
                logger=self._logger,
                event="swap_simulation_unavailable",
                message="Swap simulation could not be run; returning transaction anyway",
                quote_id=quote_id,
            )
            if outcome is None:
                return None

        if not outcome.ok:
            log_event(
                self._logger,
                level="error" if mode == "strict" else "warning",
                event="swap_simulation_failed",
                message="Swap transaction failed simulation",
                quote_id=quote_id,
                simulation_mode=mode,
                error=outcome.error,
                logs=outcome.logs[-20:],
            )
            if mode == "strict":
                raise SimulationFailedError(
                    "Swap transaction failed simulation",
                    details={"error": outcome.error},
                )
        return outcome
