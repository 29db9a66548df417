from __future__ import annotations

import asyncio
import contextlib
import logging
import signal

from aiohttp import web
from dotenv import load_dotenv

from feeswap.api import ApiServices, StaticTokenVerifier, create_app
from feeswap.common import guarded_call, log_event
from feeswap.referrals import ReferralService
from feeswap.runtime import AppSettings, setup_logger
from feeswap.storage import StorageGateway, StorageSettings
from feeswap.swaps import (
    AtomicSwapBuilder,
    JupiterClient,
    LedgerClient,
    SwapService,
    SwapServiceConfig,
    load_keypair,
)
from feeswap.swaps.accounts import parse_pubkey
from feeswap.swaps.assembler import check_signing_authority


def check_fee_vault_key(app_settings: AppSettings) -> None:
    keypair = load_keypair(app_settings.fee_vault_private_key)
    check_signing_authority(
        keypair,
        parse_pubkey(app_settings.fee_vault_public_key, name="FEE_VAULT_PUBLIC_KEY"),
    )


async def close_clients(
    logger: logging.Logger,
    *,
    runner: web.AppRunner,
    aggregator: JupiterClient,
    ledger: LedgerClient,
    storage: StorageGateway,
) -> None:
    await guarded_call(runner.cleanup, logger=logger, event="http_close_failed", message="HTTP server cleanup failed")
    await guarded_call(aggregator.close, logger=logger, event="aggregator_close_failed", message="Aggregator close failed")
    await guarded_call(ledger.close, logger=logger, event="ledger_close_failed", message="Ledger client close failed")
    await guarded_call(storage.close, logger=logger, event="storage_close_failed", message="Storage close failed")


async def main() -> None:
    load_dotenv()

    app_settings = AppSettings.from_env()
    logger = setup_logger(app_settings.log_level)
    app_settings.validate()
    check_fee_vault_key(app_settings)
    storage_settings = StorageSettings.from_env()

    storage = StorageGateway(storage_settings, logger)
    aggregator = JupiterClient(
        logger=logger,
        api_base_url=app_settings.jupiter_api_base,
        api_key=app_settings.jupiter_api_key,
        timeout_seconds=app_settings.http_timeout_seconds,
    )
    ledger = LedgerClient(
        rpc_url=app_settings.solana_rpc_url,
        logger=logger,
        commitment=app_settings.rpc_commitment,
        timeout_seconds=app_settings.rpc_timeout_seconds,
    )
    builder = AtomicSwapBuilder(aggregator=aggregator, ledger=ledger, logger=logger)
    swap_service = SwapService(
        config=SwapServiceConfig(
            fee_vault_public_key=app_settings.fee_vault_public_key,
            treasury_public_key=app_settings.platform_treasury_public_key,
            default_platform_fee_bps=app_settings.default_platform_fee_bps,
            quote_ttl_seconds=app_settings.quote_ttl_seconds,
            fee_side=app_settings.fee_side,
            fee_cross_check=app_settings.fee_cross_check,
            simulation_mode=app_settings.simulation_mode,
            dynamic_compute_unit_limit=app_settings.dynamic_compute_unit_limit,
        ),
        quote_store=storage,
        identity_store=storage,
        aggregator=aggregator,
        builder=builder,
        ledger=ledger,
        fee_vault_secret=lambda: app_settings.fee_vault_private_key,
        logger=logger,
    )
    referral_service = ReferralService(
        store=storage,
        logger=logger,
        platform_fee_bps=app_settings.default_platform_fee_bps,
    )

    app = create_app(
        services=ApiServices(swaps=swap_service, referrals=referral_service, healthcheck=storage.healthcheck),
        verifier=StaticTokenVerifier.from_entries(app_settings.api_auth_tokens),
        logger=logger,
    )
    runner = web.AppRunner(app)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def request_shutdown(sig: signal.Signals) -> None:
        logger.info(
            "Shutdown signal received",
            extra={"event": "shutdown_signal_received", "signal": sig.name},
        )
        stop_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, request_shutdown, sig)

    try:
        await storage.connect()
        await aggregator.connect()
        await runner.setup()
        site = web.TCPSite(runner, app_settings.api_host, app_settings.api_port)
        await site.start()
        log_event(
            logger,
            level="info",
            event="service_started",
            message="Swap service is listening",
            host=app_settings.api_host,
            port=app_settings.api_port,
            fee_side=app_settings.fee_side,
            simulation_mode=app_settings.simulation_mode,
            default_platform_fee_bps=app_settings.default_platform_fee_bps,
        )
        await stop_event.wait()
    finally:
        await close_clients(logger, runner=runner, aggregator=aggregator, ledger=ledger, storage=storage)
        logger.info("Shutdown completed", extra={"event": "shutdown_completed"})


if __name__ == "__main__":
    asyncio.run(main())
