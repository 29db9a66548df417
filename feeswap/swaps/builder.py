from __future__ import annotations

import asyncio
import logging

from solders.pubkey import Pubkey

from feeswap.common import BadRequestError, InternalError, ValidationError, log_event

from . import fee_policy
from .accounts import AccountResolver, parse_pubkey
from .aggregator import JupiterClient
from .assembler import AssembledTransaction, TransactionAssembler, check_signing_authority
from .composer import build_fee_leg, compose_instructions, transfer_authorities
from .ledger import LedgerClient
from .lookup_tables import LookupTableLoader
from .types import EXACT_IN, AtaResolution, BuildRequest, BuildResult, FeeLeg, MintInfo, parse_atoms


class AtomicSwapBuilder:
    """Builds one partially signed transaction: swap plus fee distribution.

    Order: setup -> (create fee vault ATA) -> swap -> (create referrer ATA) ->
    referrer transfer -> (create treasury ATA) -> treasury transfer -> cleanup.
    The server signs only as the fee vault authority; the user signs and sends.
    """

    def __init__(
        self,
        *,
        aggregator: JupiterClient,
        ledger: LedgerClient,
        logger: logging.Logger,
        resolver: AccountResolver | None = None,
        lookup_loader: LookupTableLoader | None = None,
        assembler: TransactionAssembler | None = None,
    ) -> None:
        self._aggregator = aggregator
        self._ledger = ledger
        self._logger = logger
        self._resolver = resolver or AccountResolver(ledger=ledger, logger=logger)
        self._lookup_loader = lookup_loader or LookupTableLoader(ledger=ledger, logger=logger)
        self._assembler = assembler or TransactionAssembler(logger=logger)

    @staticmethod
    def _validate_route(request: BuildRequest) -> None:
        route = request.route
        if route.get("swapMode") != EXACT_IN:
            raise BadRequestError("Only ExactIn supported for deterministic fee math")
        if route.get("inputMint") != request.input_mint:
            raise ValidationError("inputMint mismatch")
        if parse_atoms(str(route.get("inAmount") or ""), name="inAmount") != request.input_amount:
            raise ValidationError("inAmount mismatch")

    async def _resolve_leg_account(
        self,
        *,
        role: str,
        owner: str | None,
        needed: bool,
        mint: MintInfo,
        request_payer: Pubkey,
    ) -> AtaResolution | None:
        if not needed:
            return None
        return await self._resolver.resolve(role=role, owner=owner, mint=mint, payer=request_payer)

    async def build(self, request: BuildRequest) -> BuildResult:
        # Everything that can be rejected without the network is checked first.
        self._validate_route(request)
        fee_vault_owner = parse_pubkey(request.fee_vault_owner, name="fee_vault_owner")
        check_signing_authority(request.fee_vault_keypair, fee_vault_owner)
        user = parse_pubkey(request.user_public_key, name="user_public_key")

        basis_atoms = fee_policy.fee_basis_atoms(request.route, request.fee_side)
        fee_split = fee_policy.split(basis_atoms, request.total_fee_bps, request.referrer_fee_bps)
        if request.fee_cross_check:
            fee_policy.cross_check_platform_fee(
                request.route,
                total_fee_bps=request.total_fee_bps,
                total_fee_atoms=fee_split.total_atoms,
                fee_side=request.fee_side,
            )

        mint = await self._resolver.load_mint(
            parse_pubkey(fee_policy.fee_mint(request.route, request.fee_side), name="fee mint")
        )

        fee_vault, referrer_account, treasury_account = await asyncio.gather(
            self._resolver.resolve(role="fee_vault", owner=fee_vault_owner, mint=mint, payer=user),
            self._resolve_leg_account(
                role="referrer",
                owner=request.referrer.owner if request.referrer else None,
                needed=fee_split.referrer_atoms > 0,
                mint=mint,
                request_payer=user,
            ),
            self._resolve_leg_account(
                role="treasury",
                owner=request.treasury_owner,
                needed=fee_split.treasury_atoms > 0,
                mint=mint,
                request_payer=user,
            ),
        )

        fee_legs: list[FeeLeg] = []
        for role, account, amount in (
            ("referrer", referrer_account, fee_split.referrer_atoms),
            ("treasury", treasury_account, fee_split.treasury_atoms),
        ):
            if amount <= 0:
                continue
            if account is None:
                raise InternalError(f"{role} account is unresolved but a transfer requires it")
            fee_legs.append(
                build_fee_leg(
                    role=role,
                    fee_vault=fee_vault,
                    destination=account,
                    mint=mint,
                    amount_atoms=amount,
                )
            )

        # Output-side fees are sized from the quoted minimum output, which only
        # stays binding if slippage is not recomputed at build time.
        dynamic_slippage = request.dynamic_slippage and request.fee_side != "output"
        if dynamic_slippage != request.dynamic_slippage:
            log_event(
                self._logger,
                level="info",
                event="dynamic_slippage_disabled",
                message="Dynamic slippage disabled for output-side fee",
                fee_side=request.fee_side,
            )

        aggregator_instructions = await self._aggregator.swap_instructions(
            route=request.route,
            user_public_key=str(user),
            fee_account=str(fee_vault.address),
            dynamic_slippage=dynamic_slippage,
            dynamic_compute_unit_limit=request.dynamic_compute_unit_limit,
        )

        composed = compose_instructions(
            aggregator=aggregator_instructions,
            fee_vault=fee_vault,
            fee_legs=fee_legs,
        )
        if fee_legs and transfer_authorities(composed) != {fee_vault_owner}:
            raise InternalError("Fee transfers must be authorized by the fee vault owner")

        lookup_tables = await self._lookup_loader.load(aggregator_instructions.lookup_table_addresses)
        blockhash, last_valid_block_height = await self._ledger.get_latest_blockhash()

        assembled: AssembledTransaction = self._assembler.assemble(
            instructions=[item.instruction for item in composed],
            lookup_tables=lookup_tables,
            payer=user,
            blockhash=blockhash,
            last_valid_block_height=last_valid_block_height,
            fee_vault_owner=fee_vault_owner,
            authority=request.fee_vault_keypair if fee_legs else None,
        )

        log_event(
            self._logger,
            level="info",
            event="atomic_swap_built",
            message="Atomic swap transaction with fee split was built",
            fee_side=request.fee_side,
            total_fee_bps=request.total_fee_bps,
            referrer_fee_bps=request.referrer_fee_bps,
            referrer_atoms=str(fee_split.referrer_atoms),
            treasury_atoms=str(fee_split.treasury_atoms),
            fee_vault_created=fee_vault.needs_creation,
            transfer_count=len(fee_legs),
            roles=[item.role for item in composed],
        )
        return BuildResult(
            transaction_base64=assembled.transaction_base64,
            last_valid_block_height=assembled.last_valid_block_height,
            aggregator_instructions=aggregator_instructions.raw,
            fee_split=fee_split,
            instruction_roles=[item.role for item in composed],
            signed_by_server=assembled.signed_by_server,
        )
