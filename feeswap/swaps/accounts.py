from __future__ import annotations

import logging

from solders.pubkey import Pubkey
from spl.token.constants import TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID
from spl.token.instructions import create_idempotent_associated_token_account, get_associated_token_address

from feeswap.common import InternalError, NotFoundError, ValidationError, log_event

from .ledger import LedgerClient
from .types import AtaResolution, MintInfo

SUPPORTED_TOKEN_PROGRAMS = (TOKEN_PROGRAM_ID, TOKEN_2022_PROGRAM_ID)

# spl-token mint layout: COption<Pubkey> authority, u64 supply, u8 decimals, bool initialized
MINT_DECIMALS_OFFSET = 44
MINT_INITIALIZED_OFFSET = 45
MINT_BASE_SIZE = 82


def parse_pubkey(value: str, *, name: str) -> Pubkey:
    try:
        return Pubkey.from_string(str(value).strip())
    except ValueError as error:
        raise ValidationError(f"{name} is not a valid public key") from error


class AccountResolver:
    def __init__(self, *, ledger: LedgerClient, logger: logging.Logger) -> None:
        self._ledger = ledger
        self._logger = logger

    async def load_mint(self, mint: Pubkey) -> MintInfo:
        account = await self._ledger.get_account(mint)
        if account is None:
            raise NotFoundError(f"Mint {mint} was not found on-chain")
        if account.owner not in SUPPORTED_TOKEN_PROGRAMS:
            raise ValidationError(f"Mint {mint} is not owned by a supported token program")
        data = bytes(account.data)
        if len(data) < MINT_BASE_SIZE or not data[MINT_INITIALIZED_OFFSET]:
            raise ValidationError(f"Account {mint} is not an initialized token mint")
        return MintInfo(address=mint, decimals=data[MINT_DECIMALS_OFFSET], token_program=account.owner)

    async def resolve(
        self,
        *,
        role: str,
        owner: Pubkey | str | None,
        mint: MintInfo,
        payer: Pubkey,
    ) -> AtaResolution:
        """Derive the owner's token account and prepare its creation if it does not exist.

        The payer is always the end user; the server never funds account rent.
        """
        if owner is None:
            raise InternalError(f"{role} account could not be resolved: owner is missing")
        try:
            owner_key = owner if isinstance(owner, Pubkey) else Pubkey.from_string(str(owner).strip())
            address = get_associated_token_address(owner_key, mint.address, mint.token_program)
        except ValueError as error:
            raise InternalError(f"{role} account could not be resolved: {error}") from error

        account = await self._ledger.get_account(address)
        create_instruction = None
        if account is None:
            create_instruction = create_idempotent_associated_token_account(
                payer=payer,
                owner=owner_key,
                mint=mint.address,
                token_program_id=mint.token_program,
            )

        log_event(
            self._logger,
            level="debug",
            event="token_account_resolved",
            message="Resolved associated token account",
            role=role,
            address=str(address),
            needs_creation=create_instruction is not None,
        )
        return AtaResolution(
            role=role,
            owner=owner_key,
            address=address,
            create_instruction=create_instruction,
        )
