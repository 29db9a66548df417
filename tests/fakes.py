from __future__ import annotations

import base64
import itertools
from typing import Any
from unittest.mock import AsyncMock

from solders.account import Account
from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction
from spl.token.constants import TOKEN_PROGRAM_ID

from feeswap.swaps.types import AggregatorInstructions, Quote, Referral, SimulationOutcome, UserRecord

SWAP_PROGRAM = Pubkey.new_unique()
COMPUTE_BUDGET_PROGRAM = Pubkey.from_string("ComputeBudget111111111111111111111111111111")


def mint_account(*, decimals: int = 6, initialized: bool = True, owner: Pubkey = TOKEN_PROGRAM_ID) -> Account:
    data = bytearray(82)
    data[44] = decimals
    data[45] = 1 if initialized else 0
    return Account(lamports=1_461_600, data=bytes(data), owner=owner)


def token_account() -> Account:
    return Account(lamports=2_039_280, data=bytes(165), owner=TOKEN_PROGRAM_ID)


def make_route(
    *,
    input_mint: Pubkey,
    output_mint: Pubkey,
    in_amount: int,
    platform_fee: dict[str, Any] | None = None,
    swap_mode: str = "ExactIn",
) -> dict[str, Any]:
    route: dict[str, Any] = {
        "inputMint": str(input_mint),
        "outputMint": str(output_mint),
        "inAmount": str(in_amount),
        "outAmount": "123456",
        "otherAmountThreshold": "122839",
        "swapMode": swap_mode,
        "slippageBps": 50,
        "routePlan": [{"swapInfo": {"label": "Whirlpool"}}],
    }
    if platform_fee is not None:
        route["platformFee"] = platform_fee
    return route


def make_aggregator_instructions(
    user: Pubkey,
    *,
    with_cleanup: bool = True,
    lookup_tables: list[str] | None = None,
) -> AggregatorInstructions:
    return AggregatorInstructions(
        compute_budget=[Instruction(COMPUTE_BUDGET_PROGRAM, bytes([2, 0, 0, 4, 0]), [])],
        setup=[Instruction(SWAP_PROGRAM, b"setup", [AccountMeta(user, True, True)])],
        swap=Instruction(SWAP_PROGRAM, b"swap", [AccountMeta(user, True, True)]),
        cleanup=Instruction(SWAP_PROGRAM, b"cleanup", [AccountMeta(user, True, True)]) if with_cleanup else None,
        lookup_table_addresses=lookup_tables or [],
        raw={"swapInstruction": {"programId": str(SWAP_PROGRAM)}},
    )


def unsigned_transaction_base64(payer: Pubkey) -> str:
    message = MessageV0.try_compile(
        payer,
        [Instruction(SWAP_PROGRAM, b"swap", [AccountMeta(payer, True, True)])],
        [],
        Hash.new_unique(),
    )
    transaction = VersionedTransaction.populate(message, [Signature.default()])
    return base64.b64encode(bytes(transaction)).decode("ascii")


class FakeLedger:
    def __init__(self, accounts: dict[Pubkey, Account] | None = None) -> None:
        self.accounts = dict(accounts or {})
        self.account_reads: list[Pubkey] = []
        self.multiple_reads: list[list[Pubkey]] = []
        self.simulate = AsyncMock(return_value=SimulationOutcome(ok=True, error=None, logs=[]))

    async def get_account(self, address: Pubkey) -> Account | None:
        self.account_reads.append(address)
        return self.accounts.get(address)

    async def get_multiple_accounts(self, addresses: list[Pubkey]) -> list[Account | None]:
        self.multiple_reads.append(list(addresses))
        return [self.accounts.get(address) for address in addresses]

    async def get_latest_blockhash(self) -> tuple[Hash, int]:
        return Hash.new_unique(), 250_000_000

    async def close(self) -> None:
        return None


class InMemoryStore:
    """Quote and identity store keyed like the Firestore layout."""

    def __init__(self) -> None:
        self.quotes: dict[str, Quote] = {}
        self.users: dict[str, UserRecord] = {}
        self.referrals: dict[tuple[str, str], Referral] = {}
        self._ids = itertools.count(1)

    def new_quote_id(self) -> str:
        return f"quote-{next(self._ids)}"

    def new_referral_id(self, user_id: str) -> str:
        return f"ref-{next(self._ids)}"

    async def create_quote(self, quote: Quote) -> Quote:
        self.quotes[quote.quote_id] = quote
        return quote

    async def get_quote(self, quote_id: str) -> Quote | None:
        return self.quotes.get(quote_id)

    async def get_user(self, user_id: str) -> UserRecord | None:
        return self.users.get(user_id)

    async def get_referral(self, user_id: str, referral_id: str) -> Referral | None:
        return self.referrals.get((user_id, referral_id))

    async def get_referral_by_slug(self, slug: str) -> Referral | None:
        for referral in self.referrals.values():
            if referral.slug == slug and referral.deleted_at is None:
                return referral
        return None

    async def count_referrals(self, user_id: str) -> int:
        return sum(1 for owner, _ in self.referrals if owner == user_id)

    async def create_referral(self, referral: Referral) -> Referral:
        self.referrals[(referral.user_id, referral.referral_id)] = referral
        return referral

    def add_referral(self, referral: Referral) -> Referral:
        self.referrals[(referral.user_id, referral.referral_id)] = referral
        return referral
