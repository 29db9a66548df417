from __future__ import annotations

import logging
import unittest

from solders.keypair import Keypair
from solders.pubkey import Pubkey
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID
from spl.token.instructions import get_associated_token_address

from feeswap.common import InternalError, NotFoundError, ValidationError
from feeswap.swaps.accounts import AccountResolver

from tests.fakes import FakeLedger, mint_account, token_account


class AccountResolverTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.mint = Pubkey.new_unique()
        self.owner = Keypair().pubkey()
        self.payer = Keypair().pubkey()
        self.ledger = FakeLedger({self.mint: mint_account(decimals=9)})
        self.resolver = AccountResolver(ledger=self.ledger, logger=logging.getLogger("test.accounts"))

    async def test_load_mint_reads_decimals_and_program(self) -> None:
        info = await self.resolver.load_mint(self.mint)

        self.assertEqual(info.decimals, 9)
        self.assertEqual(info.token_program, TOKEN_PROGRAM_ID)

    async def test_load_mint_rejects_missing_and_foreign_accounts(self) -> None:
        with self.assertRaises(NotFoundError):
            await self.resolver.load_mint(Pubkey.new_unique())

        foreign = Pubkey.new_unique()
        self.ledger.accounts[foreign] = mint_account(owner=Pubkey.new_unique())
        with self.assertRaises(ValidationError):
            await self.resolver.load_mint(foreign)

        uninitialized = Pubkey.new_unique()
        self.ledger.accounts[uninitialized] = mint_account(initialized=False)
        with self.assertRaises(ValidationError):
            await self.resolver.load_mint(uninitialized)

    async def test_missing_account_gets_idempotent_create_paid_by_user(self) -> None:
        mint = await self.resolver.load_mint(self.mint)

        resolution = await self.resolver.resolve(role="treasury", owner=str(self.owner), mint=mint, payer=self.payer)

        self.assertTrue(resolution.needs_creation)
        create = resolution.create_instruction
        assert create is not None
        self.assertEqual(create.program_id, ASSOCIATED_TOKEN_PROGRAM_ID)
        self.assertEqual(bytes(create.data), bytes([1]))
        self.assertEqual(create.accounts[0].pubkey, self.payer)
        self.assertTrue(create.accounts[0].is_signer)
        self.assertEqual(create.accounts[1].pubkey, resolution.address)
        self.assertEqual(create.accounts[2].pubkey, self.owner)

    async def test_existing_account_has_no_create_instruction(self) -> None:
        mint = await self.resolver.load_mint(self.mint)
        address = get_associated_token_address(self.owner, self.mint)
        self.ledger.accounts[address] = token_account()

        resolution = await self.resolver.resolve(role="referrer", owner=self.owner, mint=mint, payer=self.payer)

        self.assertEqual(resolution.address, address)
        self.assertFalse(resolution.needs_creation)

    async def test_token_2022_mint_uses_its_program_for_address_and_create(self) -> None:
        mint_key = Pubkey.new_unique()
        self.ledger.accounts[mint_key] = mint_account(decimals=6, owner=TOKEN_2022_PROGRAM_ID)
        mint = await self.resolver.load_mint(mint_key)

        resolution = await self.resolver.resolve(role="fee_vault", owner=self.owner, mint=mint, payer=self.payer)

        self.assertEqual(mint.token_program, TOKEN_2022_PROGRAM_ID)
        self.assertEqual(resolution.address, get_associated_token_address(self.owner, mint_key, TOKEN_2022_PROGRAM_ID))
        self.assertNotEqual(resolution.address, get_associated_token_address(self.owner, mint_key))
        create = resolution.create_instruction
        assert create is not None
        self.assertEqual(create.accounts[5].pubkey, TOKEN_2022_PROGRAM_ID)

    async def test_off_curve_owner_is_resolved(self) -> None:
        program_owned, _ = Pubkey.find_program_address([b"vault"], Pubkey.new_unique())
        mint = await self.resolver.load_mint(self.mint)

        resolution = await self.resolver.resolve(role="fee_vault", owner=program_owned, mint=mint, payer=self.payer)

        self.assertEqual(resolution.owner, program_owned)
        self.assertTrue(resolution.needs_creation)

    async def test_unresolvable_owner_names_the_role(self) -> None:
        mint = await self.resolver.load_mint(self.mint)

        with self.assertRaisesRegex(InternalError, "referrer"):
            await self.resolver.resolve(role="referrer", owner=None, mint=mint, payer=self.payer)
        with self.assertRaisesRegex(InternalError, "treasury"):
            await self.resolver.resolve(role="treasury", owner="not-a-key", mint=mint, payer=self.payer)


if __name__ == "__main__":
    unittest.main()
