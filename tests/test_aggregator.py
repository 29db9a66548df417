from __future__ import annotations

import asyncio
import base64
import json
import logging
import unittest
from typing import Any
from unittest.mock import AsyncMock

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from feeswap.common import UpstreamError
from feeswap.swaps.aggregator import JupiterClient, decode_instruction, parse_swap_instructions


def _raw_instruction(program: Pubkey, data: bytes, *accounts: tuple[Pubkey, bool, bool]) -> dict[str, Any]:
    return {
        "programId": str(program),
        "accounts": [
            {"pubkey": str(pubkey), "isSigner": signer, "isWritable": writable}
            for pubkey, signer, writable in accounts
        ],
        "data": base64.b64encode(data).decode("ascii"),
    }


class _FakeResponse:
    def __init__(self, status: int, body: Any) -> None:
        self.status = status
        self._body = body

    async def text(self) -> str:
        return self._body if isinstance(self._body, str) else json.dumps(self._body)

    async def __aenter__(self) -> "_FakeResponse":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        return None


class _FakeSession:
    def __init__(self, response: _FakeResponse | None = None, error: BaseException | None = None) -> None:
        self.response = response
        self.error = error
        self.calls: list[dict[str, Any]] = []

    def request(self, method: str, url: str, **kwargs: Any) -> _FakeResponse:
        self.calls.append({"method": method, "url": url, **kwargs})
        if self.error is not None:
            raise self.error
        assert self.response is not None
        return self.response

    async def close(self) -> None:
        return None


class DecodeInstructionTests(unittest.TestCase):
    def test_decodes_accounts_and_data(self) -> None:
        program = Pubkey.new_unique()
        user = Keypair().pubkey()

        instruction = decode_instruction(_raw_instruction(program, b"\x01\x02", (user, True, False)), section="swap")

        self.assertEqual(instruction.program_id, program)
        self.assertEqual(bytes(instruction.data), b"\x01\x02")
        self.assertEqual(instruction.accounts[0].pubkey, user)
        self.assertTrue(instruction.accounts[0].is_signer)
        self.assertFalse(instruction.accounts[0].is_writable)

    def test_malformed_payloads_raise_upstream_error(self) -> None:
        program = str(Pubkey.new_unique())
        for payload in (
            None,
            {"accounts": [], "data": ""},
            {"programId": program, "data": ""},
            {"programId": program, "accounts": [{"pubkey": "bad"}], "data": ""},
            {"programId": program, "accounts": [], "data": "***"},
        ):
            with self.subTest(payload=payload):
                with self.assertRaises(UpstreamError):
                    decode_instruction(payload, section="swapInstruction")

    def test_parse_swap_instructions_keeps_sections(self) -> None:
        program = Pubkey.new_unique()
        table = str(Pubkey.new_unique())
        payload = {
            "computeBudgetInstructions": [_raw_instruction(program, b"cb")],
            "setupInstructions": [_raw_instruction(program, b"setup")],
            "otherInstructions": [_raw_instruction(program, b"tip")],
            "tokenLedgerInstruction": _raw_instruction(program, b"ledger"),
            "swapInstruction": _raw_instruction(program, b"swap"),
            "cleanupInstruction": None,
            "addressLookupTableAddresses": [table, table, ""],
        }

        parsed = parse_swap_instructions(payload)

        self.assertEqual(len(parsed.compute_budget), 1)
        self.assertEqual(len(parsed.other), 1)
        self.assertIsNotNone(parsed.token_ledger)
        self.assertIsNone(parsed.cleanup)
        self.assertEqual(bytes(parsed.swap.data), b"swap")
        self.assertEqual(parsed.lookup_table_addresses, [table])
        self.assertIs(parsed.raw, payload)

    def test_missing_swap_instruction_is_upstream_error(self) -> None:
        with self.assertRaises(UpstreamError):
            parse_swap_instructions({"setupInstructions": []})


class JupiterClientTests(unittest.IsolatedAsyncioTestCase):
    def _client(self, session: _FakeSession) -> JupiterClient:
        return JupiterClient(
            logger=logging.getLogger("test.jupiter"),
            api_base_url="https://lite-api.jup.ag/swap/v1/",
            api_key="secret-key",
            session=session,  # type: ignore[arg-type]
        )

    async def test_quote_sends_total_fee_bps(self) -> None:
        session = _FakeSession(_FakeResponse(200, {"inputMint": "A", "inAmount": "1000", "outAmount": "5"}))
        client = self._client(session)

        route = await client.quote(
            input_mint="A",
            output_mint="B",
            amount=1_000,
            slippage_bps=50,
            platform_fee_bps=120,
            dynamic_slippage=True,
        )

        self.assertEqual(route["inAmount"], "1000")
        call = session.calls[0]
        self.assertEqual(call["url"], "https://lite-api.jup.ag/swap/v1/quote")
        self.assertEqual(call["params"]["platformFeeBps"], "120")
        self.assertEqual(call["params"]["swapMode"], "ExactIn")
        self.assertEqual(call["headers"]["x-api-key"], "secret-key")

    async def test_swap_instructions_posts_fee_account(self) -> None:
        program = Pubkey.new_unique()
        session = _FakeSession(_FakeResponse(200, {"swapInstruction": _raw_instruction(program, b"swap")}))
        client = self._client(session)

        instructions = await client.swap_instructions(
            route={"inAmount": "1000"},
            user_public_key="user",
            fee_account="vault-ata",
            dynamic_slippage=True,
            dynamic_compute_unit_limit=False,
        )

        body = session.calls[0]["json"]
        self.assertEqual(body["feeAccount"], "vault-ata")
        self.assertEqual(body["quoteResponse"], {"inAmount": "1000"})
        self.assertFalse(body["dynamicComputeUnitLimit"])
        self.assertEqual(instructions.swap.program_id, program)

    async def test_http_errors_are_upstream_errors(self) -> None:
        client = self._client(_FakeSession(_FakeResponse(429, {"error": "rate limited"})))
        with self.assertRaises(UpstreamError) as caught:
            await client.quote(
                input_mint="A",
                output_mint="B",
                amount=1,
                slippage_bps=1,
                platform_fee_bps=0,
                dynamic_slippage=False,
            )
        self.assertTrue(caught.exception.retriable)
        self.assertEqual(caught.exception.upstream_status, 429)

        client = self._client(_FakeSession(_FakeResponse(400, {"error": "bad mint"})))
        with self.assertRaises(UpstreamError) as caught:
            await client.quote(
                input_mint="A",
                output_mint="B",
                amount=1,
                slippage_bps=1,
                platform_fee_bps=0,
                dynamic_slippage=False,
            )
        self.assertFalse(caught.exception.retriable)

    async def test_timeout_is_retriable(self) -> None:
        client = self._client(_FakeSession(error=asyncio.TimeoutError()))

        with self.assertRaises(UpstreamError) as caught:
            await client.swap_instructions(
                route={},
                user_public_key="user",
                fee_account="vault",
                dynamic_slippage=True,
                dynamic_compute_unit_limit=True,
            )
        self.assertTrue(caught.exception.retriable)
        self.assertEqual(caught.exception.service, "jupiter")

    async def test_close_releases_session(self) -> None:
        session = _FakeSession(_FakeResponse(200, {}))
        session.close = AsyncMock()  # type: ignore[method-assign]
        client = self._client(session)

        await client.close()

        session.close.assert_awaited_once()


if __name__ == "__main__":
    unittest.main()
