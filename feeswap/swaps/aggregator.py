from __future__ import annotations

import asyncio
import base64
import binascii
import json
import logging
from typing import Any

import aiohttp
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from feeswap.common import UpstreamError, log_event

from .types import EXACT_IN, AggregatorInstructions

SERVICE = "jupiter"


def _malformed(message: str) -> UpstreamError:
    return UpstreamError(message, service=SERVICE)


def decode_instruction(raw: Any, *, section: str) -> Instruction:
    """Decode one aggregator instruction without interpreting it.

    Only the program id, account metas and data bytes are read; the swap
    instruction stays an opaque payload.
    """
    if not isinstance(raw, dict):
        raise _malformed(f"Invalid instruction payload in {section}")

    program_id = str(raw.get("programId") or "").strip()
    if not program_id:
        raise _malformed(f"Instruction programId is missing in {section}")

    raw_accounts = raw.get("accounts")
    if not isinstance(raw_accounts, list):
        raise _malformed(f"Instruction accounts are missing in {section}")

    metas: list[AccountMeta] = []
    for idx, account in enumerate(raw_accounts):
        if not isinstance(account, dict):
            raise _malformed(f"Instruction account[{idx}] is invalid in {section}")
        pubkey = str(account.get("pubkey") or "").strip()
        if not pubkey:
            raise _malformed(f"Instruction account[{idx}] pubkey is missing in {section}")
        try:
            parsed_pubkey = Pubkey.from_string(pubkey)
        except ValueError as error:
            raise _malformed(f"Instruction account[{idx}] pubkey is invalid in {section}") from error
        metas.append(
            AccountMeta(
                pubkey=parsed_pubkey,
                is_signer=bool(account.get("isSigner")),
                is_writable=bool(account.get("isWritable")),
            )
        )

    encoded_data = str(raw.get("data") or "")
    try:
        data = base64.b64decode(encoded_data, validate=True)
        program = Pubkey.from_string(program_id)
    except (binascii.Error, ValueError) as error:
        raise _malformed(f"Instruction decode failed in {section}: {error}") from error

    return Instruction(program, data, metas)


def decode_instruction_list(raw: Any, *, section: str) -> list[Instruction]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise _malformed(f"Instruction list is invalid in {section}")
    return [decode_instruction(item, section=f"{section}[{index}]") for index, item in enumerate(raw)]


def parse_swap_instructions(payload: dict[str, Any]) -> AggregatorInstructions:
    swap_instruction = payload.get("swapInstruction")
    if not isinstance(swap_instruction, dict):
        raise _malformed("swapInstruction is missing in swap-instructions response")

    token_ledger = payload.get("tokenLedgerInstruction")
    cleanup = payload.get("cleanupInstruction")

    lookup_addresses: list[str] = []
    raw_lookup_addresses = payload.get("addressLookupTableAddresses")
    if isinstance(raw_lookup_addresses, list):
        for raw_address in raw_lookup_addresses:
            address = str(raw_address or "").strip()
            if address and address not in lookup_addresses:
                lookup_addresses.append(address)

    return AggregatorInstructions(
        compute_budget=decode_instruction_list(
            payload.get("computeBudgetInstructions"),
            section="computeBudgetInstructions",
        ),
        token_ledger=(
            decode_instruction(token_ledger, section="tokenLedgerInstruction") if token_ledger else None
        ),
        other=decode_instruction_list(payload.get("otherInstructions"), section="otherInstructions"),
        setup=decode_instruction_list(payload.get("setupInstructions"), section="setupInstructions"),
        swap=decode_instruction(swap_instruction, section="swapInstruction"),
        cleanup=decode_instruction(cleanup, section="cleanupInstruction") if cleanup else None,
        lookup_table_addresses=lookup_addresses,
        raw=payload,
    )


def _error_payload_to_message(error_payload: Any) -> str:
    if isinstance(error_payload, dict):
        return str(error_payload.get("message") or error_payload.get("error") or error_payload)
    return str(error_payload)


class JupiterClient:
    def __init__(
        self,
        *,
        logger: logging.Logger,
        api_base_url: str = "https://lite-api.jup.ag/swap/v1",
        api_key: str = "",
        timeout_seconds: float = 10.0,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._logger = logger
        self._api_base_url = api_base_url.rstrip("/")
        self._api_key = api_key
        self._timeout_seconds = timeout_seconds
        self._session = session

    @property
    def quote_url(self) -> str:
        return f"{self._api_base_url}/quote"

    @property
    def swap_instructions_url(self) -> str:
        return f"{self._api_base_url}/swap-instructions"

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["x-api-key"] = self._api_key
        return headers

    async def connect(self) -> None:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self._timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def _request(
        self,
        *,
        method: str,
        url: str,
        operation: str,
        params: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        if self._session is None:
            await self.connect()
        if self._session is None:
            raise RuntimeError("Jupiter HTTP session is not initialized.")

        try:
            async with self._session.request(
                method,
                url,
                params=params,
                json=json_body,
                headers=self._headers(),
            ) as response:
                status_code = response.status
                raw_text = await response.text()
        except asyncio.TimeoutError as error:
            raise UpstreamError(
                f"Jupiter {operation} timed out after {self._timeout_seconds:g}s",
                service=SERVICE,
                retriable=True,
            ) from error
        except aiohttp.ClientError as error:
            raise UpstreamError(
                f"Jupiter {operation} network error: {error}",
                service=SERVICE,
                retriable=True,
            ) from error

        parsed: Any = None
        try:
            parsed = json.loads(raw_text) if raw_text else {}
        except json.JSONDecodeError:
            parsed = {"raw_text": raw_text[:200]}

        if not isinstance(parsed, dict):
            raise _malformed(f"Unexpected Jupiter {operation} response type")

        if status_code >= 400 or parsed.get("error"):
            error_message = _error_payload_to_message(parsed.get("error") or parsed)
            log_event(
                self._logger,
                level="warning",
                event="aggregator_request_failed",
                message="Jupiter request failed",
                operation=operation,
                status=status_code,
                error=error_message,
            )
            raise UpstreamError(
                f"Jupiter {operation} failed: status={status_code} error={error_message}",
                service=SERVICE,
                status=status_code,
                retriable=status_code == 429 or status_code >= 500,
            )

        return parsed

    async def quote(
        self,
        *,
        input_mint: str,
        output_mint: str,
        amount: int,
        slippage_bps: int,
        platform_fee_bps: int,
        dynamic_slippage: bool,
        swap_mode: str = EXACT_IN,
    ) -> dict[str, Any]:
        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(amount),
            "slippageBps": str(slippage_bps),
            "platformFeeBps": str(platform_fee_bps),
            "swapMode": swap_mode,
            "dynamicSlippage": "true" if dynamic_slippage else "false",
        }
        route = await self._request(method="GET", url=self.quote_url, operation="quote", params=params)
        if not route.get("inAmount") or not route.get("inputMint"):
            raise _malformed("Jupiter quote response is missing inAmount/inputMint")
        log_event(
            self._logger,
            level="info",
            event="aggregator_quote_fetched",
            message="Fetched aggregator quote",
            input_mint=input_mint,
            output_mint=output_mint,
            amount=str(amount),
            out_amount=str(route.get("outAmount") or ""),
            route_hop_count=len(route.get("routePlan") or []),
        )
        return route

    async def swap_instructions(
        self,
        *,
        route: dict[str, Any],
        user_public_key: str,
        fee_account: str,
        dynamic_slippage: bool,
        dynamic_compute_unit_limit: bool,
    ) -> AggregatorInstructions:
        body = {
            "quoteResponse": route,
            "userPublicKey": user_public_key,
            "feeAccount": fee_account,
            "dynamicSlippage": dynamic_slippage,
            "dynamicComputeUnitLimit": dynamic_compute_unit_limit,
        }
        payload = await self._request(
            method="POST",
            url=self.swap_instructions_url,
            operation="swap-instructions",
            json_body=body,
        )
        instructions = parse_swap_instructions(payload)
        log_event(
            self._logger,
            level="info",
            event="aggregator_instructions_fetched",
            message="Fetched aggregator swap instructions",
            setup_count=len(instructions.setup),
            compute_budget_count=len(instructions.compute_budget),
            has_cleanup=instructions.cleanup is not None,
            lookup_table_count=len(instructions.lookup_table_addresses),
        )
        return instructions
