from __future__ import annotations

import logging
from typing import Any, Awaitable, Sequence, TypeVar

from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solana.rpc.core import RPCException
from solders.account import Account
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from feeswap.common import UpstreamError, log_event, with_timeout

from .types import SimulationOutcome

T = TypeVar("T")

MAX_MULTIPLE_ACCOUNTS = 100


class LedgerClient:
    """Thin async wrapper over the Solana JSON-RPC client.

    Every call is bounded by ``timeout_seconds`` and transport failures surface
    as ``UpstreamError``. Nothing is retried here.
    """

    def __init__(
        self,
        *,
        rpc_url: str,
        logger: logging.Logger,
        commitment: str = "confirmed",
        timeout_seconds: float = 10.0,
        client: AsyncClient | None = None,
    ) -> None:
        self._logger = logger
        self._commitment = Commitment(commitment)
        self._timeout_seconds = timeout_seconds
        self._client = client or AsyncClient(rpc_url, commitment=self._commitment, timeout=timeout_seconds)

    async def close(self) -> None:
        await self._client.close()

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await with_timeout(
                awaitable,
                timeout_seconds=self._timeout_seconds,
                service="solana_rpc",
                operation=operation,
            )
        except (SolanaRpcException, RPCException) as error:
            log_event(
                self._logger,
                level="warning",
                event="rpc_call_failed",
                message="Solana RPC call failed",
                operation=operation,
                error=str(error),
            )
            raise UpstreamError(
                f"Solana RPC {operation} failed: {error}",
                service="solana_rpc",
                retriable=isinstance(error, SolanaRpcException),
            ) from error

    async def get_account(self, address: Pubkey) -> Account | None:
        response = await self._call(
            "getAccountInfo",
            self._client.get_account_info(address, commitment=self._commitment),
        )
        return response.value

    async def get_multiple_accounts(self, addresses: Sequence[Pubkey]) -> list[Account | None]:
        accounts: list[Account | None] = []
        for start in range(0, len(addresses), MAX_MULTIPLE_ACCOUNTS):
            chunk = list(addresses[start : start + MAX_MULTIPLE_ACCOUNTS])
            response = await self._call(
                "getMultipleAccounts",
                self._client.get_multiple_accounts(chunk, commitment=self._commitment),
            )
            accounts.extend(response.value)
        return accounts

    async def get_latest_blockhash(self) -> tuple[Hash, int]:
        response = await self._call(
            "getLatestBlockhash",
            self._client.get_latest_blockhash(commitment=self._commitment),
        )
        value = response.value
        return value.blockhash, int(value.last_valid_block_height)

    async def simulate(self, transaction: VersionedTransaction) -> SimulationOutcome:
        response = await self._call(
            "simulateTransaction",
            self._client.simulate_transaction(
                transaction,
                sig_verify=False,
                commitment=self._commitment,
            ),
        )
        value: Any = response.value
        error = value.err
        return SimulationOutcome(
            ok=error is None,
            error=None if error is None else str(error),
            logs=list(value.logs or []),
            units_consumed=value.units_consumed,
        )
