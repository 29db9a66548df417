from __future__ import annotations

import logging
from typing import Iterable

from solders.address_lookup_table_account import AddressLookupTable, AddressLookupTableAccount
from solders.pubkey import Pubkey

from feeswap.common import log_event

from .ledger import LedgerClient


class LookupTableLoader:
    """Resolves address lookup tables referenced by the aggregator.

    Tables are an optimization only: the instructions carry full account keys,
    so anything missing or undecodable is dropped instead of failing the build.
    """

    def __init__(self, *, ledger: LedgerClient, logger: logging.Logger) -> None:
        self._ledger = ledger
        self._logger = logger

    def _parse_keys(self, keys: Iterable[str]) -> list[Pubkey]:
        parsed: list[Pubkey] = []
        for raw_key in keys:
            key = str(raw_key or "").strip()
            if not key:
                continue
            try:
                pubkey = Pubkey.from_string(key)
            except ValueError:
                log_event(
                    self._logger,
                    level="warning",
                    event="lookup_table_key_invalid",
                    message="Skipping malformed lookup table address",
                    lookup_table=key,
                )
                continue
            if pubkey not in parsed:
                parsed.append(pubkey)
        return parsed

    async def load(self, keys: Iterable[str]) -> list[AddressLookupTableAccount]:
        pubkeys = self._parse_keys(keys)
        if not pubkeys:
            return []

        accounts = await self._ledger.get_multiple_accounts(pubkeys)
        tables: list[AddressLookupTableAccount] = []
        for pubkey, account in zip(pubkeys, accounts):
            if account is None:
                log_event(
                    self._logger,
                    level="warning",
                    event="lookup_table_missing",
                    message="Lookup table account was not found; continuing without it",
                    lookup_table=str(pubkey),
                )
                continue
            try:
                state = AddressLookupTable.deserialize(bytes(account.data))
            except Exception as error:  # solders raises its own bincode error types
                log_event(
                    self._logger,
                    level="warning",
                    event="lookup_table_malformed",
                    message="Lookup table account could not be decoded; continuing without it",
                    lookup_table=str(pubkey),
                    error=str(error),
                )
                continue
            tables.append(AddressLookupTableAccount(key=pubkey, addresses=list(state.addresses)))

        log_event(
            self._logger,
            level="debug",
            event="lookup_tables_loaded",
            message="Loaded address lookup tables",
            requested_count=len(pubkeys),
            loaded_count=len(tables),
        )
        return tables
