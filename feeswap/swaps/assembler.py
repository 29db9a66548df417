from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Sequence

from solders.address_lookup_table_account import AddressLookupTableAccount
from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import MessageV0, to_bytes_versioned
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from feeswap.common import InternalError, log_event

MAX_TRANSACTION_SIZE = 1232


@dataclass(slots=True, frozen=True)
class AssembledTransaction:
    transaction: VersionedTransaction
    transaction_base64: str
    last_valid_block_height: int
    signed_by_server: bool
    size_bytes: int


def check_signing_authority(keypair: Keypair, declared_owner: Pubkey | str) -> Keypair:
    owner = declared_owner if isinstance(declared_owner, Pubkey) else Pubkey.from_string(str(declared_owner))
    if keypair.pubkey() != owner:
        raise InternalError("Fee vault signing key does not match the declared fee vault owner")
    return keypair


class TransactionAssembler:
    def __init__(self, *, logger: logging.Logger) -> None:
        self._logger = logger

    def assemble(
        self,
        *,
        instructions: Sequence[Instruction],
        lookup_tables: Sequence[AddressLookupTableAccount],
        payer: Pubkey,
        blockhash: Hash,
        last_valid_block_height: int,
        fee_vault_owner: Pubkey,
        authority: Keypair | None,
    ) -> AssembledTransaction:
        """Compile a v0 transaction paid by the user and partially sign it.

        ``authority`` is passed only when a fee transfer needs the vault owner's
        signature; otherwise the transaction leaves the server unsigned. The
        payer slot is always left for the user to countersign.
        """
        if authority is not None:
            check_signing_authority(authority, fee_vault_owner)

        message = MessageV0.try_compile(payer, list(instructions), list(lookup_tables), blockhash)
        required_signers = list(message.account_keys[: message.header.num_required_signatures])

        if authority is not None and fee_vault_owner not in required_signers:
            raise InternalError("Fee vault owner is not a required signer of the compiled transaction")
        if authority is None and fee_vault_owner in required_signers and fee_vault_owner != payer:
            raise InternalError("Compiled transaction requires the fee vault signature but no fee transfer was emitted")

        message_bytes = to_bytes_versioned(message)
        signatures: list[Signature] = []
        for signer in required_signers:
            if authority is not None and signer == fee_vault_owner:
                signatures.append(authority.sign_message(message_bytes))
            else:
                signatures.append(Signature.default())

        transaction = VersionedTransaction.populate(message, signatures)
        raw = bytes(transaction)
        if len(raw) > MAX_TRANSACTION_SIZE:
            raise InternalError(
                f"Composed swap produced an oversized transaction; size={len(raw)} bytes",
                details={"size_bytes": len(raw), "max_bytes": MAX_TRANSACTION_SIZE},
            )

        log_event(
            self._logger,
            level="info",
            event="swap_transaction_assembled",
            message="Assembled partially signed swap transaction",
            instruction_count=len(instructions),
            lookup_table_count=len(lookup_tables),
            required_signer_count=len(required_signers),
            signed_by_server=authority is not None,
            tx_size_bytes=len(raw),
        )
        return AssembledTransaction(
            transaction=transaction,
            transaction_base64=base64.b64encode(raw).decode("ascii"),
            last_valid_block_height=last_valid_block_height,
            signed_by_server=authority is not None,
            size_bytes=len(raw),
        )
