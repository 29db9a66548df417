from __future__ import annotations

from typing import Sequence

from solders.instruction import Instruction
from solders.pubkey import Pubkey
from spl.token.instructions import transfer_checked
from spl.token.models import TransferCheckedParams

from feeswap.common import InternalError

from .types import AggregatorInstructions, AtaResolution, ComposedInstruction, FeeLeg, MintInfo

PRE_SWAP_ROLES = {"compute_budget", "token_ledger", "other", "setup", "fee_vault_create"}


def fee_transfer_instruction(
    *,
    fee_vault: AtaResolution,
    destination: AtaResolution,
    mint: MintInfo,
    amount_atoms: int,
) -> Instruction:
    """TransferChecked out of the fee vault; the vault owner is the authority."""
    return transfer_checked(
        TransferCheckedParams(
            program_id=mint.token_program,
            source=fee_vault.address,
            mint=mint.address,
            dest=destination.address,
            owner=fee_vault.owner,
            amount=amount_atoms,
            decimals=mint.decimals,
        )
    )


def build_fee_leg(
    *,
    role: str,
    fee_vault: AtaResolution,
    destination: AtaResolution,
    mint: MintInfo,
    amount_atoms: int,
) -> FeeLeg:
    if amount_atoms <= 0:
        raise InternalError(f"{role} fee leg requires a positive amount")
    return FeeLeg(
        role=role,  # type: ignore[arg-type]
        account=destination,
        amount_atoms=amount_atoms,
        transfer_instruction=fee_transfer_instruction(
            fee_vault=fee_vault,
            destination=destination,
            mint=mint,
            amount_atoms=amount_atoms,
        ),
    )


def compose_instructions(
    *,
    aggregator: AggregatorInstructions,
    fee_vault: AtaResolution,
    fee_legs: Sequence[FeeLeg],
) -> list[ComposedInstruction]:
    """Merge aggregator and fee-distribution instructions into one ordered list.

    The fee vault must exist before the swap deposits into it; every other
    creation and transfer happens after the swap, and cleanup is always last.
    """
    composed: list[ComposedInstruction] = []
    composed.extend(ComposedInstruction("compute_budget", ix) for ix in aggregator.compute_budget)
    if aggregator.token_ledger is not None:
        composed.append(ComposedInstruction("token_ledger", aggregator.token_ledger))
    composed.extend(ComposedInstruction("other", ix) for ix in aggregator.other)
    composed.extend(ComposedInstruction("setup", ix) for ix in aggregator.setup)
    if fee_vault.create_instruction is not None:
        composed.append(ComposedInstruction("fee_vault_create", fee_vault.create_instruction))

    composed.append(ComposedInstruction("swap", aggregator.swap))

    for leg in sorted(fee_legs, key=lambda item: 0 if item.role == "referrer" else 1):
        if leg.account.create_instruction is not None:
            composed.append(ComposedInstruction(f"{leg.role}_create", leg.account.create_instruction))  # type: ignore[arg-type]
        composed.append(ComposedInstruction(f"{leg.role}_transfer", leg.transfer_instruction))  # type: ignore[arg-type]

    if aggregator.cleanup is not None:
        composed.append(ComposedInstruction("cleanup", aggregator.cleanup))

    check_ordering(composed)
    return composed


def check_ordering(composed: Sequence[ComposedInstruction]) -> None:
    roles = [item.role for item in composed]
    if roles.count("swap") != 1:
        raise InternalError("Composed transaction must contain exactly one swap instruction")
    swap_index = roles.index("swap")

    for index, role in enumerate(roles):
        if index < swap_index and role not in PRE_SWAP_ROLES:
            raise InternalError(f"{role} instruction placed before the swap")
        if index > swap_index and role in PRE_SWAP_ROLES:
            raise InternalError(f"{role} instruction placed after the swap")

    for leg_role in ("referrer", "treasury"):
        create_role = f"{leg_role}_create"
        transfer_role = f"{leg_role}_transfer"
        if create_role in roles:
            if transfer_role not in roles or roles.index(create_role) > roles.index(transfer_role):
                raise InternalError(f"{leg_role} account must be created before its transfer")

    if "cleanup" in roles and roles[-1] != "cleanup":
        raise InternalError("Cleanup instruction must be last")


def transfer_authorities(composed: Sequence[ComposedInstruction]) -> set[Pubkey]:
    authorities: set[Pubkey] = set()
    for item in composed:
        if item.role.endswith("_transfer"):
            # TransferChecked accounts: source, mint, destination, authority
            authorities.add(item.instruction.accounts[3].pubkey)
    return authorities
