"""Integer-exact protocol fee math.

All amounts are atoms held in Python ints, so products never overflow even for
low-decimal tokens at very large notional.
"""

from __future__ import annotations

from typing import Any

from feeswap.common import BadRequestError, ValidationError

from .types import MAX_BPS, FeeSide, FeeSplit, parse_atoms


def assert_bps(value: Any, name: str, *, minimum: int = 0, maximum: int = MAX_BPS) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum or value > maximum:
        raise ValidationError(f"{name} must be an integer between {minimum} and {maximum}")
    return value


def fee_atoms(amount_atoms: int, bps: int) -> int:
    return amount_atoms * bps // MAX_BPS


def split(input_atoms: int, total_fee_bps: int, referrer_fee_bps: int) -> FeeSplit:
    """Split the fee skimmed from ``input_atoms`` between referrer and treasury.

    ``referrer_atoms`` is floored on its own, so a referrer share that rounds to
    zero routes the whole fee to the treasury.
    """
    atoms = parse_atoms(input_atoms, name="input_atoms")
    total_bps = assert_bps(total_fee_bps, "total_fee_bps")
    referrer_bps = assert_bps(referrer_fee_bps, "referrer_fee_bps")
    if referrer_bps > total_bps:
        raise BadRequestError(
            f"Referrer fee of {referrer_bps} bps exceeds total fee of {total_bps} bps"
        )

    total_atoms = fee_atoms(atoms, total_bps)
    referrer_atoms = fee_atoms(atoms, referrer_bps)
    return FeeSplit(referrer_atoms=referrer_atoms, treasury_atoms=total_atoms - referrer_atoms)


def fee_basis_atoms(route: dict[str, Any], fee_side: FeeSide) -> int:
    """Amount the fee is computed from.

    Input-side fees use the exact input amount. Output-side fees use the
    slippage-protected minimum output so the transfers never exceed what the
    aggregator actually skims.
    """
    if fee_side == "output":
        return parse_atoms(route.get("otherAmountThreshold"), name="otherAmountThreshold")
    return parse_atoms(route.get("inAmount"), name="inAmount")


def fee_mint(route: dict[str, Any], fee_side: FeeSide) -> str:
    key = "outputMint" if fee_side == "output" else "inputMint"
    mint = str(route.get(key) or "").strip()
    if not mint:
        raise ValidationError(f"Quote route is missing {key}")
    return mint


def cross_check_platform_fee(
    route: dict[str, Any],
    *,
    total_fee_bps: int,
    total_fee_atoms: int,
    fee_side: FeeSide,
) -> None:
    """Compare against the aggregator's own platform fee figure when it quoted the same bps."""
    if fee_side != "input":
        return
    platform_fee = route.get("platformFee")
    if not isinstance(platform_fee, dict):
        return
    reported_bps = platform_fee.get("feeBps")
    reported_amount = platform_fee.get("amount")
    if reported_bps is None or reported_amount in (None, ""):
        return
    try:
        same_bps = int(reported_bps) == total_fee_bps
    except (TypeError, ValueError):
        same_bps = False
    if not same_bps:
        return

    expected = parse_atoms(str(reported_amount), name="platformFee.amount")
    if expected != total_fee_atoms:
        raise ValidationError(
            "Aggregator platform fee does not match computed fee",
            details={"reported_atoms": str(expected), "computed_atoms": str(total_fee_atoms)},
        )
