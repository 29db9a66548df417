from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Literal, Protocol

from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from feeswap.common import BadRequestError, ValidationError

MAX_BPS = 10_000
EXACT_IN = "ExactIn"

FeeSide = Literal["input", "output"]
SimulationMode = Literal["off", "advisory", "strict"]

InstructionRole = Literal[
    "compute_budget",
    "token_ledger",
    "other",
    "setup",
    "fee_vault_create",
    "swap",
    "referrer_create",
    "referrer_transfer",
    "treasury_create",
    "treasury_transfer",
    "cleanup",
]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(float(value) / 1000, tz=timezone.utc)
    if isinstance(value, str) and value.strip():
        return _as_utc(datetime.fromisoformat(value.strip()))
    raise ValidationError(f"Invalid timestamp value: {value!r}")


def parse_atoms(value: Any, *, name: str) -> int:
    """Parse an integer atom amount; strings are accepted to keep u64+ values exact."""
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer amount of atoms")
    if isinstance(value, int):
        atoms = value
    elif isinstance(value, str) and value.strip().isascii() and value.strip().isdigit():
        atoms = int(value.strip())
    else:
        raise ValidationError(f"{name} must be an integer amount of atoms")
    if atoms < 0:
        raise ValidationError(f"{name} must not be negative")
    return atoms


@dataclass(slots=True, frozen=True)
class ReferralLink:
    referral_id: str
    slug: str
    user_id: str

    @classmethod
    def from_fields(
        cls,
        *,
        referral_id: str | None,
        slug: str | None,
        user_id: str | None,
    ) -> "ReferralLink | None":
        present = [bool(referral_id), bool(slug), bool(user_id)]
        if not any(present):
            return None
        if not all(present):
            raise ValidationError("Referral linkage must include referral id, slug and user id together")
        return cls(referral_id=str(referral_id), slug=str(slug), user_id=str(user_id))


@dataclass(slots=True, frozen=True)
class Quote:
    quote_id: str
    input_mint: str
    output_mint: str
    amount: int
    slippage_bps: int
    dynamic_slippage: bool
    swap_mode: str
    platform_fee_bps: int
    referrer_fee_bps: int
    created_at: datetime
    expires_at: datetime
    route: dict[str, Any]
    referral: ReferralLink | None = None
    user_public_key: str | None = None

    def __post_init__(self) -> None:
        if self.platform_fee_bps + self.referrer_fee_bps > MAX_BPS:
            raise BadRequestError(
                f"Total fee of {self.platform_fee_bps + self.referrer_fee_bps} bps exceeds {MAX_BPS} bps"
            )
        if self.expires_at <= self.created_at:
            raise ValidationError("Quote expiry must be after its creation time")

    @classmethod
    def create(
        cls,
        *,
        quote_id: str,
        input_mint: str,
        output_mint: str,
        amount: int,
        slippage_bps: int,
        dynamic_slippage: bool,
        platform_fee_bps: int,
        referrer_fee_bps: int,
        route: dict[str, Any],
        ttl_seconds: int,
        referral: ReferralLink | None = None,
        user_public_key: str | None = None,
        swap_mode: str = EXACT_IN,
        now: datetime | None = None,
    ) -> "Quote":
        created_at = now or utc_now()
        return cls(
            quote_id=quote_id,
            input_mint=input_mint,
            output_mint=output_mint,
            amount=amount,
            slippage_bps=slippage_bps,
            dynamic_slippage=dynamic_slippage,
            swap_mode=swap_mode,
            platform_fee_bps=platform_fee_bps,
            referrer_fee_bps=referrer_fee_bps,
            created_at=created_at,
            expires_at=created_at + timedelta(seconds=ttl_seconds),
            route=route,
            referral=referral,
            user_public_key=user_public_key,
        )

    @property
    def total_fee_bps(self) -> int:
        return self.platform_fee_bps + self.referrer_fee_bps

    def is_expired(self, *, now: datetime | None = None) -> bool:
        current = now or utc_now()
        return current > self.expires_at

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.quote_id,
            "inputMint": self.input_mint,
            "outputMint": self.output_mint,
            "amount": str(self.amount),
            "slippageBps": self.slippage_bps,
            "dynamicSlippage": self.dynamic_slippage,
            "swapMode": self.swap_mode,
            "platformFeeBps": self.platform_fee_bps,
            "referrerFeeBps": self.referrer_fee_bps,
            "totalFeeBps": self.total_fee_bps,
            "referralId": self.referral.referral_id if self.referral else None,
            "referralSlug": self.referral.slug if self.referral else None,
            "referralUserId": self.referral.user_id if self.referral else None,
            "userPublicKey": self.user_public_key,
            "timestamp": self.created_at,
            "expiresAt": self.expires_at,
            "quote": self.route,
        }

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "Quote":
        route = document.get("quote")
        if not isinstance(route, dict):
            raise ValidationError("Stored quote is missing its aggregator route")
        return cls(
            quote_id=str(document.get("id") or ""),
            input_mint=str(document.get("inputMint") or ""),
            output_mint=str(document.get("outputMint") or ""),
            amount=parse_atoms(document.get("amount"), name="amount"),
            slippage_bps=int(document.get("slippageBps") or 0),
            dynamic_slippage=bool(document.get("dynamicSlippage")),
            swap_mode=str(document.get("swapMode") or ""),
            platform_fee_bps=int(document.get("platformFeeBps") or 0),
            referrer_fee_bps=int(document.get("referrerFeeBps") or 0),
            created_at=_as_utc(document.get("timestamp")),
            expires_at=_as_utc(document.get("expiresAt")),
            route=route,
            referral=ReferralLink.from_fields(
                referral_id=document.get("referralId"),
                slug=document.get("referralSlug"),
                user_id=document.get("referralUserId"),
            ),
            user_public_key=document.get("userPublicKey") or None,
        )

    def to_dict(self) -> dict[str, Any]:
        payload = self.to_document()
        payload["timestamp"] = self.created_at.isoformat()
        payload["expiresAt"] = self.expires_at.isoformat()
        return payload


@dataclass(slots=True, frozen=True)
class TradeParams:
    input_mint: str
    output_mint: str
    amount: int
    slippage_bps: int
    dynamic_slippage: bool = True
    referral_slug: str | None = None
    swap_mode: str = EXACT_IN


@dataclass(slots=True, frozen=True)
class Referral:
    referral_id: str
    user_id: str
    slug: str
    platform_fee_bps: int
    referrer_fee_bps: int
    is_active: bool = True
    description: str | None = None
    created_at: datetime | None = None
    deleted_at: datetime | None = None

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "Referral":
        return cls(
            referral_id=str(document.get("id") or ""),
            user_id=str(document.get("userID") or ""),
            slug=str(document.get("slug") or ""),
            platform_fee_bps=int(document.get("platformFeeBps") or 0),
            referrer_fee_bps=int(document.get("referrerFeeBps") or 0),
            is_active=bool(document.get("isActive", True)),
            description=document.get("description"),
            created_at=document.get("createdAt"),
            deleted_at=document.get("deletedAt"),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.referral_id,
            "userID": self.user_id,
            "slug": self.slug,
            "platformFeeBps": self.platform_fee_bps,
            "referrerFeeBps": self.referrer_fee_bps,
            "isActive": self.is_active,
            "description": self.description,
            "createdAt": self.created_at,
            "updatedAt": self.created_at,
            "deletedAt": self.deleted_at,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.referral_id,
            "userID": self.user_id,
            "slug": self.slug,
            "platformFeeBps": self.platform_fee_bps,
            "referrerFeeBps": self.referrer_fee_bps,
            "isActive": self.is_active,
            "description": self.description,
        }


@dataclass(slots=True, frozen=True)
class UserRecord:
    user_id: str
    wallet_address: str | None
    display_name: str | None = None
    slug: str | None = None

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "UserRecord":
        return cls(
            user_id=str(document.get("id") or ""),
            wallet_address=(str(document.get("walletAddress") or "").strip() or None),
            display_name=document.get("displayName"),
            slug=document.get("slug"),
        )

    def to_dict(self) -> dict[str, Any]:
        # privateKeyPath and provider details never leave the store
        return {
            "id": self.user_id,
            "walletAddress": self.wallet_address,
            "displayName": self.display_name,
            "slug": self.slug,
        }


@dataclass(slots=True, frozen=True)
class FeeSplit:
    referrer_atoms: int
    treasury_atoms: int

    @property
    def total_atoms(self) -> int:
        return self.referrer_atoms + self.treasury_atoms

    @property
    def is_zero(self) -> bool:
        return self.total_atoms == 0


@dataclass(slots=True, frozen=True)
class MintInfo:
    address: Pubkey
    decimals: int
    token_program: Pubkey


@dataclass(slots=True, frozen=True)
class AtaResolution:
    role: str
    owner: Pubkey
    address: Pubkey
    create_instruction: Instruction | None

    @property
    def needs_creation(self) -> bool:
        return self.create_instruction is not None


@dataclass(slots=True, frozen=True)
class FeeLeg:
    role: Literal["referrer", "treasury"]
    account: AtaResolution
    amount_atoms: int
    transfer_instruction: Instruction


@dataclass(slots=True, frozen=True)
class ComposedInstruction:
    role: InstructionRole
    instruction: Instruction


@dataclass(slots=True, frozen=True)
class AggregatorInstructions:
    compute_budget: list[Instruction]
    setup: list[Instruction]
    swap: Instruction
    cleanup: Instruction | None = None
    token_ledger: Instruction | None = None
    other: list[Instruction] = field(default_factory=list)
    lookup_table_addresses: list[str] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class ReferrerConfig:
    owner: str
    fee_bps: int


@dataclass(slots=True, frozen=True)
class BuildRequest:
    route: dict[str, Any]
    input_mint: str
    input_amount: int
    user_public_key: str
    fee_vault_owner: str
    fee_vault_keypair: Keypair
    treasury_owner: str
    total_fee_bps: int
    referrer: ReferrerConfig | None = None
    dynamic_slippage: bool = True
    dynamic_compute_unit_limit: bool = True
    fee_side: FeeSide = "input"
    fee_cross_check: bool = True

    @property
    def referrer_fee_bps(self) -> int:
        return self.referrer.fee_bps if self.referrer else 0


@dataclass(slots=True, frozen=True)
class BuildResult:
    transaction_base64: str
    last_valid_block_height: int
    aggregator_instructions: dict[str, Any]
    fee_split: FeeSplit
    instruction_roles: list[str]
    signed_by_server: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "txBase64": self.transaction_base64,
            "lastValidBlockHeight": self.last_valid_block_height,
            "swapIns": self.aggregator_instructions,
            "feeSplit": {
                "referrerAtoms": str(self.fee_split.referrer_atoms),
                "treasuryAtoms": str(self.fee_split.treasury_atoms),
            },
            "signedByServer": self.signed_by_server,
        }


@dataclass(slots=True, frozen=True)
class SimulationOutcome:
    ok: bool
    error: str | None
    logs: list[str]
    units_consumed: int | None = None


@dataclass(slots=True, frozen=True)
class SwapBuildResponse:
    build: BuildResult
    quote: Quote
    referral: Referral | None = None
    referrer_user: UserRecord | None = None
    simulation: SimulationOutcome | None = None

    @property
    def transaction_base64(self) -> str:
        return self.build.transaction_base64

    @property
    def last_valid_block_height(self) -> int:
        return self.build.last_valid_block_height

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "instructions": self.build.to_dict(),
            "referral": self.referral.to_dict() if self.referral else None,
            "referrerUser": self.referrer_user.to_dict() if self.referrer_user else None,
            "quote": self.quote.to_dict(),
        }
        if self.simulation is not None:
            payload["simulation"] = {
                "ok": self.simulation.ok,
                "error": self.simulation.error,
                "unitsConsumed": self.simulation.units_consumed,
            }
        return payload


class QuoteStore(Protocol):
    def new_quote_id(self) -> str:
        ...

    async def create_quote(self, quote: Quote) -> Quote:
        ...

    async def get_quote(self, quote_id: str) -> Quote | None:
        ...


class IdentityStore(Protocol):
    async def get_user(self, user_id: str) -> UserRecord | None:
        ...

    async def get_referral(self, user_id: str, referral_id: str) -> Referral | None:
        ...

    async def get_referral_by_slug(self, slug: str) -> Referral | None:
        ...

    async def count_referrals(self, user_id: str) -> int:
        ...

    def new_referral_id(self, user_id: str) -> str:
        ...

    async def create_referral(self, referral: Referral) -> Referral:
        ...
