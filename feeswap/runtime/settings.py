from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any

FEE_SIDES = {"input", "output"}
SIMULATION_MODES = {"off", "advisory", "strict"}
COMMITMENTS = {"processed", "confirmed", "finalized"}


def to_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def to_int(value: Any, default: int) -> int:
    try:
        if value is None or str(value).strip() == "":
            return default
        return int(float(str(value).strip()))
    except (TypeError, ValueError):
        return default


def to_float(value: Any, default: float) -> float:
    try:
        if value is None or str(value).strip() == "":
            return default
        return float(str(value).strip())
    except (TypeError, ValueError):
        return default


def normalize_fee_side(value: str) -> str:
    side = (value or "").strip().lower()
    if side in FEE_SIDES:
        return side
    return "input"


def normalize_simulation_mode(value: str) -> str:
    mode = (value or "").strip().lower()
    if mode in SIMULATION_MODES:
        return mode
    return "advisory"


def normalize_commitment(value: str) -> str:
    commitment = (value or "").strip().lower()
    if commitment in COMMITMENTS:
        return commitment
    return "confirmed"


def _split_csv(value: str | None) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(part.strip() for part in value.split(",") if part.strip())


@dataclass(slots=True)
class AppSettings:
    solana_rpc_url: str
    rpc_commitment: str
    rpc_timeout_seconds: float
    jupiter_api_base: str
    jupiter_api_key: str
    http_timeout_seconds: float
    fee_vault_public_key: str
    fee_vault_private_key: str
    platform_treasury_public_key: str
    default_platform_fee_bps: int
    quote_ttl_seconds: int
    fee_side: str
    fee_cross_check: bool
    simulation_mode: str
    dynamic_compute_unit_limit: bool
    api_host: str
    api_port: int
    api_auth_tokens: tuple[str, ...]
    log_level: str

    @classmethod
    def from_env(cls) -> "AppSettings":
        return cls(
            solana_rpc_url=os.getenv("SOLANA_RPC_URL", "").strip(),
            rpc_commitment=normalize_commitment(os.getenv("RPC_COMMITMENT", "confirmed")),
            rpc_timeout_seconds=max(0.5, to_float(os.getenv("RPC_TIMEOUT_SECONDS"), 10.0)),
            jupiter_api_base=os.getenv("JUPITER_API_BASE", "https://lite-api.jup.ag/swap/v1").strip(),
            jupiter_api_key=os.getenv("JUPITER_API_KEY", "").strip(),
            http_timeout_seconds=max(0.5, to_float(os.getenv("HTTP_TIMEOUT_SECONDS"), 10.0)),
            fee_vault_public_key=os.getenv("FEE_VAULT_PUBLIC_KEY", "").strip(),
            fee_vault_private_key=os.getenv("FEE_VAULT_PRIVATE_KEY", ""),
            platform_treasury_public_key=os.getenv("PLATFORM_TREASURY_PUBLIC_KEY", "").strip(),
            default_platform_fee_bps=min(10_000, max(0, to_int(os.getenv("DEFAULT_PLATFORM_FEE_BPS"), 20))),
            quote_ttl_seconds=max(1, to_int(os.getenv("QUOTE_TTL_SECONDS"), 60)),
            fee_side=normalize_fee_side(os.getenv("FEE_SIDE", "input")),
            fee_cross_check=to_bool(os.getenv("FEE_CROSS_CHECK"), True),
            simulation_mode=normalize_simulation_mode(os.getenv("SIMULATION_MODE", "advisory")),
            dynamic_compute_unit_limit=to_bool(os.getenv("DYNAMIC_COMPUTE_UNIT_LIMIT"), True),
            api_host=os.getenv("API_HOST", "0.0.0.0").strip() or "0.0.0.0",
            api_port=max(1, to_int(os.getenv("API_PORT"), 8080)),
            api_auth_tokens=_split_csv(os.getenv("API_AUTH_TOKENS")),
            log_level=os.getenv("LOG_LEVEL", "INFO").strip() or "INFO",
        )

    def validate(self) -> None:
        missing = [
            name
            for name, value in (
                ("SOLANA_RPC_URL", self.solana_rpc_url),
                ("FEE_VAULT_PUBLIC_KEY", self.fee_vault_public_key),
                ("FEE_VAULT_PRIVATE_KEY", self.fee_vault_private_key),
                ("PLATFORM_TREASURY_PUBLIC_KEY", self.platform_treasury_public_key),
            )
            if not value
        ]
        if missing:
            raise ValueError(f"Missing required settings: {', '.join(missing)}")
