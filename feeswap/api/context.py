from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from feeswap.common import ValidationError
from feeswap.referrals import ReferralService
from feeswap.swaps import SwapService
from feeswap.swaps.types import parse_atoms


@dataclass(slots=True, frozen=True)
class AuthClaims:
    user_id: str


@dataclass(slots=True)
class ApiServices:
    swaps: SwapService
    referrals: ReferralService
    healthcheck: Callable[[], Awaitable[None]] | None = None


@dataclass(slots=True)
class RequestContext:
    services: ApiServices
    body: dict[str, Any] = field(default_factory=dict)
    query: dict[str, str] = field(default_factory=dict)
    claims: AuthClaims | None = None

    def require_str(self, name: str) -> str:
        value = self.body.get(name)
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(f"{name} is required and must be a string")
        return value.strip()

    def optional_str(self, name: str) -> str | None:
        value = self.body.get(name)
        if value is None:
            return None
        if not isinstance(value, str):
            raise ValidationError(f"{name} must be a string")
        return value.strip() or None

    def require_int(self, name: str) -> int:
        if name not in self.body:
            raise ValidationError(f"{name} is required")
        return parse_atoms(self.body[name], name=name)

    def optional_int(self, name: str) -> int | None:
        if self.body.get(name) is None:
            return None
        return parse_atoms(self.body[name], name=name)

    def optional_bool(self, name: str, default: bool) -> bool:
        value = self.body.get(name)
        if value is None:
            return default
        if not isinstance(value, bool):
            raise ValidationError(f"{name} must be a boolean")
        return value
