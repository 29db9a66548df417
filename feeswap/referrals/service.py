from __future__ import annotations

import logging
import re
import unicodedata
from datetime import datetime
from typing import Callable

from feeswap.common import AlreadyExistsError, NotFoundError, ValidationError, log_event
from feeswap.swaps.fee_policy import assert_bps
from feeswap.swaps.types import MAX_BPS, IdentityStore, Referral, UserRecord, utc_now

_NON_SLUG_CHARS = re.compile(r"[^a-z0-9]+")


def make_slug(value: str) -> str:
    normalized = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    return _NON_SLUG_CHARS.sub("-", normalized.lower()).strip("-")


class ReferralService:
    def __init__(
        self,
        *,
        store: IdentityStore,
        logger: logging.Logger,
        platform_fee_bps: int,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._logger = logger
        self._platform_fee_bps = platform_fee_bps
        self._clock = clock

    async def _slug_for_user(self, user: UserRecord) -> str:
        base = make_slug(user.display_name or "") or make_slug(user.user_id) or user.user_id
        count = await self._store.count_referrals(user.user_id)
        if count > 0:
            return f"{base}-{count + 1}"
        return base

    async def create_referral(
        self,
        user_id: str,
        referrer_fee_bps: int,
        *,
        slug: str | None = None,
        description: str | None = None,
        is_active: bool = True,
    ) -> Referral:
        assert_bps(referrer_fee_bps, "referrer_fee_bps")
        if referrer_fee_bps + self._platform_fee_bps > MAX_BPS:
            raise ValidationError(f"max referrer fee is {MAX_BPS - self._platform_fee_bps} bps")

        user = await self._store.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User with ID {user_id} not found")

        if slug is not None:
            slug = make_slug(slug)
            if not slug:
                raise ValidationError("slug must contain at least one letter or digit")
        else:
            slug = await self._slug_for_user(user)

        if await self._store.get_referral_by_slug(slug) is not None:
            raise AlreadyExistsError(f"Referral with slug {slug} already exists")

        referral = await self._store.create_referral(
            Referral(
                referral_id=self._store.new_referral_id(user.user_id),
                user_id=user.user_id,
                slug=slug,
                platform_fee_bps=self._platform_fee_bps,
                referrer_fee_bps=referrer_fee_bps,
                is_active=is_active,
                description=description,
                created_at=self._clock(),
            )
        )
        log_event(
            self._logger,
            level="info",
            event="referral_created",
            message="Referral created",
            user_id=referral.user_id,
            referral_id=referral.referral_id,
            slug=referral.slug,
            referrer_fee_bps=referral.referrer_fee_bps,
        )
        return referral
