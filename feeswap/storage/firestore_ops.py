from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, TypeVar

from google.api_core.exceptions import AlreadyExists, GoogleAPICallError
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from feeswap.common import AlreadyExistsError, UpstreamError, log_event
from feeswap.swaps.types import Quote, Referral, UserRecord

from .settings import StorageSettings

T = TypeVar("T")


class FirestoreStorageOps:
    """Quote and identity documents.

    Layout: ``users/{user_id}``, ``users/{user_id}/referrals/{referral_id}``
    and ``quotes/{quote_id}``. Writes that create documents use ``create`` so a
    duplicate id never overwrites existing data.
    """

    settings: StorageSettings
    _logger: logging.Logger
    _firestore: firestore.Client | None

    def _client(self) -> firestore.Client:
        if self._firestore is None:
            raise RuntimeError("StorageGateway is not connected.")
        return self._firestore

    async def _run(self, operation: str, action: Callable[[], T]) -> T:
        try:
            return await asyncio.to_thread(action)
        except AlreadyExists:
            raise
        except GoogleAPICallError as error:
            log_event(
                self._logger,
                level="warning",
                event="firestore_call_failed",
                message="Firestore call failed",
                operation=operation,
                error=str(error),
            )
            raise UpstreamError(
                f"Firestore {operation} failed: {error}",
                service="firestore",
                retriable=True,
            ) from error

    def _quotes(self) -> Any:
        return self._client().collection(self.settings.quotes_collection)

    def _users(self) -> Any:
        return self._client().collection(self.settings.users_collection)

    def _referrals(self, user_id: str) -> Any:
        return self._users().document(user_id).collection(self.settings.referrals_collection)

    def new_quote_id(self) -> str:
        return self._quotes().document().id

    def new_referral_id(self, user_id: str) -> str:
        return self._referrals(user_id).document().id

    async def create_quote(self, quote: Quote) -> Quote:
        doc_ref = self._quotes().document(quote.quote_id)
        try:
            await self._run("create_quote", lambda: doc_ref.create(quote.to_document()))
        except AlreadyExists as error:
            raise AlreadyExistsError(f"Quote {quote.quote_id} already exists") from error
        return quote

    async def get_quote(self, quote_id: str) -> Quote | None:
        snapshot = await self._run("get_quote", lambda: self._quotes().document(quote_id).get())
        data = snapshot.to_dict() if snapshot.exists else None
        if not data:
            return None
        data.setdefault("id", snapshot.id)
        return Quote.from_document(data)

    async def get_user(self, user_id: str) -> UserRecord | None:
        snapshot = await self._run("get_user", lambda: self._users().document(user_id).get())
        data = snapshot.to_dict() if snapshot.exists else None
        if not data or data.get("deletedAt"):
            return None
        data.setdefault("id", snapshot.id)
        return UserRecord.from_document(data)

    async def get_referral(self, user_id: str, referral_id: str) -> Referral | None:
        snapshot = await self._run(
            "get_referral",
            lambda: self._referrals(user_id).document(referral_id).get(),
        )
        data = snapshot.to_dict() if snapshot.exists else None
        if not data or data.get("deletedAt"):
            return None
        data.setdefault("id", snapshot.id)
        return Referral.from_document(data)

    async def get_referral_by_slug(self, slug: str) -> Referral | None:
        query = (
            self._client()
            .collection_group(self.settings.referrals_collection)
            .where(filter=FieldFilter("slug", "==", slug))
            .where(filter=FieldFilter("deletedAt", "==", None))
            .limit(1)
        )
        snapshots = await self._run("get_referral_by_slug", lambda: list(query.stream()))
        if not snapshots:
            return None
        data = snapshots[0].to_dict() or {}
        data.setdefault("id", snapshots[0].id)
        return Referral.from_document(data)

    async def count_referrals(self, user_id: str) -> int:
        snapshots = await self._run("count_referrals", lambda: list(self._referrals(user_id).stream()))
        return len(snapshots)

    async def create_referral(self, referral: Referral) -> Referral:
        doc_ref = self._referrals(referral.user_id).document(referral.referral_id)
        try:
            await self._run("create_referral", lambda: doc_ref.create(referral.to_document()))
        except AlreadyExists as error:
            raise AlreadyExistsError(f"Referral {referral.referral_id} already exists") from error
        return referral


