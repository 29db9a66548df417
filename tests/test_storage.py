from __future__ import annotations

import logging
import unittest
from datetime import datetime, timezone
from unittest.mock import MagicMock

from google.api_core.exceptions import AlreadyExists, ServiceUnavailable

from feeswap.common import AlreadyExistsError, UpstreamError
from feeswap.storage import StorageGateway, StorageSettings
from feeswap.swaps.types import Quote, ReferralLink


def _quote() -> Quote:
    return Quote.create(
        quote_id="q1",
        input_mint="So11111111111111111111111111111111111111112",
        output_mint="EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v",
        amount=2**70,
        slippage_bps=50,
        dynamic_slippage=True,
        platform_fee_bps=80,
        referrer_fee_bps=40,
        route={"inAmount": str(2**70)},
        ttl_seconds=60,
        referral=ReferralLink(referral_id="r1", slug="alice", user_id="u1"),
        now=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )


class FirestoreStorageOpsTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.gateway = StorageGateway(
            StorageSettings(
                firestore_project_id="test",
                users_collection="users",
                referrals_collection="referrals",
                quotes_collection="quotes",
            ),
            logging.getLogger("test.storage"),
        )
        self.client = MagicMock()
        self.gateway._firestore = self.client
        self.doc_ref = self.client.collection.return_value.document.return_value

    async def test_create_quote_uses_create_if_absent(self) -> None:
        quote = _quote()

        await self.gateway.create_quote(quote)

        self.client.collection.assert_called_with("quotes")
        document = self.doc_ref.create.call_args.args[0]
        self.assertEqual(document["amount"], str(2**70))
        self.assertEqual(document["totalFeeBps"], 120)
        self.assertEqual(document["referralSlug"], "alice")

    async def test_duplicate_quote_id_is_already_exists(self) -> None:
        self.doc_ref.create.side_effect = AlreadyExists("exists")

        with self.assertRaises(AlreadyExistsError):
            await self.gateway.create_quote(_quote())

    async def test_get_quote_round_trips_document(self) -> None:
        quote = _quote()
        snapshot = MagicMock(exists=True, id="q1")
        snapshot.to_dict.return_value = quote.to_document()
        self.doc_ref.get.return_value = snapshot

        loaded = await self.gateway.get_quote("q1")

        self.assertEqual(loaded, quote)

    async def test_missing_documents_are_none(self) -> None:
        self.doc_ref.get.return_value = MagicMock(exists=False)

        self.assertIsNone(await self.gateway.get_quote("nope"))
        self.assertIsNone(await self.gateway.get_user("nope"))

    async def test_transport_errors_become_upstream_errors(self) -> None:
        self.doc_ref.get.side_effect = ServiceUnavailable("down")

        with self.assertRaises(UpstreamError) as caught:
            await self.gateway.get_quote("q1")
        self.assertEqual(caught.exception.service, "firestore")
        self.assertTrue(caught.exception.retriable)


if __name__ == "__main__":
    unittest.main()
