from __future__ import annotations

import json
import unittest

from solders.keypair import Keypair

from feeswap.common import InternalError
from feeswap.swaps.keys import load_keypair


class LoadKeypairTests(unittest.TestCase):
    def setUp(self) -> None:
        self.keypair = Keypair()

    def test_loads_base58_secret(self) -> None:
        loaded = load_keypair(str(self.keypair))

        self.assertEqual(loaded.pubkey(), self.keypair.pubkey())

    def test_loads_keygen_json_array(self) -> None:
        loaded = load_keypair(json.dumps(list(bytes(self.keypair))))

        self.assertEqual(loaded.pubkey(), self.keypair.pubkey())

    def test_rejects_public_key_and_garbage_without_echoing_input(self) -> None:
        public_key = str(self.keypair.pubkey())
        for secret in ("", public_key, "[1, 2, 3]", "[not json", "definitely not a key"):
            with self.subTest(secret=secret[:8]):
                with self.assertRaises(InternalError) as caught:
                    load_keypair(secret)
                if secret:
                    self.assertNotIn(secret, str(caught.exception))


if __name__ == "__main__":
    unittest.main()
