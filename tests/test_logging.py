from __future__ import annotations

import json
import logging
import unittest

from feeswap.common import log_event
from feeswap.common.logging import sanitize_text, sanitize_value
from feeswap.runtime.logging import JsonFormatter


class SanitizeTests(unittest.TestCase):
    def test_urls_lose_query_strings(self) -> None:
        masked = sanitize_text("calling https://mainnet.helius-rpc.com/?api-key=abc123 now")

        self.assertNotIn("abc123", masked)
        self.assertIn("https://mainnet.helius-rpc.com/", masked)

    def test_bearer_tokens_and_api_keys_are_masked(self) -> None:
        self.assertEqual(sanitize_text("Authorization: Bearer s3cr3t"), "Authorization: Bearer ***")
        self.assertEqual(sanitize_text("api_key=xyz"), "api_key=***")

    def test_secret_fields_are_redacted(self) -> None:
        payload = sanitize_value(
            {"fee_vault_private_key": "5Kd...", "nested": {"secret_key": [1, 2, 3]}, "amount": "10"},
        )

        self.assertEqual(payload["fee_vault_private_key"], "***")
        self.assertEqual(payload["nested"]["secret_key"], "***")
        self.assertEqual(payload["amount"], "10")
        self.assertEqual(sanitize_value(b"\x00" * 64), "<64 bytes>")


class JsonFormatterTests(unittest.TestCase):
    def test_log_event_output_never_contains_secret_values(self) -> None:
        logger = logging.getLogger("test.logging.json")
        logger.propagate = False
        logger.setLevel(logging.INFO)

        with self.assertLogs(logger, level="INFO") as captured:
            log_event(
                logger,
                level="info",
                event="startup",
                message="Starting with https://rpc.example.com/?api-key=leak",
                private_key="leak-private",
                rpc_url="https://rpc.example.com/?api-key=leak",
            )

        rendered = JsonFormatter().format(captured.records[0])
        payload = json.loads(rendered)
        self.assertNotIn("leak", rendered)
        self.assertEqual(payload["event"], "startup")
        self.assertEqual(payload["private_key"], "***")


if __name__ == "__main__":
    unittest.main()
