from __future__ import annotations

import contextlib
import json
import re

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from feeswap.common import InternalError

# 64 bytes in base58 is 86-88 characters
BASE58_SECRET_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{86,88}$")


def load_keypair(secret: str) -> Keypair:
    """Load a keypair from a base58 64-byte secret or a solana-keygen JSON array.

    32-byte values are rejected to avoid seed/half-key ambiguity. Error messages
    never echo the secret.
    """
    value = (secret or "").strip()
    if not value:
        raise InternalError("Fee vault private key is not configured.")

    if value.startswith("["):
        try:
            arr = json.loads(value)
        except json.JSONDecodeError as error:
            raise InternalError("Fee vault private key JSON is malformed.") from error
        if (
            not isinstance(arr, list)
            or len(arr) != 64
            or not all(isinstance(n, int) and 0 <= n <= 255 for n in arr)
        ):
            raise InternalError("Fee vault private key JSON must be an array of 64 bytes.")
        try:
            return Keypair.from_bytes(bytes(arr))
        except ValueError as error:
            raise InternalError("Fee vault private key bytes do not form a valid keypair.") from error

    try:
        Pubkey.from_string(value)
    except ValueError:
        pass
    else:
        raise InternalError("Got 32 bytes (likely a seed or public key). Expected a 64-byte secret key.")

    if BASE58_SECRET_RE.match(value):
        with contextlib.suppress(Exception):
            return Keypair.from_base58_string(value)

    raise InternalError(
        "Unrecognized key format. Provide a base58-encoded 64-byte secret key "
        "or a JSON array of 64 numbers from solana-keygen."
    )
