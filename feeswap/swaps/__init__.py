from .accounts import AccountResolver
from .aggregator import JupiterClient
from .assembler import TransactionAssembler
from .builder import AtomicSwapBuilder
from .fee_policy import split
from .keys import load_keypair
from .ledger import LedgerClient
from .lifecycle import SwapService, SwapServiceConfig
from .lookup_tables import LookupTableLoader
from .types import (
    BuildRequest,
    BuildResult,
    FeeSplit,
    Quote,
    Referral,
    SwapBuildResponse,
    TradeParams,
    UserRecord,
)

__all__ = [
    "AccountResolver",
    "AtomicSwapBuilder",
    "BuildRequest",
    "BuildResult",
    "FeeSplit",
    "JupiterClient",
    "LedgerClient",
    "LookupTableLoader",
    "Quote",
    "Referral",
    "SwapBuildResponse",
    "SwapService",
    "SwapServiceConfig",
    "TradeParams",
    "TransactionAssembler",
    "UserRecord",
    "load_keypair",
    "split",
]
