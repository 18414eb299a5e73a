"""Service layer for wallet orchestration and mint integrations."""

from .mint_client import MintClient
from .mock_mint_client import MockMintClient
from .quote_monitor import QuoteMonitor
from .token_codec import DecodedToken, decode_token, encode_token
from .wallet_factory import (
    build_wallet_service,
    get_mint_client,
    get_wallet_service,
    reset_wallet_service,
    set_mint_client,
)
from .wallet_service import WalletService

__all__ = [
    "MintClient",
    "MockMintClient",
    "QuoteMonitor",
    "DecodedToken",
    "decode_token",
    "encode_token",
    "WalletService",
    "build_wallet_service",
    "get_mint_client",
    "get_wallet_service",
    "reset_wallet_service",
    "set_mint_client",
]
