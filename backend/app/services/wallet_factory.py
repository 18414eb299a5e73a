"""
Factory for the mint client and wallet service singletons.

Returns a MockMintClient when USE_MOCK_MINT is enabled. A host application
that talks to a real mint registers its own client with set_mint_client().
"""

import logging

from app.config import settings
from app.models.wallet_responses import LUD06InfoResponse
from .mint_client import MintClient
from .mock_mint_client import MockMintClient
from .wallet_service import WalletService

logger = logging.getLogger(__name__)

# Singleton instances
_mint_client: MintClient | None = None
_wallet_service: WalletService | None = None


def get_mint_client() -> MintClient:
    """
    Get the configured mint client instance.

    Uses singleton pattern so issued proofs and quotes stay known to the
    simulated mint across requests.

    Returns:
        MintClient: The injected client, or MockMintClient if USE_MOCK_MINT=true

    Raises:
        NotImplementedError: If USE_MOCK_MINT=false and no client was injected
    """
    global _mint_client

    if _mint_client is not None:
        return _mint_client

    if settings.USE_MOCK_MINT:
        logger.info(
            "Initializing MockMintClient (USE_MOCK_MINT=true) - "
            f"simulated mint at {settings.MINT_URL}"
        )
        _mint_client = MockMintClient(
            mint_url=settings.MINT_URL,
            unit=settings.WALLET_UNIT,
            input_fee_ppk=settings.MOCK_MINT_INPUT_FEE_PPK,
            auto_pay=settings.MOCK_MINT_AUTO_PAY,
        )
    else:
        raise NotImplementedError(
            "No mint client configured. "
            "Set USE_MOCK_MINT=true or register a client with set_mint_client()."
        )

    return _mint_client


def set_mint_client(client: MintClient) -> None:
    """Register the mint client returned by get_mint_client()."""
    global _mint_client
    _mint_client = client
    logger.info(f"Mint client set: {type(client).__name__} for {client.mint_url}")


def build_wallet_service() -> WalletService:
    """Create a WalletService from application settings."""
    return WalletService(
        mint_url=settings.MINT_URL,
        wallet_db_path=settings.WALLET_DB_PATH,
        mint_client_factory=get_mint_client,
        unit=settings.WALLET_UNIT,
        quote_check_interval=settings.QUOTE_CHECK_INTERVAL_SECONDS,
        max_concurrent_checks=settings.QUOTE_MAX_CONCURRENT_CHECKS,
        melt_confirm_attempts=settings.MELT_CONFIRM_ATTEMPTS,
        melt_confirm_interval=settings.MELT_CONFIRM_INTERVAL_SECONDS,
        mint_poll_attempts=settings.MINT_POLL_ATTEMPTS,
        mint_poll_interval=settings.MINT_POLL_INTERVAL_SECONDS,
        lud06=LUD06InfoResponse(
            callback=settings.LUD06_CALLBACK,
            max_sendable=settings.LUD06_MAX_SENDABLE,
            min_sendable=settings.LUD06_MIN_SENDABLE,
            metadata=settings.LUD06_METADATA,
            tag=settings.LUD06_TAG,
        ),
    )


def get_wallet_service() -> WalletService:
    """
    Get the wallet service singleton, creating it on first call.

    Also used as a FastAPI dependency by the wallet routes.
    """
    global _wallet_service

    if _wallet_service is None:
        _wallet_service = build_wallet_service()

    return _wallet_service


def reset_wallet_service() -> None:
    """
    Close and forget the wallet service and mint client singletons.

    The next get_wallet_service() call builds fresh instances from settings.
    """
    global _wallet_service, _mint_client

    if _wallet_service is not None:
        _wallet_service.close()

    _wallet_service = None
    _mint_client = None
    logger.info("Wallet service singleton reset")
