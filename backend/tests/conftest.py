"""
Pytest configuration and fixtures
"""

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from app.config import settings
from app.main import app
from app.services.mock_mint_client import MockMintClient
from app.services.wallet_factory import reset_wallet_service
from app.services.wallet_service import WalletService

MINT_URL = "https://mint.test.local"


@pytest.fixture
def app_settings(tmp_path, monkeypatch):
    """Point the application at a throwaway ledger and a fresh simulated mint."""
    monkeypatch.setattr(settings, "MINT_URL", MINT_URL)
    monkeypatch.setattr(settings, "WALLET_DB_PATH", str(tmp_path / "wallet.sqlite"))
    monkeypatch.setattr(settings, "USE_MOCK_MINT", True)
    monkeypatch.setattr(settings, "MOCK_MINT_AUTO_PAY", False)
    monkeypatch.setattr(settings, "MOCK_MINT_INPUT_FEE_PPK", 0)
    monkeypatch.setattr(settings, "MELT_CONFIRM_INTERVAL_SECONDS", 0)
    monkeypatch.setattr(settings, "MINT_POLL_INTERVAL_SECONDS", 0)
    monkeypatch.setattr(settings, "QUOTE_CHECK_INTERVAL_SECONDS", 60)
    reset_wallet_service()
    yield settings
    reset_wallet_service()


@pytest.fixture
def client(app_settings):
    """FastAPI test client fixture; runs the application lifespan."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def mint():
    """Simulated mint shared by a wallet and the test."""
    return MockMintClient(mint_url=MINT_URL)


@pytest_asyncio.fixture
async def wallet(tmp_path, mint):
    """Wallet service on a temporary ledger, bound to the ``mint`` fixture."""
    service = WalletService(
        mint_url=MINT_URL,
        wallet_db_path=str(tmp_path / "wallet.sqlite"),
        mint_client_factory=lambda: mint,
        quote_check_interval=60,
        melt_confirm_interval=0,
        mint_poll_attempts=3,
        mint_poll_interval=0,
    )
    yield service
    service.close()


@pytest.fixture
def fund(wallet, mint):
    """Return a coroutine function that mints ``amount`` into the wallet."""

    async def _fund(amount: int):
        quote = await mint.create_mint_quote(amount)
        mint.pay_mint_quote(quote.quote)
        return await wallet.mint_proofs(quote.quote, amount)

    return _fund
