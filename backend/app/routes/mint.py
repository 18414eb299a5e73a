"""
Mint API Routes

Lightning-to-ecash endpoints: mint quotes, minting and the quote monitor.
"""

import logging

from fastapi import APIRouter, Depends

from app.models.wallet_requests import MintProofsRequest, MintQuoteRequest
from app.models.wallet_responses import (
    MintEcashResponse,
    MintProofsResponse,
    MintQuoteResponse,
    MintQuoteStatusResponse,
    QuotePoolStatus,
)
from app.services.wallet_factory import get_wallet_service
from app.services.wallet_service import WalletService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/mint/quote",
    response_model=MintQuoteResponse,
    summary="Create Mint Quote",
    description="""
Request a Lightning invoice for minting new ecash.

**Workflow:** Create quote → Pay invoice → Proofs are minted automatically

The quote is tracked in the background; once the invoice is paid the proofs
are minted and added to the balance without a further request. Use
`GET /api/mint/quote/{quote_id}` to follow its state.
""",
    responses={
        200: {
            "description": "Quote created",
            "content": {
                "application/json": {
                    "example": {
                        "quoteId": "9d3f6c2a1b7e4f0a8c5d2e1f3a4b6c7d",
                        "lightningInvoice": "lnbc10000n1p...",
                        "amount": 1000,
                        "expiry": 1760000000,
                    }
                }
            },
        },
        400: {"description": "Invalid amount"},
        502: {"description": "Mint rejected the request"},
    },
)
async def create_mint_quote(
    request: MintQuoteRequest,
    wallet: WalletService = Depends(get_wallet_service),
) -> MintQuoteResponse:
    logger.info(f"Mint quote requested: amount={request.amount}")
    return await wallet.create_mint_quote(request.amount)


@router.get(
    "/mint/quote/{quote_id}",
    response_model=MintQuoteStatusResponse,
    summary="Check Mint Quote",
    responses={
        200: {"description": "Current quote state"},
        502: {"description": "Mint rejected the request"},
    },
)
async def check_mint_quote(
    quote_id: str,
    wallet: WalletService = Depends(get_wallet_service),
) -> MintQuoteStatusResponse:
    """Report whether a quote is paid and whether it can still be minted."""
    return await wallet.check_mint_quote(quote_id)


@router.post(
    "/mint",
    response_model=MintProofsResponse,
    summary="Mint Proofs",
    description="Mint proofs for a paid quote. Fails if the quote was already issued.",
    responses={
        200: {"description": "Proofs minted"},
        400: {"description": "Missing parameters or quote already issued"},
        502: {"description": "Mint rejected the request or returned no proofs"},
    },
)
async def mint_proofs(
    request: MintProofsRequest,
    wallet: WalletService = Depends(get_wallet_service),
) -> MintProofsResponse:
    logger.info(f"Mint requested: quote_id={request.quote_id}, amount={request.amount}")
    return await wallet.mint_proofs(request.quote_id, request.amount)


@router.post(
    "/mint/ecash",
    response_model=MintEcashResponse,
    summary="Mint Ecash (blocking)",
    description="""
Create a quote and wait for its invoice to be paid, then mint.

The request stays open until payment arrives or the poll window
(MINT_POLL_ATTEMPTS × MINT_POLL_INTERVAL_SECONDS) runs out.
""",
    responses={
        200: {"description": "Invoice paid and proofs minted"},
        400: {"description": "Invalid amount"},
        502: {"description": "Payment timed out or the mint rejected the request"},
    },
)
async def mint_ecash(
    request: MintQuoteRequest,
    wallet: WalletService = Depends(get_wallet_service),
) -> MintEcashResponse:
    return await wallet.mint_ecash(request.amount)


@router.get(
    "/quotes/pool",
    response_model=QuotePoolStatus,
    summary="Quote Monitor Status",
)
async def quote_pool_status(
    wallet: WalletService = Depends(get_wallet_service),
) -> QuotePoolStatus:
    """Number of tracked quotes and whether the background check is scheduled."""
    return wallet.get_quote_pool_status()
