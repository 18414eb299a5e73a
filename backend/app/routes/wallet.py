"""
Wallet API Routes

Balance, ecash transfer, Lightning payment and maintenance endpoints.
"""

import logging

from fastapi import APIRouter, Depends

from app.models.wallet_requests import (
    PayInvoiceRequest,
    ReceiveEcashRequest,
    SendEcashRequest,
)
from app.models.wallet_responses import (
    BalanceResponse,
    CleanPendingProofsResponse,
    InfoResponse,
    LUD06InfoResponse,
    PayInvoiceResponse,
    ReceiveEcashResponse,
    SendEcashResponse,
)
from app.services.wallet_factory import get_wallet_service
from app.services.wallet_service import WalletService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/balance",
    response_model=BalanceResponse,
    summary="Get Balance",
    description="""
Ready and pending balance of the wallet.

Pending proofs (sent tokens and payments) are re-checked against the mint
first; those already redeemed no longer count as pending.
""",
    responses={
        200: {
            "description": "Current balance",
            "content": {
                "application/json": {
                    "example": {
                        "balance": 1500,
                        "pendingBalance": 500,
                        "total": 2000,
                        "pendingProofsCount": 2,
                    }
                }
            },
        },
    },
)
async def get_balance(
    wallet: WalletService = Depends(get_wallet_service),
) -> BalanceResponse:
    return await wallet.get_balance()


@router.post(
    "/send",
    response_model=SendEcashResponse,
    summary="Send Ecash",
    description="""
Create a cashu token worth `amount`.

The sent proofs stay pending until the recipient redeems the token.
""",
    responses={
        200: {"description": "Token created"},
        400: {"description": "Invalid amount, unknown mint or insufficient balance"},
        502: {"description": "Mint rejected the swap"},
    },
)
async def send_ecash(
    request: SendEcashRequest,
    wallet: WalletService = Depends(get_wallet_service),
) -> SendEcashResponse:
    logger.info(f"Send requested: amount={request.amount}")
    return await wallet.send_ecash(request.amount, request.mint_url)


@router.post(
    "/receive",
    response_model=ReceiveEcashResponse,
    summary="Receive Ecash",
    responses={
        200: {"description": "Token redeemed"},
        400: {"description": "Missing or malformed token, or token from another mint"},
        502: {"description": "Mint rejected the token or returned no proofs"},
    },
)
async def receive_ecash(
    request: ReceiveEcashRequest,
    wallet: WalletService = Depends(get_wallet_service),
) -> ReceiveEcashResponse:
    """Redeem a cashu token into fresh proofs."""
    return await wallet.receive_ecash(request.token)


@router.post(
    "/pay",
    response_model=PayInvoiceResponse,
    summary="Pay Lightning Invoice",
    description="""
Pay a BOLT11 invoice with ecash through the mint.

`paymentPreimage` is absent when the payment had not settled by the time
the request returned; the balance endpoint reflects the final outcome.
""",
    responses={
        200: {"description": "Payment submitted"},
        400: {"description": "Missing invoice or insufficient balance"},
        502: {"description": "Mint rejected the melt"},
    },
)
async def pay_invoice(
    request: PayInvoiceRequest,
    wallet: WalletService = Depends(get_wallet_service),
) -> PayInvoiceResponse:
    logger.info("Invoice payment requested")
    return await wallet.pay_invoice(request.invoice)


@router.post(
    "/proofs/clean",
    response_model=CleanPendingProofsResponse,
    summary="Clean Pending Proofs",
)
async def clean_pending_proofs(
    wallet: WalletService = Depends(get_wallet_service),
) -> CleanPendingProofsResponse:
    """Mark pending proofs the mint reports as spent."""
    return await wallet.clean_pending_proofs()


@router.get("/info", response_model=InfoResponse, summary="Wallet Info")
async def get_info(
    wallet: WalletService = Depends(get_wallet_service),
) -> InfoResponse:
    return wallet.get_info()


@router.get("/lud06", response_model=LUD06InfoResponse, summary="LNURL-pay Descriptor")
async def get_lud06_info(
    wallet: WalletService = Depends(get_wallet_service),
) -> LUD06InfoResponse:
    return wallet.get_lud06_info()
