"""Pydantic models for API request/response schemas."""

from .mint_protocol import (
    MeltQuoteInfo,
    MeltQuoteState,
    MeltResult,
    MintQuoteInfo,
    ProofSpendState,
    ProofStateInfo,
    SplitResult,
)
from .wallet_requests import (
    MintProofsRequest,
    MintQuoteRequest,
    PayInvoiceRequest,
    ReceiveEcashRequest,
    SendEcashRequest,
)
from .wallet_responses import (
    BalanceResponse,
    CleanPendingProofsResponse,
    InfoResponse,
    LUD06InfoResponse,
    MintEcashResponse,
    MintProofsResponse,
    MintQuoteResponse,
    MintQuoteStatusResponse,
    PayInvoiceResponse,
    QuotePoolStatus,
    ReceiveEcashResponse,
    SendEcashResponse,
)

__all__ = [
    "MeltQuoteInfo",
    "MeltQuoteState",
    "MeltResult",
    "MintQuoteInfo",
    "ProofSpendState",
    "ProofStateInfo",
    "SplitResult",
    "MintProofsRequest",
    "MintQuoteRequest",
    "PayInvoiceRequest",
    "ReceiveEcashRequest",
    "SendEcashRequest",
    "BalanceResponse",
    "CleanPendingProofsResponse",
    "InfoResponse",
    "LUD06InfoResponse",
    "MintEcashResponse",
    "MintProofsResponse",
    "MintQuoteResponse",
    "MintQuoteStatusResponse",
    "PayInvoiceResponse",
    "QuotePoolStatus",
    "ReceiveEcashResponse",
    "SendEcashResponse",
]
