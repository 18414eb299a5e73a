"""Pydantic models returned by wallet operations and endpoints."""

from typing import List, Optional

from pydantic import BaseModel, Field

from ledger_engine.models import Proof

_camel = {"populate_by_name": True}


class BalanceResponse(BaseModel):
    """
    Wallet balance for the configured mint.

    Attributes:
        balance: Sum of ready proofs
        pending_balance: Sum of inflight proofs
        total: balance + pending_balance
        pending_proofs_count: Number of inflight proofs
    """

    balance: int
    pending_balance: int = Field(..., alias="pendingBalance")
    total: int
    pending_proofs_count: int = Field(..., alias="pendingProofsCount")

    model_config = _camel


class MintQuoteResponse(BaseModel):
    """Newly created mint quote."""

    quote_id: str = Field(..., alias="quoteId")
    lightning_invoice: str = Field(..., alias="lightningInvoice")
    amount: int
    expiry: int

    model_config = _camel


class MintQuoteStatusResponse(BaseModel):
    """Authoritative state of a mint quote."""

    quote_id: str = Field(..., alias="quoteId")
    state: str
    amount: int
    is_paid: bool = Field(..., alias="isPaid")
    is_issued: bool = Field(..., alias="isIssued")
    can_mint: bool = Field(..., alias="canMint")

    model_config = _camel


class MintProofsResponse(BaseModel):
    """Proofs minted for a paid quote."""

    proofs: List[Proof]
    total_amount: int = Field(..., alias="totalAmount")
    proof_count: int = Field(..., alias="proofCount")
    proof_amounts: List[int] = Field(..., alias="proofAmounts")
    quote_id: str = Field(..., alias="quoteId")

    model_config = _camel


class MintEcashResponse(MintProofsResponse):
    """Proofs minted by the blocking quote-pay-mint flow."""

    lightning_invoice: str = Field(..., alias="lightningInvoice")


class SendEcashResponse(BaseModel):
    """Result of preparing a token for sending."""

    sent_amount: int = Field(..., alias="sentAmount")
    keep_amount: int = Field(..., alias="keepAmount")
    fee: int
    sent_proofs: List[Proof] = Field(..., alias="sentProofs")
    keep_proofs: List[Proof] = Field(..., alias="keepProofs")
    cashu_token: str = Field(..., alias="cashuToken")

    model_config = _camel


class ReceiveEcashResponse(BaseModel):
    """Proofs obtained by redeeming a token."""

    received_proofs: List[Proof] = Field(..., alias="receivedProofs")
    total_amount: int = Field(..., alias="totalAmount")
    proof_count: int = Field(..., alias="proofCount")
    proof_amounts: List[int] = Field(..., alias="proofAmounts")

    model_config = _camel


class PayInvoiceResponse(BaseModel):
    """Outcome of paying a Lightning invoice."""

    melt_quote_id: str = Field(..., alias="meltQuoteId")
    amount_paid: int = Field(..., alias="amountPaid")
    fee_reserve: int = Field(..., alias="feeReserve")
    total_amount: int = Field(..., alias="totalAmount")
    payment_preimage: Optional[str] = Field(None, alias="paymentPreimage")
    remaining_balance: int = Field(..., alias="remainingBalance")
    change_proofs: List[Proof] = Field(default_factory=list, alias="changeProofs")
    sent_proofs: List[Proof] = Field(..., alias="sentProofs")
    kept_proofs: List[Proof] = Field(..., alias="keptProofs")

    model_config = _camel


class CleanPendingProofsResponse(BaseModel):
    """Counts from a sweep over inflight proofs."""

    cleaned_count: int = Field(..., alias="cleanedCount")
    cleaned_amount: int = Field(..., alias="cleanedAmount")
    total_checked: int = Field(..., alias="totalChecked")
    remaining_pending: int = Field(..., alias="remainingPending")

    model_config = _camel


class InfoResponse(BaseModel):
    mint_url: str = Field(..., alias="mintUrl")
    wallet_db_path: str = Field(..., alias="walletDbPath")
    unit: str

    model_config = _camel


class LUD06InfoResponse(BaseModel):
    """LNURL-pay descriptor (LUD-06)."""

    callback: str
    max_sendable: int = Field(..., alias="maxSendable")
    min_sendable: int = Field(..., alias="minSendable")
    metadata: str
    tag: str

    model_config = _camel


class QuotePoolStatus(BaseModel):
    """Snapshot of the quote monitor."""

    active: int
    running: bool
    checking: int
    next_run: Optional[str] = Field(None, alias="nextRun")

    model_config = _camel
