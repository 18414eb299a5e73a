"""Pydantic models for results returned by a mint protocol client."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from ledger_engine.models import MintQuoteState, Proof


class MeltQuoteState(str, Enum):
    """Settlement state of a melt quote."""

    UNPAID = "UNPAID"
    PENDING = "PENDING"
    PAID = "PAID"


class ProofSpendState(str, Enum):
    """Redemption state of a proof as reported by the mint."""

    UNSPENT = "UNSPENT"
    PENDING = "PENDING"
    SPENT = "SPENT"


class MintQuoteInfo(BaseModel):
    """Mint quote as reported by the mint."""

    quote: str
    request: str
    amount: int
    expiry: int
    state: MintQuoteState = MintQuoteState.UNPAID
    pubkey: Optional[str] = None


class MeltQuoteInfo(BaseModel):
    """Melt quote: what it costs to pay an invoice through the mint."""

    quote: str
    request: str
    amount: int
    fee_reserve: int = Field(..., ge=0)
    state: MeltQuoteState = MeltQuoteState.UNPAID
    expiry: Optional[int] = None
    payment_preimage: Optional[str] = None


class SplitResult(BaseModel):
    """Partition produced by a swap: proofs to keep and proofs to send."""

    keep: List[Proof] = Field(default_factory=list)
    send: List[Proof] = Field(default_factory=list)


class MeltResult(BaseModel):
    """Outcome of melting proofs against a melt quote."""

    state: MeltQuoteState
    change: List[Proof] = Field(default_factory=list)
    payment_preimage: Optional[str] = None


class ProofStateInfo(BaseModel):
    """Per-proof redemption state, matched to proofs by secret."""

    secret: str
    state: ProofSpendState
