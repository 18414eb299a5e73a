"""Persistent proof and quote ledger."""

from .database import LedgerDatabase, unix_now
from .exceptions import (
    EmptyResultError,
    InsufficientBalanceError,
    InvalidAmountError,
    InvalidTokenError,
    MintUnavailableError,
    MissingParameterError,
    ProtocolError,
    QuoteAlreadyIssuedError,
    StorageCorruptionError,
    UnknownMintError,
    WalletError,
    WalletValidationError,
)
from .models import (
    DLEQ,
    MintQuote,
    MintQuoteState,
    Proof,
    ProofState,
    StoredProof,
    Witness,
    sum_proofs,
)
from .proof_store import ProofStore
from .quote_store import QuoteStore

__all__ = [
    "LedgerDatabase",
    "ProofStore",
    "QuoteStore",
    "unix_now",
    "DLEQ",
    "MintQuote",
    "MintQuoteState",
    "Proof",
    "ProofState",
    "StoredProof",
    "Witness",
    "sum_proofs",
    "WalletError",
    "WalletValidationError",
    "MissingParameterError",
    "InvalidAmountError",
    "InvalidTokenError",
    "UnknownMintError",
    "QuoteAlreadyIssuedError",
    "ProtocolError",
    "EmptyResultError",
    "InsufficientBalanceError",
    "StorageCorruptionError",
    "MintUnavailableError",
]
