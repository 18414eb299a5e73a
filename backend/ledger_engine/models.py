"""Pydantic models for proofs and mint quotes held by the ledger."""

import json
import sqlite3
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_serializer, field_validator


class ProofState(str, Enum):
    """Lifecycle state of an owned proof."""

    READY = "ready"
    INFLIGHT = "inflight"
    SPENT = "spent"


# Ordering used to reject backward transitions.
PROOF_STATE_RANK = {
    ProofState.READY: 0,
    ProofState.INFLIGHT: 1,
    ProofState.SPENT: 2,
}

# Allowed predecessor states for each target state.
PROOF_STATE_PREDECESSORS = {
    ProofState.READY: (ProofState.READY,),
    ProofState.INFLIGHT: (ProofState.READY, ProofState.INFLIGHT),
    ProofState.SPENT: (ProofState.READY, ProofState.INFLIGHT, ProofState.SPENT),
}


class MintQuoteState(str, Enum):
    """State of a mint quote as reported by the mint."""

    UNPAID = "UNPAID"
    PAID = "PAID"
    ISSUED = "ISSUED"


MINT_QUOTE_STATE_RANK = {
    MintQuoteState.UNPAID: 0,
    MintQuoteState.PAID: 1,
    MintQuoteState.ISSUED: 2,
}


class DLEQ(BaseModel):
    """Discrete-log equality proof attached to a signature."""

    e: str
    s: str
    r: Optional[str] = None


class Witness(BaseModel):
    """Spending-condition witness (P2PK signatures or HTLC preimage)."""

    signatures: Optional[List[str]] = None
    preimage: Optional[str] = None


class Proof(BaseModel):
    """A bearer claim as exchanged with the mint."""

    keyset_id: str = Field(..., alias="id")
    amount: int = Field(..., gt=0)
    secret: str
    c: str = Field(..., alias="C")
    dleq: Optional[DLEQ] = None
    witness: Optional[Witness] = None

    model_config = {"populate_by_name": True}

    @field_validator("witness", mode="before")
    @classmethod
    def _parse_witness(cls, value):
        # Tokens and mint payloads carry the witness as a JSON string.
        if isinstance(value, str):
            return json.loads(value)
        return value

    @field_serializer("witness")
    def _dump_witness(self, witness: Optional[Witness]) -> Optional[str]:
        return witness.model_dump_json(exclude_none=True) if witness else None


class StoredProof(BaseModel):
    """
    A proof row as persisted in the ledger.

    ``dleq_json`` and ``witness_json`` stay serialized until ``to_proof`` is
    called, which is only needed when the proof is handed back to the mint.
    """

    mint_url: str
    keyset_id: str
    amount: int
    secret: str
    c: str
    dleq_json: Optional[str] = None
    witness_json: Optional[str] = None
    state: ProofState
    created_at: int

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "StoredProof":
        return cls(**dict(row))

    def to_proof(self) -> Proof:
        return Proof(
            keyset_id=self.keyset_id,
            amount=self.amount,
            secret=self.secret,
            c=self.c,
            dleq=DLEQ.model_validate_json(self.dleq_json) if self.dleq_json else None,
            witness=(
                Witness.model_validate_json(self.witness_json)
                if self.witness_json
                else None
            ),
        )


class MintQuote(BaseModel):
    """A pending invoice-for-tokens request."""

    mint_url: str
    quote_id: str
    state: MintQuoteState = MintQuoteState.UNPAID
    request: str
    amount: int
    unit: str = "sat"
    expiry: int
    pubkey: Optional[str] = None
    created_at: int = 0

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "MintQuote":
        return cls(**dict(row))


def sum_proofs(proofs) -> int:
    """Sum the amounts of any iterable of proof-like objects."""
    return sum(p.amount for p in proofs)
