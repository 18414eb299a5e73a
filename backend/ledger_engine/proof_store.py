"""Persisted table of owned proofs keyed by (mint_url, secret)."""

import logging
from typing import Iterable, Optional

from .database import LedgerDatabase, unix_now
from .models import (
    PROOF_STATE_PREDECESSORS,
    PROOF_STATE_RANK,
    Proof,
    ProofState,
    StoredProof,
)

logger = logging.getLogger(__name__)


def _state_rank_sql(col: str) -> str:
    """SQL expression ranking ``col`` by ``PROOF_STATE_RANK``."""
    whens = " ".join(
        f"WHEN '{state.value}' THEN {rank}" for state, rank in PROOF_STATE_RANK.items()
    )
    return f"CASE {col} {whens} END"


# Re-saving a known secret never moves its row to an earlier state.
_UPSERT_SQL = f"""
INSERT INTO proofs
    (mint_url, keyset_id, amount, secret, c, dleq_json, witness_json, state, created_at)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT (mint_url, secret) DO UPDATE SET
    keyset_id = excluded.keyset_id,
    amount = excluded.amount,
    c = excluded.c,
    dleq_json = excluded.dleq_json,
    witness_json = excluded.witness_json,
    state = excluded.state
WHERE {_state_rank_sql("proofs.state")}
   <= {_state_rank_sql("excluded.state")}
"""


class ProofStore:
    """CRUD and balance queries over the ``proofs`` table."""

    def __init__(self, db: LedgerDatabase):
        self.db = db

    def get_proofs(
        self, mint_url: str, state: Optional[ProofState] = None
    ) -> list[StoredProof]:
        """
        Fetch proofs for a mint, optionally filtered by state.

        Proofs are returned in insertion order.
        """
        sql = "SELECT * FROM proofs WHERE mint_url = ?"
        params: list = [mint_url]

        if state is not None:
            sql += " AND state = ?"
            params.append(ProofState(state).value)

        sql += " ORDER BY created_at ASC, rowid ASC"
        return [StoredProof.from_row(row) for row in self.db.fetch_all(sql, params)]

    def get_all_proofs(self, state: Optional[ProofState] = None) -> list[StoredProof]:
        """Fetch proofs across every mint, optionally filtered by state."""
        sql = "SELECT * FROM proofs"
        params: list = []

        if state is not None:
            sql += " WHERE state = ?"
            params.append(ProofState(state).value)

        sql += " ORDER BY created_at ASC, rowid ASC"
        return [StoredProof.from_row(row) for row in self.db.fetch_all(sql, params)]

    def get_proof(self, mint_url: str, secret: str) -> Optional[StoredProof]:
        row = self.db.fetch_one(
            "SELECT * FROM proofs WHERE mint_url = ? AND secret = ?",
            (mint_url, secret),
        )
        return StoredProof.from_row(row) if row is not None else None

    def save_proofs(
        self,
        proofs: Iterable[Proof],
        mint_url: str,
        state: ProofState = ProofState.READY,
    ) -> int:
        """
        Upsert a batch of proofs with an explicit state.

        Runs inside the caller's transaction when there is one; otherwise the
        batch commits on its own as one unit.

        Args:
            proofs: Proofs returned by the mint
            mint_url: Mint the proofs belong to
            state: State to record for every proof in the batch

        Returns:
            int: Number of rows written. Proofs already in a later state
            are left untouched and not counted.
        """
        state = ProofState(state)
        timestamp = unix_now()
        count = 0

        with self.db.transaction() as conn:
            for proof in proofs:
                cursor = conn.execute(
                    _UPSERT_SQL,
                    (
                        mint_url,
                        proof.keyset_id,
                        proof.amount,
                        proof.secret,
                        proof.c,
                        proof.dleq.model_dump_json() if proof.dleq else None,
                        proof.witness.model_dump_json(exclude_none=True)
                        if proof.witness
                        else None,
                        state.value,
                        timestamp,
                    ),
                )
                count += cursor.rowcount

        if count:
            logger.debug(f"Saved {count} proofs as {state.value} for {mint_url}")
        return count

    def update_proof_state(
        self,
        secret: str,
        state: ProofState,
        mint_url: Optional[str] = None,
    ) -> bool:
        """
        Move one proof to ``state`` if that is a forward transition.

        Args:
            secret: Secret of the proof to update
            state: Target state
            mint_url: Restrict the update to one mint (optional)

        Returns:
            bool: True if a row changed state
        """
        state = ProofState(state)
        allowed = [s.value for s in PROOF_STATE_PREDECESSORS[state]]
        placeholders = ", ".join("?" for _ in allowed)

        sql = f"UPDATE proofs SET state = ? WHERE secret = ? AND state IN ({placeholders})"
        params: list = [state.value, secret, *allowed]
        if mint_url is not None:
            sql += " AND mint_url = ?"
            params.append(mint_url)

        cursor = self.db.execute(sql, params)
        if cursor.rowcount == 0:
            logger.debug(f"Proof state unchanged for secret {secret[:8]}... -> {state.value}")
        return cursor.rowcount > 0

    def delete_proof(self, secret: str, mint_url: Optional[str] = None) -> bool:
        """Administratively remove a proof. Not used by normal flows."""
        sql = "DELETE FROM proofs WHERE secret = ?"
        params: list = [secret]
        if mint_url is not None:
            sql += " AND mint_url = ?"
            params.append(mint_url)

        cursor = self.db.execute(sql, params)
        return cursor.rowcount > 0

    def get_balance(
        self,
        mint_url: Optional[str] = None,
        state: ProofState = ProofState.READY,
    ) -> int:
        """Sum of proof amounts in ``state``, optionally scoped to a mint."""
        sql = "SELECT COALESCE(SUM(amount), 0) AS total FROM proofs WHERE state = ?"
        params: list = [ProofState(state).value]

        if mint_url is not None:
            sql += " AND mint_url = ?"
            params.append(mint_url)

        row = self.db.fetch_one(sql, params)
        return int(row["total"]) if row is not None else 0

    def count_proofs(self, mint_url: str, state: ProofState) -> int:
        row = self.db.fetch_one(
            "SELECT COUNT(*) AS n FROM proofs WHERE mint_url = ? AND state = ?",
            (mint_url, ProofState(state).value),
        )
        return int(row["n"]) if row is not None else 0
