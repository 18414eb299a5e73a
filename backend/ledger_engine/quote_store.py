"""Persisted table of mint quotes keyed by (mint_url, quote_id)."""

import logging
from typing import Optional

from .database import LedgerDatabase, unix_now
from .models import MINT_QUOTE_STATE_RANK, MintQuote, MintQuoteState

logger = logging.getLogger(__name__)


class QuoteStore:
    """CRUD over the ``mint_quotes`` table."""

    def __init__(self, db: LedgerDatabase):
        self.db = db

    def get_mint_quote(self, mint_url: str, quote_id: str) -> Optional[MintQuote]:
        row = self.db.fetch_one(
            "SELECT * FROM mint_quotes WHERE mint_url = ? AND quote_id = ?",
            (mint_url, quote_id),
        )
        return MintQuote.from_row(row) if row is not None else None

    def save_mint_quote(self, quote: MintQuote) -> None:
        """Insert or replace a quote."""
        created_at = quote.created_at or unix_now()
        self.db.execute(
            """
            INSERT OR REPLACE INTO mint_quotes
                (mint_url, quote_id, state, request, amount, unit, expiry, pubkey, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                quote.mint_url,
                quote.quote_id,
                MintQuoteState(quote.state).value,
                quote.request,
                quote.amount,
                quote.unit,
                quote.expiry,
                quote.pubkey,
                created_at,
            ),
        )

    def update_mint_quote_state(
        self, mint_url: str, quote_id: str, state: MintQuoteState
    ) -> bool:
        """
        Record a newer state for a quote.

        States only move forward (UNPAID -> PAID -> ISSUED); writing the
        current or an earlier state is a no-op.

        Returns:
            bool: True if the stored state changed
        """
        state = MintQuoteState(state)
        earlier = [s.value for s, rank in MINT_QUOTE_STATE_RANK.items()
                   if rank < MINT_QUOTE_STATE_RANK[state]]
        if not earlier:
            return False

        placeholders = ", ".join("?" for _ in earlier)
        cursor = self.db.execute(
            f"""
            UPDATE mint_quotes SET state = ?
            WHERE mint_url = ? AND quote_id = ? AND state IN ({placeholders})
            """,
            (state.value, mint_url, quote_id, *earlier),
        )

        if cursor.rowcount:
            logger.info(f"Mint quote {quote_id} is now {state.value}")
        return cursor.rowcount > 0

    def get_pending_mint_quotes(
        self, mint_url: str, now: Optional[int] = None
    ) -> list[MintQuote]:
        """Quotes not yet issued and not yet expired, oldest first."""
        now = unix_now() if now is None else now
        rows = self.db.fetch_all(
            """
            SELECT * FROM mint_quotes
            WHERE mint_url = ? AND state IN ('UNPAID', 'PAID') AND expiry >= ?
            ORDER BY created_at ASC, rowid ASC
            """,
            (mint_url, now),
        )
        return [MintQuote.from_row(row) for row in rows]
