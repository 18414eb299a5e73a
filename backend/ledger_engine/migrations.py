"""Versioned schema upgrades for the wallet ledger.

Each migration is applied at most once. Its statements and the marker row in
``ledger_migrations`` are written inside one transaction.
"""

from typing import NamedTuple


class Migration(NamedTuple):
    id: str
    statements: tuple[str, ...]


MIGRATIONS_TABLE = """
CREATE TABLE IF NOT EXISTS ledger_migrations (
    id         TEXT PRIMARY KEY,
    applied_at INTEGER NOT NULL
)
"""

MIGRATIONS: tuple[Migration, ...] = (
    Migration(
        id="001_initial",
        statements=(
            """
            CREATE TABLE IF NOT EXISTS proofs (
                mint_url     TEXT NOT NULL,
                keyset_id    TEXT NOT NULL,
                amount       INTEGER NOT NULL CHECK (amount > 0),
                secret       TEXT NOT NULL,
                c            TEXT NOT NULL,
                dleq_json    TEXT,
                witness_json TEXT,
                state        TEXT NOT NULL CHECK (state IN ('ready', 'inflight', 'spent')),
                created_at   INTEGER NOT NULL,
                PRIMARY KEY (mint_url, secret)
            )
            """,
            "CREATE INDEX IF NOT EXISTS idx_proofs_state ON proofs(state)",
            "CREATE INDEX IF NOT EXISTS idx_proofs_mint_state ON proofs(mint_url, state)",
            """
            CREATE INDEX IF NOT EXISTS idx_proofs_mint_keyset_state
            ON proofs(mint_url, keyset_id, state)
            """,
            """
            CREATE TABLE IF NOT EXISTS mint_quotes (
                mint_url TEXT NOT NULL,
                quote_id TEXT NOT NULL,
                state    TEXT NOT NULL CHECK (state IN ('UNPAID', 'PAID', 'ISSUED')),
                request  TEXT NOT NULL,
                amount   INTEGER NOT NULL,
                unit     TEXT NOT NULL,
                expiry   INTEGER NOT NULL,
                pubkey   TEXT,
                PRIMARY KEY (mint_url, quote_id)
            )
            """,
            "CREATE INDEX IF NOT EXISTS idx_mint_quotes_state ON mint_quotes(state)",
            "CREATE INDEX IF NOT EXISTS idx_mint_quotes_mint ON mint_quotes(mint_url)",
        ),
    ),
    Migration(
        id="002_quote_created_at",
        statements=(
            "ALTER TABLE mint_quotes ADD COLUMN created_at INTEGER NOT NULL DEFAULT 0",
        ),
    ),
)
