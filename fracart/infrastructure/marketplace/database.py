"""
Database engine construction and schema management.

The ledger runs on PostgreSQL in production and on SQLite for local
development and tests. All DDL and queries stay within the SQL subset
both engines accept.
"""

import logging

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

DDL_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS artworks (
        id                  VARCHAR(36)   PRIMARY KEY,
        title               TEXT          NOT NULL,
        description         TEXT,
        owner_user_id       VARCHAR(36)   NOT NULL,
        price_amount        NUMERIC(18,2) NOT NULL,
        price_denom         VARCHAR(10)   NOT NULL DEFAULT 'USD',
        fractions_total     INTEGER       NOT NULL,
        fractions_available INTEGER       NOT NULL,
        status              VARCHAR(16)   NOT NULL DEFAULT 'available',
        created_at          VARCHAR(40)   NOT NULL,
        CHECK (fractions_available >= 0),
        CHECK (fractions_available <= fractions_total)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS transactions (
        id               VARCHAR(36)   PRIMARY KEY,
        buyer_user_id    VARCHAR(36)   NOT NULL,
        seller_user_id   VARCHAR(36),
        artwork_id       VARCHAR(36)   NOT NULL REFERENCES artworks (id),
        amount           NUMERIC(18,2) NOT NULL,
        currency         VARCHAR(10)   NOT NULL DEFAULT 'USD',
        transaction_type VARCHAR(32)   NOT NULL,
        status           VARCHAR(16)   NOT NULL,
        fraction_units   INTEGER       NOT NULL DEFAULT 0,
        metadata         TEXT          NOT NULL DEFAULT '{}',
        created_at       VARCHAR(40)   NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS auctions (
        id             VARCHAR(36)   PRIMARY KEY,
        artwork_id     VARCHAR(36)   NOT NULL REFERENCES artworks (id),
        seller_user_id VARCHAR(36)   NOT NULL,
        start_price    NUMERIC(18,2) NOT NULL,
        reserve_price  NUMERIC(18,2),
        status         VARCHAR(16)   NOT NULL,
        starts_at      VARCHAR(40),
        ends_at        VARCHAR(40),
        current_bid    NUMERIC(18,2),
        bid_count      INTEGER       NOT NULL DEFAULT 0,
        created_at     VARCHAR(40)   NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS bids (
        id             VARCHAR(36)   PRIMARY KEY,
        auction_id     VARCHAR(36)   NOT NULL REFERENCES auctions (id),
        bidder_user_id VARCHAR(36)   NOT NULL,
        amount         NUMERIC(18,2) NOT NULL,
        created_at     VARCHAR(40)   NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS valuation_cache (
        artwork_id  VARCHAR(36)      PRIMARY KEY,
        valuation   NUMERIC(18,2)    NOT NULL,
        as_of       VARCHAR(40)      NOT NULL,
        cached_at   DOUBLE PRECISION NOT NULL,
        ttl_seconds DOUBLE PRECISION NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_txn_buyer ON transactions (buyer_user_id, status)",
    "CREATE INDEX IF NOT EXISTS idx_txn_artwork ON transactions (artwork_id, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_auction_status ON auctions (status, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_bids_auction ON bids (auction_id, created_at)",
]


def build_engine(database_url: str) -> Engine:
    """Build a SQLAlchemy engine for the ledger database.

    SQLite connections are shared across the request thread pool, so
    the same-thread check is disabled for them.
    """
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(database_url, pool_pre_ping=True, connect_args=connect_args)


def ensure_schema(engine: Engine) -> None:
    """Create ledger and cache tables and indexes if they do not exist (idempotent)."""
    with engine.begin() as conn:
        for ddl in DDL_STATEMENTS:
            conn.execute(text(ddl))
    logger.info("Ledger tables verified/created.")
