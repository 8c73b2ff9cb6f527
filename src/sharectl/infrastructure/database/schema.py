"""SQLAlchemy Core table definitions for the sharectl database."""

from __future__ import annotations

from sqlalchemy import (
    Column,
    Index,
    Integer,
    MetaData,
    Table,
    Text,
)

metadata = MetaData()

# Durable key/value store. Values are JSON documents.
kv_store = Table(
    "kv_store",
    metadata,
    Column("key", Text, primary_key=True),
    Column("value", Text, nullable=False),
    Column("updated", Text, nullable=False),
)

event_wal = Table(
    "event_wal",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("hook_name", Text, nullable=False),
    Column("payload", Text, nullable=False),  # JSON
    Column("status", Text, nullable=False),  # pending | completed | failed | dead_letter
    Column("error", Text),
    Column("retries", Integer, default=0, server_default="0"),
    Column("network_id", Text),
    Column("created", Text, nullable=False),
    Column("completed", Text),
)

# --- Loopback conductor ---

loopback_cells = Table(
    "loopback_cells",
    metadata,
    Column("dna_hash", Text, primary_key=True),  # base64
    Column("role_name", Text, nullable=False),
    Column("network_seed", Text, nullable=False),
    Column("name", Text, nullable=False),
    Column("enabled", Integer, nullable=False, default=1, server_default="1"),
    Column("position", Integer, nullable=False),
    Column("created", Text, nullable=False),
)

loopback_shares = Table(
    "loopback_shares",
    metadata,
    Column("action_hash", Text, primary_key=True),  # base64
    Column("dna_hash", Text, nullable=False),
    Column("author", Text, nullable=False),  # base64
    Column("entry", Text, nullable=False),  # JSON
    Column("created_at", Integer, nullable=False),  # microseconds
    Column("deleted", Integer, nullable=False, default=0, server_default="0"),
    # Set on revisions: the share this row updates. Listings show originals only.
    Column("original_hash", Text),
)

loopback_feeds = Table(
    "loopback_feeds",
    metadata,
    Column("action_hash", Text, primary_key=True),  # base64
    Column("dna_hash", Text, nullable=False),
    Column("author", Text, nullable=False),  # base64
    Column("entry", Text, nullable=False),  # JSON
    Column("created_at", Integer, nullable=False),  # microseconds
    Column("deleted", Integer, nullable=False, default=0, server_default="0"),
)

# Feed membership: feed -> share and feed -> member agent.
loopback_links = Table(
    "loopback_links",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("dna_hash", Text, nullable=False),
    Column("link_type", Text, nullable=False),  # feed_share | feed_member
    Column("base", Text, nullable=False),  # base64
    Column("target", Text, nullable=False),  # base64
    Column("created_at", Integer, nullable=False),  # microseconds
)

Index("ix_event_wal_status", event_wal.c.status)
Index("ix_loopback_shares_dna", loopback_shares.c.dna_hash, loopback_shares.c.created_at)
Index("ix_loopback_shares_original", loopback_shares.c.original_hash)
Index("ix_loopback_feeds_dna", loopback_feeds.c.dna_hash, loopback_feeds.c.author)
Index("ix_loopback_links_base", loopback_links.c.dna_hash, loopback_links.c.link_type, loopback_links.c.base)
