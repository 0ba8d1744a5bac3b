"""Table definitions for the catalog."""

from __future__ import annotations

from sqlalchemy import Column, DateTime, Float, ForeignKey, Index, Integer, MetaData, String, Table, Text

metadata = MetaData()

studios = Table(
    "studios",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", Text, nullable=False),
    Column("category", Text, nullable=False),
    Column("capacity", Integer, nullable=False, default=100),
    Column("daily_rotation", Integer, nullable=False, default=2),
    Column("color", Text),
    Column("created_at", DateTime, nullable=False),
    Column("updated_at", DateTime, nullable=False),
)

products = Table(
    "products",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("studio_id", Integer, ForeignKey("studios.id", ondelete="CASCADE")),
    Column("name", Text, nullable=False),
    Column("affiliate_link", Text, nullable=False),
    Column("original_url", Text),
    Column("category", Text),
    Column("status", String(16), nullable=False, default="AVAILABLE"),
    Column("gmv", Float, nullable=False, default=0),
    Column("clicks", Integer, nullable=False, default=0),
    Column("score", Float, nullable=False, default=0),
    Column("cooldown_until", DateTime),
    Column("live_since", DateTime),
    Column("created_at", DateTime, nullable=False),
    Column("updated_at", DateTime, nullable=False),
    Index("ix_products_studio_status", "studio_id", "status"),
    Index("ix_products_original_url", "original_url"),
)
