# cansend/models.py
from __future__ import annotations

import uuid

from sqlalchemy import (
    Column,
    String,
    Numeric,
    DateTime,
    Integer,
    Boolean,
    Text,
    ForeignKey,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


class PSP(Base):
    """Payment service provider (bank, wallet, money-transfer app)."""

    __tablename__ = "psps"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(128), nullable=False, unique=True)
    display_name = Column(String(128), nullable=False)
    logo_url = Column(Text, nullable=True)
    website_url = Column(Text, nullable=True)

    # e.g. https://revolut.com/referral/{{referral_code}}
    affiliate_template = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=True)


class Currency(Base):
    __tablename__ = "currencies"

    id = Column(String(36), primary_key=True, default=_uuid)
    code = Column(String(8), nullable=False, unique=True)  # USD / EUR / ILS ...
    name = Column(String(64), nullable=False)
    symbol = Column(String(8), nullable=True)
    flag_url = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=True)


class TransferRoute(Base):
    __tablename__ = "transfer_routes"

    id = Column(String(36), primary_key=True, default=_uuid)

    from_psp_id = Column(String(36), ForeignKey("psps.id"), nullable=False)
    to_psp_id = Column(String(36), ForeignKey("psps.id"), nullable=False)
    currency_id = Column(String(36), ForeignKey("currencies.id"), nullable=False)

    is_supported = Column(Boolean, nullable=False, default=False)
    confidence_level = Column(Integer, nullable=True)  # 0..100
    estimated_fee_percentage = Column(Numeric(6, 3), nullable=True)
    estimated_time_hours = Column(Numeric(8, 2), nullable=True)
    kyc_required = Column(Boolean, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=True)

    from_psp = relationship("PSP", foreign_keys=[from_psp_id], lazy="joined")
    to_psp = relationship("PSP", foreign_keys=[to_psp_id], lazy="joined")
    currency = relationship("Currency", lazy="joined")

    __table_args__ = (
        UniqueConstraint("from_psp_id", "to_psp_id", "currency_id", name="uq_transfer_routes_key"),
        Index("ix_transfer_routes_from", "from_psp_id"),
        Index("ix_transfer_routes_to", "to_psp_id"),
    )


class AffiliateClick(Base):
    __tablename__ = "affiliate_clicks"

    id = Column(String(36), primary_key=True, default=_uuid)
    route_id = Column(String(36), ForeignKey("transfer_routes.id"), nullable=False)

    user_ip = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    referrer = Column(Text, nullable=True)

    clicked_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=True)

    __table_args__ = (
        Index("ix_affiliate_clicks_route", "route_id"),
    )
