"""
SQLAlchemy models for players, campaigns and settlements.
"""

from datetime import datetime
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text

from .database import Base


class Player(Base):
    __tablename__ = "players"

    id = Column(String(36), primary_key=True)  # uuid
    email = Column(String(255), unique=True, nullable=False, index=True)
    username = Column(String(64), unique=True, nullable=False, index=True)  # display name, no spaces/special
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class Campaign(Base):
    __tablename__ = "campaigns"

    id = Column(String(36), primary_key=True)  # uuid
    name = Column(String(128), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    created_by = Column(String(36), ForeignKey("players.id"), nullable=True)  # bookkeeper, the only player who may act
    kingdom = Column(Text, nullable=False)  # JSON string of the full kingdom record


class SettlementRecord(Base):
    __tablename__ = "settlements"

    id = Column(String(36), primary_key=True)  # uuid
    campaign_id = Column(String(36), ForeignKey("campaigns.id"), nullable=False, index=True)
    name = Column(String(128), nullable=False, default="")
    settlement_type = Column(String(16), nullable=False, default="-")  # Capital | Settlement | -
    level = Column(Integer, nullable=False, default=1)
    overcrowded = Column(Boolean, nullable=False, default=False)
    secondary_territory = Column(Boolean, nullable=False, default=False)
    structures = Column(Text, nullable=False, default="[]")  # JSON array of raw structure records
    created_at = Column(DateTime, default=datetime.utcnow)
