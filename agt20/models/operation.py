from sqlalchemy import Column, Integer, String, Boolean, DateTime, Index
from sqlalchemy.sql import func
from .base import Base, Amount


class Operation(Base):
    __tablename__ = "operations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    post_id = Column(String, unique=True, index=True, nullable=False)
    post_url = Column(String, nullable=False)
    operation = Column(String, nullable=False)
    ticker = Column(String(32), index=True, nullable=True)
    from_agent = Column(String, nullable=True, index=True)
    to_agent = Column(String, nullable=True, index=True)
    amount = Column(Amount, nullable=True)
    timestamp = Column(DateTime, index=True, nullable=False)

    is_valid = Column(Boolean, index=True, nullable=False)
    error_code = Column(String, nullable=True)
    error_message = Column(String, nullable=True)

    raw_payload = Column(String, nullable=True)
    indexed_at = Column(DateTime, default=func.now())

    __table_args__ = (Index("ix_operations_mint_quota", "operation", "to_agent", "timestamp"),)
