from sqlalchemy import Column, Integer, String, DateTime, UniqueConstraint, ForeignKey, CheckConstraint
from sqlalchemy.sql import func
from .base import Base, Amount


class Balance(Base):
    __tablename__ = "balances"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ticker = Column(String(32), ForeignKey("tokens.ticker"), index=True, nullable=False)
    agent_name = Column(String, ForeignKey("agents.name"), index=True, nullable=False)
    amount = Column(Amount, nullable=False, default=0)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("ticker", "agent_name"),
        CheckConstraint("amount >= 0", name="ck_balances_amount_non_negative"),
    )

    def add_amount(self, amount: int) -> None:
        self.amount = (self.amount or 0) + amount

    def subtract_amount(self, amount: int) -> bool:
        if (self.amount or 0) < amount:
            return False
        self.amount = self.amount - amount
        return True
