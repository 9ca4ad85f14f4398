from sqlalchemy import Column, Integer, String, DateTime, CheckConstraint
from sqlalchemy.sql import func
from .base import Base, Amount


class Token(Base):
    __tablename__ = "tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ticker = Column(String(32), unique=True, index=True, nullable=False)
    max_supply = Column(Amount, nullable=False)
    mint_limit = Column(Amount, nullable=False)
    supply = Column(Amount, nullable=False, default=0)
    holders = Column(Integer, nullable=False, default=0)
    operations = Column(Integer, nullable=False, default=0)
    deployer = Column(String, nullable=False, index=True)
    deploy_post_id = Column(String, nullable=True)
    contract_address = Column(String, nullable=True)
    deployed_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("supply >= 0", name="ck_tokens_supply_non_negative"),
        CheckConstraint("supply <= max_supply", name="ck_tokens_supply_within_max"),
    )

    @property
    def remaining_supply(self) -> int:
        return self.max_supply - self.supply

    @property
    def is_fully_minted(self) -> bool:
        return self.supply >= self.max_supply
