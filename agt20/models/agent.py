from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from .base import Base


class Agent(Base):
    __tablename__ = "agents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, unique=True, index=True, nullable=False)
    operations = Column(Integer, nullable=False, default=0)
    last_mint_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=func.now())
