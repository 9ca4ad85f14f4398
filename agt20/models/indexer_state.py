from sqlalchemy import Column, String, DateTime
from .base import Base

CURSOR_STATE_ID = "singleton"
SNAPSHOT_STATE_ID = "onchain-snapshot"


class IndexerState(Base):
    __tablename__ = "indexer_state"

    id = Column(String, primary_key=True)
    last_post_id = Column(String, nullable=True)
    last_post_at = Column(DateTime, nullable=True)
    last_indexed = Column(DateTime, nullable=True)
    lock_owner = Column(String, nullable=True)
    locked_until = Column(DateTime, nullable=True)
