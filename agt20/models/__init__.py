from .base import Base
from .token import Token
from .agent import Agent
from .balance import Balance
from .operation import Operation
from .indexer_state import IndexerState

__all__ = [
    "Base",
    "Token",
    "Agent",
    "Balance",
    "Operation",
    "IndexerState",
]
