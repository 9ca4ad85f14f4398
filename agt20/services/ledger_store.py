"""
Ledger persistence helpers shared by the processor, the guard and the snapshot sync.
"""

from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from agt20.models.agent import Agent
from agt20.models.balance import Balance
from agt20.models.operation import Operation
from agt20.models.token import Token
from agt20.services.operations import MINT
from agt20.utils.exceptions import OperationAlreadyIndexed


class LedgerStore:
    """Unique-key access to tokens, agents, balances and operations"""

    def __init__(self, db_session: Session):
        self.db = db_session
        self.logger = structlog.get_logger()

    @contextmanager
    def atomic(self, post_id: Optional[str] = None) -> Iterator[None]:
        """Commit everything done inside the block as one unit, or nothing.

        A uniqueness violation on the post identifier surfaces as OperationAlreadyIndexed.
        """
        try:
            yield
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            if post_id is not None and self.is_post_indexed(post_id):
                raise OperationAlreadyIndexed(post_id)
            raise
        except Exception:
            self.db.rollback()
            raise

    def get_token(self, ticker: str) -> Optional[Token]:
        return self.db.query(Token).filter(Token.ticker == ticker.upper()).first()

    def get_agent(self, name: str) -> Optional[Agent]:
        return self.db.query(Agent).filter(Agent.name == name).first()

    def get_or_create_agent(self, name: str) -> Agent:
        agent = self.get_agent(name)
        if agent is None:
            agent = Agent(name=name, operations=0)
            self.db.add(agent)
            self.db.flush()
        return agent

    def get_balance(self, ticker: str, agent_name: str) -> Optional[Balance]:
        return (
            self.db.query(Balance)
            .filter(Balance.ticker == ticker.upper(), Balance.agent_name == agent_name)
            .first()
        )

    def get_balance_amount(self, ticker: str, agent_name: str) -> int:
        balance = self.get_balance(ticker, agent_name)
        return balance.amount if balance is not None else 0

    def get_or_create_balance(self, ticker: str, agent_name: str) -> Balance:
        balance = self.get_balance(ticker, agent_name)
        if balance is None:
            balance = Balance(ticker=ticker.upper(), agent_name=agent_name, amount=0)
            self.db.add(balance)
            self.db.flush()
        return balance

    def credit(self, ticker: str, agent_name: str, amount: int) -> bool:
        """Credit a balance; returns True when the agent was not a holder before"""
        balance = self.get_or_create_balance(ticker, agent_name)
        was_empty = balance.amount == 0
        balance.add_amount(amount)
        return was_empty

    def debit(self, ticker: str, agent_name: str, amount: int) -> bool:
        """Debit a balance; returns True when the balance reaches exactly zero"""
        balance = self.get_balance(ticker, agent_name)
        if balance is None or not balance.subtract_amount(amount):
            raise ValueError(f"Insufficient {ticker} balance for {agent_name}")
        return balance.amount == 0

    def is_post_indexed(self, post_id: str) -> bool:
        return self.db.query(Operation.id).filter(Operation.post_id == post_id).first() is not None

    def record_operation(self, **fields) -> Operation:
        operation = Operation(**fields)
        self.db.add(operation)
        self.db.flush()
        return operation

    def count_valid_mints(self, agent_name: str, since: datetime, until: datetime) -> int:
        return (
            self.db.query(Operation)
            .filter(
                Operation.operation == MINT,
                Operation.is_valid.is_(True),
                Operation.to_agent == agent_name,
                Operation.timestamp > since,
                Operation.timestamp <= until,
            )
            .count()
        )

    def count_holders(self, ticker: str) -> int:
        return (
            self.db.query(Balance)
            .filter(Balance.ticker == ticker.upper(), Balance.amount > 0)
            .count()
        )
