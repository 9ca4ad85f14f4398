from typing import Dict, Optional

import structlog
from sqlalchemy.orm import Session

from agt20.models.agent import Agent
from agt20.models.balance import Balance
from agt20.models.indexer_state import IndexerState, CURSOR_STATE_ID, SNAPSHOT_STATE_ID
from agt20.models.operation import Operation
from agt20.models.token import Token

logger = structlog.get_logger()


def claim_progress(supply: int, max_supply: int) -> int:
    """Whole percent of max supply already minted"""
    if max_supply <= 0:
        return 0
    return int(supply * 100 // max_supply)


class LedgerQueryService:
    """Read side of the ledger used by the HTTP API"""

    def __init__(self, db_session: Session):
        self.db = db_session

    def get_indexer_status(self) -> Dict:
        cursor = self.db.get(IndexerState, CURSOR_STATE_ID)
        snapshot = self.db.get(IndexerState, SNAPSHOT_STATE_ID)
        return {
            "last_post_id": cursor.last_post_id if cursor else None,
            "last_post_at": cursor.last_post_at if cursor else None,
            "last_indexed": cursor.last_indexed if cursor else None,
            "last_snapshot": snapshot.last_indexed if snapshot else None,
            "tokens": self.db.query(Token).count(),
            "agents": self.db.query(Agent).count(),
            "operations": self.db.query(Operation).filter(Operation.is_valid.is_(True)).count(),
        }

    def get_tokens(self, start: int = 0, size: int = 100) -> Dict:
        """Get deployed tokens, newest first"""
        try:
            query = self.db.query(Token).order_by(Token.deployed_at.desc(), Token.id.desc())
            total = query.count()
            tokens = query.offset(start).limit(size).all()
            return {"total": total, "start": start, "size": size, "data": tokens}
        except Exception as e:
            logger.error("Failed to get tokens", error=str(e))
            raise

    def get_token(self, ticker: str) -> Optional[Token]:
        return self.db.query(Token).filter(Token.ticker == ticker.strip().upper()).first()

    def get_token_holders(self, ticker: str, start: int = 0, size: int = 100) -> Dict:
        """Get holders with a non-zero balance, largest first"""
        try:
            query = (
                self.db.query(Balance)
                .filter(Balance.ticker == ticker.strip().upper(), Balance.amount > 0)
                .order_by(Balance.amount.desc(), Balance.agent_name)
            )
            total = query.count()
            holders = query.offset(start).limit(size).all()
            return {"total": total, "start": start, "size": size, "data": holders}
        except Exception as e:
            logger.error("Failed to get token holders", ticker=ticker, error=str(e))
            raise

    def get_claim_status(self, ticker: str, agent_name: Optional[str] = None) -> Optional[Dict]:
        token = self.get_token(ticker)
        if token is None:
            return None

        agent_balance = 0
        if agent_name:
            balance = (
                self.db.query(Balance)
                .filter(Balance.ticker == token.ticker, Balance.agent_name == agent_name)
                .first()
            )
            if balance is not None:
                agent_balance = balance.amount

        progress = claim_progress(token.supply, token.max_supply)
        is_claimable = token.is_fully_minted
        return {
            "ticker": token.ticker,
            "max_supply": token.max_supply,
            "supply": token.supply,
            "progress": progress,
            "is_claimable": is_claimable,
            "agent_balance": agent_balance,
            "contract_address": token.contract_address,
            "message": (
                "Token is claimable! Connect wallet to claim."
                if is_claimable
                else f"Minting in progress: {progress}% complete"
            ),
        }

    def get_agent(self, name: str) -> Optional[Dict]:
        agent = self.db.query(Agent).filter(Agent.name == name).first()
        if agent is None:
            return None

        balances = (
            self.db.query(Balance)
            .filter(Balance.agent_name == name, Balance.amount > 0)
            .order_by(Balance.ticker)
            .all()
        )
        return {
            "name": agent.name,
            "operations": agent.operations,
            "last_mint_at": agent.last_mint_at,
            "created_at": agent.created_at,
            "balances": balances,
        }

    def get_operations(
        self,
        ticker: Optional[str] = None,
        agent_name: Optional[str] = None,
        start: int = 0,
        size: int = 50,
        include_invalid: bool = False,
    ) -> Dict:
        """Recent operations, newest post first"""
        try:
            query = self.db.query(Operation)
            if not include_invalid:
                query = query.filter(Operation.is_valid.is_(True))
            if ticker:
                query = query.filter(Operation.ticker == ticker.strip().upper())
            if agent_name:
                query = query.filter((Operation.from_agent == agent_name) | (Operation.to_agent == agent_name))

            query = query.order_by(Operation.timestamp.desc(), Operation.id.desc())
            total = query.count()
            operations = query.offset(start).limit(size).all()
            return {"total": total, "start": start, "size": size, "data": operations}
        except Exception as e:
            logger.error("Failed to get operations", ticker=ticker, agent=agent_name, error=str(e))
            raise
