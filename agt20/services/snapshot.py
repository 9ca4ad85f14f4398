"""
Reconcile token supply with the on-chain claim factory.

Tokens that moved to on-chain claiming take their supply from the contract's
claimed total; the on-chain value overwrites whatever replay produced.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional, Tuple

import structlog
from sqlalchemy.orm import Session

from agt20.config import settings
from agt20.models.indexer_state import SNAPSHOT_STATE_ID
from agt20.models.token import Token
from agt20.services.chain_client import ChainRPCClient, OnChainTokenInfo
from agt20.services.ledger_store import LedgerStore
from agt20.services.lock import IndexerLock, get_or_create_state
from agt20.utils.exceptions import ChainRPCError
from agt20.utils.timestamps import utcnow


@dataclass
class TokenSnapshot:
    address: str
    tick: str
    max_supply: int
    total_claimed: int
    deployed_by: str
    deployed_at: Any


@dataclass
class SnapshotSummary:
    synced: int
    errors: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class SnapshotService:
    def __init__(
        self,
        db_session: Session,
        chain_client: Optional[ChainRPCClient] = None,
        factory_address: Optional[str] = None,
        lock_owner: Optional[str] = None,
    ):
        self.db = db_session
        self.lock_owner = lock_owner
        self.chain = chain_client or ChainRPCClient()
        self.factory = factory_address or settings.CLAIM_FACTORY_ADDRESS
        self.store = LedgerStore(db_session)
        self.logger = structlog.get_logger()

    def get_onchain_tokens(self) -> Tuple[List[TokenSnapshot], int]:
        total = self.chain.total_tokens(self.factory)
        self.logger.info("Found on-chain tokens", total=total, factory=self.factory)

        tokens = []
        failures = 0
        for index in range(total):
            try:
                token_address = self.chain.token_at(self.factory, index)
                info: OnChainTokenInfo = self.chain.token_info(self.factory, token_address)
                tokens.append(
                    TokenSnapshot(
                        address=token_address,
                        tick=info.tick.upper(),
                        max_supply=info.max_supply,
                        total_claimed=self.chain.total_claimed(token_address),
                        deployed_by=info.deployed_by,
                        deployed_at=info.deployed_at,
                    )
                )
            except ChainRPCError as e:
                failures += 1
                self.logger.error("Error fetching on-chain token", index=index, error=str(e))
        return tokens, failures

    def sync_tokens_to_db(self) -> SnapshotSummary:
        """Read every factory token, then write supplies while holding the indexer lock."""
        tokens, errors = self.get_onchain_tokens()
        synced = 0

        with IndexerLock(self.db, owner=self.lock_owner) as lock:
            for snapshot in tokens:
                lock.refresh_if_due()
                try:
                    with self.store.atomic():
                        self.upsert_token(snapshot)
                    synced += 1
                    self.logger.info(
                        "Synced token",
                        ticker=snapshot.tick,
                        claimed=str(snapshot.total_claimed),
                        max_supply=str(snapshot.max_supply),
                    )
                except ValueError as e:
                    errors += 1
                    self.logger.error("Error syncing token", ticker=snapshot.tick, error=str(e))

            state = get_or_create_state(self.db, SNAPSHOT_STATE_ID)
            state.last_indexed = utcnow()
            self.db.commit()

        summary = SnapshotSummary(synced=synced, errors=errors)
        self.logger.info("Snapshot complete", **summary.to_dict())
        return summary

    def upsert_token(self, snapshot: TokenSnapshot) -> Token:
        token = self.store.get_token(snapshot.tick)
        if token is None:
            if snapshot.total_claimed > snapshot.max_supply:
                raise ValueError(
                    f"Claimed total {snapshot.total_claimed} exceeds max supply {snapshot.max_supply}"
                )
            token = Token(
                ticker=snapshot.tick,
                max_supply=snapshot.max_supply,
                # claim tokens have no per-op mint cap
                mint_limit=snapshot.max_supply,
                supply=snapshot.total_claimed,
                holders=0,
                operations=0,
                deployer=snapshot.deployed_by,
                contract_address=snapshot.address,
                deployed_at=snapshot.deployed_at or utcnow(),
            )
            self.db.add(token)
        else:
            if snapshot.total_claimed > token.max_supply:
                raise ValueError(
                    f"Claimed total {snapshot.total_claimed} exceeds max supply {token.max_supply}"
                )
            token.supply = snapshot.total_claimed
            token.contract_address = snapshot.address
        self.db.flush()
        return token
