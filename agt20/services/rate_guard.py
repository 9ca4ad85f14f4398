"""
Per-agent mint throttling and per-token content policy.
"""

from datetime import datetime, timedelta
from typing import Iterable, Optional

import structlog

from agt20.config import settings
from agt20.models.agent import Agent
from agt20.services.classifier import BlessingClassifier, BlessingVerdict, requires_blessing
from agt20.services.ledger_store import LedgerStore
from agt20.services.operations import MintOperation
from agt20.utils.exceptions import AGT20ErrorCodes, ValidationResult


class RateGuard:
    """Gates consulted before a mint touches token state"""

    def __init__(
        self,
        store: LedgerStore,
        classifier: Optional[BlessingClassifier] = None,
        cooldown_seconds: Optional[int] = None,
        max_mints_per_window: Optional[int] = None,
        quota_window_seconds: Optional[int] = None,
        gated_tokens: Optional[Iterable[str]] = None,
    ):
        self.store = store
        self.classifier = classifier or BlessingClassifier()
        self.cooldown = timedelta(
            seconds=settings.MINT_COOLDOWN_SECONDS if cooldown_seconds is None else cooldown_seconds
        )
        self.max_mints = settings.MAX_MINTS_PER_WINDOW if max_mints_per_window is None else max_mints_per_window
        self.quota_window = timedelta(
            seconds=settings.MINT_QUOTA_WINDOW_SECONDS if quota_window_seconds is None else quota_window_seconds
        )
        self.gated_tokens = list(settings.BLESSING_REQUIRED_TOKENS if gated_tokens is None else gated_tokens)
        self.logger = structlog.get_logger()

    def check_mint(self, agent: Agent, operation: MintOperation, at: datetime) -> ValidationResult:
        result = self.check_cooldown(agent, at)
        if not result:
            return result

        result = self.check_quota(agent, at)
        if not result:
            return result

        return self.check_blessing(operation)

    def check_cooldown(self, agent: Agent, at: datetime) -> ValidationResult:
        if agent.last_mint_at is None:
            return ValidationResult(True)

        elapsed = at - agent.last_mint_at
        if elapsed < self.cooldown:
            remaining = self.cooldown - elapsed
            return ValidationResult(
                False,
                AGT20ErrorCodes.MINT_COOLDOWN_ACTIVE,
                f"Agent {agent.name} must wait {int(remaining.total_seconds())}s before minting again",
            )
        return ValidationResult(True)

    def check_quota(self, agent: Agent, at: datetime) -> ValidationResult:
        recent = self.store.count_valid_mints(agent.name, since=at - self.quota_window, until=at)
        if recent >= self.max_mints:
            return ValidationResult(
                False,
                AGT20ErrorCodes.MINT_QUOTA_EXCEEDED,
                f"Agent {agent.name} already minted {recent} times in the last "
                f"{int(self.quota_window.total_seconds() // 3600)}h",
            )
        return ValidationResult(True)

    def check_blessing(self, operation: MintOperation) -> ValidationResult:
        if not requires_blessing(operation.tick, self.gated_tokens):
            return ValidationResult(True)

        if not operation.blessing or not operation.blessing.strip():
            return ValidationResult(
                False,
                AGT20ErrorCodes.BLESSING_REQUIRED,
                f"Minting {operation.tick} requires a 'blessing' field",
            )

        verdict = self.classifier.classify(operation.blessing)
        if not verdict.allows_mint:
            return ValidationResult(
                False,
                AGT20ErrorCodes.BLESSING_REJECTED,
                f"Blessing rejected for {operation.tick}",
            )

        if verdict is BlessingVerdict.UNAVAILABLE:
            self.logger.warning("Blessing classifier unavailable, allowing mint", ticker=operation.tick)
        return ValidationResult(True)
