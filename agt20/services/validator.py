"""
agt-20 ledger rule validation service
"""

from typing import Optional

from agt20.models.token import Token
from agt20.services.ledger_store import LedgerStore
from agt20.services.operations import (
    BurnOperation,
    DeployOperation,
    MintOperation,
    TransferOperation,
)
from agt20.utils.exceptions import AGT20ErrorCodes, ValidationResult


class AGT20Validator:
    """Validate decoded operations against current ledger state"""

    def __init__(self, store: LedgerStore):
        self.store = store

    def validate_deploy(self, operation: DeployOperation) -> ValidationResult:
        if self.store.get_token(operation.tick) is not None:
            return ValidationResult(
                False,
                AGT20ErrorCodes.TICKER_ALREADY_EXISTS,
                f"Ticker '{operation.tick}' already deployed",
            )
        return ValidationResult(True)

    def validate_token_exists(self, ticker: str, token: Optional[Token]) -> ValidationResult:
        if token is None:
            return ValidationResult(
                False,
                AGT20ErrorCodes.TICKER_NOT_DEPLOYED,
                f"Ticker '{ticker}' not deployed",
            )
        return ValidationResult(True)

    def validate_mint(self, operation: MintOperation, token: Optional[Token]) -> ValidationResult:
        result = self.validate_token_exists(operation.tick, token)
        if not result:
            return result

        if operation.amount > token.mint_limit:
            return ValidationResult(
                False,
                AGT20ErrorCodes.EXCEEDS_MINT_LIMIT,
                f"Mint amount {operation.amount} exceeds limit {token.mint_limit}",
            )

        if token.supply + operation.amount > token.max_supply:
            return ValidationResult(
                False,
                AGT20ErrorCodes.EXCEEDS_MAX_SUPPLY,
                f"Mint of {operation.amount} would exceed max supply "
                f"({token.supply}/{token.max_supply})",
            )

        return ValidationResult(True)

    def validate_transfer(
        self, operation: TransferOperation, token: Optional[Token], sender: str
    ) -> ValidationResult:
        result = self.validate_token_exists(operation.tick, token)
        if not result:
            return result

        if operation.to == sender:
            return ValidationResult(
                False,
                AGT20ErrorCodes.SELF_TRANSFER,
                f"Agent {sender} cannot transfer to itself",
            )

        return self._validate_balance(operation.tick, sender, operation.amount)

    def validate_burn(self, operation: BurnOperation, token: Optional[Token], owner: str) -> ValidationResult:
        result = self.validate_token_exists(operation.tick, token)
        if not result:
            return result

        return self._validate_balance(operation.tick, owner, operation.amount)

    def _validate_balance(self, ticker: str, agent_name: str, amount: int) -> ValidationResult:
        balance = self.store.get_balance_amount(ticker, agent_name)
        if balance < amount:
            return ValidationResult(
                False,
                AGT20ErrorCodes.INSUFFICIENT_BALANCE,
                f"Insufficient balance: {balance} < {amount}",
            )
        return ValidationResult(True)
