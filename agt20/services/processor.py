import structlog
from typing import Optional

from sqlalchemy.orm import Session

from agt20.models.agent import Agent
from agt20.models.token import Token
from agt20.services.feed_client import FeedPost
from agt20.services.ledger_store import LedgerStore
from agt20.services.operations import (
    AGT20Operation,
    BurnOperation,
    DeployOperation,
    MintOperation,
    TransferOperation,
)
from agt20.services.parser import AGT20Parser
from agt20.services.rate_guard import RateGuard
from agt20.services.validator import AGT20Validator
from agt20.utils.exceptions import (
    AGT20ErrorCodes,
    OperationAlreadyIndexed,
    ProcessingResult,
    ValidationResult,
)


class AGT20Processor:
    """Apply one post at a time to the ledger.

    Each post is applied in its own transaction: the token, balance and agent
    updates and the Operation row commit together or not at all. Rejected
    operations are recorded with ``is_valid=False`` so the post identifier is
    consumed and a later replay cannot re-evaluate it against different state.
    """

    def __init__(self, db_session: Session, rate_guard: Optional[RateGuard] = None, parser: Optional[AGT20Parser] = None):
        self.db = db_session
        self.store = LedgerStore(db_session)
        self.parser = parser or AGT20Parser()
        self.validator = AGT20Validator(self.store)
        self.rate_guard = rate_guard or RateGuard(self.store)
        self.logger = structlog.get_logger()

    def process_post(self, post: FeedPost) -> ProcessingResult:
        result = ProcessingResult(post_id=post.id)

        parse_result = self.parser.parse_post_content(post.content)
        if not parse_result["success"]:
            if parse_result["error_code"] != AGT20ErrorCodes.NO_PAYLOAD:
                self.logger.debug(
                    "Ignoring malformed agt-20 payload",
                    post_id=post.id,
                    error_code=parse_result["error_code"],
                    error=parse_result["error_message"],
                )
            result.error_code = parse_result["error_code"]
            result.error_message = parse_result["error_message"]
            return result

        operation: AGT20Operation = parse_result["data"]
        result.operation_found = True
        result.operation_type = operation.op
        result.ticker = operation.tick
        result.amount = getattr(operation, "amount", None)

        if self.store.is_post_indexed(post.id):
            result.already_indexed = True
            return result

        try:
            with self.store.atomic(post_id=post.id):
                validation_result = self.apply_operation(operation, post)
        except OperationAlreadyIndexed:
            self.logger.info("Post already indexed", post_id=post.id)
            result.already_indexed = True
            return result

        result.is_valid = validation_result.is_valid
        result.error_code = validation_result.error_code
        result.error_message = validation_result.error_message
        return result

    def apply_operation(self, operation: AGT20Operation, post: FeedPost) -> ValidationResult:
        """Validate and apply a decoded operation; the caller owns the transaction"""
        agent = self.store.get_or_create_agent(post.author)

        if isinstance(operation, DeployOperation):
            validation_result = self.process_deploy(operation, post, agent)
            from_agent, to_agent = None, agent.name
        elif isinstance(operation, MintOperation):
            validation_result = self.process_mint(operation, post, agent)
            from_agent, to_agent = None, agent.name
        elif isinstance(operation, TransferOperation):
            validation_result = self.process_transfer(operation, post, agent)
            from_agent, to_agent = agent.name, operation.to
        elif isinstance(operation, BurnOperation):
            validation_result = self.process_burn(operation, post, agent)
            from_agent, to_agent = agent.name, None
        else:
            raise TypeError(f"Unsupported operation type: {type(operation).__name__}")

        self.log_operation(operation, post, validation_result, from_agent, to_agent)
        return validation_result

    def process_deploy(self, operation: DeployOperation, post: FeedPost, agent: Agent) -> ValidationResult:
        validation_result = self.validator.validate_deploy(operation)
        if not validation_result:
            return validation_result

        token = Token(
            ticker=operation.tick,
            max_supply=operation.max_supply,
            mint_limit=operation.mint_limit,
            supply=0,
            holders=0,
            operations=1,
            deployer=agent.name,
            deploy_post_id=post.id,
            deployed_at=post.created_at,
        )
        self.db.add(token)
        agent.operations += 1
        self.db.flush()

        self.logger.info("Deployed token", ticker=token.ticker, deployer=agent.name, post_id=post.id)
        return validation_result

    def process_mint(self, operation: MintOperation, post: FeedPost, agent: Agent) -> ValidationResult:
        token = self.store.get_token(operation.tick)
        validation_result = self.validator.validate_token_exists(operation.tick, token)
        if not validation_result:
            return validation_result

        # actor-scoped gates run before any check on shared token state
        validation_result = self.rate_guard.check_mint(agent, operation, post.created_at)
        if not validation_result:
            return validation_result

        validation_result = self.validator.validate_mint(operation, token)
        if not validation_result:
            return validation_result

        is_new_holder = self.store.credit(token.ticker, agent.name, operation.amount)
        token.supply = token.supply + operation.amount
        token.operations += 1
        if is_new_holder:
            token.holders += 1
        agent.last_mint_at = post.created_at
        agent.operations += 1

        self.logger.info("Minted", ticker=token.ticker, amount=str(operation.amount), agent=agent.name)
        return validation_result

    def process_transfer(self, operation: TransferOperation, post: FeedPost, sender: Agent) -> ValidationResult:
        token = self.store.get_token(operation.tick)
        validation_result = self.validator.validate_transfer(operation, token, sender.name)
        if not validation_result:
            return validation_result

        recipient = self.store.get_or_create_agent(operation.to)

        sender_emptied = self.store.debit(token.ticker, sender.name, operation.amount)
        recipient_is_new_holder = self.store.credit(token.ticker, recipient.name, operation.amount)

        holder_delta = 0
        if recipient_is_new_holder:
            holder_delta += 1
        if sender_emptied:
            holder_delta -= 1
        token.holders += holder_delta
        token.operations += 1
        sender.operations += 1
        recipient.operations += 1

        self.logger.info(
            "Transferred",
            ticker=token.ticker,
            amount=str(operation.amount),
            sender=sender.name,
            recipient=recipient.name,
        )
        return validation_result

    def process_burn(self, operation: BurnOperation, post: FeedPost, agent: Agent) -> ValidationResult:
        token = self.store.get_token(operation.tick)
        validation_result = self.validator.validate_burn(operation, token, agent.name)
        if not validation_result:
            return validation_result

        emptied = self.store.debit(token.ticker, agent.name, operation.amount)
        token.supply = token.supply - operation.amount
        token.operations += 1
        if emptied:
            token.holders -= 1
        agent.operations += 1

        self.logger.info("Burned", ticker=token.ticker, amount=str(operation.amount), agent=agent.name)
        return validation_result

    def log_operation(
        self,
        operation: AGT20Operation,
        post: FeedPost,
        validation_result: ValidationResult,
        from_agent: Optional[str],
        to_agent: Optional[str],
    ):
        if not validation_result:
            self.logger.info(
                "Operation rejected",
                post_id=post.id,
                op=operation.op,
                ticker=operation.tick,
                agent=post.author,
                error_code=validation_result.error_code,
                error=validation_result.error_message,
            )

        self.store.record_operation(
            post_id=post.id,
            post_url=post.url,
            operation=operation.op,
            ticker=operation.tick,
            from_agent=from_agent,
            to_agent=to_agent,
            amount=getattr(operation, "amount", None),
            timestamp=post.created_at,
            is_valid=validation_result.is_valid,
            error_code=validation_result.error_code,
            error_message=validation_result.error_message,
            raw_payload=operation.raw,
        )
