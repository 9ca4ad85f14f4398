"""
agt-20 exception handling and standardized error codes
"""


class AGT20ErrorCodes:
    """Standardized error codes for agt-20 operations"""

    # Parsing errors
    NO_PAYLOAD = "NO_PAYLOAD"
    INVALID_JSON = "INVALID_JSON"
    MISSING_PROTOCOL = "MISSING_PROTOCOL"
    INVALID_PROTOCOL = "INVALID_PROTOCOL"
    MISSING_OPERATION = "MISSING_OPERATION"
    INVALID_OPERATION = "INVALID_OPERATION"
    MISSING_TICKER = "MISSING_TICKER"
    EMPTY_TICKER = "EMPTY_TICKER"
    TICKER_TOO_LONG = "TICKER_TOO_LONG"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    MISSING_RECIPIENT = "MISSING_RECIPIENT"
    INVALID_BLESSING = "INVALID_BLESSING"

    # Business validation errors
    TICKER_NOT_DEPLOYED = "TICKER_NOT_DEPLOYED"
    TICKER_ALREADY_EXISTS = "TICKER_ALREADY_EXISTS"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    EXCEEDS_MAX_SUPPLY = "EXCEEDS_MAX_SUPPLY"
    EXCEEDS_MINT_LIMIT = "EXCEEDS_MINT_LIMIT"
    SELF_TRANSFER = "SELF_TRANSFER"

    # Rate / policy guard
    MINT_COOLDOWN_ACTIVE = "MINT_COOLDOWN_ACTIVE"
    MINT_QUOTA_EXCEEDED = "MINT_QUOTA_EXCEEDED"
    BLESSING_REQUIRED = "BLESSING_REQUIRED"
    BLESSING_REJECTED = "BLESSING_REJECTED"

    # System/Generic errors
    UNKNOWN_PROCESSING_ERROR = "UNKNOWN_PROCESSING_ERROR"


class ValidationResult:

    def __init__(self, is_valid: bool, error_code: str = None, error_message: str = None):
        self.is_valid = is_valid
        self.error_code = error_code
        self.error_message = error_message

    def __bool__(self):
        return self.is_valid

    def __repr__(self):
        if self.is_valid:
            return "ValidationResult(valid=True)"
        return f"ValidationResult(valid=False, error={self.error_code})"


class IndexerError(Exception):

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class FeedFetchError(IndexerError):
    """The external feed answered with a non-success status or could not be reached"""

    def __init__(self, message: str, status_code: int = None):
        self.status_code = status_code
        super().__init__(message)


class IndexerBusyError(IndexerError):
    """Another run holds the indexer lock"""

    pass


class ChainRPCError(IndexerError):
    """JSON-RPC call to the claim chain failed"""

    pass


class OperationAlreadyIndexed(Exception):
    """An Operation row for this post identifier already exists"""

    def __init__(self, post_id: str):
        self.post_id = post_id
        super().__init__(f"Post {post_id} already indexed")


class ProcessingResult:

    def __init__(
        self,
        operation_found=False,
        is_valid=False,
        already_indexed=False,
        error_message=None,
        error_code=None,
        operation_type=None,
        ticker=None,
        amount=None,
        post_id=None,
    ):
        self.operation_found = operation_found
        self.is_valid = is_valid
        self.already_indexed = already_indexed
        self.error_message = error_message
        self.error_code = error_code
        self.operation_type = operation_type
        self.ticker = ticker
        self.amount = amount
        self.post_id = post_id

    @property
    def applied(self) -> bool:
        return self.operation_found and self.is_valid and not self.already_indexed

    def __repr__(self):
        return (
            f"ProcessingResult(post_id={self.post_id}, op={self.operation_type}, "
            f"valid={self.is_valid}, already_indexed={self.already_indexed}, error={self.error_code})"
        )
