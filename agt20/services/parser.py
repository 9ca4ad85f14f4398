"""
agt-20 post parsing and validation service.
"""

import json
import re
from typing import Dict, Any, Optional, Tuple

from agt20.config import settings
from agt20.services.operations import (
    AGT20Operation,
    BurnOperation,
    DeployOperation,
    MintOperation,
    TransferOperation,
    OPERATION_KINDS,
    DEPLOY,
    MINT,
    TRANSFER,
    BURN,
)
from agt20.utils.amounts import parse_amount
from agt20.utils.exceptions import AGT20ErrorCodes


class AGT20Parser:
    """Extract and validate agt-20 payloads embedded in free-text posts"""

    def __init__(self, protocol_id: str = None, max_ticker_length: int = None):
        self.protocol_id = (protocol_id or settings.PROTOCOL_ID).lower()
        self.max_ticker_length = max_ticker_length or settings.MAX_TICKER_LENGTH
        # flat object, no nested braces, carrying the protocol tag somewhere inside
        self._payload_pattern = re.compile(
            r'\{[^{}]*"p"\s*:\s*"' + re.escape(self.protocol_id) + r'"[^{}]*\}',
            re.IGNORECASE,
        )

    def contains_protocol_tag(self, content: Optional[str]) -> bool:
        if not content:
            return False
        return self._payload_pattern.search(content) is not None

    def extract_payload(self, content: Optional[str]) -> Optional[str]:
        if not isinstance(content, str) or not content:
            return None
        match = self._payload_pattern.search(content)
        if match is None:
            return None
        return match.group(0)

    def parse_post_content(self, content: Optional[str]) -> Dict[str, Any]:
        payload = self.extract_payload(content)
        if payload is None:
            return self._failure(AGT20ErrorCodes.NO_PAYLOAD, "No agt-20 payload in post")

        try:
            operation = json.loads(payload)
        except json.JSONDecodeError:
            return self._failure(AGT20ErrorCodes.INVALID_JSON, "Parsing failed: not valid JSON")

        if not isinstance(operation, dict):
            return self._failure(AGT20ErrorCodes.INVALID_JSON, "Parsed JSON is not an object")

        is_valid, error_code, error_message = self.validate_json_structure(operation)
        if not is_valid:
            return self._failure(error_code, error_message)

        try:
            data = self._decode(operation, payload)
        except ValueError as e:
            return self._failure(AGT20ErrorCodes.UNKNOWN_PROCESSING_ERROR, str(e))

        return {
            "success": True,
            "data": data,
            "error_message": None,
            "error_code": None,
        }

    def extract_operation(self, content: Optional[str]) -> Optional[AGT20Operation]:
        result = self.parse_post_content(content)
        return result["data"] if result["success"] else None

    def validate_json_structure(self, operation: Dict[str, Any]) -> Tuple[bool, Optional[str], Optional[str]]:
        protocol = self._protocol_field(operation)
        if protocol is None:
            return False, AGT20ErrorCodes.MISSING_PROTOCOL, "Missing protocol field 'p'"

        if not isinstance(protocol, str) or protocol.lower() != self.protocol_id:
            return (
                False,
                AGT20ErrorCodes.INVALID_PROTOCOL,
                f"Invalid protocol: {protocol}, expected '{self.protocol_id}'",
            )

        op = operation.get("op")
        if op is None:
            return False, AGT20ErrorCodes.MISSING_OPERATION, "Missing operation field 'op'"

        if op not in OPERATION_KINDS:
            return (
                False,
                AGT20ErrorCodes.INVALID_OPERATION,
                f"Invalid operation: {op}, expected one of {list(OPERATION_KINDS)}",
            )

        ticker = operation.get("tick")
        if ticker is None:
            return False, AGT20ErrorCodes.MISSING_TICKER, "Missing ticker field 'tick'"

        ticker_valid, ticker_error = self.validate_ticker_format(ticker)
        if not ticker_valid:
            return False, ticker_error, f"Invalid ticker: {ticker!r}"

        if op == DEPLOY:
            return self._validate_deploy_fields(operation)
        elif op == TRANSFER:
            return self._validate_transfer_fields(operation)
        elif op == MINT:
            return self._validate_mint_fields(operation)
        return self._validate_amount_field(operation)

    def validate_ticker_format(self, ticker: Any) -> Tuple[bool, Optional[str]]:
        """
        RULES:
        - Must be a non-empty string
        - At most MAX_TICKER_LENGTH characters
        - Matching is case-insensitive; tickers are stored upper-case
        """
        if not isinstance(ticker, str) or ticker.strip() == "":
            return False, AGT20ErrorCodes.EMPTY_TICKER

        if len(ticker.strip()) > self.max_ticker_length:
            return False, AGT20ErrorCodes.TICKER_TOO_LONG

        return True, None

    def _validate_deploy_fields(self, operation: Dict[str, Any]) -> Tuple[bool, Optional[str], Optional[str]]:
        for key, label in (("max", "max supply"), ("lim", "mint limit")):
            value = parse_amount(operation.get(key))
            if value is None:
                return False, AGT20ErrorCodes.INVALID_AMOUNT, f"Missing or invalid {label} field '{key}'"
            if value == 0:
                return False, AGT20ErrorCodes.INVALID_AMOUNT, f"Field '{key}' must be greater than zero"

        return True, None, None

    def _validate_amount_field(self, operation: Dict[str, Any]) -> Tuple[bool, Optional[str], Optional[str]]:
        amount = parse_amount(operation.get("amt"))
        if amount is None:
            return False, AGT20ErrorCodes.INVALID_AMOUNT, "Missing or invalid amount field 'amt'"
        if amount == 0:
            return False, AGT20ErrorCodes.INVALID_AMOUNT, "Amount 'amt' must be greater than zero"

        return True, None, None

    def _validate_mint_fields(self, operation: Dict[str, Any]) -> Tuple[bool, Optional[str], Optional[str]]:
        blessing = operation.get("blessing")
        if blessing is not None and not isinstance(blessing, str):
            return False, AGT20ErrorCodes.INVALID_BLESSING, "Blessing must be a string"

        return self._validate_amount_field(operation)

    def _validate_transfer_fields(self, operation: Dict[str, Any]) -> Tuple[bool, Optional[str], Optional[str]]:
        recipient = operation.get("to")
        if not isinstance(recipient, str) or recipient.strip() == "":
            return False, AGT20ErrorCodes.MISSING_RECIPIENT, "Missing recipient field 'to'"

        return self._validate_amount_field(operation)

    def _decode(self, operation: Dict[str, Any], payload: str) -> AGT20Operation:
        op = operation["op"]
        tick = operation["tick"].strip().upper()

        if op == DEPLOY:
            return DeployOperation(
                tick=tick,
                max_supply=parse_amount(operation["max"]),
                mint_limit=parse_amount(operation["lim"]),
                raw=payload,
            )
        if op == MINT:
            return MintOperation(
                tick=tick,
                amount=parse_amount(operation["amt"]),
                blessing=operation.get("blessing"),
                raw=payload,
            )
        if op == TRANSFER:
            return TransferOperation(
                tick=tick,
                amount=parse_amount(operation["amt"]),
                to=operation["to"].strip(),
                raw=payload,
            )
        if op == BURN:
            return BurnOperation(tick=tick, amount=parse_amount(operation["amt"]), raw=payload)

        raise ValueError(f"Unsupported operation: {op}")

    @staticmethod
    def _protocol_field(operation: Dict[str, Any]) -> Any:
        if "p" in operation:
            return operation["p"]
        for key, value in operation.items():
            if isinstance(key, str) and key.lower() == "p":
                return value
        return None

    @staticmethod
    def _failure(error_code: str, error_message: str) -> Dict[str, Any]:
        return {
            "success": False,
            "data": None,
            "error_code": error_code,
            "error_message": error_message,
        }
