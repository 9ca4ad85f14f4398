"""
Read-only JSON-RPC client for the claim factory contract.
"""

import itertools
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional

import httpx
import structlog

from agt20.config import settings
from agt20.utils.exceptions import ChainRPCError
from agt20.utils.timestamps import parse_timestamp

logger = structlog.get_logger()

# 4-byte function selectors
TOTAL_TOKENS_SELECTOR = "0x7e1c0c09"  # totalTokens()
ALL_TOKENS_SELECTOR = "0x634282af"  # allTokens(uint256)
TOKEN_INFO_SELECTOR = "0xf5dab711"  # tokenInfo(address)
TOTAL_CLAIMED_SELECTOR = "0xd54ad2a1"  # totalClaimed()

WORD = 64


@dataclass
class OnChainTokenInfo:
    address: str
    tick: str
    max_supply: int
    deployed_by: str
    deployed_at: Optional[datetime]


def encode_uint256(value: int) -> str:
    if value < 0:
        raise ValueError("uint256 cannot be negative")
    return format(value, "x").rjust(WORD, "0")


def encode_address(address: str) -> str:
    return address.lower().replace("0x", "").rjust(WORD, "0")


def split_words(data: str) -> List[str]:
    body = data[2:] if data.startswith("0x") else data
    return [body[i : i + WORD] for i in range(0, len(body), WORD)]


def decode_uint256(word: str) -> int:
    return int(word, 16)


def decode_address(word: str) -> str:
    return "0x" + word[-40:].lower()


def decode_string(data: str, offset: int) -> str:
    body = data[2:] if data.startswith("0x") else data
    start = offset * 2
    length = int(body[start : start + WORD], 16)
    raw = body[start + WORD : start + WORD + length * 2]
    return bytes.fromhex(raw).decode("utf-8", errors="replace")


class ChainRPCClient:
    """Minimal eth_call client for the claim factory and its tokens"""

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.rpc_url = rpc_url or settings.CHAIN_RPC_URL
        self.client = client or httpx.Client(
            timeout=httpx.Timeout(timeout or settings.CHAIN_RPC_TIMEOUT, connect=10.0)
        )
        self._ids = itertools.count(1)

    def call(self, method: str, params: List[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            response = self.client.post(self.rpc_url, json=payload)
        except httpx.RequestError as e:
            raise ChainRPCError(f"Chain RPC request failed: {e}")

        if response.status_code != 200:
            raise ChainRPCError(f"Chain RPC returned status {response.status_code}")

        try:
            data = response.json()
        except ValueError:
            raise ChainRPCError("Chain RPC returned a non-JSON body")

        if data.get("error"):
            raise ChainRPCError(f"RPC error: {data['error']}")
        return data.get("result")

    def eth_call(self, to: str, data: str) -> str:
        result = self.call("eth_call", [{"to": to, "data": data}, "latest"])
        if not isinstance(result, str) or result in ("", "0x"):
            raise ChainRPCError(f"Empty eth_call result from {to}")
        return result

    def total_tokens(self, factory: str) -> int:
        return decode_uint256(split_words(self.eth_call(factory, TOTAL_TOKENS_SELECTOR))[0])

    def token_at(self, factory: str, index: int) -> str:
        out = self.eth_call(factory, ALL_TOKENS_SELECTOR + encode_uint256(index))
        return decode_address(split_words(out)[0])

    def token_info(self, factory: str, token_address: str) -> OnChainTokenInfo:
        out = self.eth_call(factory, TOKEN_INFO_SELECTOR + encode_address(token_address))
        words = split_words(out)
        if len(words) < 5:
            raise ChainRPCError(f"Malformed tokenInfo result for {token_address}")

        return OnChainTokenInfo(
            address=decode_address(words[0]),
            tick=decode_string(out, decode_uint256(words[1])),
            max_supply=decode_uint256(words[2]),
            deployed_by=decode_address(words[3]),
            deployed_at=parse_timestamp(decode_uint256(words[4])),
        )

    def total_claimed(self, token_address: str) -> int:
        return decode_uint256(split_words(self.eth_call(token_address, TOTAL_CLAIMED_SELECTOR))[0])
