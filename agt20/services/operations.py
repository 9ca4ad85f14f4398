"""
Decoded agt-20 operations, one variant per operation kind.
"""

from dataclasses import dataclass, field
from typing import Optional, Union

DEPLOY = "deploy"
MINT = "mint"
TRANSFER = "transfer"
BURN = "burn"

OPERATION_KINDS = (DEPLOY, MINT, TRANSFER, BURN)


@dataclass(frozen=True)
class DeployOperation:
    tick: str
    max_supply: int
    mint_limit: int
    raw: str = field(default="", compare=False)
    op: str = field(default=DEPLOY, init=False)


@dataclass(frozen=True)
class MintOperation:
    tick: str
    amount: int
    blessing: Optional[str] = None
    raw: str = field(default="", compare=False)
    op: str = field(default=MINT, init=False)


@dataclass(frozen=True)
class TransferOperation:
    tick: str
    amount: int
    to: str
    raw: str = field(default="", compare=False)
    op: str = field(default=TRANSFER, init=False)


@dataclass(frozen=True)
class BurnOperation:
    tick: str
    amount: int
    raw: str = field(default="", compare=False)
    op: str = field(default=BURN, init=False)


AGT20Operation = Union[DeployOperation, MintOperation, TransferOperation, BurnOperation]
