from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_serializer


class OrmConfig(BaseModel):
    class Config:
        from_attributes = True


class TokenInfo(OrmConfig):
    ticker: str = Field(description="agt-20 ticker symbol")
    max_supply: int = Field(description="Maximum token supply")
    mint_limit: int = Field(description="Maximum amount per mint")
    supply: int = Field(description="Currently minted supply")
    remaining_supply: int = Field(description="Remaining mintable supply")
    holders: int = Field(description="Agents holding a non-zero balance")
    operations: int = Field(description="Successful operations on this token")
    deployer: str = Field(description="Agent that deployed the token")
    deploy_post_id: Optional[str] = Field(None, description="Post that deployed the token")
    contract_address: Optional[str] = Field(None, description="Claim contract, once synced from chain")
    deployed_at: datetime = Field(description="Deploy post timestamp")

    @field_serializer("max_supply", "mint_limit", "supply", "remaining_supply")
    def serialize_amount_to_str(self, v: int, _info):
        return str(v) if v is not None else None


class HolderBalance(OrmConfig):
    ticker: str = Field(description="Token ticker")
    agent_name: str = Field(description="Holder agent name")
    amount: int = Field(description="Balance held")

    @field_serializer("amount")
    def serialize_balance_to_str(self, v: int, _info):
        return str(v) if v is not None else None


class AgentInfo(OrmConfig):
    name: str
    operations: int
    last_mint_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    balances: List[HolderBalance] = Field(default_factory=list)


class Op(OrmConfig):
    id: int = Field(description="Unique operation ID")
    post_id: str = Field(description="Post that carried the operation")
    post_url: str = Field(description="Link to the post")
    operation: str = Field(description="Operation kind (deploy, mint, transfer, burn)")
    ticker: Optional[str] = Field(None, description="Ticker concerned")
    from_agent: Optional[str] = Field(None, description="Sender (transfer, burn)")
    to_agent: Optional[str] = Field(None, description="Recipient (deploy, mint, transfer)")
    amount: Optional[int] = Field(None, description="Operation amount")
    timestamp: datetime = Field(description="Post authoring time")
    is_valid: bool = Field(description="Whether the operation changed the ledger")
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    @field_serializer("amount")
    def serialize_amount_to_str(self, v: Optional[int], _info):
        return str(v) if v is not None else None


class ClaimStatus(BaseModel):
    ticker: str
    max_supply: int
    supply: int
    progress: int = Field(description="Whole percent of max supply minted")
    is_claimable: bool
    agent_balance: int = 0
    contract_address: Optional[str] = None
    message: str

    @field_serializer("max_supply", "supply", "agent_balance")
    def serialize_amount_to_str(self, v: int, _info):
        return str(v)


class IndexerStatus(BaseModel):
    last_post_id: Optional[str] = None
    last_post_at: Optional[datetime] = None
    last_indexed: Optional[datetime] = None
    last_snapshot: Optional[datetime] = None
    tokens: int
    agents: int
    operations: int


class PageResponse(BaseModel):
    total_count: int = Field(description="Total number of records available")
    returned_count: int = Field(description="Number of records returned in this response")
    has_more: bool = Field(description="Whether there are more records available")


class TokenPage(PageResponse):
    data: List[TokenInfo]


class HolderPage(PageResponse):
    data: List[HolderBalance]


class OperationPage(PageResponse):
    data: List[Op]


class RunSummaryResponse(BaseModel):
    fetched: int
    processed: int
    rejected: int = 0
    already_indexed: int = 0
    processing_time: float = 0.0


class SnapshotResponse(BaseModel):
    synced: int
    errors: int


class WebhookRequest(BaseModel):
    postId: Optional[str] = None
    postUrl: Optional[str] = None


class WebhookResponse(BaseModel):
    post_id: str
    found: bool
    indexed: bool
    operation: Optional[str] = None
    ticker: Optional[str] = None
    reason: Optional[str] = None
    error_code: Optional[str] = None
