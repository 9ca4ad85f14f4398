from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Query
from sqlalchemy.orm import Session

from agt20.api.models import (
    AgentInfo,
    ClaimStatus,
    HolderBalance,
    HolderPage,
    IndexerStatus,
    Op,
    OperationPage,
    RunSummaryResponse,
    SnapshotResponse,
    TokenInfo,
    TokenPage,
    WebhookRequest,
    WebhookResponse,
)
from agt20.config import settings
from agt20.database.connection import get_db
from agt20.services.cache_service import CacheService, TOKEN_DETAIL_PREFIX, TOKEN_LIST_PREFIX
from agt20.services.indexer import IndexerService
from agt20.services.query_service import LedgerQueryService
from agt20.services.snapshot import SnapshotService
from agt20.utils.exceptions import ChainRPCError, FeedFetchError, IndexerBusyError

logger = structlog.get_logger()

router = APIRouter(prefix="/v1/agt20")


def get_query_service(db: Session = Depends(get_db)):
    return LedgerQueryService(db)


def get_indexer_service(db: Session = Depends(get_db)):
    return IndexerService(db)


def get_snapshot_service(db: Session = Depends(get_db)):
    return SnapshotService(db)


def get_cache_service():
    return CacheService()


def require_cron_secret(authorization: Optional[str] = Header(None)):
    if settings.CRON_SECRET and authorization != f"Bearer {settings.CRON_SECRET}":
        raise HTTPException(status_code=401, detail="Unauthorized")


def page_of(result, items) -> dict:
    return {
        "total_count": result["total"],
        "returned_count": len(items),
        "has_more": result["start"] + len(items) < result["total"],
        "data": items,
    }


@router.get("/health")
async def get_health_check():
    return {"status": "healthy", "message": "agt-20 Indexer API is running"}


@router.get("/status", response_model=IndexerStatus)
async def get_indexer_status(query_service: LedgerQueryService = Depends(get_query_service)):
    try:
        return IndexerStatus(**query_service.get_indexer_status())
    except Exception as e:
        logger.error("Failed to get indexer status", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/tokens", response_model=TokenPage)
async def get_token_list(
    skip: int = Query(0, ge=0, description="Number of records to skip"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum records to return"),
    query_service: LedgerQueryService = Depends(get_query_service),
    cache: CacheService = Depends(get_cache_service),
):
    cache_key = cache.generate_key(TOKEN_LIST_PREFIX, skip, limit)
    cached = cache.get(cache_key)
    if cached is not None:
        return cached

    try:
        result = query_service.get_tokens(skip, limit)
        tokens = [TokenInfo.model_validate(token) for token in result["data"]]
        page = TokenPage(**page_of(result, tokens))
    except Exception as e:
        logger.error("Failed to get token list", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")

    cache.set(cache_key, page.model_dump(mode="json"))
    return page


@router.get("/tokens/{ticker}", response_model=TokenInfo)
async def get_token_info(
    ticker: str,
    query_service: LedgerQueryService = Depends(get_query_service),
    cache: CacheService = Depends(get_cache_service),
):
    cache_key = cache.generate_key(TOKEN_DETAIL_PREFIX, ticker.strip().upper())
    cached = cache.get(cache_key)
    if cached is not None:
        return cached

    try:
        token = query_service.get_token(ticker)
        if token is None:
            raise HTTPException(status_code=404, detail="Token not found")
        info = TokenInfo.model_validate(token)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Failed to get token", ticker=ticker, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")

    cache.set(cache_key, info.model_dump(mode="json"))
    return info


@router.get("/tokens/{ticker}/holders", response_model=HolderPage)
async def get_token_holders(
    ticker: str,
    skip: int = Query(0, ge=0, description="Number of records to skip"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum records to return"),
    query_service: LedgerQueryService = Depends(get_query_service),
):
    try:
        if query_service.get_token(ticker) is None:
            raise HTTPException(status_code=404, detail="Token not found")
        result = query_service.get_token_holders(ticker, skip, limit)
        holders = [HolderBalance.model_validate(balance) for balance in result["data"]]
        return HolderPage(**page_of(result, holders))
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Failed to get token holders", ticker=ticker, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/tokens/{ticker}/claim", response_model=ClaimStatus)
async def get_claim_status(
    ticker: str,
    agent: Optional[str] = Query(None, description="Agent whose balance to include"),
    query_service: LedgerQueryService = Depends(get_query_service),
):
    try:
        status = query_service.get_claim_status(ticker, agent)
        if status is None:
            raise HTTPException(status_code=404, detail="Token not found")
        return ClaimStatus(**status)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Failed to get claim status", ticker=ticker, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/agents/{name}", response_model=AgentInfo)
async def get_agent_info(name: str, query_service: LedgerQueryService = Depends(get_query_service)):
    try:
        agent = query_service.get_agent(name)
        if agent is None:
            raise HTTPException(status_code=404, detail="Agent not found")
        return AgentInfo(
            **{**agent, "balances": [HolderBalance.model_validate(balance) for balance in agent["balances"]]}
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Failed to get agent", agent=name, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/operations", response_model=OperationPage)
async def get_operations(
    tick: Optional[str] = Query(None, description="Filter by ticker"),
    agent: Optional[str] = Query(None, description="Filter by sender or recipient"),
    include_invalid: bool = Query(False, description="Include rejected operations"),
    skip: int = Query(0, ge=0, description="Number of records to skip"),
    limit: int = Query(50, ge=1, le=500, description="Maximum records to return"),
    query_service: LedgerQueryService = Depends(get_query_service),
):
    try:
        result = query_service.get_operations(tick, agent, skip, limit, include_invalid)
        operations = [Op.model_validate(operation) for operation in result["data"]]
        return OperationPage(**page_of(result, operations))
    except Exception as e:
        logger.error("Failed to get operations", ticker=tick, agent=agent, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/indexer/run", response_model=RunSummaryResponse, dependencies=[Depends(require_cron_secret)])
def trigger_run(
    indexer: IndexerService = Depends(get_indexer_service),
    cache: CacheService = Depends(get_cache_service),
):
    try:
        summary = indexer.run()
    except IndexerBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except FeedFetchError as e:
        logger.error("Indexer run failed", error=str(e), status_code=e.status_code)
        raise HTTPException(status_code=502, detail=str(e))

    cache.invalidate_tokens()
    return RunSummaryResponse(**summary.to_dict())


@router.post("/indexer/backfill", response_model=RunSummaryResponse, dependencies=[Depends(require_cron_secret)])
def trigger_backfill(
    max_posts: Optional[int] = Query(None, ge=1, description="Safety cap on posts fetched"),
    indexer: IndexerService = Depends(get_indexer_service),
    cache: CacheService = Depends(get_cache_service),
):
    try:
        summary = indexer.backfill(max_posts=max_posts)
    except IndexerBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except FeedFetchError as e:
        logger.error("Backfill failed", error=str(e), status_code=e.status_code)
        raise HTTPException(status_code=502, detail=str(e))

    cache.invalidate_tokens()
    return RunSummaryResponse(**summary.to_dict())


@router.post("/indexer/snapshot", response_model=SnapshotResponse, dependencies=[Depends(require_cron_secret)])
def trigger_snapshot(
    snapshot_service: SnapshotService = Depends(get_snapshot_service),
    cache: CacheService = Depends(get_cache_service),
):
    try:
        summary = snapshot_service.sync_tokens_to_db()
    except IndexerBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ChainRPCError as e:
        logger.error("Snapshot failed", error=str(e))
        raise HTTPException(status_code=502, detail=str(e))

    cache.invalidate_tokens()
    return SnapshotResponse(**summary.to_dict())


def _index_single_post(post_ref: Optional[str], indexer: IndexerService, cache: CacheService) -> WebhookResponse:
    if not post_ref:
        raise HTTPException(status_code=400, detail="postId or postUrl required")

    try:
        result = indexer.index_post(post_ref)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except IndexerBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except FeedFetchError as e:
        logger.error("Webhook fetch failed", post=post_ref, error=str(e))
        raise HTTPException(status_code=502, detail=str(e))

    if not result["found"]:
        raise HTTPException(status_code=404, detail=f"Post not found: {result['post_id']}")

    if result["indexed"]:
        cache.invalidate_tokens()
    return WebhookResponse(**result)


@router.post("/webhook", response_model=WebhookResponse)
def post_webhook(
    request: WebhookRequest,
    indexer: IndexerService = Depends(get_indexer_service),
    cache: CacheService = Depends(get_cache_service),
):
    return _index_single_post(request.postId or request.postUrl, indexer, cache)


@router.get("/webhook", response_model=WebhookResponse)
def get_webhook(
    postId: Optional[str] = Query(None, description="Post id to index"),
    postUrl: Optional[str] = Query(None, description="Post URL to index"),
    indexer: IndexerService = Depends(get_indexer_service),
    cache: CacheService = Depends(get_cache_service),
):
    return _index_single_post(postId or postUrl, indexer, cache)
