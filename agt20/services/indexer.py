"""Main feed indexer service for agt-20."""

import time
from dataclasses import dataclass, asdict
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urlparse

import structlog
from sqlalchemy.orm import Session

from agt20.config import settings
from agt20.models.indexer_state import IndexerState, CURSOR_STATE_ID
from .error_handler import ErrorHandler
from .feed_client import FeedPost, MoltbookFeedClient
from .lock import IndexerLock, get_or_create_state
from .processor import AGT20Processor
from agt20.utils.exceptions import IndexerError
from agt20.utils.timestamps import utcnow


@dataclass
class IndexerRunSummary:

    fetched: int
    processed: int
    rejected: int = 0
    already_indexed: int = 0
    processing_time: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def chronological(posts: Iterable[FeedPost]) -> List[FeedPost]:
    """Oldest first; the post id breaks timestamp ties so replays are repeatable"""
    return sorted(posts, key=lambda post: (post.created_at, post.id))


def extract_post_id(post_ref: str) -> str:
    """Accept a bare post id or a post URL"""
    ref = (post_ref or "").strip()
    if "/" not in ref:
        return ref
    path = urlparse(ref).path if "://" in ref else ref
    segments = [segment for segment in path.split("/") if segment]
    if "post" in segments:
        # /post/<id>; a bare /post/ names no post
        position = segments.index("post") + 1
        return segments[position] if position < len(segments) else ""
    return segments[-1] if segments else ""


class IndexerService:
    """Fetch, order and replay feed posts into the ledger."""

    def __init__(
        self,
        db_session: Session,
        feed_client: Optional[MoltbookFeedClient] = None,
        processor: Optional[AGT20Processor] = None,
        lock_owner: Optional[str] = None,
    ):
        self.db = db_session
        self.feed = feed_client or MoltbookFeedClient()
        self.processor = processor or AGT20Processor(db_session)
        self.lock_owner = lock_owner
        self.error_handler = ErrorHandler()
        self.logger = structlog.get_logger()

    def _lock(self) -> IndexerLock:
        return IndexerLock(self.db, owner=self.lock_owner)

    def run(self) -> IndexerRunSummary:
        """Index the recent window of the feed and advance the cursor."""
        start_time = time.time()
        with self._lock() as lock:
            state = get_or_create_state(self.db, CURSOR_STATE_ID)
            posts = self.feed.fetch_recent()
            fetched = len(posts)

            if state.last_post_at is not None:
                horizon = state.last_post_at - timedelta(seconds=settings.CURSOR_OVERLAP_SECONDS)
                posts = [post for post in posts if post.created_at >= horizon]

            ordered = chronological(posts)
            summary = self._replay(ordered, lock, fetched)
            self._advance_cursor(ordered)

        summary.processing_time = round(time.time() - start_time, 3)
        self.logger.info("Indexer run completed", **summary.to_dict())
        return summary

    def backfill(self, max_posts: Optional[int] = None) -> IndexerRunSummary:
        """Replay the whole reachable feed history; safe to repeat."""
        start_time = time.time()
        with self._lock() as lock:
            posts = self.feed.fetch_all(max_posts=max_posts)
            ordered = chronological(posts)
            summary = self._replay(ordered, lock, len(posts))
            self._advance_cursor(ordered)

        summary.processing_time = round(time.time() - start_time, 3)
        self.logger.info("Backfill completed", **summary.to_dict())
        return summary

    def index_post(self, post_ref: str) -> Dict[str, Any]:
        """Fetch one post by id or URL and replay it immediately."""
        post_id = extract_post_id(post_ref)
        if not post_id:
            raise ValueError("postId or postUrl required")

        with self._lock():
            post = self.feed.fetch_post(post_id)
            if post is None:
                return {"post_id": post_id, "found": False, "indexed": False, "reason": "Post not found"}

            if not self.processor.parser.contains_protocol_tag(post.content):
                return {"post_id": post_id, "found": True, "indexed": False, "reason": "Not an agt-20 operation"}

            result = self.processor.process_post(post)

        response = {
            "post_id": post_id,
            "found": True,
            "indexed": result.applied,
            "operation": result.operation_type,
            "ticker": result.ticker,
        }
        if result.already_indexed:
            response["reason"] = "Already indexed"
        elif not result.operation_found:
            response["reason"] = result.error_message or "Not an agt-20 operation"
        elif not result.is_valid:
            response["reason"] = result.error_message
            response["error_code"] = result.error_code
        return response

    def _replay(self, ordered: List[FeedPost], lock: IndexerLock, fetched: int) -> IndexerRunSummary:
        summary = IndexerRunSummary(fetched=fetched, processed=0)
        for post in ordered:
            result = self.processor.process_post(post)
            if result.already_indexed:
                summary.already_indexed += 1
            elif result.applied:
                summary.processed += 1
            elif result.operation_found:
                summary.rejected += 1

            lock.refresh_if_due()
        return summary

    def _advance_cursor(self, ordered: List[FeedPost]) -> None:
        state = get_or_create_state(self.db, CURSOR_STATE_ID)
        if ordered:
            last_post = ordered[-1]
            if state.last_post_at is None or last_post.created_at >= state.last_post_at:
                state.last_post_id = last_post.id
                state.last_post_at = last_post.created_at
        state.last_indexed = utcnow()
        self.db.commit()

    def get_state(self) -> Optional[IndexerState]:
        return self.db.get(IndexerState, CURSOR_STATE_ID)

    def start_continuous_indexing(self, interval: Optional[int] = None, max_runs: Optional[int] = None) -> None:
        """Run repeatedly, backing off after failures."""
        interval = interval or settings.INDEX_INTERVAL
        runs = 0
        failures = 0

        self.logger.info("Starting continuous indexer", interval=interval)
        try:
            while max_runs is None or runs < max_runs:
                runs += 1
                try:
                    self.run()
                    failures = 0
                    time.sleep(interval)
                except Exception as e:
                    failures += 1
                    if not self.error_handler.handle_run_error(e, {"run": runs, "failures": failures}):
                        raise IndexerError(f"Indexing stopped after run {runs}: {e}")
                    # back-off stops growing once retries are exhausted
                    attempt = failures if self.error_handler.should_retry(failures) else settings.MAX_RETRIES
                    time.sleep(max(interval, self.error_handler.get_retry_delay(attempt)))
        except KeyboardInterrupt:
            self.logger.info("Indexing interrupted by user")
            raise
