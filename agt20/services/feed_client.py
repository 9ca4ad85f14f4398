"""
Moltbook feed client.

Posts carrying agt-20 payloads can show up in the global feed, in the topic
feed, or in both; every fetch mode merges the two and deduplicates by post id.
"""

import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

import httpx
import structlog

from agt20.config import settings
from agt20.utils.exceptions import FeedFetchError
from agt20.utils.timestamps import parse_timestamp

logger = structlog.get_logger()

GLOBAL_SOURCE = "global"
TOPIC_SOURCE = "topic"


@dataclass
class FeedPost:
    id: str
    author: str
    content: str
    created_at: datetime
    url: str

    @classmethod
    def from_api(cls, data: Dict[str, Any], web_url: Optional[str] = None) -> Optional["FeedPost"]:
        if not isinstance(data, dict):
            return None

        post_id = data.get("id")
        author = data.get("author")
        author_name = author.get("name") if isinstance(author, dict) else data.get("author_name")
        created_at = parse_timestamp(data.get("created_at"))

        if post_id in (None, "") or not author_name or created_at is None:
            return None

        post_id = str(post_id)
        base = (web_url or settings.FEED_WEB_URL).rstrip("/")
        return cls(
            id=post_id,
            author=str(author_name),
            content=data.get("content") or "",
            created_at=created_at,
            url=data.get("url") or f"{base}/post/{post_id}",
        )


@dataclass
class FeedPage:
    posts: List[FeedPost]
    raw_count: int
    has_more: Optional[bool] = None


def merge_posts(*batches: Iterable[FeedPost]) -> List[FeedPost]:
    """Merge batches keeping the first occurrence of each post id"""
    seen = set()
    merged = []
    for batch in batches:
        for post in batch:
            if post.id in seen:
                continue
            seen.add(post.id)
            merged.append(post)
    return merged


class MoltbookFeedClient:
    """Read posts from the Moltbook API"""

    def __init__(
        self,
        api_url: Optional[str] = None,
        topic: Optional[str] = None,
        page_size: Optional[int] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.api_url = (api_url or settings.FEED_API_URL).rstrip("/")
        self.topic = topic if topic is not None else settings.FEED_TOPIC
        self.page_size = page_size or settings.FEED_PAGE_SIZE
        self.client = client or httpx.Client(
            base_url=self.api_url,
            timeout=httpx.Timeout(timeout or settings.FEED_TIMEOUT, connect=10.0),
        )
        self._sleep = sleep

    @property
    def sources(self) -> List[str]:
        return [GLOBAL_SOURCE, TOPIC_SOURCE] if self.topic else [GLOBAL_SOURCE]

    def fetch_page(
        self, source: str, limit: int, offset: int = 0, after: Optional[str] = None
    ) -> FeedPage:
        params: Dict[str, Any] = {"limit": limit, "sort": "new"}
        if offset:
            params["offset"] = offset
        if after:
            params["after"] = after
        if source == TOPIC_SOURCE:
            params["submolt"] = self.topic

        data = self._get_json("/posts", params)
        raw_posts = data.get("posts") or []
        posts = []
        for raw in raw_posts:
            post = FeedPost.from_api(raw)
            if post is None:
                logger.warning("Skipping malformed feed post", source=source, post=str(raw)[:200])
                continue
            posts.append(post)

        has_more = data.get("has_more")
        return FeedPage(posts=posts, raw_count=len(raw_posts), has_more=has_more if isinstance(has_more, bool) else None)

    def fetch_recent(self, after: Optional[str] = None, limit: Optional[int] = None) -> List[FeedPost]:
        """One bounded window from every source"""
        window = limit or settings.RECENT_WINDOW_SIZE
        batches = [self.fetch_page(source, limit=window, after=after).posts for source in self.sources]
        posts = merge_posts(*batches)
        logger.info("Fetched recent posts", count=len(posts), sources=self.sources)
        return posts

    def fetch_all(self, max_posts: Optional[int] = None, page_delay: Optional[float] = None) -> List[FeedPost]:
        """Page through every source until it is exhausted or hits the safety cap.

        The cap applies to each source separately, so a busy global feed never
        starves the topic feed.
        """
        cap = max_posts or settings.BACKFILL_MAX_POSTS
        delay = settings.BACKFILL_PAGE_DELAY if page_delay is None else page_delay

        collected: List[FeedPost] = []
        seen = set()
        first_request = True

        for source in self.sources:
            offset = 0
            taken = 0
            while taken < cap:
                if not first_request and delay > 0:
                    self._sleep(delay)
                first_request = False

                page = self.fetch_page(source, limit=self.page_size, offset=offset)
                fresh = [post for post in page.posts if post.id not in seen]
                kept = fresh[: cap - taken]
                for post in kept:
                    seen.add(post.id)
                collected.extend(kept)
                taken += len(kept)

                logger.info(
                    "Fetched backfill page",
                    source=source,
                    offset=offset,
                    page_posts=page.raw_count,
                    new_posts=len(fresh),
                    total=len(collected),
                )

                if page.has_more is False or page.raw_count < self.page_size or not fresh:
                    break
                offset += page.raw_count

            if taken >= cap:
                logger.warning("Backfill safety cap reached", source=source, cap=cap)
        return collected

    def fetch_post(self, post_id: str) -> Optional[FeedPost]:
        try:
            response = self.client.get(f"/posts/{post_id}")
        except httpx.RequestError as e:
            raise FeedFetchError(f"Moltbook request failed: {e}")

        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise FeedFetchError(f"Moltbook API error: {response.status_code}", response.status_code)

        data = self._decode(response)
        raw = data.get("post") if isinstance(data.get("post"), dict) else data
        return FeedPost.from_api(raw)

    def _get_json(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self.client.get(path, params=params)
        except httpx.RequestError as e:
            logger.error("Moltbook request failed", path=path, error=str(e))
            raise FeedFetchError(f"Moltbook request failed: {e}")

        if response.status_code != 200:
            logger.error("Moltbook returned non-200 status", path=path, status=response.status_code)
            raise FeedFetchError(f"Moltbook API error: {response.status_code}", response.status_code)

        return self._decode(response)

    @staticmethod
    def _decode(response: httpx.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            raise FeedFetchError("Moltbook returned a non-JSON body", response.status_code)
        if not isinstance(data, dict):
            raise FeedFetchError("Moltbook returned an unexpected payload", response.status_code)
        return data
