from datetime import datetime

import httpx
import pytest

from agt20.services.feed_client import FeedPost, MoltbookFeedClient, merge_posts
from agt20.utils.exceptions import FeedFetchError

API_URL = "https://feed.test/api/v1"


def raw_post(post_id, minute=0, author="alice", content="hello"):
    return {
        "id": post_id,
        "content": content,
        "created_at": f"2026-02-01T12:{minute:02d}:00Z",
        "author": {"id": f"id-{author}", "name": author},
    }


def make_client(handler, topic="agt20", page_size=2, sleeps=None):
    http_client = httpx.Client(base_url=API_URL, transport=httpx.MockTransport(handler))
    return MoltbookFeedClient(
        api_url=API_URL,
        topic=topic,
        page_size=page_size,
        client=http_client,
        sleep=(sleeps.append if sleeps is not None else lambda seconds: None),
    )


class TestFeedPost:
    def test_from_api(self):
        post = FeedPost.from_api(raw_post("p1", minute=5), web_url="https://moltbook.test")

        assert post.id == "p1"
        assert post.author == "alice"
        assert post.created_at == datetime(2026, 2, 1, 12, 5)
        assert post.url == "https://moltbook.test/post/p1"

    def test_explicit_url_kept(self):
        data = {**raw_post("p1"), "url": "https://elsewhere.test/p1"}
        assert FeedPost.from_api(data).url == "https://elsewhere.test/p1"

    def test_null_content_becomes_empty(self):
        data = {**raw_post("p1"), "content": None}
        assert FeedPost.from_api(data).content == ""

    @pytest.mark.parametrize("field", ["id", "author", "created_at"])
    def test_incomplete_posts_skipped(self, field):
        data = raw_post("p1")
        del data[field]
        assert FeedPost.from_api(data) is None


def test_merge_posts_dedupes_by_id():
    a = FeedPost.from_api(raw_post("a"))
    b = FeedPost.from_api(raw_post("b"))
    a_again = FeedPost.from_api(raw_post("a", content="other copy"))

    merged = merge_posts([a, b], [a_again])

    assert [post.id for post in merged] == ["a", "b"]
    assert merged[0].content == "hello"


class TestFetchRecent:
    def test_merges_global_and_topic_feeds(self):
        requests = []

        def handler(request):
            requests.append(dict(request.url.params))
            if request.url.params.get("submolt") == "agt20":
                return httpx.Response(200, json={"posts": [raw_post("b"), raw_post("c")]})
            return httpx.Response(200, json={"posts": [raw_post("a"), raw_post("b")]})

        posts = make_client(handler).fetch_recent(limit=50)

        assert sorted(post.id for post in posts) == ["a", "b", "c"]
        assert len(requests) == 2
        assert all(params["sort"] == "new" and params["limit"] == "50" for params in requests)
        assert "after" not in requests[0]

    def test_global_only_without_topic(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"posts": [raw_post("a")]})

        make_client(handler, topic="").fetch_recent()
        assert len(calls) == 1

    def test_malformed_posts_are_skipped(self):
        def handler(request):
            return httpx.Response(200, json={"posts": [raw_post("a"), {"id": "broken"}]})

        posts = make_client(handler, topic="").fetch_recent()
        assert [post.id for post in posts] == ["a"]

    def test_http_error_raises(self):
        client = make_client(lambda request: httpx.Response(500, text="boom"))
        with pytest.raises(FeedFetchError) as exc_info:
            client.fetch_recent()
        assert exc_info.value.status_code == 500

    def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(FeedFetchError):
            make_client(handler).fetch_recent()

    def test_non_json_body_raises(self):
        client = make_client(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(FeedFetchError):
            client.fetch_recent()


class TestFetchAll:
    def test_pages_until_short_page(self):
        pages = {0: [raw_post("a"), raw_post("b")], 2: [raw_post("c")]}
        offsets = []

        def handler(request):
            offset = int(request.url.params.get("offset", 0))
            offsets.append(offset)
            return httpx.Response(200, json={"posts": pages.get(offset, [])})

        sleeps = []
        posts = make_client(handler, topic="", sleeps=sleeps).fetch_all(page_delay=0.5)

        assert [post.id for post in posts] == ["a", "b", "c"]
        assert offsets == [0, 2]
        assert sleeps == [0.5]

    def test_stops_when_has_more_is_false(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"posts": [raw_post("a"), raw_post("b")], "has_more": False})

        posts = make_client(handler, topic="").fetch_all(page_delay=0)
        assert len(posts) == 2
        assert len(calls) == 1

    def test_stops_when_page_repeats(self):
        calls = []

        def handler(request):
            calls.append(request)
            # an API that ignores offset keeps returning the same page
            return httpx.Response(200, json={"posts": [raw_post("a"), raw_post("b")]})

        posts = make_client(handler, topic="").fetch_all(page_delay=0)
        assert [post.id for post in posts] == ["a", "b"]
        assert len(calls) == 2

    def test_safety_cap(self):
        counter = {"next": 0}

        def handler(request):
            start = counter["next"]
            counter["next"] += 2
            return httpx.Response(200, json={"posts": [raw_post(f"p{start}"), raw_post(f"p{start + 1}")]})

        posts = make_client(handler, topic="").fetch_all(max_posts=5, page_delay=0)
        assert len(posts) == 5

    def test_walks_both_sources(self):
        def handler(request):
            if request.url.params.get("submolt"):
                return httpx.Response(200, json={"posts": [raw_post("t1"), raw_post("g1")]})
            return httpx.Response(200, json={"posts": [raw_post("g1")]})

        posts = make_client(handler).fetch_all(page_delay=0)
        assert [post.id for post in posts] == ["g1", "t1"]

    def test_cap_is_per_source(self):
        counter = {"next": 0}

        def handler(request):
            if request.url.params.get("submolt"):
                return httpx.Response(200, json={"posts": [raw_post("topic-only")]})
            start = counter["next"]
            counter["next"] += 2
            return httpx.Response(
                200,
                json={"posts": [raw_post(f"g{start}"), raw_post(f"g{start + 1}")], "has_more": True},
            )

        posts = make_client(handler).fetch_all(max_posts=5, page_delay=0)
        ids = [post.id for post in posts]

        assert "topic-only" in ids
        assert len([post_id for post_id in ids if post_id.startswith("g")]) == 5


class TestFetchPost:
    def test_wrapped_post(self):
        def handler(request):
            assert request.url.path == "/api/v1/posts/p9"
            return httpx.Response(200, json={"success": True, "post": raw_post("p9")})

        post = make_client(handler).fetch_post("p9")
        assert post.id == "p9"

    def test_bare_post(self):
        post = make_client(lambda request: httpx.Response(200, json=raw_post("p9"))).fetch_post("p9")
        assert post.id == "p9"

    def test_not_found(self):
        assert make_client(lambda request: httpx.Response(404)).fetch_post("missing") is None

    def test_server_error(self):
        with pytest.raises(FeedFetchError):
            make_client(lambda request: httpx.Response(502)).fetch_post("p9")
