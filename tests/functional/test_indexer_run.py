import itertools
from datetime import timedelta
from unittest.mock import Mock

import pytest

from agt20.config import settings
from agt20.models.balance import Balance
from agt20.models.indexer_state import IndexerState, CURSOR_STATE_ID
from agt20.models.token import Token
from agt20.services.classifier import BlessingClassifier, BlessingVerdict
from agt20.services.feed_client import MoltbookFeedClient
from agt20.services.indexer import IndexerService, chronological, extract_post_id
from agt20.services.ledger_store import LedgerStore
from agt20.services.lock import IndexerLock
from agt20.services.processor import AGT20Processor
from agt20.services.rate_guard import RateGuard
from agt20.utils.exceptions import FeedFetchError, IndexerBusyError, IndexerError


@pytest.fixture
def feed():
    mock = Mock(spec=MoltbookFeedClient)
    mock.fetch_recent.return_value = []
    mock.fetch_all.return_value = []
    mock.fetch_post.return_value = None
    return mock


@pytest.fixture
def processor(db_session):
    classifier = Mock(spec=BlessingClassifier)
    classifier.classify.return_value = BlessingVerdict.VALID
    guard = RateGuard(LedgerStore(db_session), classifier=classifier, gated_tokens=[])
    return AGT20Processor(db_session, rate_guard=guard)


@pytest.fixture
def indexer(db_session, feed, processor):
    return IndexerService(db_session, feed_client=feed, processor=processor, lock_owner="test-worker")


@pytest.fixture
def history(make_post):
    return [
        make_post("d1", "alice", {"op": "deploy", "tick": "AAA", "max": "1000", "lim": "100"}, minutes=0),
        make_post("m1", "alice", {"op": "mint", "tick": "AAA", "amt": "100"}, minutes=1),
        make_post("t1", "alice", {"op": "transfer", "tick": "AAA", "amt": "25", "to": "bob"}, minutes=2),
        make_post("n1", "carol", content="no payload here", minutes=3),
    ]


def amount_of(db_session, agent):
    row = db_session.query(Balance).filter(Balance.ticker == "AAA", Balance.agent_name == agent).first()
    return row.amount if row else 0


def test_chronological_breaks_ties_by_post_id(make_post):
    late = make_post("b", "x", minutes=5)
    tie_b = make_post("z", "x", minutes=1)
    tie_a = make_post("a", "x", minutes=1)

    assert [post.id for post in chronological([late, tie_b, tie_a])] == ["a", "z", "b"]


@pytest.mark.parametrize(
    "ref,expected",
    [
        ("abc123", "abc123"),
        ("https://www.moltbook.com/post/abc123", "abc123"),
        ("https://www.moltbook.com/post/abc123/", "abc123"),
        ("https://www.moltbook.com/post/abc123?ref=feed", "abc123"),
        ("  abc123  ", "abc123"),
        ("", ""),
        ("https://www.moltbook.com/post/", ""),
        ("https://www.moltbook.com/post", ""),
        ("https://www.moltbook.com/post/abc123/comments", "abc123"),
    ],
)
def test_extract_post_id(ref, expected):
    assert extract_post_id(ref) == expected


class TestRun:
    def test_newest_first_feed_is_replayed_oldest_first(self, indexer, feed, history, db_session):
        feed.fetch_recent.return_value = list(reversed(history))

        summary = indexer.run()

        assert summary.fetched == 4
        assert summary.processed == 3
        assert summary.rejected == 0
        assert amount_of(db_session, "alice") == 75
        assert amount_of(db_session, "bob") == 25

    def test_cursor_advances_to_last_post(self, indexer, feed, history, db_session):
        feed.fetch_recent.return_value = history

        indexer.run()

        state = indexer.get_state()
        assert state.last_post_id == "n1"
        assert state.last_post_at == history[-1].created_at
        assert state.last_indexed is not None
        assert state.lock_owner is None

    def test_second_run_is_idempotent(self, indexer, feed, history, db_session):
        feed.fetch_recent.return_value = history

        indexer.run()
        summary = indexer.run()

        assert summary.processed == 0
        assert summary.already_indexed == 3
        assert amount_of(db_session, "alice") == 75

    def test_posts_far_behind_cursor_are_skipped(self, indexer, feed, history, db_session, make_post):
        state = IndexerState(
            id=CURSOR_STATE_ID,
            last_post_id="old",
            last_post_at=history[0].created_at + timedelta(seconds=settings.CURSOR_OVERLAP_SECONDS + 600),
        )
        db_session.add(state)
        db_session.commit()
        feed.fetch_recent.return_value = history

        summary = indexer.run()

        assert summary.fetched == 4
        assert summary.processed == 0
        assert db_session.query(Token).count() == 0

    def test_posts_inside_overlap_are_replayed(self, indexer, feed, history, db_session):
        db_session.add(IndexerState(id=CURSOR_STATE_ID, last_post_id="m1", last_post_at=history[1].created_at))
        db_session.commit()
        feed.fetch_recent.return_value = history

        summary = indexer.run()

        assert summary.processed == 3

    def test_rejections_are_counted(self, indexer, feed, make_post):
        feed.fetch_recent.return_value = [
            make_post("m1", "alice", {"op": "mint", "tick": "ZZZ", "amt": "1"}, minutes=0),
        ]

        summary = indexer.run()

        assert summary.rejected == 1
        assert summary.processed == 0

    def test_failure_keeps_cursor_and_releases_lock(self, indexer, feed, history, db_session, monkeypatch):
        feed.fetch_recent.return_value = history
        original = indexer.processor.process_post

        def flaky(post):
            if post.id == "t1":
                raise RuntimeError("connection reset")
            return original(post)

        monkeypatch.setattr(indexer.processor, "process_post", flaky)

        with pytest.raises(RuntimeError):
            indexer.run()

        state = db_session.get(IndexerState, CURSOR_STATE_ID)
        db_session.refresh(state)
        assert state.last_post_id is None
        assert state.lock_owner is None
        # posts before the failure stay applied; the next run resumes idempotently
        assert amount_of(db_session, "alice") == 100

        monkeypatch.setattr(indexer.processor, "process_post", original)
        summary = indexer.run()
        assert summary.processed == 1
        assert summary.already_indexed == 2
        assert amount_of(db_session, "bob") == 25

    def test_fetch_failure_propagates(self, indexer, feed):
        feed.fetch_recent.side_effect = FeedFetchError("Moltbook API error: 503", 503)

        with pytest.raises(FeedFetchError):
            indexer.run()
        assert indexer.get_state().last_indexed is None

    def test_busy_lock_refuses_run(self, indexer, feed, db_session):
        IndexerLock(db_session, owner="someone-else").acquire()

        with pytest.raises(IndexerBusyError):
            indexer.run()
        feed.fetch_recent.assert_not_called()

    def test_lock_renewed_by_elapsed_time(self, indexer, feed, db_session, make_post, monkeypatch):
        # every clock reading is 100s after the previous one against a 600s lease
        ticks = itertools.count(0, 100)
        monkeypatch.setattr(
            indexer,
            "_lock",
            lambda: IndexerLock(db_session, owner="test-worker", ttl_seconds=600, clock=lambda: next(ticks)),
        )
        feed.fetch_recent.return_value = [make_post(f"n{i}", "x", content="hi", minutes=i) for i in range(7)]
        refreshes = []
        original_refresh = IndexerLock.refresh

        def counting_refresh(self):
            refreshes.append(self.owner)
            original_refresh(self)

        monkeypatch.setattr(IndexerLock, "refresh", counting_refresh)

        indexer.run()

        assert refreshes == ["test-worker", "test-worker"]


class TestBackfill:
    def test_backfill_replays_history(self, indexer, feed, history, db_session):
        feed.fetch_all.return_value = list(reversed(history))

        summary = indexer.backfill(max_posts=500)

        feed.fetch_all.assert_called_once_with(max_posts=500)
        assert summary.processed == 3
        assert amount_of(db_session, "bob") == 25

    def test_backfill_never_moves_cursor_backwards(self, indexer, feed, history, db_session):
        ahead = history[-1].created_at + timedelta(days=3)
        db_session.add(IndexerState(id=CURSOR_STATE_ID, last_post_id="future", last_post_at=ahead))
        db_session.commit()
        feed.fetch_all.return_value = history

        indexer.backfill()

        state = indexer.get_state()
        assert state.last_post_id == "future"
        assert state.last_post_at == ahead

    def test_backfill_after_run_changes_nothing(self, indexer, feed, history, db_session):
        feed.fetch_recent.return_value = history
        feed.fetch_all.return_value = history

        indexer.run()
        summary = indexer.backfill()

        assert summary.processed == 0
        assert summary.already_indexed == 3
        assert amount_of(db_session, "alice") == 75


class TestIndexPost:
    def test_index_by_url(self, indexer, feed, history):
        feed.fetch_post.return_value = history[0]

        result = indexer.index_post("https://www.moltbook.com/post/d1")

        feed.fetch_post.assert_called_once_with("d1")
        assert result == {"post_id": "d1", "found": True, "indexed": True, "operation": "deploy", "ticker": "AAA"}

    def test_post_not_found(self, indexer, feed):
        result = indexer.index_post("missing")
        assert result["found"] is False
        assert result["indexed"] is False

    def test_post_without_payload(self, indexer, feed, history):
        feed.fetch_post.return_value = history[3]
        result = indexer.index_post("n1")
        assert result["indexed"] is False
        assert result["reason"] == "Not an agt-20 operation"

    def test_already_indexed(self, indexer, feed, history):
        feed.fetch_post.return_value = history[0]
        indexer.index_post("d1")
        result = indexer.index_post("d1")

        assert result["indexed"] is False
        assert result["reason"] == "Already indexed"

    def test_rejected_operation(self, indexer, feed, make_post):
        feed.fetch_post.return_value = make_post("m9", "alice", {"op": "mint", "tick": "NOPE", "amt": "1"})
        result = indexer.index_post("m9")

        assert result["indexed"] is False
        assert result["error_code"] == "TICKER_NOT_DEPLOYED"

    def test_empty_reference(self, indexer):
        with pytest.raises(ValueError):
            indexer.index_post("   ")


class TestContinuous:
    def test_runs_until_max_runs(self, indexer, feed, monkeypatch):
        sleeps = []
        monkeypatch.setattr("agt20.services.indexer.time.sleep", sleeps.append)

        indexer.start_continuous_indexing(interval=7, max_runs=3)

        assert feed.fetch_recent.call_count == 3
        assert sleeps == [7, 7, 7]

    def test_fetch_errors_back_off_and_continue(self, indexer, feed, monkeypatch):
        sleeps = []
        monkeypatch.setattr("agt20.services.indexer.time.sleep", sleeps.append)
        feed.fetch_recent.side_effect = [FeedFetchError("down", 503), []]

        indexer.start_continuous_indexing(interval=1, max_runs=2)

        assert feed.fetch_recent.call_count == 2
        assert sleeps[0] == settings.RETRY_DELAY

    def test_back_off_stops_growing_after_max_retries(self, indexer, feed, monkeypatch):
        sleeps = []
        monkeypatch.setattr("agt20.services.indexer.time.sleep", sleeps.append)
        monkeypatch.setattr(settings, "MAX_RETRIES", 2)
        monkeypatch.setattr(settings, "RETRY_DELAY", 5)
        feed.fetch_recent.side_effect = FeedFetchError("down", 503)

        indexer.start_continuous_indexing(interval=1, max_runs=4)

        assert sleeps == [5, 10, 10, 10]

    def test_stop_on_error(self, indexer, feed, monkeypatch):
        monkeypatch.setattr("agt20.services.indexer.time.sleep", lambda seconds: None)
        monkeypatch.setattr(settings, "STOP_ON_ERROR", True)
        feed.fetch_recent.side_effect = RuntimeError("unexpected")

        with pytest.raises(IndexerError):
            indexer.start_continuous_indexing(interval=1, max_runs=5)
