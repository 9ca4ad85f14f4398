"""
Property checks that replay random operation sequences against a fresh ledger.
"""

import json
from datetime import datetime, timedelta
from unittest.mock import Mock

from hypothesis import HealthCheck, given, settings as hypothesis_settings, strategies as st
from sqlalchemy import create_engine, func
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from agt20.models.balance import Balance
from agt20.models.base import Base
from agt20.models.operation import Operation
from agt20.models.token import Token
from agt20.services.classifier import BlessingClassifier, BlessingVerdict
from agt20.services.feed_client import FeedPost
from agt20.services.ledger_store import LedgerStore
from agt20.services.processor import AGT20Processor
from agt20.services.rate_guard import RateGuard

AGENTS = ["alice", "bob", "carol"]
START = datetime(2026, 2, 1, 0, 0, 0)

mints = st.builds(lambda amt: {"op": "mint", "tick": "AAA", "amt": str(amt)}, st.integers(1, 150))
transfers = st.builds(
    lambda amt, to: {"op": "transfer", "tick": "AAA", "amt": str(amt), "to": to},
    st.integers(1, 200),
    st.sampled_from(AGENTS),
)
burns = st.builds(lambda amt: {"op": "burn", "tick": "AAA", "amt": str(amt)}, st.integers(1, 200))
redeploys = st.just({"op": "deploy", "tick": "AAA", "max": "1", "lim": "1"})

steps = st.lists(
    st.tuples(st.sampled_from(AGENTS), st.one_of(mints, transfers, burns, redeploys)),
    min_size=1,
    max_size=25,
)


def new_session():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)()


def new_processor(db):
    classifier = Mock(spec=BlessingClassifier)
    classifier.classify.return_value = BlessingVerdict.VALID
    guard = RateGuard(LedgerStore(db), classifier=classifier, gated_tokens=[])
    return AGT20Processor(db, rate_guard=guard)


def as_posts(sequence):
    posts = [
        FeedPost(
            id="deploy",
            author="alice",
            content=json.dumps({"p": "agt-20", "op": "deploy", "tick": "AAA", "max": "500", "lim": "150"}),
            created_at=START,
            url="https://www.moltbook.com/post/deploy",
        )
    ]
    for index, (author, payload) in enumerate(sequence, start=1):
        posts.append(
            FeedPost(
                id=f"p{index:03d}",
                author=author,
                content=json.dumps({"p": "agt-20", **payload}),
                created_at=START + timedelta(hours=3 * index),
                url=f"https://www.moltbook.com/post/p{index:03d}",
            )
        )
    return posts


def ledger_snapshot(db):
    token = db.query(Token).filter(Token.ticker == "AAA").one()
    balances = {row.agent_name: row.amount for row in db.query(Balance).all()}
    return token.supply, token.holders, token.operations, balances


def assert_invariants(db):
    token = db.query(Token).filter(Token.ticker == "AAA").one()
    balances = [row.amount for row in db.query(Balance).filter(Balance.ticker == "AAA").all()]

    assert 0 <= token.supply <= token.max_supply
    assert all(amount >= 0 for amount in balances)
    assert sum(balances) == token.supply
    assert token.holders == sum(1 for amount in balances if amount > 0)
    assert token.holders == LedgerStore(db).count_holders("aaa")
    assert token.max_supply == 500
    assert token.mint_limit == 150


@hypothesis_settings(max_examples=40, deadline=None, suppress_health_check=[HealthCheck.too_slow])
@given(steps)
def test_ledger_invariants_hold_for_any_sequence(sequence):
    db = new_session()
    try:
        processor = new_processor(db)
        for post in as_posts(sequence):
            processor.process_post(post)
            assert_invariants(db)
    finally:
        db.close()


@hypothesis_settings(max_examples=25, deadline=None, suppress_health_check=[HealthCheck.too_slow])
@given(steps)
def test_replay_is_a_no_op(sequence):
    db = new_session()
    try:
        processor = new_processor(db)
        posts = as_posts(sequence)
        for post in posts:
            processor.process_post(post)
        before = ledger_snapshot(db)
        recorded = db.query(func.count(Operation.id)).scalar()

        results = [processor.process_post(post) for post in posts]

        assert all(result.already_indexed for result in results)
        assert ledger_snapshot(db) == before
        assert db.query(func.count(Operation.id)).scalar() == recorded
    finally:
        db.close()


@hypothesis_settings(max_examples=25, deadline=None, suppress_health_check=[HealthCheck.too_slow])
@given(steps)
def test_valid_operations_reproduce_supply(sequence):
    db = new_session()
    try:
        processor = new_processor(db)
        for post in as_posts(sequence):
            processor.process_post(post)

        valid = db.query(Operation).filter(Operation.is_valid.is_(True), Operation.ticker == "AAA").all()
        minted = sum(op.amount for op in valid if op.operation == "mint")
        burned = sum(op.amount for op in valid if op.operation == "burn")
        token = db.query(Token).filter(Token.ticker == "AAA").one()

        assert token.supply == minted - burned
        assert token.operations == len(valid)
    finally:
        db.close()
