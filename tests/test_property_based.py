"""Property-based tests for the catalogue domain.

Uses Hypothesis to generate operation sequences and verify invariants that
should always hold for the merge engine, the rating aggregator and the
legacy migration.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from hypothesis import given, settings, strategies as st

from vinyl_catalog.domain.catalog.entities import OwnershipDetails, Record
from vinyl_catalog.domain.catalog.legacy import migrate_record_dict
from vinyl_catalog.domain.catalog.services import OwnershipMergeEngine, RatingAggregator
from vinyl_catalog.domain.catalog.statistics import CollectionAggregationEngine
from vinyl_catalog.domain.catalog.value_objects import Condition, round_half_up

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)

users = st.sampled_from(["alice", "bob", "carol", "dave"])
prices = st.one_of(st.none(), st.floats(min_value=0, max_value=10_000, allow_nan=False, allow_infinity=False))
details = st.builds(
    OwnershipDetails,
    condition=st.one_of(st.none(), st.sampled_from(list(Condition))),
    notes=st.one_of(st.none(), st.text(min_size=1, max_size=20)),
    purchase_price=prices,
)
operations = st.lists(
    st.one_of(
        st.tuples(st.just("attach"), users, details),
        st.tuples(st.just("detach"), users, st.none()),
    ),
    max_size=30,
)


# ============================================================================
# Ownership merge
# ============================================================================

@given(operations)
def test_owner_facts_follow_each_users_last_operation(ops) -> None:
    """Each user's fact reflects only that user's own last attach or detach."""
    record = Record(artist="A", album="B", created_at=T0)
    expected = {}

    for step, (op, user_id, submitted) in enumerate(ops):
        now = T0 + timedelta(minutes=step)
        if op == "attach":
            first_added = expected[user_id][0] if user_id in expected else now
            OwnershipMergeEngine.attach(record, user_id, user_id.title(), submitted, now=now)
            expected[user_id] = (first_added, submitted)
        else:
            OwnershipMergeEngine.detach(record, user_id)
            expected.pop(user_id, None)

    assert sorted(record.owner_ids) == sorted(expected)
    assert len(record.owner_ids) == len(set(record.owner_ids))
    for user_id, (added_at, submitted) in expected.items():
        fact = record.owner_fact(user_id)
        assert fact.added_at == added_at
        assert fact.condition == submitted.condition
        assert fact.notes == submitted.notes
        assert fact.purchase_price == submitted.purchase_price


@given(st.lists(users, min_size=1, max_size=4, unique=True), users, details)
def test_attach_never_touches_other_owners(owners, actor, submitted) -> None:
    """Attaching for one user leaves every other user's fact identical."""
    record = Record(artist="A", album="B", created_at=T0)
    for user_id in owners:
        OwnershipMergeEngine.attach(record, user_id, None, OwnershipDetails(purchase_price=1.0), now=T0)
    before = {o.user_id: o for o in record.owners if o.user_id != actor}

    OwnershipMergeEngine.attach(record, actor, None, submitted, now=T0 + timedelta(days=1))

    assert {o.user_id: o for o in record.owners if o.user_id != actor} == before


# ============================================================================
# Ratings
# ============================================================================

@given(st.lists(st.tuples(users, st.integers(min_value=0, max_value=5)), max_size=30))
def test_average_rating_matches_latest_votes(votes) -> None:
    """The public average is the rounded mean of each user's latest non-zero vote."""
    record = Record(artist="A", album="B")
    latest = {}
    for user_id, value in votes:
        RatingAggregator.set_rating(record, user_id, None, value)
        if value:
            latest[user_id] = value
        else:
            latest.pop(user_id, None)

    summary = RatingAggregator.summarize(record)
    assert summary.count == len(latest)
    if latest:
        assert 1.0 <= summary.average <= 5.0
        assert summary.average == round_half_up(sum(latest.values()) / len(latest), 1)
    else:
        assert summary.average == 0


@given(st.floats(min_value=0, max_value=1_000_000, allow_nan=False), st.integers(min_value=0, max_value=3))
def test_round_half_up_is_close(value, places) -> None:
    """Rounding never moves a value by more than half a unit in the last place."""
    assert abs(round_half_up(value, places) - value) <= 0.5 * 10 ** -places + 1e-9


# ============================================================================
# Legacy migration and statistics
# ============================================================================

legacy_documents = st.fixed_dictionaries(
    {"id": st.just("r1"), "artist": st.just("A"), "album": st.just("B")},
    optional={
        "userId": users,
        "username": st.text(min_size=1, max_size=10),
        "ean": st.text(alphabet="0123456789", min_size=8, max_size=13),
        "year": st.integers(min_value=1900, max_value=2030),
        "rating": st.integers(min_value=0, max_value=5),
        "condition": st.sampled_from([c.value for c in Condition]),
        "purchasePrice": st.floats(min_value=0, max_value=1000, allow_nan=False),
        "createdAt": st.just("2023-05-01T10:00:00.000Z"),
    },
)


@given(legacy_documents)
def test_migration_is_idempotent(document) -> None:
    """Migrating an already migrated document changes nothing."""
    once = migrate_record_dict(document)

    assert migrate_record_dict(once) == once
    assert len({o["userId"] for o in once["owners"]}) == len(once["owners"])


@settings(max_examples=50)
@given(st.lists(st.tuples(users, prices), min_size=1, max_size=20))
def test_statistics_only_count_own_records(ownerships) -> None:
    """A user's totals only include records they hold a fact for."""
    snapshot = []
    for n, (user_id, price) in enumerate(ownerships):
        record = Record(id=f"r{n}", artist="A", album=f"B{n}", created_at=T0)
        OwnershipMergeEngine.attach(record, user_id, None, OwnershipDetails(purchase_price=price), now=T0)
        snapshot.append(record)

    engine = CollectionAggregationEngine()
    for user_id in ("alice", "bob", "carol", "dave"):
        mine = [price or 0.0 for owner, price in ownerships if owner == user_id]
        stats = engine.compute(snapshot, user_id, T0.date())
        assert stats.total_records == len(mine)
        assert stats.total_invested == round_half_up(sum(mine), 2)
