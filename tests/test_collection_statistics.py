"""
Tests for the collection aggregation engine.
"""

import json
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

import pytest

from vinyl_catalog.domain.catalog.entities import OwnershipFact, Record
from vinyl_catalog.domain.catalog.statistics import (
    CollectionAggregationEngine,
    badge_level,
    COLLECTOR_LEVELS,
    COMPLETIONIST_LEVELS,
    TREASURE_HUNTER_LEVELS,
    rarity_tier,
    resolve_owned_view,
)
from vinyl_catalog.domain.catalog.value_objects import Condition

TODAY = date(2024, 6, 15)


def at(day: date, hour: int = 12) -> datetime:
    return datetime.combine(day, time(hour), tzinfo=timezone.utc)


def owned(
    record_id: str,
    user_id: str = "alice",
    price: Optional[float] = None,
    added: Optional[datetime] = None,
    condition: Optional[Condition] = None,
    artist: str = "Artist",
    album: Optional[str] = None,
    **fields,
) -> Record:
    """A record owned by one user."""
    return Record(
        id=record_id,
        artist=artist,
        album=album or f"Album {record_id}",
        owners=[OwnershipFact(
            user_id=user_id,
            username=user_id.title(),
            added_at=added or at(TODAY - timedelta(days=100)),
            condition=condition,
            purchase_price=price,
        )],
        created_at=at(date(2020, 1, 1)),
        **fields,
    )


def with_owners(record: Record, count: int) -> Record:
    """Add extra owners until the record has ``count`` owners."""
    for n in range(count - len(record.owners)):
        record.owners.append(OwnershipFact(user_id=f"extra{n}", username=f"Extra{n}", added_at=at(TODAY)))
    return record


@pytest.fixture
def engine():
    return CollectionAggregationEngine()


class TestVisibleSubsetAndViews:
    """Test which records count for a user and how they are projected."""

    def test_only_owned_records_are_counted(self, engine):
        snapshot = [owned("r1"), owned("r2", user_id="bob"), Record(id="r3", artist="A", album="B")]

        stats = engine.compute(snapshot, "alice", TODAY)

        assert stats.total_records == 1

    def test_legacy_primary_owner_counts(self, engine):
        legacy = Record(id="r1", artist="A", album="B", primary_owner_id="alice", created_at=at(date(2021, 3, 4)))

        view = resolve_owned_view(legacy, "alice")

        assert view.added_at == at(date(2021, 3, 4))
        assert view.purchase_price == 0.0
        assert view.condition is None
        assert engine.compute([legacy], "alice", TODAY).total_records == 1

    def test_each_owner_sees_their_own_facts(self, engine):
        record = Record(id="r1", artist="A", album="B")
        for n, price in enumerate([10.0, 20.0, 30.0, 40.0, 50.0]):
            record.owners.append(OwnershipFact(
                user_id=f"user{n}",
                username=f"User{n}",
                added_at=at(TODAY - timedelta(days=n)),
                purchase_price=price,
            ))

        totals = [engine.compute([record], f"user{n}", TODAY).total_invested for n in range(5)]

        assert totals == [10.0, 20.0, 30.0, 40.0, 50.0]

    def test_empty_collection(self, engine):
        stats = engine.compute([owned("r1", user_id="bob")], "alice", TODAY)

        assert stats.total_records == 0
        assert stats.collection_start_date is None
        assert stats.rarest_record is None
        assert stats.badges.collector.name == "Novice"
        assert stats.to_dict()["totalRecords"] == 0


class TestScalarStats:
    """Test value figures."""

    def test_prices(self, engine):
        snapshot = [owned("r1", price=20.0), owned("r2", price=35.5), owned("r3", price=0), owned("r4")]

        stats = engine.compute(snapshot, "alice", TODAY)

        assert stats.total_records == 4
        assert stats.total_invested == 55.5
        assert stats.estimated_value == 55.5
        assert stats.highest_value == 35.5
        assert stats.lowest_value == 20.0
        assert stats.average_value == 27.75

    def test_no_positive_prices(self, engine):
        stats = engine.compute([owned("r1", price=0)], "alice", TODAY)

        assert stats.highest_value == 0.0
        assert stats.lowest_value == 0.0
        assert stats.average_value == 0.0

    def test_physical_figures(self, engine):
        snapshot = [owned(f"r{n}") for n in range(10)]

        stats = engine.compute(snapshot, "alice", TODAY)

        assert stats.estimated_weight_kg == 1.8
        assert stats.estimated_length_m == 0.02


class TestTemporalStats:
    """Test dates, streaks and monthly series."""

    def test_streak_breaks_on_first_gap(self, engine):
        snapshot = [
            owned("r1", added=at(TODAY, 8)),
            owned("r2", added=at(TODAY - timedelta(days=1), 23)),
            owned("r3", added=at(TODAY - timedelta(days=3))),
        ]

        assert engine.compute(snapshot, "alice", TODAY).current_streak == 2

    def test_no_addition_today_means_no_streak(self, engine):
        snapshot = [owned("r1", added=at(TODAY - timedelta(days=1)))]

        assert engine.compute(snapshot, "alice", TODAY).current_streak == 0

    def test_several_additions_same_day_count_once(self, engine):
        snapshot = [owned("r1", added=at(TODAY, 9)), owned("r2", added=at(TODAY, 10))]

        assert engine.compute(snapshot, "alice", TODAY).current_streak == 1

    def test_start_date_and_age(self, engine):
        first = at(date(2024, 1, 1))
        snapshot = [owned("r1", added=first), owned("r2", added=at(date(2024, 5, 1)))]

        stats = engine.compute(snapshot, "alice", TODAY)

        assert stats.collection_start_date == first
        assert stats.collection_age_months == (TODAY - date(2024, 1, 1)).days // 30

    def test_monthly_series(self, engine):
        snapshot = [
            owned("r1", price=10.0, added=at(date(2024, 5, 2))),
            owned("r2", price=15.0, added=at(date(2024, 5, 20))),
            owned("r3", added=at(date(2024, 6, 1))),
            owned("r4", price=5.0, added=at(date(2024, 6, 10))),
        ]

        stats = engine.compute(snapshot, "alice", TODAY)

        assert stats.added_this_month == 2
        assert stats.acquisitions_by_month == [("2024-05", 2), ("2024-06", 2)]
        assert stats.investments_by_month == [("2024-05", 25.0), ("2024-06", 5.0)]
        assert stats.value_over_time == [("2024-05", 25.0), ("2024-06", 30.0)]

    def test_latest_additions_newest_first(self):
        engine = CollectionAggregationEngine(latest_n=2)
        snapshot = [owned(f"r{n}", added=at(TODAY - timedelta(days=n))) for n in range(4)]

        stats = engine.compute(snapshot, "alice", TODAY)

        assert [entry["id"] for entry in stats.latest_additions] == ["r0", "r1"]


class TestDistributions:
    """Test grouping distributions."""

    def test_decade_bucketing(self, engine):
        snapshot = [
            owned("r1", release_date="1978-05-12"),
            owned("r2", release_date="1971"),
            owned("r3"),
        ]

        stats = engine.compute(snapshot, "alice", TODAY)

        assert stats.decade_distribution == [("1970s", 2), ("Unknown", 1)]

    def test_condition_defaults_to_unknown(self, engine):
        snapshot = [owned("r1", condition=Condition.MINT), owned("r2"), owned("r3")]

        stats = engine.compute(snapshot, "alice", TODAY)

        assert stats.condition_distribution == [("Unknown", 2), ("Mint", 1)]

    def test_sorted_by_count_then_name(self, engine):
        snapshot = [
            owned("r1", genre="Rock"),
            owned("r2", genre="Jazz"),
            owned("r3", genre="Jazz"),
            owned("r4", genre="Ambient"),
            owned("r5"),
        ]

        stats = engine.compute(snapshot, "alice", TODAY)

        assert stats.genre_distribution == [("Jazz", 2), ("Ambient", 1), ("Rock", 1)]

    def test_top_artists_and_labels_limited_to_ten(self, engine):
        snapshot = [owned(f"r{n}", artist=f"Artist {n:02d}", label=f"Label {n:02d}") for n in range(12)]
        snapshot += [owned("extra", artist="Artist 11", label="Label 11")]

        stats = engine.compute(snapshot, "alice", TODAY)

        assert len(stats.top_artists) == 10
        assert stats.top_artists[0] == ("Artist 11", 2)
        assert len(stats.top_labels) == 10
        assert stats.top_labels[0] == ("Label 11", 2)

    def test_exact_string_grouping(self, engine):
        snapshot = [owned("r1", genre="Rock"), owned("r2", genre="rock")]

        stats = engine.compute(snapshot, "alice", TODAY)

        assert sorted(stats.genre_distribution) == [("Rock", 1), ("rock", 1)]

    def test_release_year_timeline(self, engine):
        snapshot = [owned("r1", release_date="1980"), owned("r2", release_date="1975"), owned("r3", release_date="1980")]

        stats = engine.compute(snapshot, "alice", TODAY)

        assert stats.release_year_timeline == [(1975, 1), (1980, 2)]


class TestRarity:
    """Test rarity tiers over the global snapshot."""

    @pytest.mark.parametrize("owners,tier", [
        (1, "Unique"),
        (2, "Rare"),
        (3, "Rare"),
        (4, "Uncommon"),
        (10, "Uncommon"),
        (11, "Common"),
    ])
    def test_rarity_tier_thresholds(self, owners, tier):
        assert rarity_tier(owners) == tier

    def test_rarest_record_uses_global_owner_count(self, engine):
        common = with_owners(owned("r1"), 11)
        rare = with_owners(owned("r2"), 3)
        snapshot = [common, rare, owned("r3", user_id="bob")]

        stats = engine.compute(snapshot, "alice", TODAY)

        assert stats.rarest_record.id == "r2"
        assert stats.rarest_record.owner_count == 3
        assert stats.rarity_distribution == [("Rare", 1), ("Common", 1)]

    def test_legacy_primary_owner_adds_to_count(self, engine):
        record = owned("r1")
        record.primary_owner_id = "carol"

        stats = engine.compute([record], "alice", TODAY)

        assert stats.rarest_record.owner_count == 2


class TestBadges:
    """Test badge thresholds."""

    @pytest.mark.parametrize("count,name", [
        (0, "Novice"), (9, "Novice"), (10, "Collector"), (49, "Collector"),
        (50, "Enthusiast"), (100, "Expert"), (499, "Expert"), (500, "Master"),
    ])
    def test_collector_levels(self, count, name):
        assert badge_level(count, COLLECTOR_LEVELS).name == name

    @pytest.mark.parametrize("invested,name", [
        (0, "Starter"), (99.99, "Starter"), (100, "Investor"), (500, "Collector"),
        (1000, "Curator"), (4999, "Curator"), (5000, "Treasure Hunter"),
    ])
    def test_treasure_hunter_levels(self, invested, name):
        assert badge_level(invested, TREASURE_HUNTER_LEVELS).name == name

    def test_completionist_levels(self):
        assert badge_level(0, COMPLETIONIST_LEVELS).name == "Beginner"
        assert badge_level(1, COMPLETIONIST_LEVELS).name == "Completer"
        assert badge_level(5, COMPLETIONIST_LEVELS).level == 3

    def test_time_traveler_needs_five_known_decades(self, engine):
        years = ["1955", "1968", "1972", "1985"]
        snapshot = [owned(f"r{n}", release_date=year) for n, year in enumerate(years)] + [owned("r9")]

        assert engine.compute(snapshot, "alice", TODAY).badges.time_traveler is False

        snapshot.append(owned("r5", release_date="1991"))
        assert engine.compute(snapshot, "alice", TODAY).badges.time_traveler is True

    def test_completionist_counts_artists_with_five_records(self, engine):
        snapshot = [owned(f"a{n}", artist="Bowie") for n in range(5)]
        snapshot += [owned(f"b{n}", artist="Eno") for n in range(4)]

        stats = engine.compute(snapshot, "alice", TODAY)

        assert stats.badges.completionist.name == "Completer"
        assert [entry["artist"] for entry in stats.discography_status] == ["Bowie"]

    def test_collector_and_investor_from_collection(self, engine):
        snapshot = [owned(f"r{n}", price=60.0) for n in range(10)]

        badges = engine.compute(snapshot, "alice", TODAY).badges

        assert badges.collector.name == "Collector"
        assert badges.treasure_hunter.name == "Collector"


class TestDataQuality:
    """Test the to-do list of incomplete records."""

    def test_missing_fields(self, engine):
        complete = owned(
            "r1", artwork_ref="cover.jpg", notes="Great", release_date="1977", genre="Rock", label="Warner",
        )
        bare = owned("r2")

        stats = engine.compute([complete, bare], "alice", TODAY)

        assert stats.missing_cover_art == 1
        assert stats.missing_description == 1
        assert stats.missing_data == [{
            "id": "r2",
            "artist": "Artist",
            "album": "Album r2",
            "missingFields": ["Cover Art", "Description", "Release Date", "Genre", "Label"],
        }]


class TestDeterminism:
    """Test that output depends only on the inputs."""

    def test_identical_output(self, engine):
        snapshot = [
            with_owners(owned("r1", price=12.5, genre="Jazz", release_date="1959"), 3),
            owned("r2", price=7.0, added=at(TODAY), condition=Condition.GOOD),
            owned("r3", user_id="bob"),
        ]

        first = json.dumps(engine.compute(snapshot, "alice", TODAY).to_dict(), sort_keys=True)
        second = json.dumps(engine.compute(list(snapshot), "alice", TODAY).to_dict(), sort_keys=True)

        assert first == second
