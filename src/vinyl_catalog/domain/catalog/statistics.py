"""Collection statistics.

The aggregation engine reduces a snapshot of the shared catalogue to one user's
collection figures: value, distributions, timelines, rarity and badges. It is a
pure function of (snapshot, user id, today); nothing is cached and the wall
clock is never read.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from .entities import Record
from .value_objects import (
    as_calendar_date,
    decade_label,
    format_timestamp,
    round_half_up,
)

VINYL_WEIGHT_KG = 0.18
VINYL_THICKNESS_M = 0.002
COMPLETIONIST_MIN_RECORDS = 5
TIME_TRAVELER_MIN_DECADES = 5

RARITY_TIERS = ("Unique", "Rare", "Uncommon", "Common")

# (exclusive upper bound, level name); the last name applies above every bound
COLLECTOR_LEVELS = ((10, "Novice"), (50, "Collector"), (100, "Enthusiast"), (500, "Expert"), (None, "Master"))
TREASURE_HUNTER_LEVELS = (
    (100, "Starter"), (500, "Investor"), (1000, "Collector"), (5000, "Curator"), (None, "Treasure Hunter"),
)
COMPLETIONIST_LEVELS = ((1, "Beginner"), (3, "Completer"), (5, "Completionist"), (None, "Master Completer"))


def rarity_tier(owner_count: int) -> str:
    """Classify a record by how many distinct users own it."""
    if owner_count <= 1:
        return "Unique"
    if owner_count <= 3:
        return "Rare"
    if owner_count <= 10:
        return "Uncommon"
    return "Common"


def badge_level(value: float, levels: Sequence[Tuple[Optional[float], str]]) -> "Badge":
    """Find the badge tier for a value given ascending exclusive thresholds."""
    for level, (bound, name) in enumerate(levels):
        if bound is None or value < bound:
            return Badge(level=level, name=name)
    last = len(levels) - 1
    return Badge(level=last, name=levels[last][1])


def month_key(moment: datetime) -> str:
    day = as_calendar_date(moment)
    return f"{day.year:04d}-{day.month:02d}"


@dataclass(frozen=True, slots=True)
class OwnedRecordView:
    """A record as seen by one of its owners."""

    record: Record
    purchase_price: float
    added_at: datetime
    condition: Optional[str]


def resolve_owned_view(record: Record, user_id: str) -> Optional[OwnedRecordView]:
    """Project a record onto one user's ownership fact.

    Prefers the user's owners entry; falls back to the legacy primary owner
    fields (added when the record was created, no price, no grade).
    """
    fact = record.owner_fact(user_id)
    if fact is not None:
        return OwnedRecordView(
            record=record,
            purchase_price=fact.purchase_price or 0.0,
            added_at=fact.added_at,
            condition=fact.condition.value if fact.condition else None,
        )
    if record.primary_owner_id == user_id:
        return OwnedRecordView(record=record, purchase_price=0.0, added_at=record.created_at, condition=None)
    return None


@dataclass(frozen=True, slots=True)
class Badge:
    level: int
    name: str

    def to_dict(self) -> Dict[str, Any]:
        return {"level": self.level, "name": self.name}


@dataclass(frozen=True, slots=True)
class Badges:
    collector: Badge
    treasure_hunter: Badge
    time_traveler: bool
    completionist: Badge

    def to_dict(self) -> Dict[str, Any]:
        return {
            "collector": self.collector.to_dict(),
            "treasureHunter": self.treasure_hunter.to_dict(),
            "timeTraveler": self.time_traveler,
            "completionist": self.completionist.to_dict(),
        }


@dataclass(frozen=True, slots=True)
class RarestRecord:
    id: str
    artist: str
    album: str
    owner_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "artist": self.artist, "album": self.album, "ownerCount": self.owner_count}


@dataclass
class CollectionStatistics:
    """Everything the collection dashboard shows for one user."""

    # Main stats
    total_records: int = 0
    estimated_value: float = 0.0
    total_invested: float = 0.0
    collection_start_date: Optional[datetime] = None
    collection_age_months: int = 0
    current_streak: int = 0

    # Value stats
    highest_value: float = 0.0
    lowest_value: float = 0.0
    average_value: float = 0.0
    value_over_time: List[Tuple[str, float]] = field(default_factory=list)

    # Acquisitions
    added_this_month: int = 0
    acquisitions_by_month: List[Tuple[str, int]] = field(default_factory=list)
    investments_by_month: List[Tuple[str, float]] = field(default_factory=list)
    latest_additions: List[Dict[str, Any]] = field(default_factory=list)

    # Distributions
    genre_distribution: List[Tuple[str, int]] = field(default_factory=list)
    decade_distribution: List[Tuple[str, int]] = field(default_factory=list)
    condition_distribution: List[Tuple[str, int]] = field(default_factory=list)
    top_labels: List[Tuple[str, int]] = field(default_factory=list)
    top_artists: List[Tuple[str, int]] = field(default_factory=list)
    discography_status: List[Dict[str, Any]] = field(default_factory=list)

    # Rarity
    rarest_record: Optional[RarestRecord] = None
    rarity_distribution: List[Tuple[str, int]] = field(default_factory=list)

    # Timeline
    release_year_timeline: List[Tuple[int, int]] = field(default_factory=list)

    # Physical world
    estimated_weight_kg: float = 0.0
    estimated_length_m: float = 0.0

    # Data quality
    missing_cover_art: int = 0
    missing_description: int = 0
    missing_data: List[Dict[str, Any]] = field(default_factory=list)

    badges: Badges = field(default_factory=lambda: Badges(
        collector=Badge(0, COLLECTOR_LEVELS[0][1]),
        treasure_hunter=Badge(0, TREASURE_HUNTER_LEVELS[0][1]),
        time_traveler=False,
        completionist=Badge(0, COMPLETIONIST_LEVELS[0][1]),
    ))

    def to_dict(self) -> Dict[str, Any]:
        """Convert statistics to their JSON shape."""
        return {
            "totalRecords": self.total_records,
            "estimatedValue": self.estimated_value,
            "totalInvested": self.total_invested,
            "collectionStartDate": format_timestamp(self.collection_start_date),
            "collectionAgeMonths": self.collection_age_months,
            "currentStreak": self.current_streak,
            "highestValue": self.highest_value,
            "lowestValue": self.lowest_value,
            "averageValue": self.average_value,
            "valueOverTime": _pairs(self.value_over_time, "month", "value"),
            "addedThisMonth": self.added_this_month,
            "acquisitionsByMonth": _pairs(self.acquisitions_by_month, "month", "count"),
            "investmentsByMonth": _pairs(self.investments_by_month, "month", "amount"),
            "latestAdditions": self.latest_additions,
            "genreDistribution": _pairs(self.genre_distribution, "genre", "count"),
            "decadeDistribution": _pairs(self.decade_distribution, "decade", "count"),
            "conditionDistribution": _pairs(self.condition_distribution, "condition", "count"),
            "topLabels": _pairs(self.top_labels, "label", "count"),
            "topArtists": _pairs(self.top_artists, "artist", "count"),
            "discographyStatus": self.discography_status,
            "rarestRecord": self.rarest_record.to_dict() if self.rarest_record else None,
            "rarityDistribution": _pairs(self.rarity_distribution, "rarity", "count"),
            "releaseYearTimeline": _pairs(self.release_year_timeline, "year", "count"),
            "estimatedWeight": self.estimated_weight_kg,
            "estimatedLength": self.estimated_length_m,
            "missingCoverArt": self.missing_cover_art,
            "missingDescription": self.missing_description,
            "missingData": self.missing_data,
            "badges": self.badges.to_dict(),
        }


def _pairs(items: Iterable[Tuple[Any, Any]], key_name: str, value_name: str) -> List[Dict[str, Any]]:
    return [{key_name: key, value_name: value} for key, value in items]


def _ranked(counter: Counter, limit: Optional[int] = None) -> List[Tuple[str, int]]:
    """Sort counts descending, ties by key, optionally truncated."""
    ranked = sorted(counter.items(), key=lambda item: (-item[1], item[0]))
    return ranked[:limit] if limit is not None else ranked


class CollectionAggregationEngine:
    """Reduce the shared catalogue to one user's collection statistics."""

    def __init__(self, top_n: int = 10, latest_n: int = 10, missing_data_n: int = 20):
        self.top_n = top_n
        self.latest_n = latest_n
        self.missing_data_n = missing_data_n

    def compute(self, snapshot: Sequence[Record], user_id: str, today: date) -> CollectionStatistics:
        """Compute statistics for ``user_id`` as of ``today``.

        ``snapshot`` is the whole catalogue; rarity counts owners across all of
        it, everything else only looks at the user's own records.
        """
        views = [v for v in (resolve_owned_view(r, user_id) for r in snapshot) if v is not None]
        stats = CollectionStatistics()
        if not views:
            return stats

        self._scalar_stats(stats, views)
        self._temporal_stats(stats, views, today)
        self._distributions(stats, views)
        self._rarity(stats, views, snapshot)
        self._data_quality(stats, views)
        self._badges(stats, views)

        stats.estimated_weight_kg = round_half_up(stats.total_records * VINYL_WEIGHT_KG, 2)
        stats.estimated_length_m = round_half_up(stats.total_records * VINYL_THICKNESS_M, 3)
        return stats

    def _scalar_stats(self, stats: CollectionStatistics, views: List[OwnedRecordView]) -> None:
        stats.total_records = len(views)
        total = sum(v.purchase_price for v in views)
        stats.total_invested = round_half_up(total, 2)
        stats.estimated_value = stats.total_invested

        prices = [v.purchase_price for v in views if v.purchase_price > 0]
        if prices:
            stats.highest_value = round_half_up(max(prices), 2)
            stats.lowest_value = round_half_up(min(prices), 2)
            stats.average_value = round_half_up(sum(prices) / len(prices), 2)

    def _temporal_stats(self, stats: CollectionStatistics, views: List[OwnedRecordView], today: date) -> None:
        start = min(v.added_at for v in views)
        stats.collection_start_date = start
        stats.collection_age_months = max(0, (today - as_calendar_date(start)).days // 30)

        added_days = {as_calendar_date(v.added_at) for v in views}
        streak = 0
        day = today
        while day in added_days:
            streak += 1
            day -= timedelta(days=1)
        stats.current_streak = streak

        current_month = f"{today.year:04d}-{today.month:02d}"
        stats.added_this_month = sum(1 for v in views if month_key(v.added_at) == current_month)

        acquisitions: Counter = Counter()
        invested: Dict[str, float] = {}
        spent: Dict[str, float] = {}
        for view in views:
            key = month_key(view.added_at)
            acquisitions[key] += 1
            invested[key] = invested.get(key, 0.0) + view.purchase_price
            if view.purchase_price > 0:
                spent[key] = spent.get(key, 0.0) + view.purchase_price

        stats.acquisitions_by_month = sorted(acquisitions.items())
        stats.investments_by_month = [(m, round_half_up(a, 2)) for m, a in sorted(spent.items())]

        cumulative = 0.0
        for month in sorted(invested):
            cumulative += invested[month]
            stats.value_over_time.append((month, round_half_up(cumulative, 2)))

        newest_first = sorted(views, key=lambda v: (v.added_at, v.record.id), reverse=True)
        stats.latest_additions = [
            {
                "id": v.record.id,
                "artist": v.record.artist,
                "album": v.record.album,
                "artworkRef": v.record.artwork_ref,
                "addedAt": format_timestamp(v.added_at),
            }
            for v in newest_first[:self.latest_n]
        ]

    def _distributions(self, stats: CollectionStatistics, views: List[OwnedRecordView]) -> None:
        genres = Counter(v.record.genre for v in views if v.record.genre)
        decades = Counter(decade_label(v.record.release_year) for v in views)
        conditions = Counter(v.condition or "Unknown" for v in views)
        labels = Counter(v.record.label for v in views if v.record.label)
        artists = Counter(v.record.artist for v in views)
        years = Counter(v.record.release_year for v in views if v.record.release_year)

        stats.genre_distribution = _ranked(genres)
        stats.decade_distribution = _ranked(decades)
        stats.condition_distribution = _ranked(conditions)
        stats.top_labels = _ranked(labels, self.top_n)
        stats.top_artists = _ranked(artists, self.top_n)
        stats.release_year_timeline = sorted(years.items())

        # Full discography data needs an external catalogue; five records
        # by one artist stands in for it.
        stats.discography_status = [
            {"artist": artist, "owned": count, "missing": 0, "isComplete": False}
            for artist, count in _ranked(artists)
            if count >= COMPLETIONIST_MIN_RECORDS
        ][:self.top_n]

    def _rarity(self, stats: CollectionStatistics, views: List[OwnedRecordView], snapshot: Sequence[Record]) -> None:
        owner_counts = {record.id: record.owner_count for record in snapshot}

        rarest: Optional[RarestRecord] = None
        tiers: Counter = Counter()
        for view in views:
            count = owner_counts.get(view.record.id, 1)
            tiers[rarity_tier(count)] += 1
            if rarest is None or count < rarest.owner_count:
                rarest = RarestRecord(
                    id=view.record.id,
                    artist=view.record.artist,
                    album=view.record.album,
                    owner_count=count,
                )

        stats.rarest_record = rarest
        stats.rarity_distribution = [(tier, tiers[tier]) for tier in RARITY_TIERS if tiers[tier]]

    def _data_quality(self, stats: CollectionStatistics, views: List[OwnedRecordView]) -> None:
        for view in views:
            record = view.record
            missing = []
            if not record.artwork_ref:
                missing.append("Cover Art")
                stats.missing_cover_art += 1
            if not (record.notes or "").strip():
                missing.append("Description")
                stats.missing_description += 1
            if not record.release_date:
                missing.append("Release Date")
            if not record.genre:
                missing.append("Genre")
            if not record.label:
                missing.append("Label")
            if missing and len(stats.missing_data) < self.missing_data_n:
                stats.missing_data.append({
                    "id": record.id,
                    "artist": record.artist,
                    "album": record.album,
                    "missingFields": missing,
                })

    def _badges(self, stats: CollectionStatistics, views: List[OwnedRecordView]) -> None:
        known_decades = {d for d, _ in stats.decade_distribution if d != "Unknown"}
        artists = Counter(v.record.artist for v in views)
        completed = sum(1 for count in artists.values() if count >= COMPLETIONIST_MIN_RECORDS)
        stats.badges = Badges(
            collector=badge_level(stats.total_records, COLLECTOR_LEVELS),
            treasure_hunter=badge_level(stats.total_invested, TREASURE_HUNTER_LEVELS),
            time_traveler=len(known_decades) >= TIME_TRAVELER_MIN_DECADES,
            completionist=badge_level(completed, COMPLETIONIST_LEVELS),
        )
