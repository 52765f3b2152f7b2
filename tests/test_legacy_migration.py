"""
Tests for folding legacy single-owner record shapes into the plural model.
"""

from vinyl_catalog.domain.catalog.entities import Record
from vinyl_catalog.domain.catalog.legacy import LEGACY_RATING_USER, migrate_record_dict, needs_migration
from vinyl_catalog.domain.catalog.value_objects import Condition

LEGACY_RECORD = {
    "id": "v1",
    "artist": "Miles Davis",
    "album": "Kind of Blue",
    "ean": "5099750442227",
    "albumArt": "https://example.org/kob.jpg",
    "year": 1959,
    "userId": "alice",
    "username": "Alice",
    "condition": "NearMint",
    "purchasePrice": 42,
    "rating": 5,
    "createdAt": "2023-05-01T10:00:00.000Z",
    "updatedAt": "2023-05-01T10:00:00.000Z",
}


class TestMigrateRecordDict:
    """Test the legacy migration pass."""

    def test_renames_legacy_keys(self):
        migrated = migrate_record_dict(LEGACY_RECORD)

        assert migrated["productCode"] == "5099750442227"
        assert migrated["artworkRef"] == "https://example.org/kob.jpg"
        assert migrated["primaryOwnerId"] == "alice"
        assert migrated["primaryOwnerUsername"] == "Alice"
        assert migrated["releaseDate"] == "1959-01-01"
        for key in ("ean", "albumArt", "userId", "username", "year", "rating", "condition", "purchasePrice"):
            assert key not in migrated

    def test_synthesizes_primary_owner_fact(self):
        migrated = migrate_record_dict(LEGACY_RECORD)

        assert migrated["owners"] == [{
            "userId": "alice",
            "username": "Alice",
            "addedAt": "2023-05-01T10:00:00.000Z",
            "condition": "Near Mint",
            "purchasePrice": 42.0,
        }]

    def test_scalar_rating_attributed_to_primary_owner(self):
        migrated = migrate_record_dict(LEGACY_RECORD)

        assert migrated["ratings"] == [{
            "userId": "alice",
            "username": "Alice",
            "rating": 5,
            "createdAt": "2023-05-01T10:00:00.000Z",
        }]

    def test_legacy_rating_without_owner(self):
        migrated = migrate_record_dict({"id": "v2", "artist": "A", "album": "B", "legacyRating": 3})

        assert migrated["ratings"][0]["userId"] == LEGACY_RATING_USER
        assert migrated["owners"] == []

    def test_scalar_ignored_when_ratings_exist(self):
        data = dict(LEGACY_RECORD, ratings=[{"userId": "bob", "rating": 2, "createdAt": "2023-06-01T00:00:00Z"}])

        migrated = migrate_record_dict(data)

        assert [r["userId"] for r in migrated["ratings"]] == ["bob"]

    def test_is_idempotent(self):
        once = migrate_record_dict(LEGACY_RECORD)

        assert migrate_record_dict(once) == once
        assert not needs_migration(once)

    def test_primary_owner_already_in_owners_is_not_duplicated(self):
        data = dict(LEGACY_RECORD, owners=[{"userId": "alice", "username": "Alice", "addedAt": "2023-05-02T00:00:00Z"}])

        migrated = migrate_record_dict(data)

        assert len(migrated["owners"]) == 1
        assert migrated["owners"][0]["addedAt"] == "2023-05-02T00:00:00Z"

    def test_duplicate_owner_entries_keep_first(self):
        data = {
            "id": "v3",
            "artist": "A",
            "album": "B",
            "owners": [
                {"userId": "bob", "username": "Bob", "addedAt": "2023-01-01T00:00:00Z", "purchasePrice": 10},
                {"userId": "bob", "username": "Bob", "addedAt": "2023-02-01T00:00:00Z", "purchasePrice": 99},
            ],
            "ratings": [],
        }

        migrated = migrate_record_dict(data)

        assert len(migrated["owners"]) == 1
        assert migrated["owners"][0]["purchasePrice"] == 10

    def test_invalid_legacy_values_are_dropped(self):
        data = dict(LEGACY_RECORD, condition="Sealed", purchasePrice=-5, rating=9)

        migrated = migrate_record_dict(data)

        owner = migrated["owners"][0]
        assert "condition" not in owner
        assert "purchasePrice" not in owner
        assert migrated["ratings"] == []

    def test_needs_migration(self):
        assert needs_migration(LEGACY_RECORD)
        assert needs_migration({"id": "x", "artist": "A", "album": "B"})
        assert not needs_migration({"id": "x", "artist": "A", "album": "B", "owners": [], "ratings": []})


class TestRecordFromLegacyDict:
    """Test that records built from legacy dicts need no fallback paths."""

    def test_from_dict(self):
        record = Record.from_dict(LEGACY_RECORD)

        assert record.product_code == "5099750442227"
        assert record.release_year == 1959
        assert record.owner_ids == ["alice"]
        assert record.owner_fact("alice").condition is Condition.NEAR_MINT
        assert record.owner_fact("alice").added_at == record.created_at
        assert record.average_rating == 5.0
        assert record.owner_count == 1
