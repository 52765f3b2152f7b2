"""Tests for the key-value record repository."""

from datetime import datetime, timezone

import pytest

from vinyl_catalog.domain.catalog.entities import OwnershipDetails, Record
from vinyl_catalog.domain.catalog.repositories import RecordChange
from vinyl_catalog.domain.catalog.services import OwnershipMergeEngine, RatingAggregator
from vinyl_catalog.domain.catalog.value_objects import Condition
from vinyl_catalog.exceptions import (
    ConcurrentModification,
    ConflictError,
    RecordNotFound,
    StaleWriteError,
    StoreUnavailable,
)
from vinyl_catalog.infrastructure.repositories.record_store import KeyValueRecordRepository
from vinyl_catalog.infrastructure.storage.backends import InMemoryBackend


def attach(user_id: str, price: float = None):
    """A mutator attaching ``user_id`` as an owner."""
    def mutate(record: Record) -> RecordChange:
        OwnershipMergeEngine.attach(record, user_id, user_id.title(), OwnershipDetails(purchase_price=price))
        return RecordChange(owner_ids=(user_id,))
    return mutate


def rate(user_id: str, value: int):
    def mutate(record: Record) -> RecordChange:
        RatingAggregator.set_rating(record, user_id, user_id.title(), value)
        return RecordChange(rater_ids=(user_id,))
    return mutate


class RacingBackend(InMemoryBackend):
    """Runs ``race`` once, just before the first conditional write of ``key``."""

    def __init__(self):
        super().__init__()
        self.key = None
        self.race = None

    async def compare_and_set(self, key, value, expected_version):
        if self.race is not None and key == self.key:
            race, self.race = self.race, None
            await race()
        return await super().compare_and_set(key, value, expected_version)


class AlwaysStaleBackend(InMemoryBackend):
    """Rejects every conditional write to record documents once armed."""

    armed = False

    async def compare_and_set(self, key, value, expected_version):
        if self.armed and key.startswith("record:"):
            return False
        return await super().compare_and_set(key, value, expected_version)


class FailingBackend(InMemoryBackend):
    """Raises StoreUnavailable on writes to keys starting with any of ``failing``."""

    def __init__(self):
        super().__init__()
        self.failing = ()

    def _check(self, key):
        if self.failing and key.startswith(self.failing):
            raise StoreUnavailable(f"write of {key} timed out")

    async def set(self, key, value):
        self._check(key)
        await super().set(key, value)

    async def compare_and_set(self, key, value, expected_version):
        self._check(key)
        return await super().compare_and_set(key, value, expected_version)

    async def delete(self, key):
        self._check(key)
        return await super().delete(key)


@pytest.fixture
def backend():
    return InMemoryBackend()


@pytest.fixture
def repo(backend):
    return KeyValueRecordRepository(backend)


def new_record(record_id: str = "r1", **fields) -> Record:
    return Record(id=record_id, artist="Can", album="Tago Mago", **fields)


class TestPutAndGet:
    """Basic persistence."""

    @pytest.mark.asyncio
    async def test_put_assigns_version(self, repo):
        stored = await repo.put(new_record())

        assert stored.version == 1
        fetched = await repo.get_by_id("r1")
        assert fetched.version == 1
        assert fetched.album == "Tago Mago"

    @pytest.mark.asyncio
    async def test_get_missing(self, repo):
        with pytest.raises(RecordNotFound):
            await repo.get_by_id("missing")

    @pytest.mark.asyncio
    async def test_facts_live_under_side_keys(self, repo, backend):
        record = new_record()
        OwnershipMergeEngine.attach(record, "alice", "Alice", OwnershipDetails(condition=Condition.MINT))
        RatingAggregator.set_rating(record, "alice", "Alice", 4)

        await repo.put(record)

        document = await backend.get("record:r1")
        assert "owners" not in document
        assert "ratings" not in document
        assert (await backend.get("owner:r1:alice"))["condition"] == "Mint"
        assert (await backend.get("rating:r1:alice"))["rating"] == 4

        fetched = await repo.get_by_id("r1")
        assert fetched.owner_ids == ["alice"]
        assert fetched.average_rating == 4.0

    @pytest.mark.asyncio
    async def test_new_record_with_existing_id_is_stale(self, repo):
        await repo.put(new_record())

        with pytest.raises(StaleWriteError):
            await repo.put(new_record())

    @pytest.mark.asyncio
    async def test_put_with_old_version_is_stale(self, repo):
        stored = await repo.put(new_record())
        await repo.modify("r1", attach("alice"))

        with pytest.raises(StaleWriteError):
            await repo.put(stored)

    @pytest.mark.asyncio
    async def test_list_all_ordered_by_creation(self, repo):
        later = datetime(2024, 2, 1, tzinfo=timezone.utc)
        earlier = datetime(2024, 1, 1, tzinfo=timezone.utc)
        await repo.put(new_record("b", created_at=later))
        await repo.put(new_record("a", created_at=earlier))
        await repo.modify("b", attach("bob"))

        records = await repo.list_all()

        assert [r.id for r in records] == ["a", "b"]
        assert records[1].owner_ids == ["bob"]
        assert records[0].owners == []

    @pytest.mark.asyncio
    async def test_delete_removes_facts(self, repo, backend):
        await repo.put(new_record(product_code="123"))
        await repo.modify("r1", attach("alice"))
        await repo.modify("r1", rate("alice", 5))

        assert await repo.delete("r1") is True

        assert await backend.scan("") == {}
        assert await repo.delete("r1") is False


class TestProductCodeIndex:
    """Deduplication by product code."""

    @pytest.mark.asyncio
    async def test_find_by_product_code(self, repo):
        await repo.put(new_record(product_code="5012345678900"))

        found = await repo.find_by_product_code(" 5012345678900 ")

        assert found.id == "r1"
        assert await repo.find_by_product_code("000") is None
        assert await repo.find_by_product_code("") is None

    @pytest.mark.asyncio
    async def test_duplicate_code_rejected(self, repo):
        await repo.put(new_record("r1", product_code="123"))

        with pytest.raises(ConflictError):
            await repo.put(new_record("r2", product_code="123"))

    @pytest.mark.asyncio
    async def test_changing_code_moves_index(self, repo):
        await repo.put(new_record(product_code="old"))

        def recode(record):
            record.update_details({"productCode": "new"})
            return RecordChange(details=True)

        await repo.modify("r1", recode)

        assert await repo.find_by_product_code("old") is None
        assert (await repo.find_by_product_code("new")).id == "r1"

    @pytest.mark.asyncio
    async def test_stale_index_entry_is_reclaimed(self, repo, backend):
        await backend.set("productcode:123", {"recordId": "deleted"})

        stored = await repo.put(new_record(product_code="123"))

        assert (await repo.find_by_product_code("123")).id == stored.id


class TestModify:
    """Fetch-mutate-commit with optimistic retries."""

    @pytest.mark.asyncio
    async def test_modify_bumps_version(self, repo):
        await repo.put(new_record())

        updated = await repo.modify("r1", attach("alice", 20.0))

        assert updated.version == 2
        assert updated.owner_fact("alice").purchase_price == 20.0

    @pytest.mark.asyncio
    async def test_modify_missing_record(self, repo):
        with pytest.raises(RecordNotFound):
            await repo.modify("missing", attach("alice"))

    @pytest.mark.asyncio
    async def test_concurrent_attach_keeps_both_owners(self):
        backend = RacingBackend()
        first = KeyValueRecordRepository(backend)
        second = KeyValueRecordRepository(backend)
        await first.put(new_record())

        async def bob_attaches():
            await second.modify("r1", attach("bob", 35.0))

        backend.key = "record:r1"
        backend.race = bob_attaches

        result = await first.modify("r1", attach("alice", 20.0))

        assert sorted(result.owner_ids) == ["alice", "bob"]
        assert result.version == 3
        stored = await first.get_by_id("r1")
        assert stored.owner_fact("alice").purchase_price == 20.0
        assert stored.owner_fact("bob").purchase_price == 35.0

    @pytest.mark.asyncio
    async def test_merge_does_not_rewrite_other_owner_fact(self, repo, backend):
        await repo.put(new_record())
        await repo.modify("r1", attach("bob", 35.0))
        bob_before = await backend.get("owner:r1:bob")

        await repo.modify("r1", attach("alice", 20.0))

        assert await backend.get("owner:r1:bob") == bob_before

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        backend = AlwaysStaleBackend()
        repo = KeyValueRecordRepository(backend, max_attempts=3)
        await repo.put(new_record())
        backend.armed = True
        calls = []

        def counting(record):
            calls.append(record.version)
            return RecordChange()

        with pytest.raises(ConcurrentModification) as exc_info:
            await repo.modify("r1", counting)

        assert exc_info.value.kind == "Conflict"
        assert exc_info.value.attempts == 3
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_mutator_error_aborts_without_writing(self, repo):
        await repo.put(new_record())

        def failing(record):
            record.genre = "Krautrock"
            raise ValueError("boom")

        with pytest.raises(ValueError):
            await repo.modify("r1", failing)

        stored = await repo.get_by_id("r1")
        assert stored.genre is None
        assert stored.version == 1


class TestLegacyDocuments:
    """Records stored in older shapes."""

    LEGACY = {
        "id": "v1",
        "artist": "Miles Davis",
        "album": "Kind of Blue",
        "ean": "5099750442227",
        "userId": "alice",
        "username": "Alice",
        "condition": "Mint",
        "purchasePrice": 30,
        "rating": 4,
        "createdAt": "2023-05-01T10:00:00.000Z",
        "updatedAt": "2023-05-01T10:00:00.000Z",
    }

    @pytest.mark.asyncio
    async def test_raw_legacy_document_reads_migrated(self, repo, backend):
        await backend.set("record:v1", dict(self.LEGACY))

        record = await repo.get_by_id("v1")

        assert record.owner_ids == ["alice"]
        assert record.owner_fact("alice").condition is Condition.MINT
        assert record.rating_fact("alice").rating == 4
        assert record.version == 0

    @pytest.mark.asyncio
    async def test_first_write_rewrites_legacy_shape(self, repo, backend):
        await backend.set("record:v1", dict(self.LEGACY))

        await repo.modify("v1", attach("bob"))

        document = await backend.get("record:v1")
        assert "userId" not in document
        assert "ean" not in document
        assert document["version"] == 1
        assert (await backend.get("owner:v1:alice"))["purchasePrice"] == 30.0
        assert (await backend.get("rating:v1:alice"))["rating"] == 4
        assert await backend.get("owner:v1:bob") is not None

    @pytest.mark.asyncio
    async def test_import_document(self, repo):
        imported = await repo.import_document(dict(self.LEGACY))

        assert imported.version == 1
        assert imported.product_code == "5099750442227"
        assert (await repo.find_by_product_code("5099750442227")).id == "v1"

    @pytest.mark.asyncio
    async def test_import_existing_is_left_alone(self, repo):
        await repo.import_document(dict(self.LEGACY))
        await repo.modify("v1", attach("bob"))

        again = await repo.import_document(dict(self.LEGACY))

        assert again.version == 2
        assert sorted(again.owner_ids) == ["alice", "bob"]


class TestFailedCommits:
    """A store failure part way through a commit loses nobody's facts."""

    SHARED = {
        "id": "r1",
        "artist": "Harmonia",
        "album": "Deluxe",
        "userId": "alice",
        "username": "Alice",
        "condition": "Mint",
        "purchasePrice": 20,
        "owners": [
            {"userId": "bob", "username": "Bob", "addedAt": "2023-06-01T10:00:00.000Z",
             "condition": "Good", "purchasePrice": 35},
        ],
        "createdAt": "2023-05-01T10:00:00.000Z",
        "updatedAt": "2023-05-01T10:00:00.000Z",
    }

    @pytest.fixture
    def failing(self):
        return FailingBackend()

    def assert_owners_intact(self, record):
        assert sorted(record.owner_ids) == ["alice", "bob"]
        assert record.owner_fact("alice").purchase_price == 20.0
        assert record.owner_fact("alice").condition is Condition.MINT
        assert record.owner_fact("bob").purchase_price == 35.0
        assert record.owner_fact("bob").condition is Condition.GOOD

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failing_prefix", ["owner:", "rating:", "record:"])
    async def test_legacy_record_keeps_embedded_owners(self, failing, failing_prefix):
        await failing.set("record:r1", dict(self.SHARED))
        repo = KeyValueRecordRepository(failing)
        failing.failing = (failing_prefix,)

        with pytest.raises(StoreUnavailable):
            await repo.modify("r1", rate("carol", 4))

        failing.failing = ()
        assert await failing.get("record:r1") == self.SHARED
        record = await repo.get_by_id("r1")
        self.assert_owners_intact(record)
        assert record.rating_fact("carol") is None
        assert record.version == 0

    @pytest.mark.asyncio
    async def test_legacy_record_migrates_after_failure(self, failing):
        await failing.set("record:r1", dict(self.SHARED))
        repo = KeyValueRecordRepository(failing)
        failing.failing = ("rating:",)
        with pytest.raises(StoreUnavailable):
            await repo.modify("r1", rate("carol", 4))
        failing.failing = ()

        record = await repo.modify("r1", rate("carol", 4))

        self.assert_owners_intact(record)
        assert record.version == 1
        assert "owners" not in await failing.get("record:r1")
        self.assert_owners_intact(await repo.get_by_id("r1"))

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failing_prefix", ["rating:", "record:"])
    async def test_current_record_unchanged(self, failing, failing_prefix):
        repo = KeyValueRecordRepository(failing)
        await repo.put(new_record())
        await repo.modify("r1", attach("alice", 20.0))
        await repo.modify("r1", rate("alice", 5))
        failing.failing = (failing_prefix,)

        with pytest.raises(StoreUnavailable):
            await repo.modify("r1", rate("alice", 2))

        failing.failing = ()
        record = await repo.get_by_id("r1")
        assert record.version == 3
        assert record.rating_fact("alice").rating == 5
        assert record.owner_fact("alice").purchase_price == 20.0

    @pytest.mark.asyncio
    async def test_failed_document_write_restores_fact(self, failing):
        repo = KeyValueRecordRepository(failing)
        await repo.put(new_record())
        await repo.modify("r1", attach("bob", 35.0))
        bob_before = await failing.get("owner:r1:bob")
        failing.failing = ("record:",)

        with pytest.raises(StoreUnavailable):
            await repo.modify("r1", attach("bob", 99.0))

        failing.failing = ()
        assert await failing.get("owner:r1:bob") == bob_before

    @pytest.mark.asyncio
    async def test_lost_race_leaves_no_fact_behind(self):
        backend = AlwaysStaleBackend()
        repo = KeyValueRecordRepository(backend)
        await repo.put(new_record())
        backend.armed = True

        with pytest.raises(ConcurrentModification):
            await repo.modify("r1", attach("alice", 20.0))

        assert await backend.get("owner:r1:alice") is None
