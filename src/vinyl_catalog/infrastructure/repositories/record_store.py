"""
Key-value Record Repository.

A record is stored as one descriptive document plus one side key per
ownership fact and per rating fact:

    record:{record_id}                  descriptive fields, timestamps, version
    owner:{record_id}:{user_id}         one user's ownership fact
    rating:{record_id}:{user_id}        one user's rating fact
    productcode:{code}                  {"recordId": ...} deduplication index

The embedded owners/ratings view is reassembled on every read. Commits
write the touched side keys first and then compare-and-set the descriptive
document on its version, so two writers working from the same version cannot
both win and a failed commit never leaves facts missing from both places.
"""

import logging
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ...domain.catalog.entities import Record
from ...domain.catalog.legacy import needs_migration
from ...domain.catalog.repositories import Mutator, RecordChange, RecordRepository
from ...domain.catalog.value_objects import utc_now
from ...exceptions import CatalogError, ConcurrentModification, ConflictError, RecordNotFound, StaleWriteError
from ..storage.backends import Document, KeyValueBackend

logger = logging.getLogger(__name__)

RECORD_PREFIX = "record:"
OWNER_PREFIX = "owner:"
RATING_PREFIX = "rating:"
PRODUCT_CODE_PREFIX = "productcode:"

# Derived or side-keyed fields never written into the descriptive document
_NOT_IN_DOCUMENT = ("owners", "ratings", "averageRating", "ratingCount")

# (key, previous value) pairs, oldest first
UndoLog = List[Tuple[str, Optional[Document]]]


def record_key(record_id: str) -> str:
    return f"{RECORD_PREFIX}{record_id}"


def owner_key(record_id: str, user_id: str) -> str:
    return f"{OWNER_PREFIX}{record_id}:{user_id}"


def rating_key(record_id: str, user_id: str) -> str:
    return f"{RATING_PREFIX}{record_id}:{user_id}"


def product_code_key(code: str) -> str:
    return f"{PRODUCT_CODE_PREFIX}{code.strip()}"


def _sorted_facts(facts: Iterable[Document], time_field: str) -> List[Document]:
    return sorted(facts, key=lambda f: (f.get(time_field) or "", str(f.get("userId"))))


class KeyValueRecordRepository(RecordRepository):
    """Record repository over a KeyValueBackend with optimistic concurrency."""

    def __init__(self, backend: KeyValueBackend, max_attempts: int = 3):
        self.backend = backend
        self.max_attempts = max_attempts

    # Reading

    def _assemble(
        self,
        document: Document,
        owner_docs: List[Document],
        rating_docs: List[Document],
    ) -> Tuple[Record, bool]:
        """Merge a descriptive document with its side-keyed facts.

        Returns the record and whether the stored shape is legacy (facts
        embedded in the document or old field names), in which case the next
        commit must rewrite every fact.
        """
        data = dict(document)
        embedded = "owners" in data or "ratings" in data

        owners = {o.get("userId"): o for o in data.get("owners") or []}
        owners.update({o.get("userId"): o for o in owner_docs})
        ratings = {r.get("userId"): r for r in data.get("ratings") or []}
        ratings.update({r.get("userId"): r for r in rating_docs})

        data["owners"] = _sorted_facts(owners.values(), "addedAt")
        data["ratings"] = _sorted_facts(ratings.values(), "createdAt")
        legacy = embedded or needs_migration(data)
        if legacy:
            logger.debug(f"Migrating legacy record {data.get('id')} on load")
        return Record.from_dict(data), legacy

    async def _load(self, record_id: str) -> Tuple[Record, bool]:
        document = await self.backend.get(record_key(record_id))
        if document is None:
            raise RecordNotFound(record_id)
        owner_docs = await self.backend.scan(owner_key(record_id, ""))
        rating_docs = await self.backend.scan(rating_key(record_id, ""))
        document.setdefault("id", record_id)
        return self._assemble(document, list(owner_docs.values()), list(rating_docs.values()))

    async def list_all(self) -> List[Record]:
        """Full snapshot, ordered by creation time then id."""
        documents = await self.backend.scan(RECORD_PREFIX)
        owner_docs = await self.backend.scan(OWNER_PREFIX)
        rating_docs = await self.backend.scan(RATING_PREFIX)

        owners_by_record: Dict[str, List[Document]] = {}
        for fact in owner_docs.values():
            owners_by_record.setdefault(fact.get("recordId"), []).append(fact)
        ratings_by_record: Dict[str, List[Document]] = {}
        for fact in rating_docs.values():
            ratings_by_record.setdefault(fact.get("recordId"), []).append(fact)

        records = []
        for key, document in documents.items():
            record_id = document.setdefault("id", key[len(RECORD_PREFIX):])
            record, _ = self._assemble(
                document,
                owners_by_record.get(record_id, []),
                ratings_by_record.get(record_id, []),
            )
            records.append(record)

        records.sort(key=lambda r: (r.created_at, r.id))
        return records

    async def get_by_id(self, record_id: str) -> Record:
        """Find a record by its ID; raises RecordNotFound."""
        record, _ = await self._load(record_id)
        return record

    async def find_by_product_code(self, product_code: str) -> Optional[Record]:
        """Find the record carrying a product code."""
        if not product_code or not product_code.strip():
            return None
        entry = await self.backend.get(product_code_key(product_code))
        if entry is None:
            return None
        try:
            return await self.get_by_id(entry["recordId"])
        except RecordNotFound:
            logger.debug(f"Product code {product_code} points at deleted record {entry['recordId']}")
            return None

    # Writing

    @staticmethod
    def _document(record: Record) -> Document:
        data = record.to_dict()
        for name in _NOT_IN_DOCUMENT:
            data.pop(name, None)
        return data

    async def _commit_document(self, record: Record, expected_version: Optional[int]) -> Record:
        """CAS the descriptive document; returns the stored copy or raises StaleWriteError."""
        stored = replace(record, version=record.version + 1, updated_at=utc_now())
        ok = await self.backend.compare_and_set(record_key(record.id), self._document(stored), expected_version)
        if not ok:
            raise StaleWriteError(record_key(record.id), expected_version)
        return stored

    async def _claim_product_code(self, record: Record) -> None:
        """Point the product code index at this record, refusing to steal a live entry."""
        if not record.product_code or not record.product_code.strip():
            return
        key = product_code_key(record.product_code)
        entry = {"recordId": record.id}
        if await self.backend.compare_and_set(key, entry, None):
            return

        current = await self.backend.get(key)
        owner_id = current.get("recordId") if current else None
        if owner_id == record.id:
            return
        if owner_id and await self.backend.get(record_key(owner_id)) is not None:
            raise ConflictError(f"Product code {record.product_code} already belongs to record {owner_id}")
        logger.debug(f"Reclaiming stale product code entry {key}")
        await self.backend.set(key, entry)

    async def _release_product_code(self, record_id: str, product_code: Optional[str]) -> None:
        if not product_code or not product_code.strip():
            return
        key = product_code_key(product_code)
        current = await self.backend.get(key)
        if current and current.get("recordId") == record_id:
            await self.backend.delete(key)

    @staticmethod
    def _fact_document(record: Record, fact) -> Document:
        return {**fact.to_dict(), "recordId": record.id}

    async def _write_fact(self, key: str, document: Optional[Document], undo: UndoLog) -> None:
        undo.append((key, await self.backend.get(key)))
        if document is None:
            await self.backend.delete(key)
        else:
            await self.backend.set(key, document)

    async def _undo(self, undo: UndoLog) -> None:
        """Put back the side keys overwritten ahead of a commit that did not land."""
        for key, previous in reversed(undo):
            try:
                if previous is None:
                    await self.backend.delete(key)
                else:
                    await self.backend.set(key, previous)
            except CatalogError as e:
                logger.error(f"Could not restore {key} after a failed commit: {e}")

    async def _write_facts(
        self,
        record: Record,
        owner_ids: Iterable[str],
        rater_ids: Iterable[str],
        legacy: bool = False,
    ) -> UndoLog:
        """Write side keys ahead of the document commit.

        Only the listed users' keys are overwritten; the returned undo log
        restores them if the commit fails. For a legacy record every other
        fact is inserted only where no side key exists yet, so a copy read
        before a concurrent write never replaces a newer fact.
        """
        owner_ids, rater_ids = set(owner_ids), set(rater_ids)
        undo: UndoLog = []
        try:
            if legacy:
                for fact in record.owners:
                    if fact.user_id not in owner_ids:
                        await self.backend.compare_and_set(
                            owner_key(record.id, fact.user_id), self._fact_document(record, fact), None
                        )
                for fact in record.ratings:
                    if fact.user_id not in rater_ids:
                        await self.backend.compare_and_set(
                            rating_key(record.id, fact.user_id), self._fact_document(record, fact), None
                        )
            for user_id in sorted(owner_ids):
                fact = record.owner_fact(user_id)
                document = self._fact_document(record, fact) if fact else None
                await self._write_fact(owner_key(record.id, user_id), document, undo)
            for user_id in sorted(rater_ids):
                fact = record.rating_fact(user_id)
                document = self._fact_document(record, fact) if fact else None
                await self._write_fact(rating_key(record.id, user_id), document, undo)
        except CatalogError:
            await self._undo(undo)
            raise
        return undo

    async def _commit(self, record: Record, expected_version: Optional[int], undo: UndoLog) -> Record:
        try:
            return await self._commit_document(record, expected_version)
        except CatalogError:
            await self._undo(undo)
            raise

    async def put(self, record: Record) -> Record:
        """Replace a record and all of its facts; rejects stale versions.

        A record with version 0 is new and must not exist yet.
        """
        expected = record.version if record.version > 0 else None
        previous_code = None
        if expected is not None:
            current = await self.backend.get(record_key(record.id))
            previous_code = current.get("productCode") if current else None

        await self._claim_product_code(record)
        stored_owners = await self.backend.scan(owner_key(record.id, ""))
        stored_ratings = await self.backend.scan(rating_key(record.id, ""))
        undo = await self._write_facts(
            record,
            {f.get("userId") for f in stored_owners.values()} | set(record.owner_ids),
            {f.get("userId") for f in stored_ratings.values()} | {r.user_id for r in record.ratings},
        )
        stored = await self._commit(record, expected, undo)
        if previous_code and previous_code != stored.product_code:
            await self._release_product_code(stored.id, previous_code)

        logger.debug(f"Stored record {stored.id} at version {stored.version}")
        return stored

    async def modify(self, record_id: str, mutator: Mutator) -> Record:
        """Run a fetch-mutate-commit cycle, retrying on stale writes.

        The mutator edits the record in place and reports which users' facts
        it touched; only those side keys are rewritten, before the document
        is committed. A failed commit puts them back. Raises
        ConcurrentModification when every attempt lost the race.
        """
        for attempt in range(1, self.max_attempts + 1):
            record, legacy = await self._load(record_id)
            previous_code = record.product_code
            change: RecordChange = mutator(record)

            if change.details and record.product_code != previous_code:
                await self._claim_product_code(record)

            undo = await self._write_facts(record, change.owner_ids, change.rater_ids, legacy)
            try:
                stored = await self._commit(record, record.version, undo)
            except StaleWriteError:
                logger.info(f"Record {record_id} changed during update (attempt {attempt}/{self.max_attempts})")
                continue

            if record.product_code != previous_code:
                await self._release_product_code(stored.id, previous_code)
            return stored

        raise ConcurrentModification(record_id, self.max_attempts)

    async def delete(self, record_id: str) -> bool:
        """Delete a record, its facts and its product code entry."""
        document = await self.backend.get(record_key(record_id))
        if document is None:
            return False

        await self.backend.delete(record_key(record_id))
        for key in await self.backend.scan(owner_key(record_id, "")):
            await self.backend.delete(key)
        for key in await self.backend.scan(rating_key(record_id, "")):
            await self.backend.delete(key)
        await self._release_product_code(record_id, document.get("productCode") or document.get("ean"))

        logger.info(f"Deleted record {record_id}")
        return True

    async def import_document(self, data: Dict[str, Any]) -> Record:
        """Store a record given in any supported (possibly legacy) shape.

        Existing records with the same id are left untouched and returned.
        """
        record = Record.from_dict(data)
        try:
            return await self.get_by_id(record.id)
        except RecordNotFound:
            pass
        record.version = 0
        return await self.put(record)
