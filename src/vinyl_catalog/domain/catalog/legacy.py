"""Migration of legacy record shapes.

Older records were single-owner: the owner sat in ``userId``/``username`` with
record-level ``condition``, ``purchasePrice`` and a scalar ``rating``. Some used
``ean``, ``albumArt`` and a bare ``year``. This module folds all of that into the
plural owners/ratings model so nothing downstream needs a second code path.
"""

import logging
from typing import Any, Dict, List

from .value_objects import Condition, validate_purchase_price, validate_rating
from ...exceptions import ValidationError

logger = logging.getLogger(__name__)

LEGACY_RATING_USER = "legacy"

# legacy key -> current key
_RENAMED_KEYS = {
    "ean": "productCode",
    "albumArt": "artworkRef",
    "userId": "primaryOwnerId",
    "username": "primaryOwnerUsername",
}


def needs_migration(data: Dict[str, Any]) -> bool:
    """Check whether a stored record dict still carries legacy fields."""
    if any(key in data for key in _RENAMED_KEYS):
        return True
    if "year" in data or "rating" in data or "legacyRating" in data:
        return True
    if "owners" not in data or "ratings" not in data:
        return True
    primary = data.get("primaryOwnerId")
    return bool(primary) and not any(o.get("userId") == primary for o in data.get("owners") or [])


def migrate_record_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of a record dict in the current shape.

    Idempotent: migrating an already-migrated dict returns an equal dict.
    """
    migrated = dict(data)

    for old_key, new_key in _RENAMED_KEYS.items():
        if old_key in migrated:
            value = migrated.pop(old_key)
            if value and not migrated.get(new_key):
                migrated[new_key] = value

    year = migrated.pop("year", None)
    if year and not migrated.get("releaseDate"):
        migrated["releaseDate"] = f"{int(year):04d}-01-01"

    legacy_condition = migrated.pop("condition", None)
    legacy_price = migrated.pop("purchasePrice", None)
    owners: List[Dict[str, Any]] = [
        _sanitize_owner(migrated, fact)
        for fact in _dedupe_by_user(list(migrated.get("owners") or []), "owners", migrated)
    ]

    primary_id = migrated.get("primaryOwnerId")
    if primary_id and not any(o.get("userId") == primary_id for o in owners):
        owners.insert(0, _synthesize_owner(migrated, legacy_condition, legacy_price))
    migrated["owners"] = owners

    scalar_rating = migrated.pop("legacyRating", None)
    record_rating = migrated.pop("rating", None)
    if scalar_rating is None:
        scalar_rating = record_rating
    ratings = _dedupe_by_user(list(migrated.get("ratings") or []), "ratings", migrated)
    if not ratings and scalar_rating:
        fact = _synthesize_rating(migrated, scalar_rating)
        if fact:
            ratings.append(fact)
    migrated["ratings"] = ratings

    return migrated


def _synthesize_owner(record: Dict[str, Any], condition: Any, price: Any) -> Dict[str, Any]:
    """Build the primary owner's ownership fact from legacy record-level fields."""
    fact: Dict[str, Any] = {
        "userId": record["primaryOwnerId"],
        "username": record.get("primaryOwnerUsername") or "",
        "addedAt": record.get("createdAt"),
    }
    return _apply_details(record, fact, condition, price)


def _sanitize_owner(record: Dict[str, Any], fact: Dict[str, Any]) -> Dict[str, Any]:
    """Normalise the condition and price of an existing owners entry."""
    cleaned = {k: v for k, v in fact.items() if k not in ("condition", "purchasePrice")}
    return _apply_details(record, cleaned, fact.get("condition"), fact.get("purchasePrice"))


def _apply_details(record: Dict[str, Any], fact: Dict[str, Any], condition: Any, price: Any) -> Dict[str, Any]:
    try:
        parsed = Condition.parse(condition)
        if parsed is not None:
            fact["condition"] = parsed.value
    except ValidationError:
        logger.warning(f"Dropping unrecognised legacy condition {condition!r} on record {record.get('id')}")
    try:
        amount = validate_purchase_price(price)
        if amount is not None:
            fact["purchasePrice"] = amount
    except ValidationError:
        logger.warning(f"Dropping invalid legacy purchase price {price!r} on record {record.get('id')}")
    return fact


def _synthesize_rating(record: Dict[str, Any], value: Any) -> Dict[str, Any]:
    """Attribute a legacy scalar rating to the primary owner."""
    try:
        rating = validate_rating(value)
    except ValidationError:
        logger.warning(f"Dropping invalid legacy rating {value!r} on record {record.get('id')}")
        return {}
    if rating is None:
        return {}
    return {
        "userId": record.get("primaryOwnerId") or LEGACY_RATING_USER,
        "username": record.get("primaryOwnerUsername"),
        "rating": rating,
        "createdAt": record.get("createdAt"),
    }


def _dedupe_by_user(facts: List[Dict[str, Any]], name: str, record: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Keep the first fact per user id."""
    seen = set()
    unique = []
    for fact in facts:
        user_id = fact.get("userId")
        if not user_id or user_id in seen:
            logger.warning(f"Dropping duplicate or anonymous entry in {name} of record {record.get('id')}")
            continue
        seen.add(user_id)
        unique.append(fact)
    return unique
