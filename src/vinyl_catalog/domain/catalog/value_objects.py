"""
Catalog value objects.

Immutable values shared by the catalog entities: grading conditions, track
listings, timestamps, release dates and the rounding rules used for money and
rating averages.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, Optional, Union

from ...exceptions import InvalidOwnershipFacts, InvalidRating

MIN_RATING = 1
MAX_RATING = 5

_YEAR_PATTERN = re.compile(r"^\s*(\d{4})")


class Condition(Enum):
    """Grading scale for the physical condition of a record."""
    MINT = "Mint"
    NEAR_MINT = "Near Mint"
    VERY_GOOD = "Very Good"
    GOOD = "Good"
    FAIR = "Fair"
    POOR = "Poor"

    @classmethod
    def parse(cls, value: Union[str, "Condition", None]) -> Optional["Condition"]:
        """Parse a grade from its display name, enum name or compact form.

        Accepts "Near Mint", "NEAR_MINT" and "NearMint" alike. Empty values
        mean "not graded".
        """
        if value is None or isinstance(value, cls):
            return value
        text = str(value).strip()
        if not text:
            return None

        compact = re.sub(r"[\s_\-]", "", text).lower()
        for condition in cls:
            if compact in (condition.value.replace(" ", "").lower(), condition.name.replace("_", "").lower()):
                return condition

        allowed = ", ".join(c.value for c in cls)
        raise InvalidOwnershipFacts(f"Unknown condition {text!r}; expected one of: {allowed}", field="condition")


@dataclass(frozen=True, slots=True)
class Track:
    """One entry of a record's track list."""

    title: str
    duration: Optional[str] = None
    external_link: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"title": self.title}
        if self.duration:
            data["duration"] = self.duration
        if self.external_link:
            data["externalLink"] = self.external_link
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Track":
        return cls(
            title=str(data.get("title", "")),
            duration=data.get("duration"),
            external_link=data.get("externalLink") or data.get("youtubeLink"),
        )


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    Accepts the trailing "Z" form written by JavaScript clients. Naive values
    are taken to be UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Format a datetime the way it is stored (ISO-8601, UTC, millisecond precision)."""
    if value is None:
        return None
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def release_year(release_date: Optional[str]) -> Optional[int]:
    """Extract the year from a release date such as "1978-05-12" or "1978"."""
    if not release_date:
        return None
    match = _YEAR_PATTERN.match(str(release_date))
    if not match:
        return None
    year = int(match.group(1))
    return year if year > 0 else None


def decade_label(year: Optional[int]) -> str:
    """Bucket a year into its decade, e.g. 1978 -> "1970s"."""
    if not year:
        return "Unknown"
    return f"{(year // 10) * 10}s"


def round_half_up(value: float, places: int = 2) -> float:
    """Round like a cashier does, so 2.25 -> 2.3 at one decimal."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def validate_purchase_price(price: Any) -> Optional[float]:
    """Validate a purchase price, returning it as a float (or None when absent)."""
    if price is None or price == "":
        return None
    if isinstance(price, bool):
        raise InvalidOwnershipFacts("Purchase price must be a number", field="purchasePrice")
    try:
        amount = float(price)
    except (TypeError, ValueError):
        raise InvalidOwnershipFacts(f"Purchase price must be a number, got {price!r}", field="purchasePrice")
    if amount != amount or amount in (float("inf"), float("-inf")):
        raise InvalidOwnershipFacts("Purchase price must be a finite number", field="purchasePrice")
    if amount < 0:
        raise InvalidOwnershipFacts(f"Purchase price cannot be negative, got {amount}", field="purchasePrice")
    return amount


def validate_rating(rating: Any) -> Optional[int]:
    """Validate a star rating.

    Returns None for "no rating" (None or 0), otherwise the rating as an int.
    Floats are accepted only when integral (4.0 but not 4.5).
    """
    if rating is None:
        return None
    if isinstance(rating, bool):
        raise InvalidRating(rating)
    if isinstance(rating, float):
        if not rating.is_integer():
            raise InvalidRating(rating)
        rating = int(rating)
    if not isinstance(rating, int):
        raise InvalidRating(rating)
    if rating == 0:
        return None
    if rating < MIN_RATING or rating > MAX_RATING:
        raise InvalidRating(rating)
    return rating


def as_calendar_date(value: Union[date, datetime]) -> date:
    """UTC calendar date of a timestamp."""
    if isinstance(value, datetime):
        return value.astimezone(timezone.utc).date()
    return value
