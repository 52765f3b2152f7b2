"""Custom exceptions for the vinyl catalog."""


class CatalogError(Exception):
    """Base exception for vinyl catalog errors."""

    kind = "InternalError"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__

    def __str__(self) -> str:
        return self.message


class NotFoundError(CatalogError):
    """Raised when a record, bookmark or user does not exist."""

    kind = "NotFound"


class RecordNotFound(NotFoundError):
    """Raised when a record id is unknown."""

    def __init__(self, record_id: str):
        super().__init__(f"Record not found: {record_id}")
        self.record_id = record_id


class BookmarkNotFound(NotFoundError):
    """Raised when a user has no bookmark for a record."""

    def __init__(self, user_id: str, record_id: str):
        super().__init__(f"Bookmark not found for record {record_id}")
        self.user_id = user_id
        self.record_id = record_id


class OwnershipNotFound(NotFoundError):
    """Raised when a user holds no ownership fact on a record."""

    def __init__(self, record_id: str, user_id: str):
        super().__init__(f"Record {record_id} is not in the collection of user {user_id}")
        self.record_id = record_id
        self.user_id = user_id


class UserNotFound(NotFoundError):
    """Raised when a user id is unknown."""

    def __init__(self, user_id: str):
        super().__init__(f"User not found: {user_id}")
        self.user_id = user_id


class ValidationError(CatalogError):
    """Raised when input fails validation."""

    kind = "ValidationError"

    def __init__(self, message: str, field: str = ""):
        super().__init__(message)
        self.field = field


class InvalidOwnershipFacts(ValidationError):
    """Raised for a negative purchase price or an unknown condition."""
    pass


class InvalidRating(ValidationError):
    """Raised when a rating is not an integer between 1 and 5."""

    def __init__(self, rating: object):
        super().__init__(f"Rating must be an integer between 1 and 5, got {rating!r}", field="rating")
        self.rating = rating


class ConflictError(CatalogError):
    """Raised when a write conflicts with existing state."""

    kind = "Conflict"


class ConcurrentModification(ConflictError):
    """Raised when optimistic retries are exhausted for a record."""

    def __init__(self, record_id: str, attempts: int):
        super().__init__(
            f"Record {record_id} kept changing underneath the write; gave up after {attempts} attempts"
        )
        self.record_id = record_id
        self.attempts = attempts


class StaleWriteError(ConflictError):
    """Raised by the store when a conditional write sees a newer version."""

    def __init__(self, key: str, expected_version: object):
        super().__init__(f"Stale write to {key} (expected version {expected_version})")
        self.key = key
        self.expected_version = expected_version


class StoreUnavailable(CatalogError):
    """Raised when the backing store cannot be reached or timed out."""

    kind = "StoreUnavailable"


class TransientStoreError(StoreUnavailable):
    """Raised by a backend for failures worth one retry."""
    pass


class Unauthorized(CatalogError):
    """Raised when no identity is given or the caller may not act on the target."""

    kind = "Unauthorized"


class ConfigurationError(CatalogError):
    """Raised when there's an error in configuration."""

    kind = "ConfigurationError"
