"""Vinyl Catalog

A shared record catalogue where many collectors own, rate and bookmark the
same physical releases, with per-user collection statistics.
"""

__version__ = "0.1.0"

from .exceptions import (
    CatalogError,
    ConcurrentModification,
    ConflictError,
    NotFoundError,
    RecordNotFound,
    StoreUnavailable,
    Unauthorized,
    ValidationError,
)

__all__ = [
    "__version__",
    "CatalogError",
    "ConcurrentModification",
    "ConflictError",
    "NotFoundError",
    "RecordNotFound",
    "StoreUnavailable",
    "Unauthorized",
    "ValidationError",
]
