"""
Refresh Module

Keeps gateway routes in sync with the backend services:
- Schema fetch per service with wildcard fallback on failure
- Checksum diffing across refresh cycles
- Routes file cache
- Restart requests guarded by lock flags
"""

from .checksum import routes_checksum
from .coordinator import RefreshCoordinator, RefreshState
from .route_cache import RouteCacheError, RouteCacheFile
from .schema_fetcher import SchemaFetcher

__all__ = [
    "RefreshCoordinator",
    "RefreshState",
    "RouteCacheError",
    "RouteCacheFile",
    "SchemaFetcher",
    "routes_checksum",
]
