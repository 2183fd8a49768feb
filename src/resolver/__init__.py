"""Route Resolver Module - tag based selection of gateway routes."""

from .route_resolver import (
    DEFAULT_HIDDEN_MARKER,
    DEFAULT_HIDDEN_TAG,
    DEFAULT_PUBLIC_TAG,
    is_exposed,
    is_hidden,
    resolve_routes,
    rewrite_tags,
)

__all__ = [
    "DEFAULT_HIDDEN_MARKER",
    "DEFAULT_HIDDEN_TAG",
    "DEFAULT_PUBLIC_TAG",
    "is_exposed",
    "is_hidden",
    "resolve_routes",
    "rewrite_tags",
]
