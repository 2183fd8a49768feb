"""Gateway route table for the external proxy and rate-limit engines."""

from .route_builder import (
    ALL_METHODS,
    DEFAULT_BODY_LIMIT,
    GatewayRoute,
    build_gateway_url,
    build_routes,
    make_route,
    make_wildcard_route,
    strip_response_formats,
    upstream_url,
)

__all__ = [
    "ALL_METHODS",
    "DEFAULT_BODY_LIMIT",
    "GatewayRoute",
    "build_gateway_url",
    "build_routes",
    "make_route",
    "make_wildcard_route",
    "strip_response_formats",
    "upstream_url",
]
