"""Build the route table handed to the proxy / rate-limit engine."""
import copy
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from config import GatewayConfig
from src.schema.models import RateLimit, RefreshRecord, RouteDescriptor, ServiceEntry

ALL_METHODS = ["DELETE", "GET", "HEAD", "PATCH", "POST", "PUT", "OPTIONS"]
DEFAULT_BODY_LIMIT = 1048576  # 1 MiB
WILDCARD_URL = "/*"

# formats the request validator does not know about
UNKNOWN_FORMATS = {"byte", "int32", "int64", "float", "double", "binary", "password"}


@dataclass
class GatewayRoute:
    """A live endpoint to register on the gateway."""

    methods: List[str]
    url: str
    upstream: str
    schema: Optional[Dict[str, Any]] = None
    limit: Optional[RateLimit] = None
    security: Optional[List[Dict[str, Any]]] = None
    body_limit: int = DEFAULT_BODY_LIMIT
    remote_base_url: Optional[str] = None
    gw_base_url: Optional[str] = None
    operation_id: str = ""
    tags: List[str] = field(default_factory=list)

    @property
    def is_wildcard(self) -> bool:
        return self.url.endswith(WILDCARD_URL)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "methods": self.methods,
            "url": self.url,
            "upstream": self.upstream,
            "schema": self.schema,
            "limit": self.limit.to_dict() if self.limit else None,
            "security": self.security,
            "bodyLimit": self.body_limit,
            "operationId": self.operation_id,
        }


def build_gateway_url(url: str, gw_base_url: Optional[str] = None, remote_base_url: Optional[str] = None) -> str:
    """Prefix with the gateway base url, strip the remote base url, collapse slashes."""
    if gw_base_url:
        url = gw_base_url + url
    if remote_base_url:
        url = url.replace(remote_base_url, "", 1)
    return re.sub(r"/+", "/", url)


def upstream_url(route: GatewayRoute, request_path: str) -> str:
    """Map a gateway request path onto the upstream service url."""
    path = request_path
    if route.gw_base_url:
        path = path.replace(route.gw_base_url, "", 1)
    if route.remote_base_url:
        path = route.remote_base_url + path
    path = re.sub(r"/+", "/", "/" + path)
    return route.upstream.rstrip("/") + path


def strip_response_formats(schema: Any) -> Any:
    """Drop unknown ``format`` values from a response schema, in place."""
    if isinstance(schema, dict):
        if schema.get("format") in UNKNOWN_FORMATS:
            del schema["format"]
        for value in schema.values():
            strip_response_formats(value)
    elif isinstance(schema, list):
        for item in schema:
            strip_response_formats(item)
    return schema


def _limit_for(service: ServiceEntry, config: GatewayConfig) -> Optional[RateLimit]:
    return service.hit_limit or config.default_limit


def make_route(route: RouteDescriptor, service: ServiceEntry, config: GatewayConfig) -> GatewayRoute:
    """Build the gateway route of one resolved route descriptor."""
    schema = copy.deepcopy(route.schema)
    if "response" in schema:
        strip_response_formats(schema["response"])

    security = None
    if route.security:
        first = route.security[0]
        security = [{first.name: first.parameters}]
        if config.expose_docs:
            schema["security"] = list(schema.get("security") or []) + security

    return GatewayRoute(
        methods=[route.method],
        url=build_gateway_url(route.url, service.gw_base_url, service.remote_base_url),
        upstream=service.host,
        schema=schema,
        limit=_limit_for(service, config),
        security=security,
        body_limit=service.body_limit or DEFAULT_BODY_LIMIT,
        remote_base_url=service.remote_base_url,
        gw_base_url=service.gw_base_url,
        operation_id=route.operation_id,
        tags=list(schema.get("tags") or []),
    )


def make_wildcard_route(service: ServiceEntry, config: GatewayConfig) -> GatewayRoute:
    """Catch-all proxy route for a service without a discoverable schema."""
    return GatewayRoute(
        methods=list(ALL_METHODS),
        url=build_gateway_url(WILDCARD_URL, service.gw_base_url, service.remote_base_url),
        upstream=service.host,
        limit=_limit_for(service, config),
        body_limit=service.body_limit or DEFAULT_BODY_LIMIT,
        remote_base_url=service.remote_base_url,
        gw_base_url=service.gw_base_url,
    )


def build_routes(records: List[RefreshRecord], config: GatewayConfig) -> List[GatewayRoute]:
    """
    Build the full gateway route table

    Args:
        records: Refresh records, one per service
        config: Gateway configuration (default limit, docs exposure)

    Returns:
        list: Gateway routes in service declaration order
    """
    routes = []
    for record in records:
        if record.is_fallback:
            routes.append(make_wildcard_route(record.service, config))
            continue
        for route in record.routes:
            routes.append(make_route(route, record.service, config))
    return routes
