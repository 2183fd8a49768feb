"""Models for compiled OpenAPI routes and gateway services."""
from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any, Set


HTTP_METHODS = ("delete", "get", "head", "patch", "post", "put", "options")


@dataclass
class SecurityRequirement:
    """A single security requirement of an operation."""

    name: str
    parameters: List[Any] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {"name": self.name, "parameters": self.parameters}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SecurityRequirement":
        """Build from dictionary."""
        return cls(name=data["name"], parameters=data.get("parameters") or [])


@dataclass
class RouteDescriptor:
    """A compiled, proxy-ready representation of one OpenAPI operation."""

    method: str  # DELETE, GET, HEAD, PATCH, POST, PUT, OPTIONS
    url: str  # /user/:name
    schema: Dict[str, Any] = field(default_factory=dict)
    operation_id: str = ""
    security: Optional[List[SecurityRequirement]] = None
    openapi_source: Dict[str, Any] = field(default_factory=dict)

    @property
    def tags(self) -> List[str]:
        """Tags carried by the route schema."""
        tags = self.schema.get("tags")
        return list(tags) if isinstance(tags, list) else []

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "method": self.method,
            "url": self.url,
            "schema": self.schema,
            "operationId": self.operation_id,
            "security": [s.to_dict() for s in self.security] if self.security is not None else None,
            "openapiSource": self.openapi_source,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RouteDescriptor":
        """Build from dictionary."""
        security = data.get("security")
        return cls(
            method=data["method"],
            url=data["url"],
            schema=data.get("schema") or {},
            operation_id=data.get("operationId", ""),
            security=[SecurityRequirement.from_dict(s) for s in security] if security is not None else None,
            openapi_source=data.get("openapiSource") or {},
        )


@dataclass
class CompiledSpec:
    """Result of compiling one OpenAPI document."""

    generic: Dict[str, Any] = field(default_factory=dict)
    routes: List[RouteDescriptor] = field(default_factory=list)
    content_types: Set[str] = field(default_factory=set)
    security_schemes: Dict[str, Any] = field(default_factory=dict)

    def get_route(self, url: str, method: str = "GET") -> Optional[RouteDescriptor]:
        """Return route by url and method."""
        for route in self.routes:
            if route.url == url and route.method == method.upper():
                return route
        return None


@dataclass
class RateLimit:
    """Rate limit descriptor passed through to the rate-limit engine."""

    max: int
    time_window: str = "1 minute"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {"max": self.max, "timeWindow": self.time_window}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["RateLimit"]:
        """Build from dictionary."""
        if not data:
            return None
        return cls(
            max=int(data["max"]),
            time_window=data.get("timeWindow") or data.get("time_window") or "1 minute",
        )


@dataclass
class ServiceEntry:
    """A backend service the gateway discovers routes from."""

    host: str
    openapi_url: str = "/open-api/json"
    tag: Optional[str] = None
    hidden_tag: Optional[str] = None
    remote_base_url: Optional[str] = None
    gw_base_url: Optional[str] = None
    body_limit: Optional[int] = None
    hit_limit: Optional[RateLimit] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "host": self.host,
            "openApiUrl": self.openapi_url,
            "tag": self.tag,
            "hiddenTag": self.hidden_tag,
            "remoteBaseUrl": self.remote_base_url,
            "gwBaseUrl": self.gw_base_url,
            "bodyLimit": self.body_limit,
            "hitLimit": self.hit_limit.to_dict() if self.hit_limit else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServiceEntry":
        """Build from dictionary (camelCase or snake_case keys)."""
        def pick(*keys):
            for key in keys:
                if data.get(key) is not None:
                    return data[key]
            return None

        host = pick("host")
        if not host:
            raise ValueError(f"Service entry without host: {data}")

        body_limit = pick("bodyLimit", "body_limit")
        return cls(
            host=host,
            openapi_url=pick("openApiUrl", "openapi_url") or "/open-api/json",
            tag=pick("tag"),
            hidden_tag=pick("hiddenTag", "hidden_tag"),
            remote_base_url=pick("remoteBaseUrl", "remote_base_url"),
            gw_base_url=pick("gwBaseUrl", "gw_base_url"),
            body_limit=int(body_limit) if body_limit is not None else None,
            hit_limit=RateLimit.from_dict(pick("hitLimit", "hit_limit")),
        )


@dataclass
class RefreshRecord:
    """Routes discovered for one service; ``routes is None`` means wildcard fallback."""

    service: ServiceEntry
    routes: Optional[List[RouteDescriptor]] = None

    @property
    def is_fallback(self) -> bool:
        return self.routes is None

    def routes_to_list(self) -> Optional[List[Dict[str, Any]]]:
        """Serialized routes value, as checksummed and cached."""
        if self.routes is None:
            return None
        return [route.to_dict() for route in self.routes]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "service": self.service.to_dict(),
            "routes": self.routes_to_list(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RefreshRecord":
        """Build from dictionary."""
        routes = data.get("routes")
        return cls(
            service=ServiceEntry.from_dict(data["service"]),
            routes=[RouteDescriptor.from_dict(r) for r in routes] if routes is not None else None,
        )


@dataclass
class RefreshResult:
    """Outcome of one refresh cycle."""

    reload: bool = False
    records: List[RefreshRecord] = field(default_factory=list)
    from_cache: bool = False

    def get_record(self, host: str) -> Optional[RefreshRecord]:
        """Return record by service host."""
        for record in self.records:
            if record.service.host == host:
                return record
        return None
