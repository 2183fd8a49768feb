"""Gateway configuration."""
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from src.schema.models import RateLimit, ServiceEntry


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str) -> Optional[float]:
    value = os.getenv(name)
    return float(value) if value else None


@dataclass
class GatewayConfig:
    """Configuration of the gateway route sync."""

    services: List[ServiceEntry] = field(default_factory=list)
    gw_tag: str = "public-api"
    gw_hidden_tag: str = "private-api"
    hidden_marker: str = "X-HIDDEN"
    expose_docs: bool = True
    ignore_hidden: bool = False
    default_limit: Optional[RateLimit] = None
    refresh_interval: Optional[float] = None  # seconds
    routes_file: Optional[str] = None
    delete_cache_on_close: bool = False
    concurrency: int = 4
    timeout: int = 30
    verify_tls: bool = True

    def __post_init__(self):
        """Validate values."""
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {self.concurrency}")
        if self.refresh_interval is not None and self.refresh_interval <= 0:
            raise ValueError(f"refresh_interval must be > 0, got {self.refresh_interval}")

    @classmethod
    def from_env(cls) -> "GatewayConfig":
        """Load config from environment variables."""
        hosts = [h.strip() for h in os.getenv("GATEWAY_SERVICES", "").split(",") if h.strip()]
        default_max = os.getenv("GATEWAY_DEFAULT_LIMIT")
        return cls(
            services=[ServiceEntry(host=host) for host in hosts],
            gw_tag=os.getenv("GATEWAY_TAG", "public-api"),
            gw_hidden_tag=os.getenv("GATEWAY_HIDDEN_TAG", "private-api"),
            hidden_marker=os.getenv("GATEWAY_HIDDEN_MARKER", "X-HIDDEN"),
            expose_docs=_env_bool("GATEWAY_EXPOSE_DOCS", True),
            ignore_hidden=_env_bool("GATEWAY_IGNORE_HIDDEN", False),
            default_limit=RateLimit(max=int(default_max)) if default_max else None,
            refresh_interval=_env_float("GATEWAY_REFRESH_INTERVAL"),
            routes_file=os.getenv("GATEWAY_ROUTES_FILE") or None,
            delete_cache_on_close=_env_bool("GATEWAY_DELETE_CACHE_ON_CLOSE", False),
            concurrency=int(os.getenv("GATEWAY_CONCURRENCY", "4")),
            timeout=int(os.getenv("GATEWAY_TIMEOUT", "30")),
            verify_tls=_env_bool("GATEWAY_VERIFY_TLS", True),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any], base: Optional["GatewayConfig"] = None) -> "GatewayConfig":
        """Load config from a dictionary, keys override the base config."""
        base = base or cls()

        def pick(snake: str, camel: str, default: Any) -> Any:
            if camel in data:
                return data[camel]
            return data.get(snake, default)

        services = data.get("services")
        if services is not None and not isinstance(services, list):
            raise ValueError("'services' must be a list")

        default_limit = pick("default_limit", "defaultLimit", None)
        return cls(
            services=[ServiceEntry.from_dict(s) for s in services] if services is not None else base.services,
            gw_tag=pick("gw_tag", "gwTag", base.gw_tag),
            gw_hidden_tag=pick("gw_hidden_tag", "gwHiddenTag", base.gw_hidden_tag),
            hidden_marker=pick("hidden_marker", "hiddenMarker", base.hidden_marker),
            expose_docs=bool(pick("expose_docs", "exposeDocs", base.expose_docs)),
            ignore_hidden=bool(pick("ignore_hidden", "ignoreHidden", base.ignore_hidden)),
            default_limit=RateLimit.from_dict(default_limit) if default_limit else base.default_limit,
            refresh_interval=pick("refresh_interval", "refreshInterval", base.refresh_interval),
            routes_file=pick("routes_file", "routesFile", base.routes_file),
            delete_cache_on_close=bool(pick("delete_cache_on_close", "deleteCacheOnClose", base.delete_cache_on_close)),
            concurrency=int(pick("concurrency", "concurrency", base.concurrency)),
            timeout=int(pick("timeout", "timeout", base.timeout)),
            verify_tls=bool(pick("verify_tls", "verifyTls", base.verify_tls)),
        )

    @classmethod
    def from_file(cls, path: str) -> "GatewayConfig":
        """Load config from a JSON file, merged over environment defaults."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid config file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a JSON object")
        return cls.from_dict(data, base=cls.from_env())

    @classmethod
    def load(cls, path: Optional[str] = None) -> "GatewayConfig":
        """Load from file when given, else from environment."""
        if path:
            if not Path(path).is_file():
                raise ValueError(f"Config file not found: {path}")
            return cls.from_file(path)
        return cls.from_env()

