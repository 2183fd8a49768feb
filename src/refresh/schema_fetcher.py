"""
Schema Fetcher - Fetches a service's published OpenAPI document and compiles its routes.

Features:
- One schema-discovery endpoint per service (default /open-api/json)
- Transport failures degrade to "no schema" (wildcard fallback)
- Compiled routes resolved with per-service tag overrides
"""

import logging
from typing import Any, Dict, List, Optional

import requests

from src.compiler import compile_document
from src.resolver import resolve_routes
from src.schema.models import RouteDescriptor, ServiceEntry

logger = logging.getLogger(__name__)


class SchemaFetcher:
    """
    Fetches OpenAPI documents from backend services

    Usage:
    ```python
    fetcher = SchemaFetcher(timeout=10)
    document = fetcher.fetch(ServiceEntry(host="http://users:3000"))
    ```
    """

    def __init__(
        self,
        timeout: int = 30,
        verify_tls: bool = True,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize Schema Fetcher

        Args:
            timeout: HTTP request timeout in seconds
            verify_tls: Verify TLS certificates of the services
            session: Shared requests session (one is created when omitted)
        """
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.verify = verify_tls
        self.session.headers.update({"Accept": "application/json"})

    @staticmethod
    def schema_url(service: ServiceEntry) -> str:
        """Absolute URL of the service's schema-discovery endpoint"""
        return f"{service.host.rstrip('/')}/{service.openapi_url.lstrip('/')}"

    def fetch(self, service: ServiceEntry) -> Optional[Dict[str, Any]]:
        """
        Fetch the OpenAPI document of a service

        Args:
            service: Service to fetch from

        Returns:
            OpenAPI document dictionary, or None when unavailable
        """
        url = self.schema_url(service)
        logger.debug(f"Fetching schema from {url}")

        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.warning(f"Failed to fetch schema from {url}: {e}")
            return None

        if response.status_code != 200:
            logger.warning(f"Schema endpoint {url} answered {response.status_code}")
            return None

        try:
            document = response.json()
        except ValueError as e:
            logger.warning(f"Invalid JSON from {url}: {e}")
            return None

        if not isinstance(document, dict):
            logger.warning(f"Schema from {url} is not a JSON object")
            return None

        return document

    def fetch_routes(
        self,
        service: ServiceEntry,
        gw_tag: Optional[str] = None,
        gw_hidden_tag: Optional[str] = None,
        hidden_marker: Optional[str] = None,
        expose_docs: bool = True,
        ignore_hidden: bool = False,
    ) -> Optional[List[RouteDescriptor]]:
        """
        Fetch, compile and resolve the routes of a service

        Service tag overrides win over the gateway-wide tags.

        Returns:
            Resolved routes, or None when the service has no discoverable schema
        """
        document = self.fetch(service)
        if document is None:
            return None

        try:
            compiled = compile_document(document)
            routes = resolve_routes(
                compiled.routes,
                public_tag=service.tag or gw_tag,
                hidden_tag=service.hidden_tag or gw_hidden_tag,
                hidden_marker=hidden_marker,
                expose_docs=expose_docs,
                ignore_hidden=ignore_hidden,
            )
        except Exception as e:
            logger.warning(f"Error compiling schema from {self.schema_url(service)}: {e}")
            return None
        logger.info(f"Service {service.host}: {len(routes)} of {len(compiled.routes)} routes exposed")
        return routes

    def close(self) -> None:
        self.session.close()
