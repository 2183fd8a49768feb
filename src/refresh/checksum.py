"""Content checksum of a service's resolved routes."""
import hashlib
import json
from typing import Any, Dict, List, Optional


def routes_checksum(routes: Optional[List[Dict[str, Any]]]) -> str:
    """md5 hex digest of the compact JSON serialization (``null`` for fallback)."""
    payload = json.dumps(routes, separators=(",", ":"), ensure_ascii=False)
    return hashlib.md5(payload.encode("utf-8")).hexdigest()
