"""Select and retag compiled routes exposed through the gateway."""
import copy
import dataclasses
import logging
from typing import List, Optional

from src.schema.models import RouteDescriptor

logger = logging.getLogger(__name__)

DEFAULT_PUBLIC_TAG = "public-api"
DEFAULT_HIDDEN_TAG = "private-api"
DEFAULT_HIDDEN_MARKER = "X-HIDDEN"


def _lower_tags(route: RouteDescriptor) -> List[str]:
    return [str(tag).lower() for tag in route.tags]


def is_exposed(route: RouteDescriptor, public_tag: str, hidden_tag: str) -> bool:
    """True when the route carries the public or the hidden tag (case-insensitive)."""
    tags = _lower_tags(route)
    return public_tag.lower() in tags or hidden_tag.lower() in tags


def is_hidden(route: RouteDescriptor, hidden_tag: str, hidden_marker: str = DEFAULT_HIDDEN_MARKER) -> bool:
    """True when the route carries the hidden tag or the hidden marker."""
    tags = _lower_tags(route)
    return hidden_tag.lower() in tags or hidden_marker.lower() in tags


def rewrite_tags(tags: List[str], public_tag: str, hidden_tag: str, hidden_marker: str) -> List[str]:
    """Drop the public tag and replace the hidden tag with the documentation marker."""
    result = []
    for tag in tags:
        lowered = str(tag).lower()
        if lowered == hidden_tag.lower() and hidden_tag != hidden_marker:
            result.append(hidden_marker)
        elif lowered == public_tag.lower():
            continue
        else:
            result.append(tag)
    return result


def resolve_routes(
    routes: List[RouteDescriptor],
    public_tag: Optional[str] = None,
    hidden_tag: Optional[str] = None,
    hidden_marker: Optional[str] = None,
    expose_docs: bool = True,
    ignore_hidden: bool = False,
) -> List[RouteDescriptor]:
    """
    Filter routes by tag and rewrite their tags for documentation.

    Routes tagged with neither the public nor the hidden tag are dropped.
    Input routes are never modified; retained routes are copies.

    Args:
        routes: Compiled routes
        public_tag: Tag marking routes exposed through the gateway
        hidden_tag: Tag marking routes exposed but hidden from documentation
        hidden_marker: Tag written in place of the hidden tag in documentation
        expose_docs: Rewrite tags for documentation, otherwise remove them
        ignore_hidden: Drop hidden routes entirely

    Returns:
        list: Resolved routes in input order
    """
    public_tag = public_tag or DEFAULT_PUBLIC_TAG
    hidden_tag = hidden_tag or DEFAULT_HIDDEN_TAG
    hidden_marker = hidden_marker or DEFAULT_HIDDEN_MARKER

    resolved = []
    for route in routes:
        if not is_exposed(route, public_tag, hidden_tag):
            continue
        if ignore_hidden and is_hidden(route, hidden_tag, hidden_marker):
            logger.debug(f"Ignoring hidden route {route.method} {route.url}")
            continue

        schema = copy.deepcopy(route.schema)
        if expose_docs:
            schema["tags"] = rewrite_tags(route.tags, public_tag, hidden_tag, hidden_marker)
        else:
            schema.pop("tags", None)

        resolved.append(dataclasses.replace(route, schema=schema))

    logger.debug(f"Resolved {len(resolved)} of {len(routes)} routes")
    return resolved
