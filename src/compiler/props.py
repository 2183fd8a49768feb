"""Schema helpers: selective field copy and example-syntax normalization."""
from typing import Any, Dict, Iterable


EXPLODING_TYPES = ("object", "array")


def is_x_prop(name: str) -> bool:
    """Vendor extension fields start with ``x-``."""
    return isinstance(name, str) and name.startswith("x-")


def copy_props(
    source: Dict[str, Any],
    target: Dict[str, Any],
    names: Iterable[str],
    copy_x_props: bool = False,
) -> Dict[str, Any]:
    """
    Copy the listed fields (and optionally any ``x-`` field) from source to target.

    A listed ``example`` is written as ``examples: [value]``, the form JSON
    Schema validators accept.

    Args:
        source: Object to read from
        target: Object to write into (modified in place)
        names: Field names to copy
        copy_x_props: Also copy vendor extension fields

    Returns:
        The target object
    """
    if not isinstance(source, dict):
        return target

    names = set(names)
    for key, value in source.items():
        if key == "example" and key in names:
            target["examples"] = [value]
            continue
        if key in names or (copy_x_props and is_x_prop(key)):
            target[key] = value
    return target


def _normalize_node(node: Dict[str, Any]) -> None:
    if "example" in node:
        node["examples"] = [node.pop("example")]
    elif isinstance(node.get("examples"), dict):
        node["examples"] = list(node["examples"].values())


def normalize_examples(schema: Any) -> Any:
    """
    Rewrite OpenAPI example syntax into JSON Schema ``examples`` arrays, in place.

    Walks object properties recursively. Arrays of objects/arrays are walked
    through their ``items``; arrays of scalars get the array node and its
    items node normalized without descending further.
    """
    if not isinstance(schema, dict):
        return schema

    properties = schema.get("properties")
    if not isinstance(properties, dict):
        return schema

    for value in properties.values():
        if not isinstance(value, dict):
            continue

        if value.get("type") == "object":
            _normalize_node(value)
            normalize_examples(value)
        elif value.get("type") == "array":
            items = value.get("items")
            if isinstance(items, dict) and items.get("type") in EXPLODING_TYPES:
                normalize_examples(items)
            else:
                _normalize_node(value)
                if isinstance(items, dict):
                    _normalize_node(items)
        else:
            _normalize_node(value)

    return schema
