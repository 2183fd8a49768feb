"""
Schema Compiler Module

Compiles a service's OpenAPI 3.x document into gateway route descriptors.
Supports:
- params / querystring / headers / body / response schemas
- Generated operation ids
- Security requirements and security schemes
- Example syntax normalization
"""

from .openapi_compiler import OpenApiCompiler, compile_document, make_operation_id, make_url
from .props import copy_props, normalize_examples

__all__ = [
    "OpenApiCompiler",
    "compile_document",
    "make_operation_id",
    "make_url",
    "copy_props",
    "normalize_examples",
]
