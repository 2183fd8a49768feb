"""
OpenAPI Compiler - Translates OpenAPI 3.x documents into gateway route descriptors.

Supports:
- Path-level summary/description/x- fields and parameters inherited by operations
- Parameter partition into params / querystring / headers schemas
- Exploded structured query parameters
- Request body and response schema selection per content type
- Example syntax normalization (example -> examples[])
- Operation and root level security requirements
- Operation id generation (get /user/{name} -> getUserByName)
"""

import copy
import logging
import re
from typing import Any, Dict, List, Optional

from src.schema.models import HTTP_METHODS, CompiledSpec, RouteDescriptor, SecurityRequirement
from .props import EXPLODING_TYPES, copy_props, normalize_examples

logger = logging.getLogger(__name__)

_PATH_PARAM = re.compile(r"\{([^{}/]+)\}")
_OPERATION_PARAM = re.compile(r"\{(\w+)\}")
_NON_LETTER = re.compile(r"[^a-zA-Z]")

PARAMETER_GROUPS = {
    "path": "params",
    "query": "querystring",
    "header": "headers",
}


def _first_upper(value: str) -> str:
    return value[:1].upper() + value[1:]


def make_operation_id(method: str, path: str) -> str:
    """
    Build a camelCase operation id from method and path.

    Example: ``get`` + ``/user/{name}`` -> ``getUserByName``
    """
    parts = [method] + [_first_upper(part) for part in path.split("/")[1:]]
    joined = "".join(parts)
    joined = _OPERATION_PARAM.sub(lambda m: "By" + _first_upper(m.group(1)), joined)
    return _NON_LETTER.sub("", joined)


def make_url(path: str) -> str:
    """Convert an OpenAPI path template (/user/{name}) into /user/:name."""
    return _PATH_PARAM.sub(r":\1", path)


class OpenApiCompiler:
    """Compiles one OpenAPI document into a CompiledSpec"""

    def __init__(self):
        self.compiled = CompiledSpec()
        self._document: Dict[str, Any] = {}

    def compile(self, document: Dict[str, Any]) -> CompiledSpec:
        """
        Compile an OpenAPI 3.x document

        Args:
            document: OpenAPI document (parsed JSON/YAML), never modified

        Returns:
            CompiledSpec with routes, generic fields, content types and security schemes
        """
        self.compiled = CompiledSpec()
        self._document = document if isinstance(document, dict) else {}

        for key, value in self._document.items():
            if key == "paths":
                if isinstance(value, dict):
                    self._process_paths(value)
            elif key == "components" and isinstance(value, dict) and value.get("securitySchemes"):
                self.compiled.security_schemes = copy.deepcopy(value["securitySchemes"])
            else:
                self.compiled.generic[key] = copy.deepcopy(value)

        logger.debug(f"Compiled {len(self.compiled.routes)} routes")
        return self.compiled

    def _process_paths(self, paths: Dict[str, Any]) -> None:
        """Process every path item of the document"""
        for path, path_item in paths.items():
            if not isinstance(path_item, dict):
                continue

            generic_schema = copy.deepcopy(copy_props(path_item, {}, ["summary", "description"], True))
            if isinstance(path_item.get("parameters"), list):
                self._parse_parameters(generic_schema, path_item["parameters"])

            for method, operation in path_item.items():
                if method not in HTTP_METHODS:
                    continue
                if not isinstance(operation, dict):
                    operation = {}
                self._process_operation(path, method, operation, generic_schema)

    def _process_operation(
        self,
        path: str,
        method: str,
        operation: Dict[str, Any],
        generic_schema: Dict[str, Any],
    ) -> None:
        security = operation.get("security")
        if security is None:
            security = self._document.get("security")

        schema = self._make_schema(generic_schema, operation)
        self._require_path_params(schema, path)

        route = RouteDescriptor(
            method=method.upper(),
            url=make_url(path),
            schema=schema,
            operation_id=operation.get("operationId") or make_operation_id(method, path),
            security=self._parse_security(security),
            openapi_source=copy.deepcopy(operation),
        )
        self.compiled.routes.append(route)

    def _make_schema(self, generic_schema: Dict[str, Any], operation: Dict[str, Any]) -> Dict[str, Any]:
        """Merge the path generic fragment with operation specific schemas"""
        schema = copy.deepcopy(generic_schema)
        schema.update(copy.deepcopy(copy_props(operation, {}, ["tags", "summary", "description", "operationId"], True)))

        if isinstance(operation.get("parameters"), list):
            self._parse_parameters(schema, operation["parameters"])

        body = self._parse_body(operation.get("requestBody"))
        if body is not None:
            schema["body"] = body

        response = self._parse_responses(operation.get("responses"))
        if response:
            schema["response"] = response

        return schema

    @staticmethod
    def _require_path_params(schema: Dict[str, Any], path: str) -> None:
        """Every url placeholder is a required path param, declared or not"""
        names = _PATH_PARAM.findall(path)
        if not names:
            return

        params = schema.get("params")
        if not isinstance(params, dict) or not isinstance(params.get("properties"), dict):
            params = {"type": "object", "properties": {}}
            schema["params"] = params
        required = params.get("required")
        if not isinstance(required, list):
            required = []
            params["required"] = required

        for name in names:
            params["properties"].setdefault(name, {"type": "string"})
            if name not in required:
                required.append(name)

    def _parse_parameters(self, schema: Dict[str, Any], parameters: List[Dict[str, Any]]) -> None:
        """Partition parameters by location and compile each group"""
        groups: Dict[str, List[Dict[str, Any]]] = {"params": [], "querystring": [], "headers": []}
        for parameter in parameters:
            if not isinstance(parameter, dict):
                continue
            if not isinstance(parameter.get("name"), str) or not isinstance(parameter.get("in"), str):
                continue
            target = PARAMETER_GROUPS.get(parameter["in"])
            if target:
                groups[target].append(parameter)

        if groups["params"]:
            schema["params"] = self._parse_params(groups["params"])
        if groups["querystring"]:
            schema["querystring"] = self._parse_query_string(groups["querystring"])
        if groups["headers"]:
            schema["headers"] = self._parse_params(groups["headers"])

    def _parse_query_string(self, parameters: List[Dict[str, Any]]) -> Dict[str, Any]:
        """A single exploded object/array parameter is the querystring schema itself"""
        if len(parameters) == 1:
            parameter = parameters[0]
            schema = parameter.get("schema")
            if (
                parameter.get("explode") is not False
                and isinstance(schema, dict)
                and schema.get("type") in EXPLODING_TYPES
            ):
                return copy.deepcopy(schema)
        return self._parse_params(parameters)

    def _parse_params(self, parameters: List[Dict[str, Any]]) -> Dict[str, Any]:
        params: Dict[str, Any] = {"type": "object", "properties": {}}
        required = []
        for parameter in parameters:
            schema = parameter.get("schema")
            prop = copy.deepcopy(schema) if isinstance(schema, dict) else {}
            prop.update(copy.deepcopy(copy_props(parameter, {}, ["description"], True)))
            params["properties"][parameter["name"]] = prop
            if parameter.get("required"):
                required.append(parameter["name"])
        if required:
            params["required"] = required
        return params

    def _parse_body(self, data: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """Pick the schema of the last declared content type"""
        if not isinstance(data, dict) or not isinstance(data.get("content"), dict):
            return None

        content = data["content"]
        if not content:
            return None

        mime_types = list(content.keys())
        self.compiled.content_types.update(mime_types)

        media = content[mime_types[-1]]
        schema = media.get("schema") if isinstance(media, dict) else None
        if schema is None:
            return None
        return normalize_examples(copy.deepcopy(schema))

    def _parse_responses(self, responses: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        result = {}
        if not isinstance(responses, dict):
            return result
        for status_code, response in responses.items():
            body = self._parse_body(response)
            if body is not None:
                result[str(status_code)] = body
        return result

    @staticmethod
    def _parse_security(requirements: Optional[List[Dict[str, Any]]]) -> Optional[List[SecurityRequirement]]:
        """Normalize [{scheme: [scopes]}] into SecurityRequirement entries"""
        if not isinstance(requirements, list):
            return None
        result = []
        for requirement in requirements:
            if not isinstance(requirement, dict) or not requirement:
                continue
            name = next(iter(requirement))
            scopes = requirement[name]
            if scopes is None:
                scopes = []
            if not isinstance(name, str) or not isinstance(scopes, list):
                continue
            result.append(SecurityRequirement(name=name, parameters=list(scopes)))
        return result


def compile_document(document: Dict[str, Any]) -> CompiledSpec:
    """Compile an OpenAPI document with a fresh compiler."""
    return OpenApiCompiler().compile(document)
