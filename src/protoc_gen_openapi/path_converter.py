from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

from google.api import annotations_pb2, http_pb2
from google.protobuf import descriptor_pb2 as d2

from protoc_gen_openapi.errors import PathCollisionError, UnsupportedFieldKindError
from protoc_gen_openapi.models import Operation, Parameter, PathItem, Schema
from protoc_gen_openapi.registry import RegisteredType, TypeRegistry
from protoc_gen_openapi.schema_converter import SchemaConverter, is_scalar
from protoc_gen_openapi.source_info import MESSAGE_FIELD, SERVICE_METHOD, SourceInfoIndex

logger = logging.getLogger(__name__)

BODY_VERBS = ("post", "put", "patch")
DEFAULT_VERB = "post"
WHOLE_BODY = "*"

# Matches {field} and {field=some/*/pattern}
PLACEHOLDER_RE = re.compile(r"\{([^}=]+)(?:=([^}]*))?\}")


@dataclass
class HttpBinding:
    verb: str
    path: str
    body: str = ""


def default_binding(service_full_name: str, method_name: str) -> HttpBinding:
    return HttpBinding(
        verb=DEFAULT_VERB,
        path=f"/{service_full_name}/{method_name}",
        body=WHOLE_BODY,
    )


def _rule_binding(rule: http_pb2.HttpRule, method_name: str) -> HttpBinding:
    pattern = rule.WhichOneof("pattern")
    if pattern is None:
        raise UnsupportedFieldKindError(
            f"HTTP rule on method '{method_name}' has no verb or path"
        )
    if pattern == "custom":
        return HttpBinding(verb=rule.custom.kind.lower(), path=rule.custom.path, body=rule.body)
    return HttpBinding(verb=pattern, path=getattr(rule, pattern), body=rule.body)


def method_bindings(service_full_name: str, method: d2.MethodDescriptorProto) -> List[HttpBinding]:
    """HTTP bindings declared through google.api.http, or the synthetic default."""
    if not method.options.HasExtension(annotations_pb2.http):
        return [default_binding(service_full_name, method.name)]
    rule = method.options.Extensions[annotations_pb2.http]
    bindings = [_rule_binding(rule, method.name)]
    for extra in rule.additional_bindings:
        bindings.append(_rule_binding(extra, method.name))
    return bindings


def merge_paths(target: Dict[str, PathItem], source: Mapping[str, PathItem]) -> None:
    """Merge path items, rejecting a verb bound twice on one template."""
    for path, item in source.items():
        existing = target.setdefault(path, PathItem())
        for verb, operation in item.operations.items():
            clash = existing.operations.get(verb)
            if clash is not None:
                raise PathCollisionError(path, verb, clash.operation_id, operation.operation_id)
            existing.operations[verb] = operation


class PathConverter:
    """Turns the methods of a service into OpenAPI path items.

    Request and response messages are referenced by title; they are
    materialized through the SchemaConverter when not converted yet, which
    covers messages declared in files that are not generation targets.
    """

    def __init__(
        self,
        registry: TypeRegistry,
        schema_converter: SchemaConverter,
        source_info: Optional[Mapping[str, SourceInfoIndex]] = None,
    ):
        self._registry = registry
        self._schemas = schema_converter
        self._source_info = source_info or {}

    def convert_service(
        self,
        file: d2.FileDescriptorProto,
        service: d2.ServiceDescriptorProto,
        location: Tuple[int, ...] = (),
    ) -> Dict[str, PathItem]:
        service_full_name = f"{file.package}.{service.name}" if file.package else service.name
        index = self._source_info.get(file.name)
        paths: Dict[str, PathItem] = {}

        for i, method in enumerate(service.method):
            if method.client_streaming or method.server_streaming:
                logger.debug("Streaming method %s.%s documented as a single exchange",
                             service_full_name, method.name)

            description = None
            if index is not None:
                description = index.lookup(tuple(location) + (SERVICE_METHOD, i))
            request = self._registry.resolve(file.package, method.input_type)
            response = self._registry.resolve(file.package, method.output_type)

            method_paths: Dict[str, PathItem] = {}
            for binding in method_bindings(service_full_name, method):
                path, operation = self._build_operation(
                    service_full_name, method, binding, request, response, description
                )
                merge_paths(method_paths, {path: PathItem({binding.verb: operation})})
            merge_paths(paths, method_paths)

        return paths

    def _build_operation(
        self,
        service_full_name: str,
        method: d2.MethodDescriptorProto,
        binding: HttpBinding,
        request: RegisteredType,
        response: RegisteredType,
        description: Optional[str],
    ) -> Tuple[str, Operation]:
        request_ref = self._schemas.reference(request)
        response_ref = self._schemas.reference(response)

        fields = list(request.descriptor.field)
        by_name = {f.name: f for f in fields}
        parameters: List[Parameter] = []

        bound = set()
        for match in PLACEHOLDER_RE.finditer(binding.path):
            name, pattern = match.group(1).strip(), match.group(2)
            field = by_name.get(name)
            if field is None or not is_scalar(field):
                raise UnsupportedFieldKindError(
                    f"Path placeholder '{{{name}}}' of method '{method.name}' must name a "
                    f"singular scalar field of {request.full_name}"
                )
            bound.add(name)
            parameters.append(Parameter(
                name=self._schemas.property_name(field),
                location="path",
                required=True,
                schema=self._field_schema(request, field),
                description=f"Matches the path pattern `{pattern}`." if pattern else None,
            ))

        # Placeholder tokens must equal the declared parameter names.
        path = PLACEHOLDER_RE.sub(
            lambda m: "{%s}" % self._schemas.property_name(by_name[m.group(1).strip()]),
            binding.path,
        )

        remaining = [f for f in fields if f.name not in bound]
        request_body = None

        if binding.verb in BODY_VERBS:
            if binding.body and binding.body != WHOLE_BODY:
                body_field = by_name.get(binding.body)
                if body_field is None or body_field.name in bound:
                    raise UnsupportedFieldKindError(
                        f"Body selector '{binding.body}' of method '{method.name}' "
                        f"does not name an unbound field of {request.full_name}"
                    )
                request_body = self._field_schema(request, body_field)
                remaining = [f for f in remaining if f is not body_field]
                parameters.extend(self._query_parameters(request, remaining))
            elif not bound:
                request_body = request_ref
            elif remaining:
                request_body = Schema(type="object")
                for field in remaining:
                    request_body.properties[self._schemas.property_name(field)] = (
                        self._field_schema(request, field)
                    )
        else:
            parameters.extend(self._query_parameters(request, remaining))

        return path, Operation(
            operation_id=f"{service_full_name}.{method.name}",
            summary=method.name,
            description=description,
            tags=[service_full_name],
            parameters=parameters,
            request_body=request_body,
            response=response_ref,
        )

    def _query_parameters(self, request: RegisteredType, fields) -> List[Parameter]:
        return [
            Parameter(
                name=self._schemas.property_name(field),
                location="query",
                schema=self._field_schema(request, field),
            )
            for field in fields
        ]

    def _field_schema(self, request: RegisteredType, field: d2.FieldDescriptorProto) -> Schema:
        index = self._source_info.get(request.file_name)
        description = None
        if index is not None:
            position = list(request.descriptor.field).index(field)
            description = index.lookup(request.location + (MESSAGE_FIELD, position))
        return self._schemas.field_schema(request, field, description)
