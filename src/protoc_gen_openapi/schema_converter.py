from __future__ import annotations

import logging
from typing import Dict, Mapping, Optional, Set, Tuple

from google.protobuf import descriptor_pb2 as d2

from protoc_gen_openapi.errors import UnsupportedFieldKindError
from protoc_gen_openapi.models import Schema
from protoc_gen_openapi.registry import RegisteredType, TypeRegistry
from protoc_gen_openapi.source_info import MESSAGE_FIELD, SourceInfoIndex

logger = logging.getLogger(__name__)

FD = d2.FieldDescriptorProto

# Proto scalar kind -> (OpenAPI type, format)
SCALAR_TYPE_MAP: Dict[int, Tuple[str, Optional[str]]] = {
    FD.TYPE_DOUBLE: ("number", "double"),
    FD.TYPE_FLOAT: ("number", "float"),
    FD.TYPE_INT32: ("integer", "int32"),
    FD.TYPE_SINT32: ("integer", "int32"),
    FD.TYPE_SFIXED32: ("integer", "int32"),
    FD.TYPE_UINT32: ("integer", "int32"),
    FD.TYPE_FIXED32: ("integer", "int32"),
    FD.TYPE_INT64: ("integer", "int64"),
    FD.TYPE_SINT64: ("integer", "int64"),
    FD.TYPE_SFIXED64: ("integer", "int64"),
    FD.TYPE_UINT64: ("integer", "int64"),
    FD.TYPE_FIXED64: ("integer", "int64"),
    FD.TYPE_BOOL: ("boolean", None),
    FD.TYPE_STRING: ("string", None),
    FD.TYPE_BYTES: ("string", "byte"),
}

REFERENCE_KINDS = (FD.TYPE_MESSAGE, FD.TYPE_ENUM)


def is_scalar(field: d2.FieldDescriptorProto) -> bool:
    return field.type in SCALAR_TYPE_MAP and field.label != FD.LABEL_REPEATED


def scalar_schema(field: d2.FieldDescriptorProto) -> Schema:
    try:
        type_name, fmt = SCALAR_TYPE_MAP[field.type]
    except KeyError:
        raise UnsupportedFieldKindError(
            f"Field '{field.name}' has unsupported kind "
            f"{FD.Type.Name(field.type) if field.type else 'TYPE_UNSET'}"
        ) from None
    return Schema(type=type_name, format=fmt)


class SchemaConverter:
    """Turns registered messages and enums into component schemas.

    Converted schemas are stored in ``schemas`` under their fully-qualified
    name. Titles currently being built are tracked in an in-progress set so
    recursive and mutually recursive messages resolve to a ``$ref`` instead
    of being converted again.
    """

    def __init__(
        self,
        registry: TypeRegistry,
        schemas: Dict[str, Schema],
        source_info: Optional[Mapping[str, SourceInfoIndex]] = None,
        json_names: bool = True,
    ):
        self._registry = registry
        self._schemas = schemas
        self._source_info = source_info or {}
        self._json_names = json_names
        self._in_progress: Set[str] = set()

    def convert_message(self, message: RegisteredType) -> Schema:
        title = message.full_name
        existing = self._schemas.get(title)
        if existing is not None:
            return existing

        self._in_progress.add(title)
        try:
            schema = self._build_message_schema(message)
        finally:
            self._in_progress.discard(title)
        self._schemas[title] = schema
        return schema

    def convert_enum(self, enum: RegisteredType) -> Schema:
        title = enum.full_name
        existing = self._schemas.get(title)
        if existing is not None:
            return existing
        schema = Schema(
            title=title,
            type="string",
            description=self._describe(enum, enum.location),
            enum=[value.name for value in enum.descriptor.value],
        )
        self._schemas[title] = schema
        return schema

    def reference(self, registered: RegisteredType) -> Schema:
        """Return a ``$ref`` to ``registered``, converting it first if needed."""
        title = registered.full_name
        if title not in self._schemas and title not in self._in_progress:
            if registered.is_enum:
                self.convert_enum(registered)
            else:
                self.convert_message(registered)
        return Schema.reference(title)

    def property_name(self, field: d2.FieldDescriptorProto) -> str:
        if self._json_names and field.json_name:
            return field.json_name
        return field.name

    def field_schema(
        self,
        message: RegisteredType,
        field: d2.FieldDescriptorProto,
        description: Optional[str] = None,
    ) -> Schema:
        repeated = field.label == FD.LABEL_REPEATED

        if field.type in REFERENCE_KINDS:
            target = self._registry.resolve(message.full_name, field.type_name)
            if repeated and target.is_map_entry:
                return self._map_schema(target, description)
            item = self.reference(target)
        else:
            item = scalar_schema(field)
            if not repeated:
                item.description = description
                return item

        if repeated:
            return Schema(type="array", items=item, description=description)
        return item

    def _map_schema(self, entry: RegisteredType, description: Optional[str]) -> Schema:
        # The key type is dropped; JSON object keys are always strings.
        value_field = next(f for f in entry.descriptor.field if f.name == "value")
        return Schema(
            type="object",
            description=description,
            additional_properties=self.field_schema(entry, value_field),
        )

    def _build_message_schema(self, message: RegisteredType) -> Schema:
        logger.debug("Converting message %s", message.full_name)
        schema = Schema(
            title=message.full_name,
            type="object",
            description=self._describe(message, message.location),
        )
        # Oneof members are flattened into independent optional properties.
        for i, field in enumerate(message.descriptor.field):
            description = self._describe(message, message.location + (MESSAGE_FIELD, i))
            schema.properties[self.property_name(field)] = self.field_schema(
                message, field, description
            )
        return schema

    def _describe(self, registered: RegisteredType, location) -> Optional[str]:
        index = self._source_info.get(registered.file_name)
        if index is None:
            return None
        return index.lookup(location)
