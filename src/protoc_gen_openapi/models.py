"""OpenAPI document model emitted by the converter."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

OPENAPI_VERSION = "3.0.0"
SCHEMA_REF_PREFIX = "#/components/schemas/"
JSON_CONTENT_TYPE = "application/json"


@dataclass
class Schema:
    title: Optional[str] = None
    type: Optional[str] = None
    format: Optional[str] = None
    description: Optional[str] = None
    properties: Dict[str, Schema] = field(default_factory=dict)
    enum: List[str] = field(default_factory=list)
    items: Optional[Schema] = None
    additional_properties: Optional[Schema] = None
    ref: Optional[str] = None

    @classmethod
    def reference(cls, title: str) -> Schema:
        return cls(ref=SCHEMA_REF_PREFIX + title)

    def to_dict(self) -> Dict[str, Any]:
        # A $ref must stand alone; OpenAPI 3.0 ignores sibling keys.
        if self.ref is not None:
            return {"$ref": self.ref}
        out: Dict[str, Any] = {}
        if self.title is not None:
            out["title"] = self.title
        if self.type is not None:
            out["type"] = self.type
        if self.format is not None:
            out["format"] = self.format
        if self.description:
            out["description"] = self.description
        if self.properties:
            out["properties"] = {k: v.to_dict() for k, v in self.properties.items()}
        if self.enum:
            out["enum"] = list(self.enum)
        if self.items is not None:
            out["items"] = self.items.to_dict()
        if self.additional_properties is not None:
            out["additionalProperties"] = self.additional_properties.to_dict()
        return out


@dataclass
class Parameter:
    name: str
    location: str  # "path" or "query"
    schema: Schema
    required: bool = False
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "name": self.name,
            "in": self.location,
            "required": self.required,
            "schema": self.schema.to_dict(),
        }
        if self.description:
            out["description"] = self.description
        return out


def _json_content(schema: Schema) -> Dict[str, Any]:
    return {JSON_CONTENT_TYPE: {"schema": schema.to_dict()}}


@dataclass
class Operation:
    operation_id: str
    response: Schema
    summary: str = ""
    description: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    parameters: List[Parameter] = field(default_factory=list)
    request_body: Optional[Schema] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "operationId": self.operation_id,
            "responses": {
                "200": {
                    "description": "Successful response",
                    "content": _json_content(self.response),
                },
            },
        }
        if self.summary:
            out["summary"] = self.summary
        if self.description:
            out["description"] = self.description
        if self.tags:
            out["tags"] = list(self.tags)
        if self.parameters:
            out["parameters"] = [p.to_dict() for p in self.parameters]
        if self.request_body is not None:
            out["requestBody"] = {
                "required": True,
                "content": _json_content(self.request_body),
            }
        return out


@dataclass
class PathItem:
    operations: Dict[str, Operation] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {verb: op.to_dict() for verb, op in self.operations.items()}


@dataclass
class Document:
    title: str
    description: str
    version: str
    server_url: str
    server_description: str
    schemas: Dict[str, Schema] = field(default_factory=dict)
    paths: Dict[str, PathItem] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "openapi": OPENAPI_VERSION,
            "info": {
                "title": self.title,
                "description": self.description,
                "version": self.version,
            },
            "servers": [
                {"url": self.server_url, "description": self.server_description},
            ],
            "paths": {path: item.to_dict() for path, item in self.paths.items()},
            "components": {
                "schemas": {title: s.to_dict() for title, s in self.schemas.items()},
            },
        }
