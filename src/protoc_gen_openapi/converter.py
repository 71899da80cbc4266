from __future__ import annotations

import json
import logging
from typing import BinaryIO, Dict, Iterator, Optional

from google.protobuf import descriptor_pb2 as d2
from google.protobuf.compiler import plugin_pb2
from google.protobuf.message import DecodeError

from protoc_gen_openapi.config import Config
from protoc_gen_openapi.errors import (
    ConverterError,
    FileConversionError,
    InputDecodeError,
    OutputEncodeError,
)
from protoc_gen_openapi.models import Document
from protoc_gen_openapi.path_converter import PathConverter, merge_paths
from protoc_gen_openapi.registry import RegisteredType, TypeRegistry
from protoc_gen_openapi.schema_converter import SchemaConverter
from protoc_gen_openapi.source_info import (
    FILE_ENUM_TYPE,
    FILE_MESSAGE_TYPE,
    FILE_SERVICE,
    SourceInfoIndex,
)

logger = logging.getLogger(__name__)

OPENAPI_SPEC_FILE_NAME = "spec.json"


def decode_request(payload: bytes) -> plugin_pb2.CodeGeneratorRequest:
    request = plugin_pb2.CodeGeneratorRequest()
    try:
        request.ParseFromString(payload)
    except DecodeError as e:
        raise InputDecodeError(f"Can't unmarshal input: {e}") from e
    return request


def encode_document(document: Document) -> str:
    try:
        return json.dumps(document.to_dict(), indent=2, sort_keys=True, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise OutputEncodeError(f"Unable to marshal the OpenAPI spec: {e}") from e


def _walk_types(registered: RegisteredType, registry: TypeRegistry) -> Iterator[RegisteredType]:
    """Yield a message followed by its nested enums and non map-entry messages."""
    yield registered
    for enum in registered.descriptor.enum_type:
        yield registry.resolve("", f".{registered.full_name}.{enum.name}")
    for nested in registered.descriptor.nested_type:
        if nested.options.map_entry:
            continue
        child = registry.resolve("", f".{registered.full_name}.{nested.name}")
        yield from _walk_types(child, registry)


class Converter:
    """Converts a protoc CodeGeneratorRequest into an OpenAPI document.

    Pass 1 registers the types of every file in the request, pass 2 converts
    the messages and services of the generation targets only.
    """

    def __init__(self, config: Optional[Config] = None):
        self.config = config or Config()

    def convert_from(self, stream: BinaryIO) -> plugin_pb2.CodeGeneratorResponse:
        logger.debug("Reading code generation request")
        try:
            request = decode_request(stream.read())
        except InputDecodeError as e:
            logger.error("%s", e)
            return plugin_pb2.CodeGeneratorResponse(error=str(e))
        return self.convert(request)

    def convert(self, request: plugin_pb2.CodeGeneratorRequest) -> plugin_pb2.CodeGeneratorResponse:
        response = plugin_pb2.CodeGeneratorResponse(
            supported_features=plugin_pb2.CodeGeneratorResponse.FEATURE_PROTO3_OPTIONAL,
        )
        try:
            config = self.config.with_parameter(request.parameter)
            document = self.run(request, config)
            content = encode_document(document)
        except ConverterError as e:
            logger.error("%s", e)
            response.error = str(e)
            return response

        response.file.add(name=OPENAPI_SPEC_FILE_NAME, content=content)
        return response

    def run(
        self,
        request: plugin_pb2.CodeGeneratorRequest,
        config: Optional[Config] = None,
    ) -> Document:
        config = config or self.config
        registry = TypeRegistry()
        document = Document(
            title=config.title,
            description=config.description,
            version=config.version,
            server_url=config.server_url,
            server_description=config.server_description,
        )
        source_info: Dict[str, SourceInfoIndex] = {}

        # Pass 1: make every type visible before anything is converted.
        for file in request.proto_file:
            if not file.package:
                logger.warning("Proto file (%s) doesn't specify a package", file.name)
                continue
            source_info[file.name] = SourceInfoIndex.build(file)
            try:
                self._register_file(registry, file)
            except ConverterError as e:
                raise FileConversionError(file.name, e) from e

        schema_converter = SchemaConverter(
            registry, document.schemas, source_info, json_names=config.json_names
        )
        path_converter = PathConverter(registry, schema_converter, source_info)

        # Pass 2: generation targets only.
        targets = set(request.file_to_generate)
        for file in request.proto_file:
            if file.name not in targets or not file.package:
                continue
            logger.debug("Converting file (%s)", file.name)
            try:
                self._convert_file(registry, schema_converter, path_converter, document, file)
            except ConverterError as e:
                raise FileConversionError(file.name, e) from e

        return document

    @staticmethod
    def _register_file(registry: TypeRegistry, file: d2.FileDescriptorProto) -> None:
        registry.ensure_package(file.package)
        for i, msg in enumerate(file.message_type):
            logger.debug("Loading a message (%s/%s)", file.package, msg.name)
            registry.register_type(file.package, msg, file.name, (FILE_MESSAGE_TYPE, i))
        for i, enum in enumerate(file.enum_type):
            registry.register_type(file.package, enum, file.name, (FILE_ENUM_TYPE, i))

    @staticmethod
    def _convert_file(
        registry: TypeRegistry,
        schema_converter: SchemaConverter,
        path_converter: PathConverter,
        document: Document,
        file: d2.FileDescriptorProto,
    ) -> None:
        registry.lookup_package(file.package)

        for msg in file.message_type:
            logger.info("Generating component schema for message (%s) from proto file (%s)",
                        msg.name, file.name)
            top = registry.resolve("", f".{file.package}.{msg.name}")
            for registered in _walk_types(top, registry):
                if registered.is_enum:
                    schema_converter.convert_enum(registered)
                else:
                    schema_converter.convert_message(registered)

        for enum in file.enum_type:
            schema_converter.convert_enum(registry.resolve("", f".{file.package}.{enum.name}"))

        for i, svc in enumerate(file.service):
            logger.info("Generating service (%s) from proto file (%s)", svc.name, file.name)
            service_paths = path_converter.convert_service(file, svc, (FILE_SERVICE, i))
            merge_paths(document.paths, service_paths)
