"""Cross-file namespace tree used to resolve protobuf type references.

Types are stored by simple name in the PackageNode of their enclosing scope.
Every message also owns a child scope node holding its nested messages and
enums, so ``Outer.Inner`` walks the tree the same way protoc resolves it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

from google.protobuf import descriptor_pb2 as d2

from protoc_gen_openapi.errors import UnresolvedPackageError, UnresolvedTypeError
from protoc_gen_openapi.source_info import MESSAGE_ENUM_TYPE, MESSAGE_NESTED_TYPE

logger = logging.getLogger(__name__)

Descriptor = Union[d2.DescriptorProto, d2.EnumDescriptorProto]


@dataclass
class RegisteredType:
    full_name: str
    descriptor: Descriptor
    file_name: str = ""
    location: Tuple[int, ...] = ()

    @property
    def is_enum(self) -> bool:
        return isinstance(self.descriptor, d2.EnumDescriptorProto)

    @property
    def is_map_entry(self) -> bool:
        return not self.is_enum and self.descriptor.options.map_entry


@dataclass
class PackageNode:
    name: str
    children: Dict[str, PackageNode] = field(default_factory=dict)
    types: Dict[str, RegisteredType] = field(default_factory=dict)

    def child(self, name: str) -> PackageNode:
        node = self.children.get(name)
        if node is None:
            node = PackageNode(name=name)
            self.children[name] = node
        return node


def _split(dotted: str) -> List[str]:
    return [seg for seg in dotted.split(".") if seg]


def _join(*parts: str) -> str:
    return ".".join(p for p in parts if p)


class TypeRegistry:
    """Holds every message and enum visible to a single conversion run."""

    def __init__(self):
        self.root = PackageNode(name="")

    def register_type(
        self,
        package_path: str,
        descriptor: Descriptor,
        file_name: str = "",
        location: Tuple[int, ...] = (),
    ) -> RegisteredType:
        node = self.ensure_package(package_path)

        existing = node.types.get(descriptor.name)
        if existing is not None:
            logger.debug("Type %s already registered, skipping", existing.full_name)
            return existing

        registered = RegisteredType(
            full_name=_join(package_path, descriptor.name),
            descriptor=descriptor,
            file_name=file_name,
            location=tuple(location),
        )
        node.types[descriptor.name] = registered
        logger.debug("Registered %s from %s", registered.full_name, file_name or "<unknown>")

        if not registered.is_enum:
            for i, nested in enumerate(descriptor.nested_type):
                self.register_type(
                    registered.full_name, nested, file_name,
                    registered.location + (MESSAGE_NESTED_TYPE, i),
                )
            for i, enum in enumerate(descriptor.enum_type):
                self.register_type(
                    registered.full_name, enum, file_name,
                    registered.location + (MESSAGE_ENUM_TYPE, i),
                )
        return registered

    def ensure_package(self, package_path: str) -> PackageNode:
        node = self.root
        for segment in _split(package_path):
            node = node.child(segment)
        return node

    def lookup_package(self, package_path: str) -> PackageNode:
        node = self._walk(self.root, _split(package_path))
        if node is None:
            raise UnresolvedPackageError(f"No such package found: {package_path}")
        return node

    def resolve(self, scope: str, reference: str) -> RegisteredType:
        """Resolve a type reference the way protoc does.

        ``.a.b.Foo`` is absolute and walked from the root. Anything else is
        tried against ``scope`` and then each enclosing scope up to the root.
        """
        if reference.startswith("."):
            found = self._find(self.root, _split(reference))
            if found is None:
                raise UnresolvedTypeError(f"No such type found: {reference}")
            return found

        segments = _split(reference)
        scope_segments = _split(scope)
        for depth in range(len(scope_segments), -1, -1):
            start = self._walk(self.root, scope_segments[:depth])
            if start is None:
                continue
            found = self._find(start, segments)
            if found is not None:
                return found
        raise UnresolvedPackageError(
            f"Could not resolve '{reference}' from scope '{scope or '.'}'"
        )

    @staticmethod
    def _walk(node: PackageNode, segments: List[str]) -> Optional[PackageNode]:
        for segment in segments:
            node = node.children.get(segment)
            if node is None:
                return None
        return node

    def _find(self, start: PackageNode, segments: List[str]) -> Optional[RegisteredType]:
        if not segments:
            return None
        node = self._walk(start, segments[:-1])
        if node is None:
            return None
        return node.types.get(segments[-1])
