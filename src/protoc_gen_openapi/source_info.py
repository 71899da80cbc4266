from __future__ import annotations

from typing import Dict, Optional, Sequence, Tuple

from google.protobuf import descriptor_pb2 as d2

# Field numbers used in SourceCodeInfo.Location paths (see descriptor.proto).
FILE_MESSAGE_TYPE = 4
FILE_ENUM_TYPE = 5
FILE_SERVICE = 6
MESSAGE_FIELD = 2
MESSAGE_NESTED_TYPE = 3
MESSAGE_ENUM_TYPE = 4
SERVICE_METHOD = 2


class SourceInfoIndex:
    """Leading comments of one proto file, keyed by location path."""

    def __init__(self, comments: Optional[Dict[Tuple[int, ...], str]] = None):
        self._comments = comments or {}

    @classmethod
    def build(cls, file: d2.FileDescriptorProto) -> SourceInfoIndex:
        comments: Dict[Tuple[int, ...], str] = {}
        for location in file.source_code_info.location:
            text = location.leading_comments.strip()
            if text:
                comments[tuple(location.path)] = text
        return cls(comments)

    def lookup(self, location: Sequence[int]) -> Optional[str]:
        return self._comments.get(tuple(location))
