from __future__ import annotations


class ConverterError(Exception):
    """Base class for every error that aborts a conversion run."""


class InputDecodeError(ConverterError):
    """Raised when the CodeGeneratorRequest payload cannot be decoded."""


class ConfigError(ConverterError):
    """Raised when the plugin parameter string is malformed."""


class UnresolvedPackageError(ConverterError):
    """Raised when a relative reference matches in no enclosing scope."""


class UnresolvedTypeError(ConverterError):
    """Raised when an absolute reference names a missing package or type."""


class UnsupportedFieldKindError(ConverterError):
    """Raised for field kinds or path placeholders that have no schema mapping."""


class PathCollisionError(ConverterError):
    """Raised when two methods bind the same verb on the same path template."""

    def __init__(self, path: str, verb: str, first: str, second: str):
        super().__init__(
            f"Path collision on {verb.upper()} {path}: "
            f"'{second}' conflicts with '{first}'"
        )
        self.path = path
        self.verb = verb
        self.first = first
        self.second = second


class OutputEncodeError(ConverterError):
    """Raised when the finished document cannot be encoded as JSON."""


class FileConversionError(ConverterError):
    """Wraps the first error raised while converting one proto file."""

    def __init__(self, file_name: str, cause: Exception):
        super().__init__(f"Failed to convert {file_name}: {cause}")
        self.file_name = file_name
        self.cause = cause
