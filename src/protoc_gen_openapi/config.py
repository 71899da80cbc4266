from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, fields, replace
from typing import Optional

from protoc_gen_openapi.errors import ConfigError

LOG_LEVEL_ENV = "PROTOC_GEN_OPENAPI_LOG_LEVEL"
LOG_FORMAT = "protoc-gen-openapi: %(levelname)s %(name)s: %(message)s"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Config:
    """Document skeleton and naming options for one conversion run."""

    title: str = "Micro API"
    description: str = "Generated by protoc-gen-openapi"
    version: str = "1"
    server_url: str = "https://cruft.micro.com"
    server_description: str = "Micro API"
    json_names: bool = True

    def with_parameter(self, parameter: str) -> Config:
        """Apply a protoc plugin parameter string (``k=v,k2=v2``) on top of this config."""
        if not parameter:
            return self

        known = {f.name: f for f in fields(self)}
        overrides = {}
        for item in parameter.split(","):
            item = item.strip()
            if not item:
                continue
            key, sep, value = item.partition("=")
            key, value = key.strip(), value.strip()
            if not sep:
                raise ConfigError(f"Plugin option '{item}' is not of the form key=value")
            if key not in known:
                raise ConfigError(
                    f"Unknown plugin option '{key}'. Known options: {sorted(known)}"
                )
            if known[key].type in (bool, "bool"):
                overrides[key] = _parse_bool(key, value)
            else:
                overrides[key] = value
        return replace(self, **overrides)


def _parse_bool(key: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigError(f"Plugin option '{key}' expects true or false, got '{value}'")


def configure_logging(level: Optional[str] = None) -> None:
    """Send log records to stderr; stdout carries the plugin response."""
    level_name = (level or os.environ.get(LOG_LEVEL_ENV) or "WARNING").upper()
    logging.basicConfig(
        stream=sys.stderr,
        level=getattr(logging, level_name, logging.WARNING),
        format=LOG_FORMAT,
    )
