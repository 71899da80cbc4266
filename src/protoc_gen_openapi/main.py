from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from google.protobuf.compiler import plugin_pb2

from protoc_gen_openapi.config import LOG_LEVEL_ENV, configure_logging
from protoc_gen_openapi.converter import Converter

logger = logging.getLogger(__name__)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="protoc-gen-openapi",
        description=(
            "protoc plugin that converts proto messages and services into an "
            "OpenAPI 3 spec (reads a CodeGeneratorRequest on stdin, writes a "
            "CodeGeneratorResponse on stdout)"
        ),
    )
    parser.add_argument(
        "--log-level",
        required=False,
        help=f"Log level for stderr output (default: ${LOG_LEVEL_ENV} or WARNING)",
    )
    args = parser.parse_args(argv)

    configure_logging(args.log_level)

    # protoc expects a response message even when the plugin fails.
    try:
        response = Converter().convert_from(sys.stdin.buffer)
    except Exception as e:
        logger.exception("Unexpected failure while converting the request")
        response = plugin_pb2.CodeGeneratorResponse(
            error=f"protoc-gen-openapi failed: {type(e).__name__}: {e}",
        )
    sys.stdout.buffer.write(response.SerializeToString())
    sys.stdout.buffer.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main())
