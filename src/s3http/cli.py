"""CLI entry point for s3http."""

import argparse
import logging
import sys
from pathlib import Path

from s3http.errors import ConfigError, S3HttpError
from s3http.logging_config import configure_logging
from s3http.service import ServiceContext, initialize

# Chunk size for streaming local files into a handle.
_CHUNK_SIZE = 8 * 1024 * 1024

EXIT_OK = 0
EXIT_CONFIG = 1
EXIT_STORAGE = 2


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].

    Returns:
        Parsed argument namespace.
    """
    parser = argparse.ArgumentParser(
        prog="s3http",
        description="s3http - read and write objects through configured S3/HTTP exports",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("s3http.yaml"),
        help="Path to YAML configuration file (default: s3http.yaml)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config)",
    )
    parser.add_argument(
        "--log-format",
        type=str,
        default=None,
        choices=["text", "json"],
        help="Log format: 'text' (human-readable) or 'json' (structured)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    stat = sub.add_parser("stat", help="Print size and modification time of an object")
    stat.add_argument("path", help="Object path, e.g. /data/file.bin")

    cat = sub.add_parser("cat", help="Write object bytes to stdout")
    cat.add_argument("path")
    cat.add_argument("--offset", type=int, default=0, help="Byte offset to start at")
    cat.add_argument(
        "--length", type=int, default=None, help="Bytes to read (default: to end of object)"
    )

    put = sub.add_parser("put", help="Upload a local file to an object path")
    put.add_argument("local", type=Path, help="Local file to upload")
    put.add_argument("path")
    put.add_argument(
        "--single-shot",
        action="store_true",
        help="Send the file in one PUT instead of a multipart upload",
    )
    return parser.parse_args(argv)


def _stat(context: ServiceContext, args: argparse.Namespace) -> None:
    with context.open(args.path) as handle:
        info = handle.stat()
    print(f"{args.path}\tsize={info.size}\tmtime={info.last_modified}")


def _cat(context: ServiceContext, args: argparse.Namespace) -> None:
    with context.open(args.path) as handle:
        remaining = args.length if args.length is not None else handle.stat().size - args.offset
        offset = args.offset
        while remaining > 0:
            chunk = handle.read(offset, min(remaining, _CHUNK_SIZE))
            if not chunk:
                break
            sys.stdout.buffer.write(chunk)
            offset += len(chunk)
            remaining -= len(chunk)
    sys.stdout.buffer.flush()


def _put(context: ServiceContext, args: argparse.Namespace) -> None:
    with context.open(args.path, for_write=True) as handle:
        if args.single_shot:
            handle.put(args.local.read_bytes())
            return
        with open(args.local, "rb") as fh:
            while True:
                chunk = fh.read(_CHUNK_SIZE)
                if not chunk:
                    break
                handle.write(chunk)


_COMMANDS = {"stat": _stat, "cat": _cat, "put": _put}


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the s3http CLI.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].

    Returns:
        Process exit status.
    """
    args = parse_args(argv)

    # Use a basic stderr logger for config-loading errors
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)
    logger = logging.getLogger("s3http")

    result = initialize(args.config)
    if not result.ok:
        logger.error("Failed to load config: %s", result.error.message)
        return EXIT_CONFIG
    context = result.context

    configure_logging(
        level=args.log_level or context.config.logging.level,
        fmt=args.log_format or context.config.logging.format,
    )

    try:
        _COMMANDS[args.command](context, args)
    except ConfigError as exc:
        logger.error("%s", exc.message)
        return EXIT_CONFIG
    except S3HttpError as exc:
        logger.error("%s failed: %s", args.command, exc.message)
        return EXIT_STORAGE
    finally:
        context.close()
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
