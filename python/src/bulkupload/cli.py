"""CLI entry point for bulkupload."""

import argparse
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from bulkupload.config import UploadConfig, check_source, load_config, parse_destination
from bulkupload.errors import BulkUploadError, ConfigurationError, TransferError
from bulkupload.logging_config import configure_logging
from bulkupload.metrics import UploadMetrics
from bulkupload.pipeline import UploadPipeline, UploadResult
from bulkupload.sizes import size_arg
from bulkupload.storage import SCHEMES, ObjectStore, create_store
from bulkupload.worklist import WorkList

logger = logging.getLogger("bulkupload")

# Exit status for invalid invocations (matches argparse).
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser. All tuning flags default to None so that
    values from ``--config`` are only overridden when given explicitly."""
    parser = argparse.ArgumentParser(
        prog="bulkupload",
        description="Upload a directory tree or a list of files to an object store bucket",
    )
    parser.add_argument(
        "dest",
        help="Destination URI, e.g. gs://bucket/prefix",
    )
    parser.add_argument(
        "-n",
        dest="concurrency",
        type=int,
        default=None,
        help="number of concurrent uploads (default: 24)",
    )
    parser.add_argument(
        "-v",
        dest="verbose",
        action="store_true",
        default=None,
        help="show verbose output",
    )
    parser.add_argument(
        "--buf",
        dest="buffer_size",
        type=size_arg,
        default=None,
        help="copy buffer size (default: 512k)",
    )
    parser.add_argument(
        "--chunk",
        dest="chunk_size",
        type=size_arg,
        default=None,
        help="upload chunk size (default: 16m)",
    )
    parser.add_argument(
        "--gc",
        dest="gc_interval",
        type=int,
        default=None,
        help="run a full garbage collection every N uploads (default: 0, never)",
    )
    parser.add_argument(
        "--shuffle",
        action="store_true",
        default=None,
        help="shuffle upload order",
    )
    parser.add_argument(
        "-l",
        dest="list_file",
        default=None,
        help="target list-file ('-' for stdin)",
    )
    parser.add_argument(
        "-d",
        dest="directory",
        default=None,
        help="local directory containing the files to be uploaded",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file",
    )
    parser.add_argument(
        "--backend",
        type=str,
        default=None,
        choices=sorted(SCHEMES),
        help="Object store backend (overrides config, default: gcp)",
    )
    parser.add_argument(
        "--project",
        type=str,
        default=None,
        help="GCP project ID (overrides config)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config, default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        type=str,
        default=None,
        choices=["text", "json"],
        help="Log format: 'text' (human-readable) or 'json' (structured)",
    )
    parser.add_argument(
        "--metrics-file",
        type=str,
        default=None,
        help="Write Prometheus metrics to this textfile when the run ends",
    )
    return parser


def apply_overrides(config: UploadConfig, args: argparse.Namespace) -> None:
    """Copy explicitly given CLI flags onto the loaded configuration.

    Raises:
        ConfigurationError: If an override fails validation.
    """
    try:
        for name in ("concurrency", "buffer_size", "chunk_size", "gc_interval", "shuffle", "verbose"):
            value = getattr(args, name)
            if value is not None:
                setattr(config.transfer, name, value)
        if args.directory is not None:
            config.source.directory = args.directory
        if args.list_file is not None:
            config.source.list_file = args.list_file
        if args.backend is not None:
            config.storage.backend = args.backend
        if args.project is not None:
            config.storage.gcp_project = args.project
        if args.log_level is not None:
            config.logging.level = args.log_level
        if args.log_format is not None:
            config.logging.format = args.log_format
        if args.metrics_file is not None:
            config.metrics.textfile = args.metrics_file
    except ValidationError as exc:
        raise ConfigurationError(f"invalid option: {exc}") from exc


def run(config: UploadConfig, dest: str) -> UploadResult:
    """Validate the configuration and upload everything it selects.

    Args:
        config: The effective configuration.
        dest: The destination URI.

    Returns:
        The batch result.

    Raises:
        ConfigurationError: Before any I/O, if the destination or source
            selection is invalid.
        BulkUploadError: If enumeration or any transfer fails.
    """
    destination = parse_destination(dest, SCHEMES[config.storage.backend])
    check_source(config.source)
    if config.storage.backend == "gcp":
        from bulkupload.storage.gcp import check_chunk_size

        check_chunk_size(config.transfer.chunk_size)

    store: ObjectStore = create_store(config.storage)
    metrics = UploadMetrics()
    try:
        pipeline = UploadPipeline.from_config(config.transfer, store, destination, metrics)
        with WorkList(
            directory=config.source.directory,
            list_file=config.source.list_file,
            prefix=destination.prefix,
            shuffle=config.transfer.shuffle,
        ) as work:
            return pipeline.run(work)
    finally:
        store.close()
        if config.metrics.textfile:
            try:
                metrics.write_textfile(config.metrics.textfile)
            except OSError as exc:
                logger.warning("Failed to write metrics file %s: %s", config.metrics.textfile, exc)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the bulkupload CLI.

    Exits 0 on success, 2 on configuration errors (after printing usage)
    and 1 on any other failure.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    # Use a basic stderr logger for config-loading errors
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)

    try:
        config = load_config(args.config) if args.config is not None else UploadConfig()
        apply_overrides(config, args)
    except FileNotFoundError:
        logger.error("Config file not found: %s", args.config)
        sys.exit(1)
    except ConfigurationError as exc:
        parser.print_usage(sys.stderr)
        logger.error("%s", exc)
        sys.exit(EXIT_USAGE)
    except Exception as exc:
        logger.error("Failed to load config: %s", exc)
        sys.exit(1)

    configure_logging(level=config.logging.level, fmt=config.logging.format)

    try:
        result = run(config, args.dest)
    except ConfigurationError as exc:
        parser.print_usage(sys.stderr)
        logger.error("%s", exc)
        sys.exit(EXIT_USAGE)
    except TransferError as exc:
        logger.error("uploads: %s", exc, extra={"stage": exc.stage, "path": exc.item.path})
        sys.exit(1)
    except BulkUploadError as exc:
        logger.error("uploads: %s", exc)
        sys.exit(1)

    logger.info("uploaded %d files (%d bytes)", result.uploaded, result.bytes)


if __name__ == "__main__":
    main()
