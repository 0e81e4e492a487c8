#!/usr/bin/env python3
"""
CLI entry point for carving unallocated space.

Each file given on the command line is treated as one unallocated space
unit of the selected data source.

Usage:
    carve-unalloc --config config/carver.yaml --data-source-id 1 unalloc_0.bin
    carve-unalloc --config config/carver.yaml --data-source-id 1 --workers 2 *.bin
"""

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import List

from carving.config import CarverConfig, CarverSettings, EngineConfig
from carving.core.context import JobContext
from carving.core.events import IngestMessage, MessageType, Notifier
from carving.core.exceptions import CarvingError
from carving.core.logging import configure_logging
from carving.core.models import Unit
from carving.core.storage import CaseStorage
from carving.jobs.accounting import SUMMARY_SUBJECT
from carving.jobs.lifecycle import JobLifecycle
from carving.runner import CarvingTaskExecutor, ConcurrentRunner, RunnerConfig
from carving.storage import create_case_storage
from carving.workspace import WorkspaceManager


def setup_logging(verbose: bool = False, structured: bool = False) -> None:
    """Configure logging."""
    configure_logging(
        level=logging.DEBUG if verbose else logging.INFO,
        structured=structured,
    )


def build_workspace_manager(config: CarverConfig) -> WorkspaceManager:
    """Build the workspace manager from the ``case`` section."""
    case_config = config.get_case_config()
    return WorkspaceManager(
        module_dir=Path(case_config["module_dir"]),
        temp_dir=Path(case_config["temp_dir"]),
    )


def build_units(paths: List[Path], data_source_id: int) -> List[Unit]:
    """Build one unit per input file."""
    return [
        Unit.from_file(path, unit_id=index, data_source_id=data_source_id)
        for index, path in enumerate(paths, start=1)
    ]


def resolve_data_source(storage: CaseStorage, data_source_id: int, name: str) -> int:
    """Return the id of an existing data source, or register a new one."""
    node = storage.get_content(data_source_id)
    if node is not None and node.is_data_source:
        return node.content_id
    logging.getLogger(__name__).info(
        f"Data source {data_source_id} not found, registering '{name}'"
    )
    return storage.add_data_source(name).content_id


def print_messages(message: IngestMessage) -> None:
    """Echo the job summary and any errors to stdout."""
    if message.subject == SUMMARY_SUBJECT:
        print(message.subject)
        print(message.details)
    elif message.message_type == MessageType.ERROR:
        print(f"ERROR: {message.subject}: {message.details}")


def parse_args(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Carve files from unallocated space",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "units",
        nargs="+",
        type=Path,
        metavar="UNIT_FILE",
        help="Unallocated space file(s) to carve",
    )

    parser.add_argument(
        "--config",
        type=Path,
        help="Path to configuration YAML file",
    )

    parser.add_argument(
        "--data-source-id",
        type=int,
        required=True,
        help="Case data source the units belong to",
    )

    parser.add_argument(
        "--data-source-name",
        default="cli-data-source",
        help="Name used if the data source must be registered",
    )

    parser.add_argument(
        "--job-id",
        type=int,
        help="Ingest job id (default: current time in seconds)",
    )

    parser.add_argument(
        "--workers",
        type=int,
        help="Number of worker threads (overrides runner.max_workers)",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose/debug logging",
    )

    parser.add_argument(
        "--structured-logs",
        action="store_true",
        help="Emit JSON log lines",
    )

    return parser.parse_args(argv)


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    setup_logging(verbose=args.verbose, structured=args.structured_logs)
    logger = logging.getLogger(__name__)

    missing = [str(p) for p in args.units if not p.is_file()]
    if missing:
        logger.error(f"Unit files not found: {', '.join(missing)}")
        return 1

    config = CarverConfig(config_path=args.config)
    logger.info("Configuration loaded")

    try:
        settings = CarverSettings.from_dict(config.get_carver_config())
    except CarvingError as e:
        logger.error(f"Invalid carver settings: {e}")
        return 1
    engine = EngineConfig.from_dict(config.get_engine_config())

    storage = None
    try:
        storage = create_case_storage(config.get_storage_config())
        logger.info(f"Case storage: {storage.get_name()}")

        notifier = Notifier()
        notifier.subscribe_messages(print_messages)
        lifecycle = JobLifecycle(build_workspace_manager(config), notifier)

        data_source_id = resolve_data_source(storage, args.data_source_id, args.data_source_name)
        context = JobContext(
            job_id=args.job_id if args.job_id is not None else int(time.time()),
            data_source=storage.get_content(data_source_id),
            process_timeout_seconds=engine.timeout_seconds,
        )

        runner_config = config.get_runner_config()
        runner = ConcurrentRunner(
            executor_factory=lambda: CarvingTaskExecutor(
                settings, engine, lifecycle, storage, notifier
            ),
            config=RunnerConfig(
                max_workers=args.workers or int(runner_config.get("max_workers", 4)),
            ),
        )

        metrics = runner.run(build_units(args.units, data_source_id), context)
        if metrics.start_up_errors:
            for error in metrics.start_up_errors:
                print(f"ERROR: {error}")
            return 1

        logger.info(f"Final metrics: {metrics}")
        return 0

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 1
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        return 1
    finally:
        if storage is not None:
            storage.close()


if __name__ == "__main__":
    sys.exit(main())
