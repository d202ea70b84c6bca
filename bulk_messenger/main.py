"""Main entry point for the bulk messenger service."""

from dotenv import load_dotenv
load_dotenv()

import argparse
import json
import os
import signal
import sys
import threading
import time
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple

from bulk_messenger.config.environment import EnvironmentConfig
from bulk_messenger.config.exceptions import ConfigurationError
from bulk_messenger.config.loader import load_config
from bulk_messenger.config.models import AppConfig
from bulk_messenger.control.api import JobControlAPI
from bulk_messenger.gateway.client import GatewayClient
from bulk_messenger.jobs.runner import JobRunner
from bulk_messenger.jobs.service import BulkJobService
from bulk_messenger.logging import get_logger
from bulk_messenger.logging.config import configure_logging
from bulk_messenger.persistence.database import close_database, init_database
from bulk_messenger.persistence.store import JobStore
from bulk_messenger.scheduler import RecoveryScheduler
from bulk_messenger.seeding import apply_seed, load_seed_file

logger = get_logger(__name__, component="cli")


def load_runtime_config(
    config_path: Optional[Path], log_level_override: Optional[str]
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load configuration and resolve the effective log level.

    Log level priority: CLI > LOG_LEVEL environment variable > config file.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config, env_config = load_config(config_path)

    if log_level_override:
        env_config.log_level = log_level_override
    elif not env_config.log_level:
        env_config.log_level = app_config.logging.level

    return app_config, env_config


def build_services(
    app_config: AppConfig, env_config: EnvironmentConfig
) -> Tuple[JobStore, JobRunner, BulkJobService, JobControlAPI]:
    """Wire the store, gateway client, runner, service and control API."""
    store = JobStore()
    gateway = GatewayClient(
        base_url=app_config.gateway.base_url or "",
        api_key=env_config.gateway_api_key or "",
        timeout=app_config.gateway.timeout_seconds,
        max_retries=app_config.gateway.max_retries,
        backoff_seconds=app_config.gateway.retry_backoff_seconds,
    )
    runner = JobRunner(store=store, gateway=gateway, app_config=app_config)
    service = BulkJobService(store=store, runner=runner, app_config=app_config)
    return store, runner, service, JobControlAPI(service)


def read_request(source: str) -> Dict[str, Any]:
    """
    Read a JSON control envelope from a file, or from stdin when source is '-'.

    Raises:
        ValueError: If the input is not a JSON object
        OSError: If the file cannot be read
    """
    if source == "-":
        raw = sys.stdin.read()
    else:
        with open(source, "r", encoding="utf-8") as f:
            raw = f.read()

    request = json.loads(raw)
    if not isinstance(request, dict):
        raise ValueError("Control request must be a JSON object")
    return request


def run_daemon(
    service: BulkJobService, runner: JobRunner, app_config: AppConfig
) -> None:
    """Run the recovery scheduler until SIGINT/SIGTERM."""
    shutdown_event = threading.Event()

    scheduler = RecoveryScheduler(
        recovery_callable=service.recover_interrupted_jobs,
        interval_seconds=app_config.jobs.recovery_interval_seconds,
        run_immediately=app_config.jobs.recover_on_startup,
        shutdown_event=shutdown_event,
    )

    def signal_handler(signum, frame):
        logger.info(
            f"Received signal {signum}, shutting down",
            extra={"event": "service.signal_received", "signal": signum},
        )
        scheduler.shutdown(wait=False)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    scheduler.start()
    logger.info(
        "Recovery scheduler running. Press Ctrl+C to stop",
        extra={"event": "service.daemon_mode.started"},
    )

    try:
        shutdown_event.wait()
    except KeyboardInterrupt:
        logger.info(
            "Keyboard interrupt received, shutting down",
            extra={"event": "service.keyboard_interrupt"},
        )
        scheduler.shutdown(wait=False)

    running = runner.running_job_ids()
    if running:
        # Workers are daemon threads; their jobs are recovered on next start
        logger.warning(
            f"Stopping with {len(running)} job(s) in progress",
            extra={"event": "service.stopping.jobs_in_progress", "job_ids": running},
        )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Bulk Messenger - paced WhatsApp billing reminders with pause/resume/cancel"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.yaml, then config/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config and environment)",
    )
    parser.add_argument(
        "--seed",
        type=Path,
        default=None,
        help="Load gateway instances and message templates from a YAML/JSON file",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--request",
        metavar="FILE",
        default=None,
        help="Execute one JSON control request from FILE ('-' for stdin) and print the response",
    )
    mode.add_argument(
        "--daemon",
        action="store_true",
        help="Run the interrupted-job recovery scheduler until stopped",
    )
    parser.add_argument(
        "--no-wait",
        action="store_true",
        help="With --request: exit without waiting for started or resumed jobs to finish",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main entry point for the bulk messenger.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    start_time = time.time()
    parser = build_parser()
    args = parser.parse_args(argv)

    if not (args.request or args.daemon or args.seed):
        parser.error("one of --request, --daemon or --seed is required")

    try:
        app_config, env_config = load_runtime_config(args.config, args.log_level)

        # Keep stdout for the JSON response in request mode
        environment = os.environ.get("ENVIRONMENT", "local")
        configure_logging(
            level=env_config.log_level,
            format_type=app_config.logging.format,
            environment=environment,
            stream=sys.stderr if args.request else None,
        )

        logger.info(
            "Bulk Messenger starting",
            extra={
                "event": "service.starting",
                "config_path": str(args.config) if args.config else None,
                "log_level": env_config.log_level,
                "mode": "request" if args.request else "daemon" if args.daemon else "seed",
            },
        )

        init_database(env_config.database_url)
        store, runner, service, api = build_services(app_config, env_config)

        if args.seed:
            apply_seed(store, load_seed_file(args.seed))

        exit_code = 0
        if args.request:
            try:
                request = read_request(args.request)
            except (OSError, ValueError) as e:
                print(f"Invalid request: {e}", file=sys.stderr)
                close_database()
                return 2

            response = api.handle(request)
            print(json.dumps(response.model_dump(mode="json"), ensure_ascii=False, indent=2))
            exit_code = 0 if response.ok else 1

            if not args.no_wait and runner.running_job_ids():
                logger.info(
                    "Waiting for running jobs to finish (Ctrl+C to stop)",
                    extra={"event": "service.waiting_for_jobs"},
                )
                runner.wait()

        elif args.daemon:
            run_daemon(service, runner, app_config)

        close_database()

        uptime_seconds = time.time() - start_time
        logger.info(
            "Bulk Messenger stopped",
            extra={"event": "service.stopping", "uptime_seconds": round(uptime_seconds, 2)},
        )
        return exit_code

    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        logger.error(
            f"Configuration error: {e}",
            extra={"event": "config.error", "error_type": "ConfigurationError"},
        )
        return 1
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        return 0
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error during startup",
            extra={
                "event": "service.startup.failed",
                "error_type": type(e).__name__,
                "error": str(e),
            },
            exc_info=True,
        )
        return 1


if __name__ == "__main__":
    sys.exit(main())
