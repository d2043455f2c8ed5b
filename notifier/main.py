"""Command-line entry point for the notification engine."""

from dotenv import load_dotenv
load_dotenv()

import argparse
import json
import signal
import sys
import threading
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from notifier.config import AppConfig, ConfigurationError, EnvironmentConfig, load_config, parse_duration
from notifier.container import Services, build_services
from notifier.domain.exceptions import NotifierError
from notifier.logging import configure_logging, get_logger
from notifier.maintenance import MaintenanceRunner
from notifier.scheduling import FileEventSource
from notifier.status import DEFAULT_DEAD_LETTER_LIMIT

logger = get_logger(__name__, component="cli")


def load_runtime_config(
    config_path: Optional[Path], log_level_override: Optional[str]
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load configuration and resolve the effective log level.

    Log level priority: CLI > LOG_LEVEL > config file > INFO.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config, env_config = load_config(config_path)

    if log_level_override:
        env_config.log_level = log_level_override
    elif env_config.log_level:
        pass
    elif app_config.logging and app_config.logging.level:
        env_config.log_level = app_config.logging.level
    else:
        env_config.log_level = "INFO"
    env_config.log_level = env_config.log_level.upper()

    return app_config, env_config


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="notifier",
        description="Notification engine - scheduled email jobs with delivery tracking",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.yaml or config/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config and environment)",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    serve = commands.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=None, help="Bind address (default from config)")
    serve.add_argument("--port", type=int, default=None, help="Bind port (default from config)")
    serve.add_argument(
        "--with-maintenance",
        action="store_true",
        help="Also run the periodic maintenance tasks in the background",
    )

    schedule = commands.add_parser("schedule", help="Schedule notifications for events")
    schedule.add_argument("--events", type=Path, required=True, help="YAML or JSON file of events")
    schedule.add_argument(
        "--event-id",
        action="append",
        dest="event_ids",
        default=None,
        help="Only schedule this event (repeatable; default: all upcoming)",
    )
    schedule.add_argument("--force", action="store_true", help="Replace existing batches")
    schedule.add_argument("--dry-run", action="store_true", help="Report without scheduling")
    schedule.add_argument("--created-by", default=None, help="User id recorded on the batches")

    commands.add_parser("recalculate", help="Recalculate all active batches once")
    commands.add_parser("reconcile", help="Publish orphaned pending jobs once")
    commands.add_parser("maintain", help="Run recalculate and reconcile periodically")

    dead_letters = commands.add_parser("dead-letters", help="Print recent dead-letter entries")
    dead_letters.add_argument(
        "--limit", type=int, default=DEFAULT_DEAD_LETTER_LIMIT, help="Maximum entries to print"
    )

    return parser


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def cmd_serve(services: Services, args: argparse.Namespace) -> int:
    import uvicorn

    from notifier.api import create_app

    host = args.host or services.app_config.server.host
    port = args.port or services.app_config.server.port

    runner = _build_runner(services) if args.with_maintenance else None
    if runner:
        runner.start()

    logger.info(
        f"Serving on {host}:{port}",
        extra={"event": "service.serve.starting", "host": host, "port": port},
    )
    try:
        uvicorn.run(create_app(services), host=host, port=port, log_config=None)
    finally:
        if runner:
            runner.shutdown(wait=False)
    return 0


def cmd_schedule(services: Services, args: argparse.Namespace) -> int:
    services.bulk_scheduler.source = FileEventSource(args.events)
    result = services.bulk_scheduler.schedule_events(
        event_ids=args.event_ids,
        force=args.force,
        dry_run=args.dry_run,
        created_by=args.created_by,
    )
    _print_json(result.as_dict())
    return 0 if result.success else 1


def cmd_recalculate(services: Services, args: argparse.Namespace) -> int:
    result = services.maintenance.recalculate()
    _print_json({**result.as_dict(), "changedBatchIds": result.changed})
    return 0 if not result.errors else 1


def cmd_reconcile(services: Services, args: argparse.Namespace) -> int:
    result = services.maintenance.reconcile()
    _print_json(result.as_dict())
    return 0 if result.failed == 0 else 1


def cmd_dead_letters(services: Services, args: argparse.Namespace) -> int:
    entries = services.status.dead_letters(args.limit)
    _print_json({"count": len(entries), "deadLetterQueue": entries})
    return 0


def _build_runner(services: Services, shutdown_event: Optional[threading.Event] = None) -> MaintenanceRunner:
    maintenance = services.app_config.maintenance
    return MaintenanceRunner(
        services.maintenance,
        recalculate_interval=parse_duration(maintenance.recalculate_interval),
        reconcile_interval=parse_duration(maintenance.reconcile_interval),
        shutdown_event=shutdown_event,
    )


def cmd_maintain(services: Services, args: argparse.Namespace) -> int:
    shutdown_event = threading.Event()
    runner = _build_runner(services, shutdown_event)

    def signal_handler(signum, frame):
        logger.info(
            f"Received signal {signum}, shutting down",
            extra={"event": "service.signal_received", "signal": signum},
        )
        runner.shutdown(wait=False)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    runner.start()
    logger.info(
        "Maintenance runner started. Press Ctrl+C to stop",
        extra={"event": "service.daemon_mode.started"},
    )

    try:
        shutdown_event.wait()
    except KeyboardInterrupt:
        logger.info(
            "Keyboard interrupt received, shutting down",
            extra={"event": "service.keyboard_interrupt"},
        )
        runner.shutdown(wait=False)
    return 0


COMMANDS: Dict[str, Callable[[Services, argparse.Namespace], int]] = {
    "serve": cmd_serve,
    "schedule": cmd_schedule,
    "recalculate": cmd_recalculate,
    "reconcile": cmd_reconcile,
    "maintain": cmd_maintain,
    "dead-letters": cmd_dead_letters,
}


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    start_time = time.time()
    args = build_parser().parse_args(argv)

    services = None
    try:
        app_config, env_config = load_runtime_config(args.config, args.log_level)
        configure_logging(
            level=env_config.log_level,
            format_type=app_config.logging.format,
            environment=env_config.environment,
        )

        logger.info(
            f"Notification engine starting: {args.command}",
            extra={
                "event": "service.starting",
                "command": args.command,
                "log_level": env_config.log_level,
            },
        )

        services = build_services(app_config, env_config)
        return COMMANDS[args.command](services, args)

    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        logger.error(
            f"Configuration error: {e.message}",
            extra={"event": "config.error", "error_type": "ConfigurationError"},
        )
        return 1
    except NotifierError as e:
        print(f"Error: {e}", file=sys.stderr)
        logger.error(
            f"Command {args.command} failed: {e}",
            extra={"event": "service.command.failed", "error_type": type(e).__name__},
        )
        return 1
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        return 0
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error",
            extra={"event": "service.fatal", "error_type": type(e).__name__},
            exc_info=True,
        )
        return 1
    finally:
        if services is not None:
            services.close()
            logger.info(
                "Notification engine stopped",
                extra={
                    "event": "service.stopping",
                    "uptime_seconds": round(time.time() - start_time, 2),
                },
            )


if __name__ == "__main__":
    sys.exit(main())
