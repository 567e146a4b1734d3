"""podwatcher Command Line Interface.

Selects the terminal action (delete the pod, or stop the Istio sidecar),
applies command line overrides on top of the environment settings and runs
the controller.
"""

from __future__ import annotations

import argparse
import sys
from typing import TYPE_CHECKING

from podwatcher.config.settings import get_settings
from podwatcher.core.policy import parse_condition, parse_container_list
from podwatcher.errors import PolicyError
from podwatcher.models import DeletePod, Policy, StopIstio
from podwatcher.observability.logging import configure_logging, get_logger
from podwatcher.version import __version__

if TYPE_CHECKING:
    from argparse import Namespace

    from podwatcher.config.settings import Settings
    from podwatcher.models import Action


log = get_logger(__name__)

EXIT_USAGE = 2


def _add_watch_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--critical-containers",
        type=str,
        default=None,
        help="Comma separated critical containers (overrides the pod annotation)",
    )
    parser.add_argument(
        "--condition",
        choices=["any", "all"],
        default=None,
        help="Stop condition for --critical-containers (default: any)",
    )
    parser.add_argument(
        "--grace-seconds",
        type=float,
        default=None,
        help="How long the critical containers must stay stopped before acting",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=None,
        help="Seconds between two pod status fetches",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="podwatcher",
        description="podwatcher - tear down sidecars once the critical containers have stopped",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  podwatcher delete-pod                          Delete this pod when its critical containers stop
  podwatcher delete-pod --delete-owner-job       Also delete the Job that owns the pod
  podwatcher stop-istio                          Shut down istio-proxy instead
  podwatcher stop-istio --critical-containers worker --condition all
        """,
    )

    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    logging_group = parser.add_argument_group("logging")
    verbosity = logging_group.add_mutually_exclusive_group()
    verbosity.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v for debug logging)",
    )
    verbosity.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Enable all logging",
    )
    verbosity.add_argument(
        "-e",
        "--error",
        action="store_true",
        help="Disable everything but error logging",
    )

    logging_group.add_argument(
        "--log-format",
        choices=["json", "console"],
        default=None,
        help="Log output format (default from settings)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    delete_parser = subparsers.add_parser("delete-pod", help="Delete the pod once critical containers stop")
    _add_watch_options(delete_parser)
    delete_parser.add_argument(
        "--delete-owner-job",
        action="store_true",
        default=None,
        help="Delete the Job controlling the pod before deleting the pod",
    )

    istio_parser = subparsers.add_parser("stop-istio", help="Stop the Istio sidecar once critical containers stop")
    _add_watch_options(istio_parser)
    istio_parser.add_argument(
        "--istio-container-name",
        type=str,
        default=None,
        help="Name of the Istio container inside the pod (default: istio-proxy)",
    )

    return parser


def apply_overrides(settings: Settings, args: Namespace) -> Settings:
    """Return a copy of ``settings`` with command line values applied."""
    watcher: dict[str, object] = {}
    if args.grace_seconds is not None:
        watcher["grace_seconds"] = args.grace_seconds
    if args.poll_interval is not None:
        watcher["poll_interval_seconds"] = args.poll_interval

    update: dict[str, object] = {}
    if watcher:
        update["watcher"] = settings.watcher.model_copy(update=watcher)
    if getattr(args, "delete_owner_job", None):
        update["action"] = settings.action.model_copy(update={"delete_owner_job": True})
    if getattr(args, "istio_container_name", None):
        update["istio"] = settings.istio.model_copy(update={"container_name": args.istio_container_name})
    if args.log_format is not None:
        update["observability"] = settings.observability.model_copy(update={"log_format": args.log_format})

    return settings.model_copy(update=update) if update else settings


def policy_from_args(args: Namespace) -> Policy | None:
    """Explicit policy from ``--critical-containers``, if given.

    Raises:
        PolicyError: If the option is present but names no container.
    """
    if args.critical_containers is None:
        if args.condition is not None:
            log.warning("condition_ignored_without_critical_containers", condition=args.condition)
        return None

    containers = parse_container_list(args.critical_containers)
    if not containers:
        msg = "--critical-containers lists no containers"
        raise PolicyError(msg)
    return Policy(critical_containers=containers, mode=parse_condition(args.condition))


def action_from_args(args: Namespace, settings: Settings) -> Action:
    if args.command == "stop-istio":
        return StopIstio(target_container_name=settings.istio.container_name)
    return DeletePod()


def log_level_from_args(args: Namespace, settings: Settings) -> str:
    """Logging level after the -v/-d/-e flags (mutually exclusive)."""
    if args.debug or args.verbose:
        return "DEBUG"
    if args.error:
        return "ERROR"
    return settings.observability.log_level


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_USAGE

    settings = apply_overrides(get_settings(), args)
    level = log_level_from_args(args, settings)
    configure_logging(level=level, format_type=settings.observability.log_format)

    try:
        policy = policy_from_args(args)
    except PolicyError as e:
        log.error("invalid_policy", error=e.to_dict())
        print(f"Error: {e.message}", file=sys.stderr)
        return EXIT_USAGE

    from podwatcher.runtime import run

    return run(settings, action_from_args(args, settings), policy)


if __name__ == "__main__":
    sys.exit(main())
