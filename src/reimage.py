#!/usr/bin/env python3
"""
Reimage or reboot every instance of a hosted cloud service.

Three commands share this module:

* ``reimage``          - reimage instances one at a time
* ``reimage-async``    - request every reimage at once, then wait on the whole roster
* ``reboot-instances`` - reboot instances one at a time, optionally only one of them
"""

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, NoReturn, Optional, Sequence

import requests
import yaml
from pydantic import ValidationError
from rich.logging import RichHandler

from cloud_service_client.client import ServiceManagementClient
from cloud_service_client.errors import CloudServiceError
from cloud_service_client.models import DeploymentSlot, ExecutionMode, ManagementConfig, OperationSummary
from cloud_service_client.orchestrator import CloudServiceManager
from cloud_service_client.utils.config import (
    ConfigNotFoundError,
    build_polling_config,
    get_section,
    load_settings,
)
from cloud_service_client.utils.display import display_error, display_summary

logger = logging.getLogger(__name__)

REIMAGE = "reimage"
REIMAGE_ASYNC = "reimage-async"
REBOOT = "reboot-instances"

DESCRIPTIONS = {
    REIMAGE: "Reimage all instances of a cloud service one at a time.",
    REIMAGE_ASYNC: "Reimage all instances of a cloud service at once.",
    REBOOT: "Reboot instances of a cloud service one at a time.",
}


class UsageArgumentParser(argparse.ArgumentParser):
    """Argument parser that exits with status 1 on bad usage."""

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_parser(command: str) -> UsageArgumentParser:
    parser = UsageArgumentParser(
        prog=command,
        description=DESCRIPTIONS[command],
        usage="%(prog)s <subscription-id> <certificate-filepath> <service-name> [options]",
    )
    parser.add_argument("subscription_id", nargs="?", help="Subscription that owns the service.")
    parser.add_argument(
        "certificate_file",
        nargs="?",
        help="PEM file with the management certificate and private key.",
    )
    parser.add_argument("service_name", nargs="?", help="Name of the hosted cloud service.")
    parser.add_argument(
        "--slot",
        choices=[slot.value for slot in DeploymentSlot],
        default=DeploymentSlot.PRODUCTION.value,
        help="Deployment slot to operate on (default: %(default)s)",
    )
    if command == REBOOT:
        parser.add_argument(
            "--instance",
            default=None,
            help="Only reboot the instance with this name.",
        )
    parser.add_argument(
        "--config",
        type=Path,
        help="Optional YAML settings file with endpoint and polling settings.",
    )
    parser.add_argument(
        "--poll-seconds",
        type=float,
        default=None,
        help="Seconds to wait before every status poll (default: 30)",
    )
    parser.add_argument(
        "--max-polls",
        type=int,
        default=None,
        help="Polls before a wait times out (default: 40)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging, including every status poll.",
    )
    return parser


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True)],
    )


def _is_readable_file(path: Optional[str]) -> bool:
    if not path:
        return False
    candidate = Path(path).expanduser()
    return candidate.is_file() and os.access(candidate, os.R_OK)


def _build_management_config(args: argparse.Namespace, management: Dict[str, Any]) -> ManagementConfig:
    optional = {
        key: management[key]
        for key in ("endpoint", "api_version", "request_timeout")
        if management.get(key) is not None
    }
    return ManagementConfig(
        subscription_id=args.subscription_id,
        certificate_file=args.certificate_file,
        **optional,
    )


def execute(command: str, manager: CloudServiceManager, args: argparse.Namespace) -> OperationSummary:
    """Dispatch one command to the manager."""
    slot = DeploymentSlot(args.slot)
    if command == REIMAGE:
        return manager.reimage(args.service_name, slot, ExecutionMode.SEQUENTIAL)
    if command == REIMAGE_ASYNC:
        return manager.reimage(args.service_name, slot, ExecutionMode.BATCHED)
    return manager.reboot(args.service_name, slot, instance_name=args.instance)


def run(command: str, argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser(command)
    args = parser.parse_args(argv)
    configure_logging(verbose=args.verbose)

    try:
        settings = load_settings(args.config) if args.config else {}
        management = get_section(settings, "management")
        polling = build_polling_config(settings, args.poll_seconds, args.max_polls)
    except (FileNotFoundError, ConfigNotFoundError, yaml.YAMLError, ValidationError) as e:
        display_error(f"Configuration Error: {e}")
        return 1

    if not (args.subscription_id and args.service_name and _is_readable_file(args.certificate_file)):
        parser.print_usage(sys.stderr)
        return 1

    try:
        config = _build_management_config(args, management)
    except ValidationError as e:
        display_error(f"Configuration Error: {e}")
        return 1

    client = ServiceManagementClient(config.subscription_id, str(config.certificate_file), config=config)
    manager = CloudServiceManager(client, polling=polling)

    try:
        summary = execute(command, manager, args)
    except (CloudServiceError, requests.RequestException) as e:
        logger.debug("Orchestration aborted", exc_info=True)
        display_error(f"Error: {e}")
        return 1

    display_summary(summary)
    return 0


def main_reimage(argv: Optional[Sequence[str]] = None) -> int:
    return run(REIMAGE, argv)


def main_reimage_async(argv: Optional[Sequence[str]] = None) -> int:
    return run(REIMAGE_ASYNC, argv)


def main_reboot(argv: Optional[Sequence[str]] = None) -> int:
    return run(REBOOT, argv)


if __name__ == "__main__":
    sys.exit(main_reimage())
