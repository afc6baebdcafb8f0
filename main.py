#!/usr/bin/env python3

import argparse
import logging
import sys
from typing import Optional

# Import our custom modules
import commands
import config as cfg

LOG_FORMAT = "%(levelname)s: %(message)s"
TRANSCRIPT_FORMAT = "%(asctime)s %(levelname)s: %(message)s"


def art() -> None:
    print(r"""
     _    ____ ____    _        _    ____
    / \  / ___|  _ \  | |      / \  | __ )
   / _ \| |   | |_) | | |     / _ \ |  _ \
  / ___ \ |___|  _ <  | |___ / ___ \| |_) |
 /_/   \_\____|_| \_\ |_____/_/   \_\____/

  container lab provisioner - builds a deliberately vulnerable environment
  """)


def configure_logging(verbose: bool = False, log_file: Optional[str] = None) -> None:
    """
    Configure console logging and the optional transcript file.

    The transcript receives the same records as the console. Secrets are
    never passed to the logger, so they never reach the transcript either.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT, force=True)
    # keep request-level chatter out of the transcript
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    if log_file:
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setFormatter(logging.Formatter(TRANSCRIPT_FORMAT))
        logging.getLogger().addHandler(handler)


def global_args(parser: argparse.ArgumentParser) -> None:
    """Add global arguments to the parser."""
    parser.add_argument("--refresh-token", help="Refresh token ('file' reads the cached token)")
    parser.add_argument("-u", "--username", help="Operator username")
    parser.add_argument("-p", "--password", help="Operator password")
    parser.add_argument("-i", "--interactive", action="store_true", help="Interactive mode")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output including JWT token inspection")
    parser.add_argument("--tenant-id", help="Tenant ID to sign in to")
    parser.add_argument("--log-file", help="Write a transcript of the run to this file")
    parser.add_argument("--manifest", default=cfg.MANIFEST_FILE, help=f"Run manifest path (default: {cfg.MANIFEST_FILE})")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Container lab provisioner")
    subparsers = parser.add_subparsers(dest='command', required=True)

    # deploy command
    deploy_parser = subparsers.add_parser('deploy', help='Provision the lab')
    global_args(deploy_parser)
    deploy_parser.add_argument("--subscription-id", required=True, help="Target subscription ID")
    deploy_parser.add_argument("--template-uri", required=True, help="Public URI of the infrastructure template to deploy")
    deploy_parser.add_argument("--build-context-url", required=True, help="URL of the Dockerfile to build")
    deploy_parser.add_argument("--location", default=cfg.DEFAULT_LOCATION, help=f"Azure region (default: {cfg.DEFAULT_LOCATION})")
    deploy_parser.add_argument("--resource-group", default=cfg.DEFAULT_RESOURCE_GROUP, help=f"Resource group name (default: {cfg.DEFAULT_RESOURCE_GROUP})")
    deploy_parser.add_argument("--vm-name", default=cfg.DEFAULT_VM_NAME, help=f"VM that receives the elevated identity (default: {cfg.DEFAULT_VM_NAME})")
    deploy_parser.add_argument("--vm-resource-group", help="Resource group of the VM (defaults to --resource-group)")
    deploy_parser.add_argument("--template-parameter", action="append", metavar="KEY=VALUE", help="Template parameter, repeatable")

    # teardown command
    teardown_parser = subparsers.add_parser('teardown', help='Remove the identities and resources listed in a run manifest')
    global_args(teardown_parser)
    teardown_parser.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation")

    return parser


def main() -> int:
    """Main entry point for the application."""
    parser = build_parser()

    # Check if help is being requested and show art
    if len(sys.argv) == 1 or '--help' in sys.argv or '-h' in sys.argv:
        art()

    args = parser.parse_args()
    configure_logging(args.verbose, args.log_file)

    if args.command == "deploy":
        return commands.handle_deploy_command(args)
    elif args.command == "teardown":
        return commands.handle_teardown_command(args)

    logging.error(f"Unknown command: {args.command}")
    return 1


def run() -> None:
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        sys.exit(1)


if __name__ == "__main__":
    run()
