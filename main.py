#!/usr/bin/env python3
"""
TestFlight Manager - Entry Point

Bulk maintenance of TestFlight beta testers through the App Store Connect API.
Removes testers who have been inactive for a period, or who are not assigned
to any beta group.

Usage:
    python main.py <command> [options]

Examples:
    python main.py login --issuer-id <id> --key-id <id> --private-key-path AuthKey.p8
    python main.py purge --app-id 123 --beta-group-id abc --period 90d --dry-run
    python main.py remove-ungrouped -i
"""

import argparse
import asyncio
import locale
import sys
from pathlib import Path

# Ensure project root is in path
sys.path.insert(0, str(Path(__file__).parent))

from account import AccountManager
from api_client import AppStoreConnectClient
from errors import TestFlightManagerError
from prompts import Console, PurgeOptions, UngroupedOptions
from storage import ConfigurationStore, CredentialsStore
from testflight_cleaner import TestFlightCleaner
from utils import InactivityWindow, OutputFormat, RemovalScope, print_banner, setup_logging


def parse_arguments(argv=None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="testflight-manager",
        description="TestFlight Manager - Manage TestFlight beta testers via App Store Connect",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s login --issuer-id 57246542-96fe --key-id 2X9R4HXF34 --private-key-path ~/AuthKey.p8
      Verify and save App Store Connect API credentials

  %(prog)s purge --app-id 1234567890 --beta-group-id abcd-1234 --period 90d --dry-run
      List testers with no sessions in the last 90 days without removing them

  %(prog)s remove-ungrouped --interactive
      Pick an app and remove testers that belong to no beta group

Safety Notes:
  - Always start with --dry-run to review the testers that would be removed
  - Interactive runs ask for confirmation before anything is removed
  - Credentials are stored in ~/.config/testflight-mgmt/
        """,
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable detailed debug logging",
    )

    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 1.0.0",
    )

    subparsers = parser.add_subparsers(dest="command", metavar="<command>")
    subparsers.required = True

    # login
    login = subparsers.add_parser(
        "login", help="Authenticate with App Store Connect using an API key",
    )
    login.add_argument("--issuer-id", help="App Store Connect API issuer identifier")
    login.add_argument("--key-id", help="App Store Connect API key identifier")
    login.add_argument("--private-key-path", help="Path to the .p8 private key file")
    login.add_argument(
        "--skip-verification",
        action="store_true",
        help="Skip the API call used to verify the credentials",
    )

    # config
    subparsers.add_parser(
        "config", help="Interactively configure default values for the login command",
    )

    # purge
    purge = subparsers.add_parser(
        "purge", help="Remove inactive testers from a TestFlight beta group",
    )
    purge.add_argument("--app-id", help="Identifier of the app that owns the beta group")
    purge.add_argument("--beta-group-id", help="Identifier of the beta group to purge")
    purge.add_argument(
        "--period",
        choices=[window.flag for window in InactivityWindow],
        help="Inactivity window (default: 30d)",
    )
    purge.add_argument(
        "--removal-scope",
        choices=[scope.flag for scope in RemovalScope],
        help="'testflight' removes testers entirely (default), 'group-only' removes them from the beta group only",
    )
    _add_run_arguments(purge, "inactive")

    # remove-ungrouped
    ungrouped = subparsers.add_parser(
        "remove-ungrouped", help="Remove beta testers that are not assigned to any beta group",
    )
    ungrouped.add_argument("--app-id", help="Identifier of the app")
    _add_run_arguments(ungrouped, "ungrouped")

    return parser.parse_args(argv)


def _add_run_arguments(parser: argparse.ArgumentParser, kind: str) -> None:
    parser.add_argument(
        "--dry-run",
        "-n",
        action="store_true",
        help=f"List {kind} testers without removing them",
    )
    parser.add_argument(
        "--interactive",
        "-i",
        action="store_true",
        help="Prompt to select options when not provided",
    )
    parser.add_argument(
        "--output-path",
        help=f"Write {kind} tester details to this file instead of listing them",
    )
    parser.add_argument(
        "--output-format",
        choices=[fmt.value for fmt in OutputFormat],
        default=OutputFormat.TEXT.value,
        help="Output file format (default: text)",
    )


async def main_async(args: argparse.Namespace) -> int:
    """
    Async main function.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    logger = setup_logging(verbose=args.verbose)
    logger.debug(f"Command: {args.command}")

    console = Console()
    credentials_store = CredentialsStore()

    try:
        if args.command == "login":
            await AccountManager(
                console, credentials_store, ConfigurationStore(), AppStoreConnectClient
            ).login(
                issuer_id=args.issuer_id,
                key_id=args.key_id,
                private_key_path=args.private_key_path,
                skip_verification=args.skip_verification,
            )
            return 0

        if args.command == "config":
            AccountManager(
                console, credentials_store, ConfigurationStore(), AppStoreConnectClient
            ).configure()
            return 0

        print_banner()
        cleaner = TestFlightCleaner(console, credentials_store.load, AppStoreConnectClient)

        if args.command == "purge":
            report = await cleaner.purge(PurgeOptions(
                app_id=args.app_id,
                beta_group_id=args.beta_group_id,
                window=InactivityWindow.from_flag(args.period) if args.period else None,
                dry_run=args.dry_run,
                interactive=args.interactive,
                output_path=args.output_path,
                output_format=OutputFormat(args.output_format),
                removal_scope=RemovalScope.from_flag(args.removal_scope) if args.removal_scope else None,
            ))
        else:
            report = await cleaner.remove_ungrouped(UngroupedOptions(
                app_id=args.app_id,
                dry_run=args.dry_run,
                interactive=args.interactive,
                output_path=args.output_path,
                output_format=OutputFormat(args.output_format),
            ))

        logger.debug(
            f"Run finished: {report.testers_identified} identified, "
            f"{report.successfully_removed} removed, dry run: {report.dry_run}"
        )
        return 0

    except TestFlightManagerError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    except Exception as e:
        logger.error(f"Fatal error: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


def main():
    """Main entry point."""
    args = parse_arguments()

    # Display names are collated with the user's locale
    try:
        locale.setlocale(locale.LC_COLLATE, "")
    except locale.Error:
        pass

    try:
        exit_code = asyncio.run(main_async(args))
        sys.exit(exit_code)
    except KeyboardInterrupt:
        print("\n\nOperation cancelled by user", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    main()
