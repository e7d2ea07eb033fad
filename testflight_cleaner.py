"""
TestFlight cleanup - command orchestration.
Sequences credential loading, context resolution, tester selection,
reporting and removal for the purge and remove-ungrouped commands.
"""

import asyncio
import logging
from typing import Callable, List, Optional

import aiohttp

from config import TEXT
from errors import ApiError, ApiFailure, CredentialsNotFound, InvalidInput
from prompts import (
    Console, PurgeOptions, UngroupedOptions,
    resolve_purge_context, resolve_ungrouped_context,
)
from reporting import console_lines, write_report
from resolver import (
    find_inactive_testers, find_ungrouped_testers, group_belongs_to_app,
    sort_by_display_name,
)
from storage import Credentials
from utils import CleanupReport, RemovalScope, RunContext, Tester

TRANSPORT_ERRORS = (ApiError, aiohttp.ClientError, asyncio.TimeoutError)


class TestFlightCleaner:
    """
    Runs the purge and remove-ungrouped workflows.

    Collaborators are injected so tests can substitute fakes:
        console: object with print(), prompt() and confirm()
        load_credentials: callable returning saved Credentials or None
        client_factory: callable taking Credentials and returning an async
            context manager that exposes the AppStoreConnectClient methods

    Usage:
        cleaner = TestFlightCleaner(Console(), CredentialsStore().load, AppStoreConnectClient)
        await cleaner.purge(PurgeOptions(app_id="123", beta_group_id="abc", dry_run=True))
    """

    __test__ = False

    def __init__(
        self,
        console: Console,
        load_credentials: Callable[[], Optional[Credentials]],
        client_factory: Callable,
    ):
        self.console = console
        self.load_credentials = load_credentials
        self.client_factory = client_factory
        self.logger = logging.getLogger('testflight_manager')

    def _require_credentials(self, action: str) -> Credentials:
        credentials = self.load_credentials()
        if credentials is None:
            raise CredentialsNotFound(
                "No saved credentials. " + TEXT["login_hint"].format(action=action)
            )
        return credentials

    # -------------------------------------------------------------------------
    # purge
    # -------------------------------------------------------------------------
    async def purge(self, options: PurgeOptions) -> CleanupReport:
        """
        Remove testers with no sessions in the inactivity window.

        Returns:
            CleanupReport describing what was found and removed
        """
        credentials = self._require_credentials("purging testers")
        try:
            async with self.client_factory(credentials) as client:
                return await self._purge(client, options)
        except TRANSPORT_ERRORS as e:
            raise ApiFailure.wrap(e) from e

    async def _purge(self, client, options: PurgeOptions) -> CleanupReport:
        context = await resolve_purge_context(options, client, self.console)
        group_id = context.beta_group_id
        report = CleanupReport(app_id=context.app_id, beta_group_id=group_id, dry_run=context.dry_run)

        group = await client.fetch_beta_group(group_id)
        app_groups = None
        if group.app_id is None:
            app_groups = await client.fetch_beta_groups_for_app(context.app_id)
        if not group_belongs_to_app(group, context.app_id, app_groups):
            raise InvalidInput(f"Beta group {group_id} does not belong to app {context.app_id}.")

        testers = await client.fetch_beta_testers(group_id)
        report.total_testers = len(testers)
        if not testers:
            self.console.print(f"No testers found in beta group {group_id}.")
            return report

        usage = await client.fetch_usage(group_id, context.window)
        inactive = sort_by_display_name(find_inactive_testers(testers, usage))
        report.testers = inactive
        report.testers_identified = len(inactive)
        self.logger.debug(f"{len(inactive)} of {len(testers)} tester(s) inactive in group {group_id}")

        if not inactive:
            self.console.print(
                f"No inactive testers found for beta group {group_id} "
                f"in the last {context.window.label}."
            )
            return report

        self.console.print(
            f"Found {len(inactive)} inactive tester(s) with no sessions "
            f"in the last {context.window.label}:"
        )
        report.output_path = self._show_testers(
            inactive,
            context,
            header=f"Inactive testers (no sessions in last {context.window.label})",
            subject="inactive tester",
        )

        report.dry_run = self._should_dry_run(context)
        if report.dry_run:
            self._print_dry_run_summary([
                f" - Total testers: {len(testers)}",
                f" - Inactive testers: {len(inactive)}",
            ])
            return report

        tester_ids = [tester.id for tester in inactive]
        if context.removal_scope is RemovalScope.GROUP_ONLY:
            await client.remove_testers_from_group(group_id, tester_ids)
            self.console.print(f"Removed {len(tester_ids)} tester(s) from beta group {group_id}.")
        else:
            await client.remove_testers_from_testflight(tester_ids)
            self.console.print(f"Removed {len(tester_ids)} tester(s) from TestFlight.")
        report.successfully_removed = len(tester_ids)
        return report

    # -------------------------------------------------------------------------
    # remove-ungrouped
    # -------------------------------------------------------------------------
    async def remove_ungrouped(self, options: UngroupedOptions) -> CleanupReport:
        """Remove app testers that are not assigned to any beta group."""
        credentials = self._require_credentials("removing ungrouped testers")
        try:
            async with self.client_factory(credentials) as client:
                return await self._remove_ungrouped(client, options)
        except TRANSPORT_ERRORS as e:
            raise ApiFailure.wrap(e) from e

    async def _remove_ungrouped(self, client, options: UngroupedOptions) -> CleanupReport:
        context = await resolve_ungrouped_context(options, client, self.console)
        app_id = context.app_id
        report = CleanupReport(app_id=app_id, dry_run=context.dry_run)

        app_testers = await client.fetch_app_testers(app_id)
        report.total_testers = len(app_testers)
        if not app_testers:
            self.console.print(f"No testers found for app {app_id}.")
            return report

        groups = await client.fetch_beta_groups_for_app(app_id)
        rosters = []
        for group in groups:
            rosters.append(await client.fetch_beta_group_testers(group.id))
        self.logger.debug(f"Collected rosters for {len(groups)} beta group(s) of app {app_id}")

        ungrouped = sort_by_display_name(find_ungrouped_testers(app_testers, rosters))
        report.testers = ungrouped
        report.testers_identified = len(ungrouped)

        if not ungrouped:
            self.console.print(f"No ungrouped testers found for app {app_id}.")
            return report

        self.console.print(
            f"Found {len(ungrouped)} ungrouped tester(s) not assigned to any beta group:"
        )
        report.output_path = self._show_testers(
            ungrouped,
            context,
            header="Ungrouped testers (not assigned to any beta group)",
            subject="ungrouped tester",
        )

        report.dry_run = self._should_dry_run(context)
        if report.dry_run:
            self._print_dry_run_summary([
                f" - Total app testers: {len(app_testers)}",
                f" - Ungrouped testers: {len(ungrouped)}",
            ])
            return report

        tester_ids = [tester.id for tester in ungrouped]
        await client.remove_app_testers(app_id, tester_ids)
        self.console.print(f"Removed {len(tester_ids)} ungrouped tester(s) from app {app_id}.")
        report.successfully_removed = len(tester_ids)
        return report

    # -------------------------------------------------------------------------
    # shared steps
    # -------------------------------------------------------------------------
    def _show_testers(
        self, testers: List[Tester], context: RunContext, header: str, subject: str
    ) -> Optional[str]:
        """Print the testers, or write them to the output file and print only a count."""
        if context.output_path:
            path = write_report(testers, context.output_path, context.output_format, header, subject)
            self.console.print(f"Wrote {len(testers)} {subject}(s) to {path}.")
            return path

        for line in console_lines(testers):
            self.console.print(line)
        return None

    def _should_dry_run(self, context: RunContext) -> bool:
        if context.requires_confirmation and not self.console.confirm(TEXT["confirm_removal"]):
            self.logger.info("Removal cancelled - continuing in dry-run mode")
            return True
        return context.dry_run

    def _print_dry_run_summary(self, lines: List[str]) -> None:
        self.console.print("Dry run summary:")
        for line in lines:
            self.console.print(line)
        self.console.print("Dry run: no testers were removed.")
