"""
Console interaction and run-context resolution.

Turns partial command-line options into a complete RunContext, prompting
only for what is missing.
"""

import os
from dataclasses import dataclass
from typing import List, Optional, Tuple

from config import TEXT
from errors import InputExhausted, InvalidInput
from utils import (
    App, BetaGroup, InactivityWindow, OutputFormat, RemovalScope, RunContext,
    format_menu, style,
)


# =============================================================================
# CONSOLE
# =============================================================================
class Console:
    """Line-oriented terminal I/O used by every command."""

    def print(self, line: str = "") -> None:
        print(line, flush=True)

    def prompt(self, message: str) -> Optional[str]:
        """Read one line; returns None once input is exhausted."""
        try:
            return input(message)
        except EOFError:
            return None

    def confirm(self, message: str) -> bool:
        response = self.prompt(message)
        if response is None:
            return False
        return response.strip().lower() in ('y', 'yes')


# =============================================================================
# RAW OPTIONS
# =============================================================================
@dataclass(frozen=True)
class PurgeOptions:
    """Command-line values for `purge` before any prompting."""
    app_id: Optional[str] = None
    beta_group_id: Optional[str] = None
    window: Optional[InactivityWindow] = None
    dry_run: bool = False
    interactive: bool = False
    output_path: Optional[str] = None
    output_format: OutputFormat = OutputFormat.TEXT
    removal_scope: Optional[RemovalScope] = None


@dataclass(frozen=True)
class UngroupedOptions:
    """Command-line values for `remove-ungrouped` before any prompting."""
    app_id: Optional[str] = None
    dry_run: bool = False
    interactive: bool = False
    output_path: Optional[str] = None
    output_format: OutputFormat = OutputFormat.TEXT


# =============================================================================
# PROMPT HELPERS
# =============================================================================
def normalize_output_path(raw_path: Optional[str]) -> Optional[str]:
    if raw_path is None:
        return None
    trimmed = raw_path.strip()
    return os.path.expanduser(trimmed) if trimmed else None


def choose_index(console: Console, count: int, default: Optional[int] = None) -> int:
    """
    Loop until the operator enters a number between 1 and `count`.

    Args:
        count: number of menu entries
        default: zero-based index returned for a blank answer or closed input

    Returns:
        Zero-based index of the chosen entry
    """
    suffix = f" [{default + 1}]" if default is not None else ""
    while True:
        answer = console.prompt(f"Enter choice (1-{count}){suffix}: ")
        if answer is None:
            if default is not None:
                return default
            raise InputExhausted()

        answer = answer.strip()
        if not answer and default is not None:
            return default
        try:
            value = int(answer)
        except ValueError:
            continue
        if 1 <= value <= count:
            return value - 1


def select_app(console: Console, apps: List[App], current: Optional[str]) -> str:
    if current:
        if any(app.id == current for app in apps):
            return current
        console.print(f"App ID {current} not found in accessible apps.")
    elif len(apps) == 1:
        return apps[0].id

    console.print("Select an app:")
    rows = []
    for app in apps:
        details = []
        if app.bundle_id and app.bundle_id.strip():
            details.append(style("path", app.bundle_id.strip()))
        details.append(style("metadata", f"id: {app.id}"))
        rows.append((app.name or "(no name)", details))
    for line in format_menu(rows):
        console.print(line)

    return apps[choose_index(console, len(apps))].id


def select_group(console: Console, groups: List[BetaGroup], current: Optional[str]) -> str:
    if current:
        if any(group.id == current for group in groups):
            return current
        console.print(f"Beta group {current} not found for this app.")
    elif len(groups) == 1:
        return groups[0].id

    console.print("Select a beta group:")
    rows = []
    for group in groups:
        details = [style("metadata", f"id: {group.id}")]
        if group.public_link:
            details.append(style("path", group.public_link))
        if group.public_link_id:
            details.append(style("metadata", f"link-id: {group.public_link_id}"))
        rows.append((group.name or "(no name)", details))
    for line in format_menu(rows):
        console.print(line)

    return groups[choose_index(console, len(groups))].id


def select_window(console: Console, current: Optional[InactivityWindow]) -> InactivityWindow:
    if current is not None:
        return current

    options = list(InactivityWindow)
    console.print("Select inactivity window:")
    for index, option in enumerate(options, 1):
        console.print(f" [{index}] {option.label}")
    return options[choose_index(console, len(options))]


def select_removal_scope(console: Console, current: Optional[RemovalScope]) -> RemovalScope:
    if current is not None:
        return current

    options = [RemovalScope.TESTFLIGHT, RemovalScope.GROUP_ONLY]
    console.print("Select removal scope:")
    for index, option in enumerate(options, 1):
        marker = " (default)" if index == 1 else ""
        console.print(f" [{index}] {option.label}{marker}")
    return options[choose_index(console, len(options), default=0)]


def ask_dry_run(console: Console, preselected: bool) -> bool:
    if preselected:
        return True
    response = console.prompt(TEXT["dry_run_prompt"])
    if response is None:
        return True
    return response.strip().lower() in ("", "y", "yes")


def ask_output_destination(
    console: Console,
    current_path: Optional[str],
    current_format: OutputFormat,
    subject: str,
) -> Tuple[Optional[str], OutputFormat]:
    """
    Decide where the tester list goes.

    A supplied path wins. Otherwise the operator is asked whether to write a
    file, then for a non-empty path and a format.
    """
    path = normalize_output_path(current_path)
    if path:
        return path, current_format

    response = console.prompt(f"Write {subject} to a file? (y/N): ")
    if response is None or response.strip().lower() not in ("y", "yes"):
        return None, current_format

    while path is None:
        candidate = console.prompt(TEXT["output_path_prompt"])
        if candidate is None:
            raise InputExhausted()
        path = normalize_output_path(candidate)
        if path is None:
            console.print(TEXT["empty_output_path"])

    output_format = current_format
    while True:
        answer = console.prompt(f"Output format (text/csv) [{output_format.value}]: ")
        if answer is None or not answer.strip():
            break
        try:
            output_format = OutputFormat(answer.strip().lower())
        except ValueError:
            console.print(TEXT["invalid_format"])
            continue
        break

    return path, output_format


# =============================================================================
# CONTEXT RESOLUTION
# =============================================================================
async def resolve_purge_context(options: PurgeOptions, client, console: Console) -> RunContext:
    """Build the purge RunContext, prompting when interactive or an id is missing."""
    should_prompt = options.interactive or not options.app_id or not options.beta_group_id
    if not should_prompt:
        return RunContext(
            app_id=options.app_id,
            beta_group_id=options.beta_group_id,
            window=options.window or InactivityWindow.DAYS_30,
            dry_run=options.dry_run,
            requires_confirmation=False,
            output_path=normalize_output_path(options.output_path),
            output_format=options.output_format,
            removal_scope=options.removal_scope or RemovalScope.TESTFLIGHT,
        )

    apps = await client.fetch_apps()
    if not apps:
        raise InvalidInput("No apps accessible with the current credentials.")
    app_id = select_app(console, apps, options.app_id)

    groups = await client.fetch_beta_groups_for_app(app_id)
    if not groups:
        raise InvalidInput(f"App {app_id} has no beta groups.")
    group_id = select_group(console, groups, options.beta_group_id)

    window = select_window(console, options.window)
    dry_run = ask_dry_run(console, options.dry_run)
    output_path, output_format = ask_output_destination(
        console, options.output_path, options.output_format, "inactive testers"
    )
    removal_scope = select_removal_scope(console, options.removal_scope)

    return RunContext(
        app_id=app_id,
        beta_group_id=group_id,
        window=window,
        dry_run=dry_run,
        requires_confirmation=not dry_run,
        output_path=output_path,
        output_format=output_format,
        removal_scope=removal_scope,
    )


async def resolve_ungrouped_context(options: UngroupedOptions, client, console: Console) -> RunContext:
    """Build the remove-ungrouped RunContext."""
    if not options.interactive and options.app_id:
        return RunContext(
            app_id=options.app_id,
            dry_run=options.dry_run,
            requires_confirmation=False,
            output_path=normalize_output_path(options.output_path),
            output_format=options.output_format,
        )

    apps = await client.fetch_apps()
    if not apps:
        raise InvalidInput("No apps accessible with the current credentials.")
    app_id = select_app(console, apps, options.app_id)

    dry_run = ask_dry_run(console, options.dry_run)
    output_path, output_format = ask_output_destination(
        console, options.output_path, options.output_format, "ungrouped testers"
    )

    return RunContext(
        app_id=app_id,
        dry_run=dry_run,
        requires_confirmation=not dry_run,
        output_path=output_path,
        output_format=output_format,
    )
