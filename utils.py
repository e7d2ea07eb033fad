"""
Utility functions for TestFlight Manager.
Includes the data model, logging, display names and console helpers.
"""

from __future__ import annotations

import logging
import math
import numbers
import os
import sys
import tempfile
from enum import Enum
from typing import List, Optional
from dataclasses import dataclass, field

from config import PATHS


# =============================================================================
# ENUMERATIONS
# =============================================================================
class InactivityWindow(Enum):
    """Lookback period for session metrics: (value, api_token, label)."""
    DAYS_7 = ("7d", "P7D", "7 days")
    DAYS_30 = ("30d", "P30D", "30 days")
    DAYS_90 = ("90d", "P90D", "90 days")
    DAYS_365 = ("365d", "P365D", "365 days")

    def __init__(self, flag: str, api_token: str, label: str):
        self.flag = flag
        self.api_token = api_token
        self.label = label

    @classmethod
    def from_flag(cls, flag: str) -> "InactivityWindow":
        for window in cls:
            if window.flag == flag:
                return window
        raise ValueError(f"Unknown inactivity window: {flag}")


class RemovalScope(Enum):
    """Which delete endpoint a purge uses: (value, label)."""
    TESTFLIGHT = ("testflight", "Remove from TestFlight entirely")
    GROUP_ONLY = ("group-only", "Remove from beta group only")

    def __init__(self, flag: str, label: str):
        self.flag = flag
        self.label = label

    @classmethod
    def from_flag(cls, flag: str) -> "RemovalScope":
        for scope in cls:
            if scope.flag == flag:
                return scope
        raise ValueError(f"Unknown removal scope: {flag}")


class OutputFormat(Enum):
    TEXT = "text"
    CSV = "csv"


# =============================================================================
# DATA CLASSES
# =============================================================================
@dataclass(frozen=True)
class Tester:
    """A TestFlight beta tester."""
    id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    state: Optional[str] = None


@dataclass(frozen=True)
class App:
    id: str
    name: Optional[str] = None
    bundle_id: Optional[str] = None


@dataclass(frozen=True)
class BetaGroup:
    """A beta group; app_id is set only when the API returned the relationship."""
    id: str
    name: Optional[str] = None
    public_link: Optional[str] = None
    public_link_id: Optional[str] = None
    app_id: Optional[str] = None


@dataclass(frozen=True)
class RunContext:
    """Fully resolved parameters for one purge or remove-ungrouped run."""
    app_id: str
    dry_run: bool
    requires_confirmation: bool
    output_path: Optional[str] = None
    output_format: OutputFormat = OutputFormat.TEXT
    beta_group_id: Optional[str] = None
    window: InactivityWindow = InactivityWindow.DAYS_30
    removal_scope: RemovalScope = RemovalScope.TESTFLIGHT


@dataclass
class CleanupReport:
    """Summary of one purge or remove-ungrouped run."""
    app_id: str = ""
    beta_group_id: Optional[str] = None
    total_testers: int = 0
    testers_identified: int = 0
    successfully_removed: int = 0
    dry_run: bool = False
    output_path: Optional[str] = None
    testers: List[Tester] = field(default_factory=list)


# =============================================================================
# LOGGING SETUP
# =============================================================================
def setup_logging(verbose: bool = False) -> logging.Logger:
    """Configure logging with both file and console handlers."""
    level = logging.DEBUG if verbose else logging.INFO

    formatter = logging.Formatter(
        '%(asctime)s | %(levelname)-8s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    logger = logging.getLogger('testflight_manager')
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()

    # Progress goes to stderr so stdout stays clean for command output
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(ColoredFormatter(
        '%(levelname)-8s | %(message)s' if verbose else '%(message)s',
    ))
    logger.addHandler(console_handler)

    try:
        log_dir = os.path.dirname(PATHS["log_file"])
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(PATHS["log_file"], encoding='utf-8')
    except OSError as e:
        logger.warning(f"Could not open log file {PATHS['log_file']}: {e}")
    else:
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


class ColoredFormatter(logging.Formatter):
    """Custom formatter with color support for terminal output."""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m',
    }

    def format(self, record):
        if not colors_enabled(sys.stderr):
            return super().format(record)
        color = self.COLORS.get(record.levelname, self.COLORS['RESET'])
        reset = self.COLORS['RESET']
        return f"{color}{super().format(record)}{reset}"


# =============================================================================
# CONSOLE STYLING
# =============================================================================
STYLES = {
    "emphasis": '\033[1m',
    "muted": '\033[2m',
    "metadata": '\033[90m',
    "name": '\033[36m',
    "path": '\033[34m',
    "reset": '\033[0m',
}


def colors_enabled(stream=None) -> bool:
    """Honor NO_COLOR and only color real terminals."""
    stream = stream or sys.stdout
    if os.environ.get("NO_COLOR"):
        return False
    return hasattr(stream, "isatty") and stream.isatty()


def style(name: str, text: str, enabled: Optional[bool] = None) -> str:
    if enabled is None:
        enabled = colors_enabled()
    if not enabled or name not in STYLES:
        return text
    return f"{STYLES[name]}{text}{STYLES['reset']}"


# =============================================================================
# DISPLAY HELPERS
# =============================================================================
def coerce_session_count(value) -> int:
    """
    Whole sessions in a usage value.

    Integral floats such as 3.0 count as their integer value. Missing,
    non-numeric, non-finite and non-positive values count as zero, as do
    fractions below one.
    """
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        return 0
    if not math.isfinite(value) or value <= 0:
        return 0
    return int(value)


def display_name(tester: Tester) -> str:
    """
    Human-readable tester label.

    Returns "First Last <email>", falling back to the name alone, then the
    email alone, then the raw tester id.
    """
    first = (tester.first_name or "").strip()
    last = (tester.last_name or "").strip()
    email = (tester.email or "").strip()

    full_name = " ".join(part for part in (first, last) if part)

    if full_name and email:
        return f"{full_name} <{email}>"
    if full_name:
        return full_name
    if email:
        return email
    return tester.id


def format_menu(rows: List[tuple[str, List[str]]], enabled: Optional[bool] = None) -> List[str]:
    """
    Render numbered menu lines such as " [ 1] Name   → detail • detail".

    Args:
        rows: (label, details) pairs in display order
        enabled: force colors on or off; defaults to terminal detection

    Returns:
        One line per row
    """
    index_width = len(str(len(rows)))
    name_width = max((len(label) for label, _ in rows), default=0)
    divider = style("muted", " → ", enabled)
    bullet = style("muted", " • ", enabled)

    lines = []
    for index, (label, details) in enumerate(rows, 1):
        number = style("emphasis", str(index).rjust(index_width), enabled)
        index_label = style("metadata", "[", enabled) + number + style("metadata", "]", enabled)
        name = style("name", label.ljust(name_width), enabled)
        suffix = divider + bullet.join(details) if details else ""
        lines.append(f" {index_label} {name}{suffix}")
    return lines


def format_progress(current: int, total: int, width: int = 30) -> str:
    """Create a text-based progress bar."""
    if total == 0:
        return "[" + "=" * width + "] 100%"

    percent = current / total
    filled = int(width * percent)
    bar = "█" * filled + "░" * (width - filled)
    return f"[{bar}] {percent*100:.1f}%"


def atomic_write(path: str, contents: str) -> None:
    """
    Write text so that `path` holds either the old or the new contents.

    Creates the parent directory if needed, writes a temporary file beside
    the destination and renames it into place.
    """
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)

    fd, temp_path = tempfile.mkstemp(
        prefix=f".{os.path.basename(path)}.", suffix=".tmp", dir=directory
    )
    try:
        with os.fdopen(fd, 'w', encoding='utf-8', newline='') as f:
            f.write(contents)
        os.replace(temp_path, path)
    except BaseException:
        if os.path.exists(temp_path):
            os.unlink(temp_path)
        raise


def chunked(items: List[str], size: int):
    """Yield consecutive slices of at most `size` items."""
    for start in range(0, len(items), size):
        yield items[start:start + size]


def print_banner():
    """Display application banner."""
    banner = """
╔═══════════════════════════════════════════════════════════╗
║                  TestFlight Manager                       ║
║     Bulk maintenance for App Store Connect beta testers   ║
╚═══════════════════════════════════════════════════════════╝
"""
    print(banner, file=sys.stderr)
