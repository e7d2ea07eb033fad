"""
Report rendering for resolved tester lists: console lines, text and CSV files.
"""

import csv
import io
from typing import List

from errors import InvalidInput
from utils import OutputFormat, Tester, atomic_write, display_name

CSV_HEADER = ["tester_id", "first_name", "last_name", "email", "state"]


def console_lines(testers: List[Tester]) -> List[str]:
    return [f" - {display_name(tester)}" for tester in testers]


def render_text(testers: List[Tester], header: str) -> str:
    lines = [header, ""]
    lines.extend(display_name(tester) for tester in testers)
    return "\n".join(lines) + "\n"


def render_csv(testers: List[Tester]) -> str:
    """One row per tester; absent attributes become empty strings."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for tester in testers:
        writer.writerow([
            tester.id,
            tester.first_name or "",
            tester.last_name or "",
            tester.email or "",
            tester.state or "",
        ])
    return buffer.getvalue()


def write_report(
    testers: List[Tester],
    path: str,
    output_format: OutputFormat,
    header: str,
    subject: str,
) -> str:
    """
    Write the tester list to `path` atomically.

    Args:
        testers: testers in the order they should appear
        path: destination file; missing parent directories are created
        output_format: OutputFormat.TEXT or OutputFormat.CSV
        header: first line of a text report, naming the selection criterion
        subject: phrase used in error messages, e.g. "inactive tester"

    Returns:
        The path written
    """
    if output_format is OutputFormat.CSV:
        contents = render_csv(testers)
    else:
        contents = render_text(testers, header)

    try:
        atomic_write(path, contents)
    except OSError as e:
        raise InvalidInput(f"Failed to write {subject} output to {path}: {e}")
    return path
