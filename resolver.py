"""
Tester selection: which testers a purge or remove-ungrouped run acts on.

All functions are pure; calling them twice on the same snapshot yields the
same result.
"""

import locale
from typing import Dict, Iterable, List, Optional, Set

from utils import BetaGroup, Tester, coerce_session_count, display_name


def session_count(usage: Dict[str, int], tester_id: str) -> int:
    """Sessions recorded for a tester; a missing entry counts as zero."""
    return coerce_session_count(usage.get(tester_id, 0))


def find_inactive_testers(testers: List[Tester], usage: Dict[str, int]) -> List[Tester]:
    """Testers with zero sessions in the usage snapshot, in input order."""
    return [tester for tester in testers if session_count(usage, tester.id) == 0]


def collect_grouped_ids(group_rosters: Iterable[List[Tester]]) -> Set[str]:
    grouped: Set[str] = set()
    for roster in group_rosters:
        grouped.update(tester.id for tester in roster)
    return grouped


def find_ungrouped_testers(
    app_testers: List[Tester], group_rosters: Iterable[List[Tester]]
) -> List[Tester]:
    """App testers that appear in none of the group rosters, in input order."""
    grouped = collect_grouped_ids(group_rosters)
    return [tester for tester in app_testers if tester.id not in grouped]


def _sort_key(tester: Tester) -> str:
    return locale.strxfrm(display_name(tester).casefold())


def sort_by_display_name(testers: List[Tester]) -> List[Tester]:
    """Case-insensitive, locale-collated ascending order; ties keep input order."""
    return sorted(testers, key=_sort_key)


def group_belongs_to_app(
    group: BetaGroup, app_id: str, app_groups: Optional[List[BetaGroup]] = None
) -> bool:
    """
    Check that a beta group is owned by the app.

    Uses the group's app relationship when the API returned one; otherwise
    looks for the group in the app's own group list.
    """
    if group.app_id is not None:
        return group.app_id == app_id
    return any(candidate.id == group.id for candidate in app_groups or [])
