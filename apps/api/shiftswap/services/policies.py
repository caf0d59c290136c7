from typing import Optional, Protocol

from shiftswap.models.schedule_entry import ScheduleEntry
from shiftswap.models.swap_request import SwapRequest


class AutoApprovalPolicy(Protocol):
    """Decides whether a pending swap may skip the admin review."""

    name: str

    def should_auto_approve(
        self,
        swap: SwapRequest,
        offered: ScheduleEntry,
        requested: Optional[ScheduleEntry],
    ) -> bool: ...


class NeverAutoApprove:
    name = "never"

    def should_auto_approve(self, swap, offered, requested) -> bool:
        return False


class AlwaysAutoApprove:
    name = "always"

    def should_auto_approve(self, swap, offered, requested) -> bool:
        return requested is not None


class SameWeekAutoApprove:
    """Like-for-like swaps inside one week need no admin."""

    name = "same_week"

    def should_auto_approve(self, swap, offered, requested) -> bool:
        return requested is not None and offered.week_number == requested.week_number


POLICIES = {
    p.name: p
    for p in (NeverAutoApprove, AlwaysAutoApprove, SameWeekAutoApprove)
}


def get_policy(name: str) -> AutoApprovalPolicy:
    try:
        return POLICIES[name.strip().lower()]()
    except KeyError:
        raise ValueError(f"Unknown auto-approve policy {name!r}; expected one of {sorted(POLICIES)}") from None
