"""
Group Secretary Bot — Overdue Nudge Policy.

Decides whether an overdue task gets another reminder and at which level.
Level ladder (days counted as whole days since the deadline):

    level 0            → 1   as soon as the task is overdue
    level 1            → 2   after 1 full day
    level N (N >= 2)   → N+1 after (N-1)*3 days

A nudge is always suppressed while the previous one is under 3 hours old.
The caller persists the new level and sends the notice.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

RATE_LIMIT = timedelta(hours=3)


@dataclass(frozen=True)
class NudgeDecision:
    nudge: bool
    next_level: int


def should_nudge(
    due_at: datetime,
    now: datetime,
    nudge_level: int,
    last_nudge_at: datetime | None,
) -> NudgeDecision:
    """Pure decision for one overdue check. Never mutates anything."""
    hold = NudgeDecision(nudge=False, next_level=nudge_level)
    if due_at >= now:
        return hold

    days_overdue = (now - due_at) // timedelta(days=1)

    if nudge_level <= 0:
        escalate = True
    elif nudge_level == 1:
        escalate = days_overdue >= 1
    else:
        escalate = days_overdue >= (nudge_level - 1) * 3

    if not escalate:
        return hold

    # Rate limit is checked last, independent of the ladder
    if last_nudge_at is not None and now - last_nudge_at < RATE_LIMIT:
        return hold

    return NudgeDecision(nudge=True, next_level=max(nudge_level, 0) + 1)
