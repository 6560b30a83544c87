# insights.py
from collections import Counter
from datetime import datetime, timedelta
from typing import Dict, List

from slot_swapper.data_models import Slot, SlotStatus
from slot_swapper.scorer import overlap_minutes


def summarize_schedule(user_slots: List[Slot], now: datetime) -> Dict:
    """Plain statistics over one user's calendar, fed to the schedule assistant."""
    by_status = Counter(slot.status.value for slot in user_slots)
    hours = Counter()
    for slot in user_slots:
        hours[slot.status.value] += slot.duration_minutes / 60

    horizon = now + timedelta(days=7)
    upcoming = [slot for slot in user_slots if now <= slot.start_time < horizon]

    weekdays = Counter(slot.start_time.strftime("%A") for slot in user_slots)
    busiest = weekdays.most_common(1)[0][0] if weekdays else None

    return {
        "totalSlots": len(user_slots),
        "byStatus": {status.value: by_status.get(status.value, 0) for status in SlotStatus},
        "busyHours": round(hours[SlotStatus.BUSY.value], 2),
        "swappableHours": round(hours[SlotStatus.SWAPPABLE.value], 2),
        "pendingHours": round(hours[SlotStatus.SWAP_PENDING.value], 2),
        "upcomingThisWeek": len(upcoming),
        "busiestWeekday": busiest,
    }


def find_conflicts(user_slots: List[Slot]) -> List[str]:
    """Describe every pair of the user's own slots whose windows overlap.

    Slots that merely touch (one ends when the next starts) are not conflicts.
    """
    ordered = sorted(user_slots, key=lambda slot: (slot.start_time, slot.id))
    conflicts = []
    for i, first in enumerate(ordered):
        for second in ordered[i + 1:]:
            if second.start_time >= first.end_time:
                break
            shared = overlap_minutes(first, second)
            conflicts.append(
                f'"{first.title}" overlaps "{second.title}" by {shared:g} min '
                f'on {second.start_time:%a %d %b} from {second.start_time:%H:%M} UTC'
            )
    return conflicts
