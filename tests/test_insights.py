from datetime import datetime, timedelta, timezone

from slot_swapper.data_models import Slot, SlotStatus
from slot_swapper.insights import find_conflicts, summarize_schedule

NOW = datetime(2030, 3, 4, 8, 0, tzinfo=timezone.utc)  # a Monday


def make(slot_id, day_offset, hours, status):
    start = NOW + timedelta(days=day_offset, hours=1)
    return Slot(id=slot_id, owner_id=1, title=f"s{slot_id}", start_time=start,
                end_time=start + timedelta(hours=hours), status=status)


def test_summary_counts_and_hours():
    slots = [
        make(1, 0, 2, SlotStatus.BUSY),
        make(2, 0, 1, SlotStatus.SWAPPABLE),
        make(3, 2, 1.5, SlotStatus.SWAP_PENDING),
        make(4, 10, 1, SlotStatus.BUSY),
        make(5, -3, 1, SlotStatus.BUSY),
    ]

    stats = summarize_schedule(slots, NOW)

    assert stats["totalSlots"] == 5
    assert stats["byStatus"] == {"BUSY": 3, "SWAPPABLE": 1, "SWAP_PENDING": 1}
    assert stats["busyHours"] == 4
    assert stats["swappableHours"] == 1
    assert stats["pendingHours"] == 1.5
    assert stats["upcomingThisWeek"] == 3
    assert stats["busiestWeekday"] == "Monday"


def test_summary_of_empty_schedule():
    stats = summarize_schedule([], NOW)
    assert stats["totalSlots"] == 0
    assert stats["busiestWeekday"] is None
    assert stats["byStatus"]["BUSY"] == 0


def test_overlapping_slots_are_reported_once_per_pair():
    standup = Slot(id=1, owner_id=1, title="Standup", start_time=NOW + timedelta(hours=1),
                   end_time=NOW + timedelta(hours=2), status=SlotStatus.BUSY)
    review = Slot(id=2, owner_id=1, title="Review", start_time=NOW + timedelta(hours=1, minutes=30),
                  end_time=NOW + timedelta(hours=2, minutes=30), status=SlotStatus.SWAPPABLE)
    lunch = Slot(id=3, owner_id=1, title="Lunch", start_time=NOW + timedelta(hours=2, minutes=30),
                 end_time=NOW + timedelta(hours=3, minutes=30), status=SlotStatus.BUSY)

    conflicts = find_conflicts([lunch, review, standup])

    assert conflicts == ['"Standup" overlaps "Review" by 30 min on Mon 04 Mar from 09:30 UTC']


def test_nested_slot_conflicts_with_its_container():
    day = make(1, 0, 8, SlotStatus.BUSY)
    inner = make(2, 0, 1, SlotStatus.SWAPPABLE)

    assert len(find_conflicts([day, inner])) == 1
    assert find_conflicts([day]) == []
