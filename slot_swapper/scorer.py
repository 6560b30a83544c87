# scorer.py
"""Ranks candidate swaps between a user's swappable slots and the marketplace.

Read-only and advisory: nothing here touches slot or request state, and a
suggested pair still goes through full proposal validation.
"""
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from slot_swapper.data_models import MarketplaceSlot, Slot, Suggestion

TEMPORAL_WEIGHT = 0.7
DURATION_WEIGHT = 0.3
# Hours of separation that halve the score of two disjoint slots.
GAP_HALF_LIFE_HOURS = 24.0
# Each further suggestion from the same counterpart is worth half the previous.
DIVERSITY_DECAY = 0.5

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def overlap_minutes(a: Slot, b: Slot) -> float:
    start = max(a.start_time, b.start_time)
    end = min(a.end_time, b.end_time)
    return max((end - start).total_seconds() / 60, 0.0)


def gap_hours(a: Slot, b: Slot) -> float:
    """Hours between two windows; 0 when they touch or overlap."""
    if a.end_time <= b.start_time:
        return (b.start_time - a.end_time).total_seconds() / 3600
    if b.end_time <= a.start_time:
        return (a.start_time - b.end_time).total_seconds() / 3600
    return 0.0


def temporal_score(a: Slot, b: Slot) -> float:
    """Overlapping windows land in [0.5, 1]; disjoint ones decay below 0.5."""
    shared = overlap_minutes(a, b)
    if shared > 0:
        shorter = min(a.duration_minutes, b.duration_minutes)
        return 0.5 + 0.5 * min(shared / shorter, 1.0)
    return 0.5 * 2 ** (-gap_hours(a, b) / GAP_HALF_LIFE_HOURS)


def duration_similarity(a: Slot, b: Slot) -> float:
    shorter = min(a.duration_minutes, b.duration_minutes)
    longer = max(a.duration_minutes, b.duration_minutes)
    return shorter / longer if longer > 0 else 0.0


def pair_score(mine: Slot, theirs: Slot) -> Tuple[float, Dict[str, float]]:
    temporal = temporal_score(mine, theirs)
    duration = duration_similarity(mine, theirs)
    score = TEMPORAL_WEIGHT * temporal + DURATION_WEIGHT * duration
    return min(max(score, 0.0), 1.0), {"temporal": temporal, "duration": duration}


def default_rationale(mine: Slot, theirs: MarketplaceSlot, components: Dict[str, float]) -> str:
    shared = overlap_minutes(mine, theirs.slot)
    if shared > 0:
        timing = f"overlaps your '{mine.title}' by {int(shared)} minutes"
    else:
        timing = f"is {gap_hours(mine, theirs.slot):.1f} hours from your '{mine.title}'"
    return (
        f"{theirs.owner.name}'s '{theirs.slot.title}' {timing}; "
        f"durations are {int(components['duration'] * 100)}% alike."
    )


def _recency(entry: MarketplaceSlot) -> float:
    created = entry.slot.created_at or _EPOCH
    return created.timestamp()


def rank_suggestions(mine: List[Slot], theirs: List[MarketplaceSlot], limit: Optional[int] = 5) -> List[Suggestion]:
    """Pair each marketplace slot with its best match among `mine`, then pick
    greedily with a per-counterpart decay so one owner cannot fill the list.

    Ties go to the most recently created marketplace slot.
    """
    candidates = []
    for target in theirs:
        best = None
        for own in mine:
            if own.id == target.slot.id or own.owner_id == target.owner.id:
                continue
            score, components = pair_score(own, target.slot)
            if best is None or score > best[0]:
                best = (score, own, components)
        if best is not None:
            candidates.append((best[0], best[1], target, best[2]))

    chosen: List[Suggestion] = []
    picked_per_owner: Dict[int, int] = {}
    while candidates and (limit is None or len(chosen) < limit):
        def adjusted(candidate):
            score, _, target, _ = candidate
            penalty = DIVERSITY_DECAY ** picked_per_owner.get(target.owner.id, 0)
            return (score * penalty, _recency(target))

        candidate = max(candidates, key=adjusted)
        candidates.remove(candidate)
        base, own, target, components = candidate
        final = adjusted(candidate)[0]
        picked_per_owner[target.owner.id] = picked_per_owner.get(target.owner.id, 0) + 1
        components = dict(components, base=base)
        chosen.append(Suggestion(
            my_slot=own,
            target=target,
            score=final,
            rationale=default_rationale(own, target, components),
            components=components,
        ))
    return chosen
