# data_models.py
import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class SlotStatus(str, enum.Enum):
    BUSY = "BUSY"
    SWAPPABLE = "SWAPPABLE"
    SWAP_PENDING = "SWAP_PENDING"


class SwapStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


# Statuses an owner may set directly. SWAP_PENDING is only ever reached
# through a proposal.
OWNER_SETTABLE = (SlotStatus.BUSY, SlotStatus.SWAPPABLE)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive values are taken to be UTC already (SQLite drops the offset)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass
class Slot:
    """A single time-bounded calendar entry owned by one user."""
    id: int
    owner_id: int
    title: str
    start_time: datetime
    end_time: datetime
    status: SlotStatus = SlotStatus.BUSY
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record) -> "Slot":
        return cls(
            id=record["id"],
            owner_id=record["owner_id"],
            title=record["title"],
            start_time=as_utc(record["start_time"]),
            end_time=as_utc(record["end_time"]),
            status=SlotStatus(record["status"]),
            description=record["description"],
            created_at=as_utc(record["created_at"]),
            updated_at=as_utc(record["updated_at"]),
        )

    @property
    def duration_minutes(self) -> float:
        return (self.end_time - self.start_time).total_seconds() / 60

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "ownerId": self.owner_id,
            "title": self.title,
            "startTime": self.start_time.isoformat(),
            "endTime": self.end_time.isoformat(),
            "description": self.description,
            "status": self.status.value,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class Owner:
    id: int
    name: str
    email: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "email": self.email}


@dataclass
class MarketplaceSlot:
    """A swappable slot of another user, joined with its owner's display info."""
    slot: Slot
    owner: Owner

    def to_dict(self) -> Dict[str, Any]:
        data = self.slot.to_dict()
        data["owner"] = self.owner.to_dict()
        return data


@dataclass
class SwapRequest:
    id: int
    requester_id: int
    requester_slot_id: Optional[int]
    target_user_id: int
    target_slot_id: Optional[int]
    status: SwapStatus
    created_at: datetime
    resolved_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record) -> "SwapRequest":
        return cls(
            id=record["id"],
            requester_id=record["requester_id"],
            requester_slot_id=record["requester_slot_id"],
            target_user_id=record["target_user_id"],
            target_slot_id=record["target_slot_id"],
            status=SwapStatus(record["status"]),
            created_at=as_utc(record["created_at"]),
            resolved_at=as_utc(record["resolved_at"]),
        )

    @property
    def is_pending(self) -> bool:
        return self.status == SwapStatus.PENDING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "requesterId": self.requester_id,
            "requesterSlotId": self.requester_slot_id,
            "targetUserId": self.target_user_id,
            "targetSlotId": self.target_slot_id,
            "status": self.status.value,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "resolvedAt": self.resolved_at.isoformat() if self.resolved_at else None,
        }


@dataclass
class Suggestion:
    """A ranked candidate swap. Computed per request, never stored."""
    my_slot: Slot
    target: MarketplaceSlot
    score: float
    rationale: str = ""
    components: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mySlotId": self.my_slot.id,
            "targetSlotId": self.target.slot.id,
            "compatibilityScore": round(self.score, 4),
            "reason": self.rationale,
            "mySlot": self.my_slot.to_dict(),
            "targetSlot": self.target.to_dict(),
        }


@dataclass
class SwapEvent:
    """Outbound notification derived from a committed negotiation transition."""
    name: str
    recipient_id: int
    request_id: int
    requester_id: int
    target_user_id: int
    requester_slot_title: str
    target_slot_title: str

    def payload(self) -> Dict[str, Any]:
        return {
            "requestId": self.request_id,
            "requesterId": self.requester_id,
            "targetUserId": self.target_user_id,
            "requesterSlotTitle": self.requester_slot_title,
            "targetSlotTitle": self.target_slot_title,
        }
