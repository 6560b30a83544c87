# ledger.py
import enum
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import sqlalchemy
from databases import Database

from slot_swapper.data_models import SwapRequest, SwapStatus, as_utc
from slot_swapper.database import database
from slot_swapper.models import slots, swap_requests, users


class LedgerView(str, enum.Enum):
    INCOMING = "incoming"
    OUTGOING = "outgoing"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    ALL = "all"


class SwapRequestLedger:
    """Records proposed exchanges. Holds slot and user ids, never slot data."""

    def __init__(self, db: Database = database):
        self.db = db

    async def get(self, request_id: int, for_update: bool = False) -> Optional[SwapRequest]:
        query = swap_requests.select().where(swap_requests.c.id == request_id)
        if for_update:
            query = query.with_for_update()
        record = await self.db.fetch_one(query)
        return SwapRequest.from_record(record) if record else None

    async def insert(self, requester_id: int, requester_slot_id: int, target_user_id: int, target_slot_id: int) -> SwapRequest:
        query = swap_requests.insert().values(
            requester_id=requester_id,
            requester_slot_id=requester_slot_id,
            target_user_id=target_user_id,
            target_slot_id=target_slot_id,
            status=SwapStatus.PENDING.value,
            created_at=datetime.now(timezone.utc),
        )
        request_id = await self.db.execute(query)
        return await self.get(request_id)

    async def resolve(self, request_id: int, outcome: SwapStatus):
        query = swap_requests.update().where(swap_requests.c.id == request_id).values(
            status=outcome.value,
            resolved_at=datetime.now(timezone.utc),
        )
        await self.db.execute(query)

    async def list_for_user(self, user_id: int, view: LedgerView = LedgerView.ALL) -> List[Dict[str, Any]]:
        """Requests the user is party to, joined with both users and both slots."""
        requester = users.alias("requester")
        target_user = users.alias("target_user")
        requester_slot = slots.alias("requester_slot")
        target_slot = slots.alias("target_slot")

        query = sqlalchemy.select(
            swap_requests,
            requester.c.name.label("requester_name"),
            requester.c.email.label("requester_email"),
            target_user.c.name.label("target_user_name"),
            target_user.c.email.label("target_user_email"),
            requester_slot.c.title.label("requester_slot_title"),
            requester_slot.c.start_time.label("requester_slot_start"),
            requester_slot.c.end_time.label("requester_slot_end"),
            requester_slot.c.status.label("requester_slot_status"),
            target_slot.c.title.label("target_slot_title"),
            target_slot.c.start_time.label("target_slot_start"),
            target_slot.c.end_time.label("target_slot_end"),
            target_slot.c.status.label("target_slot_status"),
        ).select_from(
            swap_requests
            .join(requester, swap_requests.c.requester_id == requester.c.id)
            .join(target_user, swap_requests.c.target_user_id == target_user.c.id)
            .outerjoin(requester_slot, swap_requests.c.requester_slot_id == requester_slot.c.id)
            .outerjoin(target_slot, swap_requests.c.target_slot_id == target_slot.c.id)
        )

        involved = sqlalchemy.or_(
            swap_requests.c.requester_id == user_id,
            swap_requests.c.target_user_id == user_id,
        )
        if view == LedgerView.INCOMING:
            query = query.where(swap_requests.c.target_user_id == user_id)
        elif view == LedgerView.OUTGOING:
            query = query.where(swap_requests.c.requester_id == user_id)
        elif view == LedgerView.ACCEPTED:
            query = query.where(involved, swap_requests.c.status == SwapStatus.ACCEPTED.value)
        elif view == LedgerView.DECLINED:
            query = query.where(involved, swap_requests.c.status == SwapStatus.REJECTED.value)
        else:
            query = query.where(involved)
        query = query.order_by(sqlalchemy.desc(swap_requests.c.created_at), sqlalchemy.desc(swap_requests.c.id))

        return [_request_view(record, user_id) for record in await self.db.fetch_all(query)]


def _slot_summary(record, prefix: str) -> Optional[Dict[str, Any]]:
    if record[f"{prefix}_slot_id"] is None or record[f"{prefix}_slot_title"] is None:
        return None
    return {
        "id": record[f"{prefix}_slot_id"],
        "title": record[f"{prefix}_slot_title"],
        "startTime": as_utc(record[f"{prefix}_slot_start"]).isoformat(),
        "endTime": as_utc(record[f"{prefix}_slot_end"]).isoformat(),
        "status": record[f"{prefix}_slot_status"],
    }


def _request_view(record, user_id: int) -> Dict[str, Any]:
    request = SwapRequest.from_record(record)
    data = request.to_dict()
    data.update({
        "requester": {"id": request.requester_id, "name": record["requester_name"], "email": record["requester_email"]},
        "targetUser": {"id": request.target_user_id, "name": record["target_user_name"], "email": record["target_user_email"]},
        "requesterSlot": _slot_summary(record, "requester"),
        "targetSlot": _slot_summary(record, "target"),
        "isIncoming": request.target_user_id == user_id,
    })
    return data
