# engine.py
import logging
from datetime import datetime
from typing import List, Optional

from databases import Database

from slot_swapper.config import LOCK_TIMEOUT_SECONDS
from slot_swapper.data_models import OWNER_SETTABLE, Slot, SlotStatus, SwapEvent, SwapRequest, SwapStatus, as_utc
from slot_swapper.database import database
from slot_swapper.errors import (
    Forbidden,
    InvalidSlotState,
    InvalidTimeRange,
    LockTimeout,
    NotFound,
    NotOwner,
    RequestNotPending,
    SelfSwap,
    SlotLocked,
)
from slot_swapper.ledger import SwapRequestLedger
from slot_swapper.locks import RowLocks, request_key, slot_key
from slot_swapper.models import slots, swap_requests
from slot_swapper.notifier import (
    SWAP_REQUEST_ACCEPTED,
    SWAP_REQUEST_CREATED,
    SWAP_REQUEST_REJECTED,
    Notifier,
)
from slot_swapper.slot_store import SlotStore

logger = logging.getLogger(__name__)


class NegotiationEngine:
    """Owns every slot and swap request transition.

    Each public operation runs under the row locks of the slots and request it
    touches and inside a single database transaction, so either all of its
    writes land or none do. Events go out only after the transaction commits.
    """

    def __init__(self, db: Database = database, notifier: Optional[Notifier] = None, locks: Optional[RowLocks] = None):
        self.db = db
        self.slots = SlotStore(db)
        self.ledger = SwapRequestLedger(db)
        self.notifier = notifier
        self.locks = locks or RowLocks(timeout=LOCK_TIMEOUT_SECONDS)

    async def _require_slot(self, slot_id: Optional[int], for_update: bool = False) -> Slot:
        slot = await self.slots.get(slot_id, for_update=for_update) if slot_id is not None else None
        if slot is None:
            raise NotFound(f"Slot {slot_id} not found.")
        return slot

    async def _require_owned_slot(self, slot_id: int, user_id: int) -> Slot:
        slot = await self._require_slot(slot_id, for_update=True)
        if slot.owner_id != user_id:
            raise NotOwner(f"Slot {slot_id} does not belong to user {user_id}.")
        return slot

    # Owner-side slot management

    async def create_slot(
        self,
        owner_id: int,
        title: str,
        start_time: datetime,
        end_time: datetime,
        description: Optional[str] = None,
    ) -> Slot:
        start_time, end_time = as_utc(start_time), as_utc(end_time)
        if end_time <= start_time:
            raise InvalidTimeRange("End time must be after start time.")
        slot = await self.slots.insert(owner_id, title, start_time, end_time, description)
        logger.info("User %s created slot %s", owner_id, slot.id)
        return slot

    async def set_slot_status(self, slot_id: int, user_id: int, new_status: SlotStatus) -> Slot:
        """Owner toggles a slot between BUSY and SWAPPABLE."""
        new_status = SlotStatus(new_status)
        if new_status not in OWNER_SETTABLE:
            raise InvalidSlotState(f"Owners can only set a slot to {', '.join(s.value for s in OWNER_SETTABLE)}.")
        try:
            async with self.locks.hold(slot_key(slot_id)):
                async with self.db.transaction():
                    slot = await self._require_owned_slot(slot_id, user_id)
                    if slot.status == SlotStatus.SWAP_PENDING:
                        raise SlotLocked(f"Slot {slot_id} is part of a pending swap.")
                    if slot.status != new_status:
                        await self.slots.set_status(slot_id, new_status)
                    slot = await self.slots.get(slot_id)
        except LockTimeout:
            logger.warning("Status change on slot %s lost the lock race", slot_id)
            raise InvalidSlotState(f"Slot {slot_id} is being changed by another action.") from None
        logger.info("User %s set slot %s to %s", user_id, slot_id, new_status.value)
        return slot

    async def update_slot(self, slot_id: int, user_id: int, **changes) -> Slot:
        """Edit title, times or description, and optionally toggle status."""
        new_status = changes.pop("status", None)
        changes = {key: value for key, value in changes.items() if value is not None or key == "description"}
        for key in ("start_time", "end_time"):
            if key in changes:
                changes[key] = as_utc(changes[key])
        try:
            async with self.locks.hold(slot_key(slot_id)):
                async with self.db.transaction():
                    slot = await self._require_owned_slot(slot_id, user_id)
                    if slot.status == SlotStatus.SWAP_PENDING:
                        raise SlotLocked(f"Slot {slot_id} is part of a pending swap.")
                    start_time = changes.get("start_time", slot.start_time)
                    end_time = changes.get("end_time", slot.end_time)
                    if end_time <= start_time:
                        raise InvalidTimeRange("End time must be after start time.")
                    if new_status is not None:
                        new_status = SlotStatus(new_status)
                        if new_status not in OWNER_SETTABLE:
                            raise InvalidSlotState("Owners can only set a slot to BUSY or SWAPPABLE.")
                        changes["status"] = new_status
                    if changes:
                        await self.slots.update(slot_id, **changes)
                    slot = await self.slots.get(slot_id)
        except LockTimeout:
            logger.warning("Update of slot %s lost the lock race", slot_id)
            raise InvalidSlotState(f"Slot {slot_id} is being changed by another action.") from None
        return slot

    async def delete_slot(self, slot_id: int, user_id: int):
        try:
            async with self.locks.hold(slot_key(slot_id)):
                async with self.db.transaction():
                    slot = await self._require_owned_slot(slot_id, user_id)
                    if slot.status == SlotStatus.SWAP_PENDING:
                        raise SlotLocked(f"Slot {slot_id} is part of a pending swap.")
                    await self.slots.delete(slot_id)
        except LockTimeout:
            logger.warning("Delete of slot %s lost the lock race", slot_id)
            raise InvalidSlotState(f"Slot {slot_id} is being changed by another action.") from None
        logger.info("User %s deleted slot %s", user_id, slot_id)

    # Negotiation

    async def propose_swap(self, requester_id: int, offered_slot_id: int, target_slot_id: int) -> SwapRequest:
        """Lock both slots as SWAP_PENDING and open a PENDING request."""
        if offered_slot_id == target_slot_id:
            raise SelfSwap("A slot cannot be swapped with itself.")
        try:
            async with self.locks.hold(slot_key(offered_slot_id), slot_key(target_slot_id)):
                async with self.db.transaction():
                    offered = await self._require_slot(offered_slot_id, for_update=True)
                    target = await self._require_slot(target_slot_id, for_update=True)
                    if offered.owner_id != requester_id:
                        raise NotOwner(f"Slot {offered_slot_id} does not belong to user {requester_id}.")
                    if target.owner_id == requester_id:
                        raise SelfSwap("Cannot request a swap with your own slot.")
                    for slot in (offered, target):
                        if slot.status != SlotStatus.SWAPPABLE:
                            raise InvalidSlotState(f"Slot {slot.id} is {slot.status.value}, not SWAPPABLE.")

                    await self.slots.set_status(offered.id, SlotStatus.SWAP_PENDING)
                    await self.slots.set_status(target.id, SlotStatus.SWAP_PENDING)
                    request = await self.ledger.insert(requester_id, offered.id, target.owner_id, target.id)
        except LockTimeout:
            logger.warning("Proposal %s -> %s lost the lock race", offered_slot_id, target_slot_id)
            raise InvalidSlotState("One of the slots is already being negotiated.") from None

        logger.info("Swap request %s: user %s offers slot %s for slot %s of user %s",
                    request.id, requester_id, offered.id, target.id, target.owner_id)
        await self._emit(SWAP_REQUEST_CREATED, target.owner_id, request, offered, target)
        return request

    async def respond(self, request_id: int, responder_id: int, accept: bool) -> SwapRequest:
        """Resolve a PENDING request. Only its target user may respond."""
        request = await self.ledger.get(request_id)
        if request is None:
            raise NotFound(f"Swap request {request_id} not found.")

        keys = [request_key(request_id)]
        keys += [slot_key(s) for s in (request.requester_slot_id, request.target_slot_id) if s is not None]
        try:
            async with self.locks.hold(*keys):
                async with self.db.transaction():
                    request = await self.ledger.get(request_id, for_update=True)
                    if request.target_user_id != responder_id:
                        raise Forbidden("Only the target user can respond to this request.")
                    if not request.is_pending:
                        raise RequestNotPending(f"Swap request {request_id} is already {request.status.value}.")

                    offered = await self._require_slot(request.requester_slot_id, for_update=True)
                    target = await self._require_slot(request.target_slot_id, for_update=True)
                    if accept:
                        await self.slots.set_status(offered.id, SlotStatus.BUSY, owner_id=request.target_user_id)
                        await self.slots.set_status(target.id, SlotStatus.BUSY, owner_id=request.requester_id)
                        outcome = SwapStatus.ACCEPTED
                    else:
                        await self.slots.set_status(offered.id, SlotStatus.SWAPPABLE)
                        await self.slots.set_status(target.id, SlotStatus.SWAPPABLE)
                        outcome = SwapStatus.REJECTED
                    await self.ledger.resolve(request_id, outcome)
                    request = await self.ledger.get(request_id)
        except LockTimeout:
            logger.warning("Response to request %s lost the lock race", request_id)
            raise RequestNotPending(f"Swap request {request_id} is being resolved by another action.") from None

        logger.info("Swap request %s %s by user %s", request_id, outcome.value, responder_id)
        event_name = SWAP_REQUEST_ACCEPTED if accept else SWAP_REQUEST_REJECTED
        await self._emit(event_name, request.requester_id, request, offered, target)
        return request

    async def _emit(self, name: str, recipient_id: int, request: SwapRequest, offered: Slot, target: Slot):
        if self.notifier is None:
            return
        event = SwapEvent(
            name=name,
            recipient_id=recipient_id,
            request_id=request.id,
            requester_id=request.requester_id,
            target_user_id=request.target_user_id,
            requester_slot_title=offered.title,
            target_slot_title=target.title,
        )
        # The transition is already committed; delivery is best effort.
        try:
            await self.notifier.publish(event)
        except Exception:
            logger.exception("Failed to publish %s for request %s", name, request.id)

    async def audit(self) -> List[str]:
        """Check that SWAP_PENDING slots and PENDING requests pair up one to one.

        Returns a list of human-readable violations, empty when consistent.
        """
        pending_refs = {}
        for record in await self.db.fetch_all(
            swap_requests.select().where(swap_requests.c.status == SwapStatus.PENDING.value)
        ):
            for slot_id in (record["requester_slot_id"], record["target_slot_id"]):
                pending_refs.setdefault(slot_id, []).append(record["id"])

        problems = []
        for record in await self.db.fetch_all(slots.select()):
            refs = pending_refs.pop(record["id"], [])
            is_pending = record["status"] == SlotStatus.SWAP_PENDING.value
            if is_pending and len(refs) != 1:
                problems.append(f"slot {record['id']} is SWAP_PENDING with {len(refs)} pending request(s)")
            elif not is_pending and refs:
                problems.append(f"slot {record['id']} is {record['status']} but referenced by pending request(s) {refs}")
        for slot_id, refs in pending_refs.items():
            problems.append(f"pending request(s) {refs} reference missing slot {slot_id}")
        return problems
