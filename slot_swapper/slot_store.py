# slot_store.py
from datetime import datetime, timezone
from typing import List, Optional

import sqlalchemy
from databases import Database

from slot_swapper.data_models import MarketplaceSlot, Owner, Slot, SlotStatus, as_utc
from slot_swapper.database import database
from slot_swapper.models import slots, users


class SlotStore:
    """Holds calendar entries per owner. The only writer of the `slots` table."""

    def __init__(self, db: Database = database):
        self.db = db

    async def get(self, slot_id: int, for_update: bool = False) -> Optional[Slot]:
        query = slots.select().where(slots.c.id == slot_id)
        if for_update:
            query = query.with_for_update()
        record = await self.db.fetch_one(query)
        return Slot.from_record(record) if record else None

    async def list_for_owner(self, owner_id: int, status: Optional[SlotStatus] = None) -> List[Slot]:
        query = slots.select().where(slots.c.owner_id == owner_id)
        if status is not None:
            query = query.where(slots.c.status == status.value)
        query = query.order_by(slots.c.start_time)
        return [Slot.from_record(r) for r in await self.db.fetch_all(query)]

    async def list_marketplace(self, exclude_owner_id: int) -> List[MarketplaceSlot]:
        """Every SWAPPABLE slot not owned by the caller, newest first.

        Derived on each read so it can never drift from slot status.
        """
        query = sqlalchemy.select(
            slots,
            users.c.name.label("owner_name"),
            users.c.email.label("owner_email"),
        ).select_from(
            slots.join(users, slots.c.owner_id == users.c.id)
        ).where(
            slots.c.status == SlotStatus.SWAPPABLE.value,
            slots.c.owner_id != exclude_owner_id,
        ).order_by(sqlalchemy.desc(slots.c.created_at), sqlalchemy.desc(slots.c.id))

        result = []
        for record in await self.db.fetch_all(query):
            owner = Owner(id=record["owner_id"], name=record["owner_name"], email=record["owner_email"])
            result.append(MarketplaceSlot(slot=Slot.from_record(record), owner=owner))
        return result

    async def insert(
        self,
        owner_id: int,
        title: str,
        start_time: datetime,
        end_time: datetime,
        description: Optional[str] = None,
        status: SlotStatus = SlotStatus.BUSY,
    ) -> Slot:
        now = datetime.now(timezone.utc)
        query = slots.insert().values(
            owner_id=owner_id,
            title=title,
            start_time=as_utc(start_time),
            end_time=as_utc(end_time),
            description=description,
            status=status.value,
            created_at=now,
            updated_at=now,
        )
        slot_id = await self.db.execute(query)
        return await self.get(slot_id)

    async def update(self, slot_id: int, **values):
        if "status" in values and isinstance(values["status"], SlotStatus):
            values["status"] = values["status"].value
        for key in ("start_time", "end_time"):
            if key in values:
                values[key] = as_utc(values[key])
        values["updated_at"] = datetime.now(timezone.utc)
        query = slots.update().where(slots.c.id == slot_id).values(**values)
        await self.db.execute(query)

    async def set_status(self, slot_id: int, status: SlotStatus, owner_id: Optional[int] = None):
        values = {"status": status}
        if owner_id is not None:
            values["owner_id"] = owner_id
        await self.update(slot_id, **values)

    async def delete(self, slot_id: int):
        await self.db.execute(slots.delete().where(slots.c.id == slot_id))
