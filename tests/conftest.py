import os
import tempfile
from datetime import datetime, timedelta, timezone

_TEST_DIR = tempfile.mkdtemp(prefix="slot_swapper_tests_")
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_DIR}/api.db"
os.environ.setdefault("SECRET_KEY", "test-secret")

import pytest
from databases import Database
from sqlalchemy import create_engine

from slot_swapper.data_models import SlotStatus
from slot_swapper.database import metadata
from slot_swapper.engine import NegotiationEngine
from slot_swapper.locks import RowLocks
from slot_swapper.models import users

BASE = datetime(2030, 3, 4, 9, 0, tzinfo=timezone.utc)


def at(hours: float) -> datetime:
    """A fixed point in time `hours` after 2030-03-04 09:00 UTC."""
    return BASE + timedelta(hours=hours)


class RecordingNotifier:
    def __init__(self):
        self.events = []

    async def publish(self, event):
        self.events.append(event)


class FailingNotifier:
    async def publish(self, event):
        raise ConnectionError("notification transport down")


@pytest.fixture
async def db(tmp_path):
    url = f"sqlite:///{tmp_path}/engine.db"
    metadata.create_all(bind=create_engine(url))
    database = Database(url)
    await database.connect()
    yield database
    await database.disconnect()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def negotiation(db, notifier):
    return NegotiationEngine(db, notifier=notifier, locks=RowLocks(timeout=10))


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    async def _make_user(name=None):
        counter["n"] += 1
        name = name or f"user{counter['n']}"
        return await db.execute(users.insert().values(
            name=name, email=f"{name}@example.com", hashed_password="x", created_at=datetime.now(timezone.utc),
        ))

    return _make_user


@pytest.fixture
def make_slot(negotiation):
    async def _make_slot(owner_id, start=0, hours=1, title="Slot", status=SlotStatus.SWAPPABLE):
        slot = await negotiation.create_slot(owner_id, title, at(start), at(start + hours))
        if status != SlotStatus.BUSY:
            slot = await negotiation.set_slot_status(slot.id, owner_id, status)
        return slot

    return _make_slot
