import json
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from slot_swapper.agents import AssistantUnavailable, ScheduleAssistantAgent, SwapAdvisorAgent
from slot_swapper.data_models import MarketplaceSlot, Owner, Slot, SlotStatus
from slot_swapper.scorer import rank_suggestions

START = datetime(2030, 3, 4, 9, 0, tzinfo=timezone.utc)


class StubAgent:
    """Stands in for an autogen AssistantAgent; returns a canned reply."""

    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.tasks = []

    async def run(self, task):
        self.tasks.append(task)
        if self.error:
            raise self.error
        return SimpleNamespace(messages=[SimpleNamespace(content=self.reply)])


def with_stub(agent_cls, stub):
    agent = agent_cls(model_client=object())
    agent._build_agent = lambda: stub
    return agent


def suggestions():
    mine = Slot(id=1, owner_id=1, title="Gym", start_time=START, end_time=START + timedelta(hours=1),
                status=SlotStatus.SWAPPABLE)
    theirs = [
        MarketplaceSlot(
            slot=Slot(id=10 + i, owner_id=2 + i, title=f"Other {i}", start_time=START + timedelta(hours=i),
                      end_time=START + timedelta(hours=i + 1), status=SlotStatus.SWAPPABLE),
            owner=Owner(id=2 + i, name=f"Peer {i}", email=f"p{i}@example.com"),
        )
        for i in range(2)
    ]
    return rank_suggestions([mine], theirs)


async def test_advisor_replaces_rationales():
    reply = 'Sure! [{"index": 0, "reason": "Same hour, easy trade."}, {"index": 1, "reason": "One hour later."}]'
    stub = StubAgent(reply=reply)
    ranked = suggestions()
    order = [s.target.slot.id for s in ranked]

    explained = await with_stub(SwapAdvisorAgent, stub).explain(ranked)

    assert [s.target.slot.id for s in explained] == order
    assert explained[0].rationale == "Same hour, easy trade."
    assert explained[1].rationale == "One hour later."
    assert "Peer 0" in stub.tasks[0]


async def test_advisor_ignores_unknown_indexes():
    ranked = suggestions()
    before = ranked[1].rationale
    reply = json.dumps([{"index": 0, "reason": "Good"}, {"index": 7, "reason": "Nope"}, "junk"])

    explained = await with_stub(SwapAdvisorAgent, StubAgent(reply=reply)).explain(ranked)

    assert explained[0].rationale == "Good"
    assert explained[1].rationale == before


@pytest.mark.parametrize("stub", [StubAgent(reply="no json here"), StubAgent(error=RuntimeError("quota"))])
async def test_advisor_failure_keeps_computed_rationales(stub):
    ranked = suggestions()
    before = [(s.target.slot.id, s.rationale, s.score) for s in ranked]

    explained = await with_stub(SwapAdvisorAgent, stub).explain(ranked)

    assert [(s.target.slot.id, s.rationale, s.score) for s in explained] == before


async def test_advisor_skips_model_for_empty_list():
    stub = StubAgent(reply="[]")
    assert await with_stub(SwapAdvisorAgent, stub).explain([]) == []
    assert stub.tasks == []


async def test_schedule_analysis_and_chat():
    stub = StubAgent(reply="  You are mostly free on Fridays.  ")
    assistant = with_stub(ScheduleAssistantAgent, stub)

    assert await assistant.analyze({"totalSlots": 0}, []) == "You are mostly free on Fridays."
    assert await assistant.chat("When am I free?", []) == "You are mostly free on Fridays."
    assert "When am I free?" in stub.tasks[1]


async def test_analysis_failure_returns_none_and_chat_raises():
    assistant = with_stub(ScheduleAssistantAgent, StubAgent(error=ConnectionError("offline")))

    assert await assistant.analyze({}, []) is None
    with pytest.raises(AssistantUnavailable):
        await assistant.chat("hello", [])
