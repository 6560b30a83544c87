import json
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from autogen_agentchat.agents import AssistantAgent
from slot_swapper.config import get_model_client
from slot_swapper.data_models import Slot, Suggestion

logger = logging.getLogger(__name__)


class AssistantUnavailable(Exception):
    """The language model could not produce an answer."""


def _slot_line(slot: Slot) -> Dict:
    return {
        "title": slot.title,
        "start": slot.start_time.isoformat(),
        "end": slot.end_time.isoformat(),
        "status": slot.status.value,
    }


class SwapAdvisorAgent:
    """Writes the human-readable reason for each ranked swap suggestion.

    The ranking itself is fixed before the model sees it; this agent only
    replaces rationale text, and leaves it untouched if the model fails.
    """

    def __init__(self, name="SwapAdvisor", model_client=None):
        self.name = name
        self.model_client = model_client

    def _build_agent(self) -> AssistantAgent:
        return AssistantAgent(
            name=self.name,
            model_client=self.model_client or get_model_client(),
            system_message="""You are a scheduling assistant that helps people trade calendar time-slots.
            You receive swap candidates that have already been ranked. For each one, explain in one short,
            friendly sentence why the trade could suit the user (timing overlap, similar length, etc).
            Never change the order and never invent candidates.""",
        )

    async def explain(self, suggestions: List[Suggestion]) -> List[Suggestion]:
        if not suggestions:
            return suggestions

        candidates = [
            {
                "index": i,
                "mySlot": _slot_line(s.my_slot),
                "theirSlot": _slot_line(s.target.slot),
                "theirOwner": s.target.owner.name,
                "score": round(s.score, 3),
            }
            for i, s in enumerate(suggestions)
        ]
        task = f"""
        Here are ranked swap candidates as JSON:
        {json.dumps(candidates, indent=2)}

        Respond ONLY with a JSON array of objects like {{"index": 0, "reason": "..."}}, one per candidate.
        """
        try:
            response = await self._build_agent().run(task=task)
            content = str(response.messages[-1].content)
            json_str = content[content.find('['):content.rfind(']') + 1]
            reasons = json.loads(json_str)
        except Exception:
            logger.warning("[%s] Could not get rationales, keeping computed ones", self.name, exc_info=True)
            return suggestions

        for item in reasons if isinstance(reasons, list) else []:
            if not isinstance(item, dict):
                continue
            index, reason = item.get("index"), item.get("reason")
            if isinstance(index, int) and 0 <= index < len(suggestions) and isinstance(reason, str) and reason.strip():
                suggestions[index].rationale = reason.strip()
        return suggestions


class ScheduleAssistantAgent:
    """Answers questions about one user's calendar and summarizes it."""

    def __init__(self, name="ScheduleAssistant", model_client=None):
        self.name = name
        self.model_client = model_client

    def _build_agent(self) -> AssistantAgent:
        return AssistantAgent(
            name=self.name,
            model_client=self.model_client or get_model_client(),
            system_message="""You are the scheduling assistant of a slot-swapping calendar.
            Users mark busy time-slots as swappable and trade them with other users.
            Answer using only the schedule data you are given. Be brief and concrete.""",
        )

    def _context(self, user_slots: List[Slot]) -> str:
        return json.dumps([_slot_line(s) for s in user_slots], indent=2)

    async def analyze(self, stats: Dict, user_slots: List[Slot]) -> Optional[str]:
        task = f"""
        The current time is {datetime.now(timezone.utc).strftime('%A, %Y-%m-%d %H:%M UTC')}.
        Schedule statistics: {json.dumps(stats)}
        Slots: {self._context(user_slots)}

        In at most four sentences, describe how this schedule is loaded and which slots
        would be good to mark as swappable.
        """
        try:
            response = await self._build_agent().run(task=task)
            return str(response.messages[-1].content).strip()
        except Exception:
            logger.warning("[%s] Schedule analysis failed", self.name, exc_info=True)
            return None

    async def chat(self, message: str, user_slots: List[Slot]) -> str:
        task = f"""
        The current time is {datetime.now(timezone.utc).strftime('%A, %Y-%m-%d %H:%M UTC')}.
        The user's slots: {self._context(user_slots)}

        USER: "{message}"
        """
        try:
            response = await self._build_agent().run(task=task)
            return str(response.messages[-1].content).strip()
        except Exception as e:
            logger.warning("[%s] Chat failed: %s", self.name, e)
            raise AssistantUnavailable("The scheduling assistant is unavailable right now.") from e
