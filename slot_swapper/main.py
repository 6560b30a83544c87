# main.py
import json
import logging
from datetime import datetime, timezone
from typing import Optional

import fastapi
from fastapi import Depends, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, model_validator

from slot_swapper.agents import AssistantUnavailable, ScheduleAssistantAgent, SwapAdvisorAgent
from slot_swapper.auth import (
    LoginRequest,
    Token,
    User,
    UserCreate,
    authenticate_user,
    create_user,
    decode_token_and_get_user,
    get_current_active_user,
    issue_token,
)
from slot_swapper.config import FRONTEND_URL, LOG_LEVEL, SUGGESTION_LIMIT
from slot_swapper.data_models import SlotStatus, as_utc
from slot_swapper.database import database, engine, metadata
from slot_swapper.engine import NegotiationEngine
from slot_swapper.errors import NotFound, NotOwner, SwapError
from slot_swapper.insights import find_conflicts, summarize_schedule
from slot_swapper.ledger import LedgerView
from slot_swapper.notifier import ConnectionManager
from slot_swapper.scorer import rank_suggestions

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

# FastAPI Setup
app = fastapi.FastAPI(title="Slot Swapper")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

manager = ConnectionManager()
negotiation = NegotiationEngine(database, notifier=manager)


def get_engine() -> NegotiationEngine:
    return negotiation


def get_advisor() -> SwapAdvisorAgent:
    return SwapAdvisorAgent()


def get_schedule_assistant() -> ScheduleAssistantAgent:
    return ScheduleAssistantAgent()


# Request Models
class SlotCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(min_length=1)
    start_time: datetime = Field(alias="startTime")
    end_time: datetime = Field(alias="endTime")
    description: Optional[str] = None

    @model_validator(mode="after")
    def check_order(self):
        if as_utc(self.end_time) <= as_utc(self.start_time):
            raise ValueError("endTime must be after startTime")
        return self


class SlotUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = Field(default=None, min_length=1)
    start_time: Optional[datetime] = Field(default=None, alias="startTime")
    end_time: Optional[datetime] = Field(default=None, alias="endTime")
    description: Optional[str] = None
    status: Optional[SlotStatus] = None


class SwapProposal(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    my_slot_id: int = Field(alias="mySlotId")
    their_slot_id: int = Field(alias="theirSlotId")


class SwapResponse(BaseModel):
    accepted: bool


class SuggestionRequest(BaseModel):
    limit: Optional[int] = Field(default=None, ge=1, le=20)
    explain: bool = True


class ChatMessage(BaseModel):
    message: str = Field(min_length=1)


@app.exception_handler(SwapError)
async def swap_error_handler(request: Request, exc: SwapError):
    logger.warning("%s %s refused: %s (%s)", request.method, request.url.path, exc.kind, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "error": exc.kind})


@app.exception_handler(AssistantUnavailable)
async def assistant_unavailable_handler(request: Request, exc: AssistantUnavailable):
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": str(exc)})


# Auth Endpoints
@app.post("/api/auth/signup", response_model=Token, status_code=status.HTTP_201_CREATED)
async def signup(user: UserCreate):
    created = await create_user(user)
    return issue_token(created)


@app.post("/api/auth/login", response_model=Token)
async def login(credentials: LoginRequest):
    user = await authenticate_user(credentials.email, credentials.password)
    return issue_token(user)


@app.get("/api/users/me", response_model=User)
async def read_users_me(current_user: User = Depends(get_current_active_user)):
    """
    Get the current authenticated user's profile data.
    """
    return current_user


# Slot Endpoints (owner-facing)
@app.get("/api/events")
async def list_my_slots(current_user: User = Depends(get_current_active_user),
                        negotiation: NegotiationEngine = Depends(get_engine)):
    my_slots = await negotiation.slots.list_for_owner(current_user.id)
    return {"events": [slot.to_dict() for slot in my_slots]}


@app.get("/api/events/{slot_id}")
async def get_my_slot(slot_id: int, current_user: User = Depends(get_current_active_user),
                      negotiation: NegotiationEngine = Depends(get_engine)):
    slot = await negotiation.slots.get(slot_id)
    if slot is None:
        raise NotFound(f"Slot {slot_id} does not exist.")
    if slot.owner_id != current_user.id:
        raise NotOwner(f"Slot {slot_id} belongs to another user.")
    return slot.to_dict()


@app.post("/api/events", status_code=status.HTTP_201_CREATED)
async def create_slot(payload: SlotCreate, current_user: User = Depends(get_current_active_user),
                      negotiation: NegotiationEngine = Depends(get_engine)):
    slot = await negotiation.create_slot(
        current_user.id, payload.title, payload.start_time, payload.end_time, payload.description
    )
    return slot.to_dict()


@app.put("/api/events/{slot_id}")
@app.patch("/api/events/{slot_id}")
async def update_slot(slot_id: int, payload: SlotUpdate, current_user: User = Depends(get_current_active_user),
                      negotiation: NegotiationEngine = Depends(get_engine)):
    changes = payload.model_dump(exclude_unset=True)
    if set(changes) == {"status"}:
        slot = await negotiation.set_slot_status(slot_id, current_user.id, changes["status"])
    else:
        slot = await negotiation.update_slot(slot_id, current_user.id, **changes)
    return slot.to_dict()


@app.delete("/api/events/{slot_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_slot(slot_id: int, current_user: User = Depends(get_current_active_user),
                      negotiation: NegotiationEngine = Depends(get_engine)):
    await negotiation.delete_slot(slot_id, current_user.id)


# Marketplace and Negotiation Endpoints
@app.get("/api/swappable-slots")
async def list_marketplace(current_user: User = Depends(get_current_active_user),
                           negotiation: NegotiationEngine = Depends(get_engine)):
    entries = await negotiation.slots.list_marketplace(exclude_owner_id=current_user.id)
    return {"slots": [entry.to_dict() for entry in entries]}


@app.post("/api/swap-request", status_code=status.HTTP_201_CREATED)
async def propose_swap(proposal: SwapProposal, current_user: User = Depends(get_current_active_user),
                       negotiation: NegotiationEngine = Depends(get_engine)):
    request = await negotiation.propose_swap(current_user.id, proposal.my_slot_id, proposal.their_slot_id)
    return request.to_dict()


@app.get("/api/swap-requests")
async def list_swap_requests(view: LedgerView = Query(LedgerView.ALL, alias="type"),
                             current_user: User = Depends(get_current_active_user),
                             negotiation: NegotiationEngine = Depends(get_engine)):
    requests = await negotiation.ledger.list_for_user(current_user.id, view)
    return {"requests": requests}


@app.post("/api/swap-response/{request_id}")
async def respond_to_swap(request_id: int, response: SwapResponse,
                          current_user: User = Depends(get_current_active_user),
                          negotiation: NegotiationEngine = Depends(get_engine)):
    request = await negotiation.respond(request_id, current_user.id, response.accepted)
    return request.to_dict()


# AI Endpoints
@app.post("/api/ai/swap-suggestions")
async def swap_suggestions(body: Optional[SuggestionRequest] = None,
                           current_user: User = Depends(get_current_active_user),
                           negotiation: NegotiationEngine = Depends(get_engine),
                           advisor: SwapAdvisorAgent = Depends(get_advisor)):
    body = body or SuggestionRequest()
    mine = await negotiation.slots.list_for_owner(current_user.id, status=SlotStatus.SWAPPABLE)
    theirs = await negotiation.slots.list_marketplace(exclude_owner_id=current_user.id)
    suggestions = rank_suggestions(mine, theirs, limit=body.limit or SUGGESTION_LIMIT)
    if body.explain:
        suggestions = await advisor.explain(suggestions)
    return {"suggestions": [s.to_dict() for s in suggestions]}


@app.get("/api/ai/schedule-analysis")
async def schedule_analysis(current_user: User = Depends(get_current_active_user),
                            negotiation: NegotiationEngine = Depends(get_engine),
                            assistant: ScheduleAssistantAgent = Depends(get_schedule_assistant)):
    my_slots = await negotiation.slots.list_for_owner(current_user.id)
    stats = summarize_schedule(my_slots, datetime.now(timezone.utc))
    conflicts = find_conflicts(my_slots)
    analysis = await assistant.analyze(stats, my_slots)
    return {"stats": stats, "conflicts": conflicts, "analysis": analysis}


@app.post("/api/ai/chat")
async def chat(payload: ChatMessage, current_user: User = Depends(get_current_active_user),
               negotiation: NegotiationEngine = Depends(get_engine),
               assistant: ScheduleAssistantAgent = Depends(get_schedule_assistant)):
    my_slots = await negotiation.slots.list_for_owner(current_user.id)
    reply = await assistant.chat(payload.message, my_slots)
    return {"response": reply}


@app.websocket("/ws")
async def websocket_endpoint(websocket: fastapi.WebSocket, token: str = Query(None)):
    """
    Persistent notification channel. Swap events for the authenticated user
    are pushed here; the only client message understood is a ping.
    """
    try:
        current_user = await decode_token_and_get_user(token)
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await manager.connect(current_user.id, websocket)
    await websocket.send_text(json.dumps({
        "type": "auth_success",
        "data": {"id": current_user.id, "name": current_user.name},
    }))

    try:
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await websocket.send_text(json.dumps({"type": "error", "data": "Invalid JSON"}))
                continue
            if isinstance(message, dict) and message.get("type") == "ping":
                await websocket.send_text(json.dumps({"type": "pong"}))
    except fastapi.WebSocketDisconnect:
        manager.disconnect(current_user.id, websocket)


@app.on_event("startup")
async def startup():
    await database.connect()
    # Create tables if they don't exist
    metadata.create_all(bind=engine)
    logger.info("Database connected")


@app.on_event("shutdown")
async def shutdown():
    await database.disconnect()
