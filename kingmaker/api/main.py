"""
FastAPI backend for the kingdom sheet.
Provides REST API endpoints for campaigns, settlements and kingdom turn actions.
"""

import json
import logging
import uuid
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .database import get_db, init_db
from .models import Campaign, Player, SettlementRecord
from .auth import (
    create_access_token,
    get_current_player,
    get_current_player_optional,
    hash_password,
    is_bookkeeper,
    require_bookkeeper,
    validate_username,
    verify_password,
)
from .storage import KingdomStorage, settlement_from_record

from kingmaker.config import LOG_LEVEL
from kingmaker.engine.actions import (
    Action,
    adjust_unrest,
    build_structure,
    check_for_event,
    collect_resources,
    end_turn,
    gain_fame,
    gain_shortage_unrest,
    gain_xp,
    level_up,
    pay_consumption,
    pay_shortage_with_rp,
    pay_structure,
    reduce_unrest,
    update_resource,
)
from kingmaker.engine.definitions import load_structure_catalog, parse_structure_data
from kingmaker.engine.dice import DicePort, RandomDicePort
from kingmaker.engine.errors import InsufficientResources, StructureValidationError
from kingmaker.engine.queries import (
    StructureFilters,
    get_kingdom_stats,
    get_structure_browser,
    validate_action,
)
from kingmaker.engine.reducer import apply_action
from kingmaker.engine.settlements import get_merged_data
from kingmaker.engine.state import Kingdom, kingdom_update
from kingmaker.engine.utils import initialize_kingdom

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Kingdom Sheet API",
    description="Backend API for running a kingdom's turns and economy",
    version="1.0.0",
)

# CORS configuration for frontend
CORS_ORIGINS = ["http://localhost:5173", "http://localhost:5174", "http://localhost:3000"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
)


@app.middleware("http")
async def log_requests(request, call_next):
    """Log method and path so 500s can be traced to the failing endpoint."""
    method = getattr(request, "method", "?")
    url = getattr(request, "url", None)
    path = url.path if url else "?"
    try:
        response = await call_next(request)
        if response.status_code >= 500:
            logger.error("[%d] %s %s", response.status_code, method, path)
        return response
    except Exception:
        logger.exception("[500] %s %s (exception)", method, path)
        raise


@app.exception_handler(Exception)
async def unhandled_exception_handler(request, exc):
    """Return 500 with CORS headers and full traceback so the frontend can read the error."""
    import traceback
    tb = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    origin = request.headers.get("origin")
    allow_origin = origin if origin in CORS_ORIGINS else CORS_ORIGINS[0]
    return JSONResponse(
        status_code=500,
        content={"detail": str(exc), "traceback": tb},
        headers={
            "Access-Control-Allow-Origin": allow_origin,
            "Access-Control-Allow-Credentials": "true",
        },
    )


# Predefined structures for {"ref": "<name>"} records, pay and build
structure_defs = load_structure_catalog()

_dice = RandomDicePort()


def get_dice() -> DicePort:
    """Dependency for the dice port (overridden in tests with scripted rolls)."""
    return _dice


# ===== Pydantic Models =====

class RegisterRequest(BaseModel):
    email: str
    username: str
    password: str


class LoginRequest(BaseModel):
    email: str
    password: str


class CreateCampaignRequest(BaseModel):
    name: str
    kingdom_name: str | None = None
    """Optional partial kingdom merged over the defaults (level, size, work_sites, skill_ranks, ...)."""
    kingdom: dict[str, Any] | None = None


class KingdomPatchRequest(BaseModel):
    """Partial kingdom: top-level keys with fully reconstructed nested values."""
    kingdom: dict[str, Any]


class CreateSettlementRequest(BaseModel):
    name: str
    settlement_type: str = "Settlement"
    level: int = 1
    overcrowded: bool = False
    secondary_territory: bool = False
    structures: list[dict[str, Any]] = Field(default_factory=list)


class UpdateSettlementRequest(BaseModel):
    name: str | None = None
    settlement_type: str | None = None
    level: int | None = None
    overcrowded: bool | None = None
    secondary_territory: bool | None = None


class AddStructureRequest(BaseModel):
    """Either {"ref": "<catalog name>"} or an inline structure record with a name."""
    structure: dict[str, Any]


class UpdateResourceRequest(BaseModel):
    resource: str
    value: str
    mode: str = "gain"
    turn: str = "now"


class PayShortageRequest(BaseModel):
    missing: int


class PayStructureRequest(BaseModel):
    name: str
    ignore_cost: bool | None = None


class BuildStructureRequest(BaseModel):
    name: str
    skill: str
    settlement_id: str | None = None
    ignore_skill_requirements: bool | None = None


class AmountRequest(BaseModel):
    amount: int = 1


# ===== Helper Functions =====

def _get_campaign(campaign_id: str, db: Session) -> Campaign:
    row = db.query(Campaign).filter(Campaign.id == campaign_id).first()
    if not row:
        raise HTTPException(status_code=404, detail=f"Campaign {campaign_id} not found")
    return row


def _get_settlement_row(campaign_id: str, settlement_id: str, db: Session) -> SettlementRecord:
    row = (
        db.query(SettlementRecord)
        .filter(SettlementRecord.campaign_id == campaign_id, SettlementRecord.id == settlement_id)
        .first()
    )
    if not row:
        raise HTTPException(status_code=404, detail=f"Settlement {settlement_id} not found")
    return row


def _settlement_type(value: str) -> str:
    if value not in ("Capital", "Settlement", "-"):
        raise HTTPException(status_code=400, detail=f"Unknown settlement type: {value}")
    return value


def _clear_other_capitals(campaign_id: str, keep_id: str, db: Session) -> None:
    """A campaign has at most one capital."""
    for row in db.query(SettlementRecord).filter(
        SettlementRecord.campaign_id == campaign_id,
        SettlementRecord.settlement_type == "Capital",
        SettlementRecord.id != keep_id,
    ):
        row.settlement_type = "Settlement"


def kingdom_for_response(kingdom: Kingdom, storage: KingdomStorage) -> dict[str, Any]:
    """Kingdom dict including computed stats for the UI."""
    out = kingdom.to_dict()
    out["stats"] = get_kingdom_stats(kingdom, storage.load_settlements(), structure_defs)
    return out


def _raise_for_engine_error(e: Exception) -> None:
    if isinstance(e, InsufficientResources):
        raise HTTPException(status_code=409, detail={"message": str(e), "missing": e.missing})
    raise HTTPException(status_code=400, detail=str(e))


def run_action(campaign_id: str, action: Action, player: Player, db: Session, dice: DicePort) -> dict[str, Any]:
    """Bookkeeper check, load, validate, apply, save the changed top-level keys."""
    campaign = _get_campaign(campaign_id, db)
    require_bookkeeper(campaign, player)
    storage = KingdomStorage(db, campaign_id)
    kingdom = storage.load()
    settlements = storage.load_settlements()

    validation = validate_action(kingdom, action, structure_defs)
    if not validation.valid:
        raise HTTPException(status_code=400, detail=validation.error)
    try:
        new_kingdom, events = apply_action(kingdom, action, settlements, structure_defs, dice)
    except ValueError as e:
        logger.info("Action %s rejected for campaign %s: %s", action.type, campaign_id, e)
        _raise_for_engine_error(e)

    storage.save(kingdom_update(kingdom, new_kingdom))
    logger.info("Applied %s to campaign %s (%d events)", action.type, campaign_id, len(events))
    return {
        "kingdom": kingdom_for_response(new_kingdom, storage),
        "events": [e.to_dict() for e in events],
    }


@app.on_event("startup")
def on_startup():
    init_db()


# ===== API Endpoints =====

@app.get("/")
def root():
    return {"message": "Kingdom Sheet API", "version": "1.0.0"}


# ----- Auth -----

@app.post("/auth/register")
def register(request: RegisterRequest, db: Session = Depends(get_db)):
    """Register with email, username (unique, no spaces/special), and password."""
    if not validate_username(request.username):
        raise HTTPException(
            status_code=400,
            detail="Username must be 2–32 characters, letters numbers and underscore only",
        )
    if db.query(Player).filter(Player.email == request.email).first():
        raise HTTPException(status_code=400, detail="Email already registered")
    if db.query(Player).filter(Player.username == request.username).first():
        raise HTTPException(status_code=400, detail="Username already taken")
    player_id = str(uuid.uuid4())
    player = Player(
        id=player_id,
        email=request.email,
        username=request.username,
        password_hash=hash_password(request.password),
    )
    db.add(player)
    db.commit()
    token = create_access_token(player_id)
    return {"access_token": token, "player": {"id": player_id, "email": player.email, "username": player.username}}


@app.post("/auth/login")
def login(request: LoginRequest, db: Session = Depends(get_db)):
    """Login with email and password."""
    player = db.query(Player).filter(Player.email == request.email).first()
    if not player or not verify_password(request.password, player.password_hash):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    token = create_access_token(player.id)
    return {"access_token": token, "player": {"id": player.id, "email": player.email, "username": player.username}}


@app.get("/auth/me")
def auth_me(player: Player = Depends(get_current_player)):
    """Return current player (email, username; password not included)."""
    return {"id": player.id, "email": player.email, "username": player.username}


# ----- Campaigns -----

@app.post("/campaigns")
def create_campaign(
    request: CreateCampaignRequest,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
):
    """Create a campaign with a fresh kingdom. The creator becomes the bookkeeper."""
    kingdom = initialize_kingdom(request.kingdom_name, request.kingdom)
    campaign_id = str(uuid.uuid4())
    db.add(Campaign(
        id=campaign_id,
        name=request.name,
        created_by=player.id,
        kingdom=kingdom.to_json(),
    ))
    db.commit()
    logger.info("Created campaign %s for player %s", campaign_id, player.id)
    return {"campaign_id": campaign_id, "name": request.name, "kingdom": kingdom.to_dict()}


@app.get("/campaigns")
def list_my_campaigns(
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
):
    """List campaigns the current player keeps the books for."""
    rows = db.query(Campaign).filter(Campaign.created_by == player.id).order_by(Campaign.created_at.desc()).all()
    campaigns = []
    for row in rows:
        kingdom = KingdomStorage(db, row.id).load()
        campaigns.append({
            "campaign_id": row.id,
            "name": row.name,
            "kingdom_name": kingdom.name,
            "level": kingdom.level,
            "created_at": row.created_at.isoformat() if row.created_at else None,
        })
    return {"campaigns": campaigns}


@app.get("/campaigns/{campaign_id}")
def get_campaign(
    campaign_id: str,
    db: Session = Depends(get_db),
    player: Player | None = Depends(get_current_player_optional),
):
    """Kingdom with derived stats. can_act is true only for the bookkeeper."""
    campaign = _get_campaign(campaign_id, db)
    storage = KingdomStorage(db, campaign_id)
    return {
        "campaign_id": campaign_id,
        "name": campaign.name,
        "kingdom": kingdom_for_response(storage.load(), storage),
        "can_act": is_bookkeeper(campaign, player),
    }


@app.patch("/campaigns/{campaign_id}/kingdom")
def patch_kingdom(
    campaign_id: str,
    request: KingdomPatchRequest,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
):
    """Save a partial kingdom (sheet edits such as skill ranks, work sites, feats)."""
    campaign = _get_campaign(campaign_id, db)
    require_bookkeeper(campaign, player)
    storage = KingdomStorage(db, campaign_id)
    kingdom = storage.load()
    unknown = set(request.kingdom) - set(kingdom.to_dict())
    if unknown:
        raise HTTPException(status_code=400, detail=f"Unknown kingdom fields: {sorted(unknown)}")
    updated = kingdom.merged(request.kingdom)
    storage.save(kingdom_update(kingdom, updated))
    return {"kingdom": kingdom_for_response(updated, storage)}


@app.delete("/campaigns/{campaign_id}")
def delete_campaign(
    campaign_id: str,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
):
    """Delete a campaign and its settlements. Caller must be the bookkeeper."""
    campaign = _get_campaign(campaign_id, db)
    require_bookkeeper(campaign, player)
    db.query(SettlementRecord).filter(SettlementRecord.campaign_id == campaign_id).delete()
    db.delete(campaign)
    db.commit()
    return {"message": f"Campaign {campaign_id} deleted"}


# ----- Settlements -----

@app.post("/campaigns/{campaign_id}/settlements")
def create_settlement(
    campaign_id: str,
    request: CreateSettlementRequest,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
):
    campaign = _get_campaign(campaign_id, db)
    require_bookkeeper(campaign, player)
    settlement_id = str(uuid.uuid4())
    row = SettlementRecord(
        id=settlement_id,
        campaign_id=campaign_id,
        name=request.name,
        settlement_type=_settlement_type(request.settlement_type),
        level=max(1, request.level),
        overcrowded=request.overcrowded,
        secondary_territory=request.secondary_territory,
        structures=json.dumps(request.structures),
    )
    db.add(row)
    if row.settlement_type == "Capital":
        _clear_other_capitals(campaign_id, settlement_id, db)
    db.commit()
    return {"settlement": settlement_from_record(row).to_dict()}


@app.get("/campaigns/{campaign_id}/settlements")
def list_settlements(campaign_id: str, db: Session = Depends(get_db)):
    _get_campaign(campaign_id, db)
    return {"settlements": [s.to_dict() for s in KingdomStorage(db, campaign_id).load_settlements()]}


@app.patch("/campaigns/{campaign_id}/settlements/{settlement_id}")
def update_settlement(
    campaign_id: str,
    settlement_id: str,
    request: UpdateSettlementRequest,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
):
    """Update settlement level, type and flags."""
    campaign = _get_campaign(campaign_id, db)
    require_bookkeeper(campaign, player)
    row = _get_settlement_row(campaign_id, settlement_id, db)
    if request.name is not None:
        row.name = request.name
    if request.settlement_type is not None:
        row.settlement_type = _settlement_type(request.settlement_type)
        if row.settlement_type == "Capital":
            _clear_other_capitals(campaign_id, settlement_id, db)
    if request.level is not None:
        row.level = max(1, request.level)
    if request.overcrowded is not None:
        row.overcrowded = request.overcrowded
    if request.secondary_territory is not None:
        row.secondary_territory = request.secondary_territory
    db.commit()
    return {"settlement": settlement_from_record(row).to_dict()}


@app.delete("/campaigns/{campaign_id}/settlements/{settlement_id}")
def delete_settlement(
    campaign_id: str,
    settlement_id: str,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
):
    campaign = _get_campaign(campaign_id, db)
    require_bookkeeper(campaign, player)
    db.delete(_get_settlement_row(campaign_id, settlement_id, db))
    db.commit()
    return {"message": f"Settlement {settlement_id} deleted"}


@app.post("/campaigns/{campaign_id}/settlements/{settlement_id}/structures")
def add_structure(
    campaign_id: str,
    settlement_id: str,
    request: AddStructureRequest,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
):
    """Place a structure in a settlement. The record is validated before it is stored."""
    campaign = _get_campaign(campaign_id, db)
    require_bookkeeper(campaign, player)
    row = _get_settlement_row(campaign_id, settlement_id, db)
    try:
        parse_structure_data(request.structure.get("name"), request.structure, structure_defs)
    except StructureValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    structures = json.loads(row.structures or "[]")
    structures.append(request.structure)
    row.structures = json.dumps(structures)
    db.commit()
    return {"settlement": settlement_from_record(row).to_dict()}


@app.delete("/campaigns/{campaign_id}/settlements/{settlement_id}/structures/{index}")
def remove_structure(
    campaign_id: str,
    settlement_id: str,
    index: int,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
):
    campaign = _get_campaign(campaign_id, db)
    require_bookkeeper(campaign, player)
    row = _get_settlement_row(campaign_id, settlement_id, db)
    structures = json.loads(row.structures or "[]")
    if index < 0 or index >= len(structures):
        raise HTTPException(status_code=404, detail=f"No structure at index {index}")
    structures.pop(index)
    row.structures = json.dumps(structures)
    db.commit()
    return {"settlement": settlement_from_record(row).to_dict()}


@app.get("/campaigns/{campaign_id}/settlements/{settlement_id}/aggregate")
def get_settlement_aggregate(campaign_id: str, settlement_id: str, db: Session = Depends(get_db)):
    """Settlement bonuses, with the capital's activities merged in when viewing another settlement."""
    _get_campaign(campaign_id, db)
    settlements = KingdomStorage(db, campaign_id).load_settlements()
    view = get_merged_data(settlements, settlement_id, structure_defs)
    if view is None:
        raise HTTPException(status_code=404, detail=f"Settlement {settlement_id} not found")
    return {
        "settlement": view.settlement.to_dict(),
        "aggregate": view.aggregate.to_dict(),
        "errors": [str(e) for e in view.errors],
    }


# ----- Structure browser -----

@app.get("/campaigns/{campaign_id}/structures")
def browse_structures(
    campaign_id: str,
    search: str = "",
    level: int | None = None,
    lots: int = 4,
    ignore_proficiency_requirements: bool = False,
    ignore_structure_cost: bool = False,
    housing: bool = False,
    infrastructure: bool = False,
    storage: bool = False,
    consumption: bool = False,
    items: bool = False,
    affects_events: bool = False,
    affects_downtime: bool = False,
    reduces_unrest: bool = False,
    reduces_ruin: bool = False,
    activities: list[str] = Query(default=[]),
    db: Session = Depends(get_db),
):
    _get_campaign(campaign_id, db)
    kingdom = KingdomStorage(db, campaign_id).load()
    filters = StructureFilters(
        search=search,
        level=level,
        lots=lots,
        ignore_proficiency_requirements=ignore_proficiency_requirements,
        ignore_structure_cost=ignore_structure_cost,
        housing=housing,
        infrastructure=infrastructure,
        storage=storage,
        consumption=consumption,
        items=items,
        affects_events=affects_events,
        affects_downtime=affects_downtime,
        reduces_unrest=reduces_unrest,
        reduces_ruin=reduces_ruin,
        activities=activities,
    )
    return {"structures": get_structure_browser(kingdom, structure_defs, filters)}


# ----- Turn actions -----

@app.post("/campaigns/{campaign_id}/collect-resources")
def do_collect_resources(
    campaign_id: str,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
    dice: DicePort = Depends(get_dice),
):
    return run_action(campaign_id, collect_resources(), player, db, dice)


@app.post("/campaigns/{campaign_id}/pay-consumption")
def do_pay_consumption(
    campaign_id: str,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
    dice: DicePort = Depends(get_dice),
):
    return run_action(campaign_id, pay_consumption(), player, db, dice)


@app.post("/campaigns/{campaign_id}/adjust-unrest")
def do_adjust_unrest(
    campaign_id: str,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
    dice: DicePort = Depends(get_dice),
):
    return run_action(campaign_id, adjust_unrest(), player, db, dice)


@app.post("/campaigns/{campaign_id}/check-for-event")
def do_check_for_event(
    campaign_id: str,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
    dice: DicePort = Depends(get_dice),
):
    return run_action(campaign_id, check_for_event(), player, db, dice)


@app.post("/campaigns/{campaign_id}/end-turn")
def do_end_turn(
    campaign_id: str,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
    dice: DicePort = Depends(get_dice),
):
    return run_action(campaign_id, end_turn(), player, db, dice)


@app.post("/campaigns/{campaign_id}/reduce-unrest")
def do_reduce_unrest(
    campaign_id: str,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
    dice: DicePort = Depends(get_dice),
):
    return run_action(campaign_id, reduce_unrest(), player, db, dice)


@app.post("/campaigns/{campaign_id}/resources")
def do_update_resource(
    campaign_id: str,
    request: UpdateResourceRequest,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
    dice: DicePort = Depends(get_dice),
):
    """Gain or lose a resource now or next turn. value is an integer or dice formula."""
    action = update_resource(request.resource, request.value, request.mode, request.turn)
    return run_action(campaign_id, action, player, db, dice)


@app.post("/campaigns/{campaign_id}/shortage/pay-rp")
def do_pay_shortage_with_rp(
    campaign_id: str,
    request: PayShortageRequest,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
    dice: DicePort = Depends(get_dice),
):
    return run_action(campaign_id, pay_shortage_with_rp(request.missing), player, db, dice)


@app.post("/campaigns/{campaign_id}/shortage/gain-unrest")
def do_gain_shortage_unrest(
    campaign_id: str,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
    dice: DicePort = Depends(get_dice),
):
    return run_action(campaign_id, gain_shortage_unrest(), player, db, dice)


@app.post("/campaigns/{campaign_id}/structures/pay")
def do_pay_structure(
    campaign_id: str,
    request: PayStructureRequest,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
    dice: DicePort = Depends(get_dice),
):
    return run_action(campaign_id, pay_structure(request.name, request.ignore_cost), player, db, dice)


@app.post("/campaigns/{campaign_id}/structures/build")
def do_build_structure(
    campaign_id: str,
    request: BuildStructureRequest,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
    dice: DicePort = Depends(get_dice),
):
    action = build_structure(request.name, request.skill, request.settlement_id, request.ignore_skill_requirements)
    return run_action(campaign_id, action, player, db, dice)


@app.post("/campaigns/{campaign_id}/fame")
def do_gain_fame(
    campaign_id: str,
    request: AmountRequest,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
    dice: DicePort = Depends(get_dice),
):
    return run_action(campaign_id, gain_fame(request.amount), player, db, dice)


@app.post("/campaigns/{campaign_id}/xp")
def do_gain_xp(
    campaign_id: str,
    request: AmountRequest,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
    dice: DicePort = Depends(get_dice),
):
    return run_action(campaign_id, gain_xp(request.amount), player, db, dice)


@app.post("/campaigns/{campaign_id}/level-up")
def do_level_up(
    campaign_id: str,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
    dice: DicePort = Depends(get_dice),
):
    return run_action(campaign_id, level_up(), player, db, dice)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
