import asyncio
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from fairflip.config import settings
from fairflip.core.archive import flip_archive
from fairflip.core.exceptions import (
    FairFlipError,
    IdentityError,
    InsufficientPoints,
    InvalidFlipState,
    InvalidMatchAction,
    MalformedInput,
    MatchNotFound,
    SequenceMisuse,
)
from fairflip.core.ledger import ledger
from fairflip.core.logger import get_logger
from fairflip.core.matches import match_manager
from fairflip.core.security import require_user
from fairflip.core.verification import verify

logger = get_logger("api")

router = APIRouter()

# ==================== Request Models ====================


class CreateMatchRequest(BaseModel):
    bet: int
    side: str = "heads"


class PlayerSeedRequest(BaseModel):
    player_seed: Optional[str] = None


class VerifyRequest(BaseModel):
    # Loosely typed so bad values come back as a reason, not a 422
    server_seed: Optional[Any] = None
    player_seed: Optional[Any] = None
    nonce: Optional[Any] = None
    digest: Optional[Any] = None
    outcome: Optional[Any] = None
    server_seed_hash: Optional[Any] = None


# ==================== Helpers ====================

_STATUS_CODES = {
    MalformedInput: 422,
    MatchNotFound: 404,
    InvalidMatchAction: 409,
    InvalidFlipState: 409,
    SequenceMisuse: 409,
    InsufficientPoints: 400,
}


def http_error(exc: FairFlipError) -> HTTPException:
    """Map a core error onto the HTTP status the client sees."""
    if isinstance(exc, IdentityError):
        return HTTPException(status_code=exc.status_code, detail=str(exc))
    for error_type, status_code in _STATUS_CODES.items():
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


# ==================== Account ====================


@router.get("/account")
async def get_account(user: dict = Depends(require_user)):
    """Server-confirmed points and stats for the caller."""
    return ledger.snapshot(user["username"])


# ==================== Matches ====================


@router.get("/matches")
async def list_matches():
    return {"matches": match_manager.list_active(), "finished": flip_archive.recent()}


@router.post("/matches")
async def create_match(data: CreateMatchRequest, user: dict = Depends(require_user)):
    try:
        room = match_manager.create(user["username"], data.bet, data.side)
    except FairFlipError as e:
        raise http_error(e) from e
    return {**room.to_dict(), "balance": ledger.get_points(user["username"])}


@router.get("/matches/{match_id}")
async def get_match(match_id: int):
    try:
        return match_manager.get(match_id).to_dict()
    except FairFlipError as e:
        raise http_error(e) from e


@router.post("/matches/{match_id}/join")
async def join_match(match_id: int, user: dict = Depends(require_user)):
    """Take the opponent seat. The response carries the server seed commitment."""
    try:
        room = match_manager.join(match_id, user["username"])
    except FairFlipError as e:
        raise http_error(e) from e
    return {
        **room.to_dict(),
        "your_side": room.side_of(user["username"]).value,
        "balance": ledger.get_points(user["username"]),
    }


@router.post("/matches/{match_id}/seed")
async def submit_seed(
    match_id: int, data: PlayerSeedRequest, user: dict = Depends(require_user)
):
    try:
        room = match_manager.submit_player_seed(match_id, user["username"], data.player_seed)
    except FairFlipError as e:
        raise http_error(e) from e
    return room.to_dict()


@router.post("/matches/{match_id}/flip")
async def flip_match(
    match_id: int, data: PlayerSeedRequest = None, user: dict = Depends(require_user)
):
    """
    Reveal the server seed and settle the match.
    A player seed may be supplied here if it was not submitted earlier.
    """
    username = user["username"]
    player_seed = data.player_seed if data is not None else None
    try:
        record = match_manager.flip(match_id, username, player_seed=player_seed)
    except FairFlipError as e:
        raise http_error(e) from e

    delay = settings.fairness.reveal_delay_seconds
    if delay > 0:
        await asyncio.sleep(delay)

    return {
        **record.to_dict(),
        "you_won": record.details["winner"] == username,
        "balance": ledger.get_points(username),
    }


@router.delete("/matches/{match_id}")
async def cancel_match(match_id: int, user: dict = Depends(require_user)):
    try:
        match_manager.cancel(match_id, user["username"])
    except FairFlipError as e:
        raise http_error(e) from e
    return {"success": True, "balance": ledger.get_points(user["username"])}


@router.get("/matches/{match_id}/result")
async def get_result(match_id: int):
    """Archived record of a finished match, while it is still retained."""
    record = flip_archive.get(match_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Result no longer available.")
    return record.to_dict()


# ==================== Fairness ====================


@router.post("/fairness/verify")
async def verify_flip(data: VerifyRequest):
    """Recompute a flip from disclosed values. Needs no account and no outbound calls."""
    result = verify(
        data.server_seed,
        data.player_seed,
        data.nonce,
        data.digest,
        data.outcome,
        server_seed_hash=data.server_seed_hash,
    )
    return result.to_dict()
