from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from fairflip.config import settings
from fairflip.core.exceptions import IdentityError
from fairflip.core.identity import identity_verifier
from fairflip.core.logger import get_logger

logger = get_logger("auth")

router = APIRouter()


class UsernameRequest(BaseModel):
    username: str = ""


@router.post("/auth/roblox/start")
async def roblox_start(data: UsernameRequest):
    """Issue a verification code for the caller to paste into their profile."""
    try:
        return await identity_verifier.start(data.username)
    except IdentityError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e


@router.post("/auth/roblox/check")
async def roblox_check(data: UsernameRequest):
    """Look for the code in the profile description and mint a session on success."""
    try:
        result = await identity_verifier.check(data.username)
    except IdentityError as e:
        logger.info(f"Verification check for {data.username!r} failed: {e}")
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e

    response = JSONResponse(result)
    if result["verified"]:
        response.set_cookie(
            settings.security.session_cookie,
            result["token"],
            max_age=settings.security.session_max_age_days * 24 * 3600,
            httponly=True,
            samesite="lax",
            secure=not settings.server.debug,
        )
    return response
