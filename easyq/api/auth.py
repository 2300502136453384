"""
Authentication API Routes

Exchanges the configured API token for a short-lived bearer JWT.
"""

import logging
import secrets

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from .dependencies import SettingsDep, create_access_token

logger = logging.getLogger(__name__)
router = APIRouter()


class TokenRequest(BaseModel):
    api_token: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


@router.post("/token", response_model=TokenResponse)
async def issue_token(body: TokenRequest, settings: SettingsDep):
    if not secrets.compare_digest(body.api_token.encode(), settings.api_token.encode()):
        logger.warning("Rejected token request with invalid API token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API token",
        )

    return TokenResponse(
        access_token=create_access_token(settings),
        expires_in=settings.token_expire_minutes * 60,
    )
