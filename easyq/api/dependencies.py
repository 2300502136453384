import logging
from datetime import datetime, timedelta, timezone
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from jose import JWTError, jwt

from ..config import Settings
from ..runtime import EasyQRuntime

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"


def get_runtime(request: Request) -> EasyQRuntime:
    return request.app.state.runtime


def get_app_settings(request: Request) -> Settings:
    return request.app.state.runtime.settings


def create_access_token(settings: Settings, subject: str = "client") -> str:
    expires = datetime.now(timezone.utc) + timedelta(minutes=settings.token_expire_minutes)
    return jwt.encode({"sub": subject, "exp": expires}, settings.secret_key, algorithm=ALGORITHM)


async def verify_api_token(
    request: Request,
    authorization: Annotated[str | None, Header()] = None,
) -> str:
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = jwt.decode(
            parts[1],
            get_app_settings(request).secret_key,
            algorithms=[ALGORITHM],
        )
        return payload.get("sub", "client")
    except JWTError as e:
        logger.warning("Invalid token: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )


TokenDep = Annotated[str, Depends(verify_api_token)]
RuntimeDep = Annotated[EasyQRuntime, Depends(get_runtime)]
SettingsDep = Annotated[Settings, Depends(get_app_settings)]
