from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from blogapi.config import settings
from blogapi.database import get_db
from blogapi.dependencies import authenticate
from blogapi.exceptions import UnauthorizedError
from blogapi.schemas import (
    Identity,
    LoginRequest,
    LoginResponse,
    MeResponse,
    MessageResponse,
    RegisterRequest,
)
from blogapi.services import auth_service

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register", response_model=MessageResponse)
async def register(data: RegisterRequest, db: AsyncSession = Depends(get_db)):
    await auth_service.register(db, data)
    return MessageResponse(message="registered")


@router.post("/login", response_model=LoginResponse)
async def login(data: LoginRequest, response: Response, db: AsyncSession = Depends(get_db)):
    result = await auth_service.login(db, data.username, data.password)
    response.set_cookie(
        settings.AUTH_COOKIE_NAME,
        result.token,
        max_age=settings.JWT_EXPIRES_DAYS * 24 * 60 * 60,
        httponly=True,
        samesite="lax",
    )
    return result


@router.post("/logout", response_model=MessageResponse)
async def logout(response: Response):
    response.delete_cookie(settings.AUTH_COOKIE_NAME, httponly=True, samesite="lax")
    return MessageResponse(message="logged out")


@router.get("/me", response_model=MeResponse)
async def me(identity: Identity | None = Depends(authenticate(required=False))):
    if identity is None:
        raise UnauthorizedError("unauthorized")
    return MeResponse(user=identity)
