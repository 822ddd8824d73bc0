"""Зависимости FastAPI: сессия БД, текущий пользователь, бот"""
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from aiogram import Bot
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from database.connection import get_session
from database.models.user import User
from config import settings

security = HTTPBearer()


def create_access_token(user_id: int, role: str, expires_in: timedelta = timedelta(days=7)) -> str:
    """Выпустить JWT для пользователя"""
    payload = {
        "id": user_id,
        "role": role,
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    session: AsyncSession = Depends(get_session)
) -> User:
    payload = decode_token(credentials.credentials)
    user_id = payload.get("id")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token payload")
    user = await session.get(User, int(user_id))
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


def get_bot(request: Request) -> Optional[Bot]:
    """Бот из состояния приложения (None, если уведомления выключены)"""
    return getattr(request.app.state, "bot", None)
