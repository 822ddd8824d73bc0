"""Сервис для работы с пользователями"""
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_
from database.models.user import User, UserRole
from services.errors import NotFoundError

logger = logging.getLogger(__name__)


async def get_user(session: AsyncSession, user_id: int) -> User:
    """Получить пользователя по ID"""
    user = await session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


async def get_or_create_user(
    session: AsyncSession,
    email: str,
    full_name: str,
    phone: Optional[str] = None,
    role: str = UserRole.USER.value,
    telegram_id: Optional[int] = None
) -> User:
    """Получить или создать пользователя (зеркало внешнего хранилища учетных записей)"""
    result = await session.execute(
        select(User).where(User.email == email.lower())
    )
    user = result.scalar_one_or_none()

    if not user:
        user = User(
            email=email.lower(),
            full_name=full_name,
            phone=phone,
            role=role,
            telegram_id=telegram_id
        )
        session.add(user)
        await session.commit()
        await session.refresh(user)
    else:
        # Обновляем данные, если изменились
        if full_name != user.full_name or (phone and phone != user.phone):
            user.full_name = full_name
            user.phone = phone or user.phone
            await session.commit()
            await session.refresh(user)

    return user


async def list_users(
    session: AsyncSession,
    search: str = "",
    page: int = 1,
    page_size: int = 10
) -> tuple[list[User], int]:
    """Страница пользователей с поиском по имени и email"""
    page = max(1, page)
    page_size = max(1, page_size)

    filters = []
    if search:
        pattern = f"%{search.lower()}%"
        filters.append(or_(func.lower(User.full_name).like(pattern), User.email.like(pattern)))

    total = (await session.execute(select(func.count(User.id)).where(*filters))).scalar() or 0
    result = await session.execute(
        select(User)
        .where(*filters)
        .order_by(User.created_at.desc(), User.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(result.scalars().all()), total


async def set_user_suspended(
    session: AsyncSession,
    user_id: int,
    suspended: bool
) -> User:
    """Заблокировать или разблокировать пользователя"""
    user = await get_user(session, user_id)
    user.is_suspended = suspended
    await session.commit()
    await session.refresh(user)
    logger.info(f"Пользователь {user_id}: is_suspended={suspended}")
    return user
