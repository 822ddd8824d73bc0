"""Модель пользователя"""
from sqlalchemy import Column, BigInteger, String, DateTime, Boolean
from sqlalchemy.sql import func
import enum
from database.connection import Base, BigIntegerPK


class UserRole(str, enum.Enum):
    """Роль пользователя"""
    USER = "user"
    ADMIN = "admin"


class User(Base):
    """Модель пользователя площадки"""
    __tablename__ = "users"

    id = Column(BigIntegerPK, primary_key=True, index=True)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone = Column(String(20), nullable=True)
    role = Column(String(20), default=UserRole.USER.value, nullable=False)
    is_suspended = Column(Boolean, default=False, nullable=False)
    telegram_id = Column(BigInteger, nullable=True, index=True)  # Для уведомлений через бота
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value
