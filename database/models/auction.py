"""Модель аукциона"""
from sqlalchemy import Column, BigInteger, Integer, DateTime, ForeignKey, String, Text, JSON
from sqlalchemy.sql import func
import enum
from database.connection import Base, BigIntegerPK


class AuctionType(str, enum.Enum):
    """Тип аукциона"""
    ENGLISH = "english"
    DUTCH = "dutch"
    SEALED = "sealed"
    RESERVE = "reserve"  # Требует сертификаты и одобрение администратора


class AuctionStatus(str, enum.Enum):
    """Статус аукциона"""
    UPCOMING = "upcoming"  # Ожидает начала
    ACTIVE = "active"  # Идут торги
    ENDED = "ended"  # Завершен
    STOPPED = "stopped"  # Остановлен администратором
    DELETED = "deleted"  # Мягко удален


class ApprovalStatus(str, enum.Enum):
    """Статус одобрения администратором"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class AuctionCategory(str, enum.Enum):
    """Категория лота"""
    ELECTRONICS = "Electronics"
    FASHION = "Fashion"
    HOME_AND_GARDEN = "Home & Garden"
    COLLECTIBLES = "Collectibles"
    ART = "Art"
    BOOKS = "Books"
    MUSIC = "Music"
    JEWELRY = "Jewelry"
    VEHICLES = "Vehicles"
    AUTOMOTIVE = "Automotive"
    SPORTS = "Sports"
    OTHER = "Other"


class Auction(Base):
    """Модель аукциона"""
    __tablename__ = "auctions"

    id = Column(BigIntegerPK, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String(50), nullable=False)
    auction_type = Column(String(20), default=AuctionType.ENGLISH.value, nullable=False, index=True)
    approval_status = Column(String(20), default=ApprovalStatus.APPROVED.value, nullable=False)
    status = Column(String(20), default=AuctionStatus.UPCOMING.value, nullable=False, index=True)

    starting_price = Column(Integer, nullable=False)
    current_bid = Column(Integer, nullable=False)  # Равна максимальной ставке или стартовой цене
    reserve_price = Column(Integer, nullable=True)  # Только для sealed
    minimum_price = Column(Integer, nullable=True)  # Только для reserve
    bid_increment = Column(Integer, default=10, nullable=False)
    currency = Column(String(10), default="USD", nullable=False)

    images = Column(JSON, nullable=False, default=list)  # URI изображений (1-5)
    video = Column(String(500), nullable=True)
    certificates = Column(JSON, nullable=False, default=list)  # URI сертификатов (reserve)

    seller_id = Column(BigInteger, ForeignKey("users.id"), nullable=False, index=True)
    current_highest_bidder_id = Column(BigInteger, ForeignKey("users.id"), nullable=True)
    winner_id = Column(BigInteger, ForeignKey("users.id"), nullable=True, index=True)

    starts_at = Column(DateTime(timezone=True), nullable=False)
    ends_at = Column(DateTime(timezone=True), nullable=False, index=True)
    finished_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)

    @property
    def is_reserve(self) -> bool:
        return self.auction_type == AuctionType.RESERVE.value
