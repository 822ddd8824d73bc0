"""Модель заявки на reserve-аукцион (очередь модерации)"""
from sqlalchemy import Column, BigInteger, Integer, String, DateTime, ForeignKey, Text, JSON
from sqlalchemy.sql import func
from database.connection import Base, BigIntegerPK
from database.models.auction import ApprovalStatus, AuctionType


class AuctionRequest(Base):
    """Reserve-аукцион, ожидающий одобрения администратора"""
    __tablename__ = "auction_requests"

    id = Column(BigIntegerPK, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String(50), nullable=False)
    auction_type = Column(String(20), default=AuctionType.RESERVE.value, nullable=False)
    starting_price = Column(Integer, nullable=False)
    minimum_price = Column(Integer, nullable=False)
    bid_increment = Column(Integer, default=10, nullable=False)
    currency = Column(String(10), default="USD", nullable=False)
    images = Column(JSON, nullable=False, default=list)
    video = Column(String(500), nullable=True)
    certificates = Column(JSON, nullable=False, default=list)
    starts_at = Column(DateTime(timezone=True), nullable=False)
    ends_at = Column(DateTime(timezone=True), nullable=False)

    seller_id = Column(BigInteger, ForeignKey("users.id"), nullable=False, index=True)
    approval_status = Column(String(20), default=ApprovalStatus.PENDING.value, nullable=False, index=True)
    admin_notes = Column(Text, nullable=True)  # Комментарий или причина отклонения
    reviewed_by_id = Column(BigInteger, ForeignKey("users.id"), nullable=True)  # ID администратора
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    created_auction_id = Column(BigInteger, ForeignKey("auctions.id"), nullable=True)
    submitted_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
