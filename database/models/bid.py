"""Модель ставки"""
from sqlalchemy import Column, BigInteger, Integer, DateTime, ForeignKey, Boolean
from database.connection import Base, BigIntegerPK


class Bid(Base):
    """Модель ставки на аукционе (только добавление, порядок id = хронология)"""
    __tablename__ = "bids"

    id = Column(BigIntegerPK, primary_key=True, index=True)
    auction_id = Column(BigInteger, ForeignKey("auctions.id"), nullable=False, index=True)
    user_id = Column(BigInteger, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)  # Сумма ставки
    is_winning = Column(Boolean, default=False, nullable=False)  # Является ли выигрышной
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
