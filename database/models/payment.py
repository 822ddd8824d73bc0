"""Модель заявки на оплату"""
from sqlalchemy import Column, BigInteger, Integer, DateTime, ForeignKey, String, Text, Index, text
from database.connection import Base, BigIntegerPK
import enum


class VerificationStatus(str, enum.Enum):
    """Статус проверки платежа администратором"""
    PENDING = "pending"  # Ожидает проверки
    APPROVED = "approved"  # Подтвержден
    REJECTED = "rejected"  # Отклонен


class PaymentType(str, enum.Enum):
    """Тип платежа"""
    PARTICIPATION_FEE = "participation_fee"  # Взнос за участие в reserve-аукционе
    WINNER_PAYMENT = "winner_payment"  # Доплата победителя


_PENDING_ONLY = text("verification_status = 'pending'")
_APPROVED_WINNER_ONLY = text("verification_status = 'approved' AND payment_type = 'winner_payment'")


class PaymentRequest(Base):
    """Запись журнала платежей: заявка пользователя и решение администратора"""
    __tablename__ = "payment_requests"

    id = Column(BigIntegerPK, primary_key=True, index=True)
    user_id = Column(BigInteger, ForeignKey("users.id"), nullable=False, index=True)
    auction_id = Column(BigInteger, ForeignKey("auctions.id"), nullable=False, index=True)
    payment_type = Column(String(50), nullable=False, index=True)
    payment_amount = Column(Integer, nullable=False)
    payment_method = Column(String(100), nullable=False, default="UPI")
    transaction_id = Column(String(255), nullable=True)
    payment_screenshot = Column(String(1000), nullable=False)  # URI скриншота
    paid_at = Column(DateTime(timezone=True), nullable=True)  # Дата оплаты со слов пользователя
    verification_status = Column(String(20), default=VerificationStatus.PENDING.value, nullable=False, index=True)
    admin_notes = Column(Text, nullable=True)
    verified_by_id = Column(BigInteger, ForeignKey("users.id"), nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    bidding_eligible_from = Column(DateTime(timezone=True), nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=False, index=True)

    __table_args__ = (
        # Одна необработанная заявка на (пользователь, аукцион, тип)
        Index(
            "uq_payment_request_pending",
            "user_id", "auction_id", "payment_type",
            unique=True,
            postgresql_where=_PENDING_ONLY,
            sqlite_where=_PENDING_ONLY,
        ),
        # Не более одной подтвержденной оплаты победителя на (пользователь, аукцион)
        Index(
            "uq_payment_request_approved_winner",
            "user_id", "auction_id",
            unique=True,
            postgresql_where=_APPROVED_WINNER_ONLY,
            sqlite_where=_APPROVED_WINNER_ONLY,
        ),
    )
