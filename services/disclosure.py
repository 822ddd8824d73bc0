"""Раскрытие контактов участников сделки

Телефон продавца виден победителю, а телефон победителя продавцу, только
после завершения аукциона. Для reserve-аукционов еще нужна подтвержденная
администратором доплата победителя. Email показывается всегда.
Решение вычисляется заново на каждый запрос и не хранится.
"""
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from database.models.auction import Auction, AuctionStatus
from database.models.payment import PaymentRequest, PaymentType, VerificationStatus
from database.models.user import User
from services.auction import get_auction
from services.errors import AuthorizationError
from services.payment import get_auction_payments


def _has_approved_winner_payment(
    auction: Auction,
    winner_id: int,
    payments: Iterable[PaymentRequest]
) -> bool:
    return any(
        payment.auction_id == auction.id
        and payment.user_id == winner_id
        and payment.payment_type == PaymentType.WINNER_PAYMENT.value
        and payment.verification_status == VerificationStatus.APPROVED.value
        for payment in payments
    )


def _is_declared_winner(auction: Auction, winner_id: Optional[int]) -> bool:
    return (
        auction.status == AuctionStatus.ENDED.value
        and auction.winner_id is not None
        and auction.winner_id == winner_id
    )


def can_winner_see_seller_phone(
    auction: Auction,
    winner_id: Optional[int],
    payments: Iterable[PaymentRequest]
) -> bool:
    """Может ли победитель видеть телефон продавца"""
    if not _is_declared_winner(auction, winner_id):
        return False
    if not auction.is_reserve:
        return True
    return _has_approved_winner_payment(auction, winner_id, payments)


def can_seller_see_winner_phone(
    auction: Auction,
    winner_id: Optional[int],
    payments: Iterable[PaymentRequest]
) -> bool:
    """Может ли продавец видеть телефон победителя"""
    if not _is_declared_winner(auction, winner_id):
        return False
    if not auction.is_reserve:
        return True
    return _has_approved_winner_payment(auction, winner_id, payments)


def compute_payment_summary(payments: Iterable[PaymentRequest]) -> dict:
    """Счетчики заявок по статусам для значков"""
    summary = {
        VerificationStatus.PENDING.value: 0,
        VerificationStatus.APPROVED.value: 0,
        VerificationStatus.REJECTED.value: 0,
        "total": 0,
    }
    for payment in payments:
        summary[payment.verification_status] += 1
        summary["total"] += 1
    return summary


def build_contact_card(user: Optional[User], phone_visible: bool) -> Optional[dict]:
    """Контакт участника; телефон скрыт, пока шлюз закрыт"""
    if user is None:
        return None
    return {
        "id": user.id,
        "fullName": user.full_name,
        "email": user.email,
        "phone": user.phone if phone_visible else None,
        "phoneVisible": phone_visible,
    }


async def get_contact_view(
    session: AsyncSession,
    auction_id: int,
    viewer: User
) -> dict:
    """Контакты контрагента для продавца или победителя"""
    auction = await get_auction(session, auction_id)
    payments = await get_auction_payments(session, auction.id)

    if viewer.id == auction.seller_id:
        visible = can_seller_see_winner_phone(auction, auction.winner_id, payments)
        winner = await session.get(User, auction.winner_id) if auction.winner_id else None
        return {
            "auctionId": auction.id,
            "role": "seller",
            "counterparty": build_contact_card(winner, visible),
            "paymentSummary": compute_payment_summary(payments),
        }

    if auction.winner_id is not None and viewer.id == auction.winner_id:
        visible = can_winner_see_seller_phone(auction, viewer.id, payments)
        seller = await session.get(User, auction.seller_id)
        return {
            "auctionId": auction.id,
            "role": "winner",
            "counterparty": build_contact_card(seller, visible),
            "paymentSummary": compute_payment_summary(payments),
        }

    raise AuthorizationError("Only the seller or the winner can view contact details")


async def get_winner_notifications(session: AsyncSession, winner: User) -> list[dict]:
    """Выигранные пользователем аукционы с контактом продавца"""
    result = await session.execute(
        select(Auction)
        .where(
            Auction.winner_id == winner.id,
            Auction.status == AuctionStatus.ENDED.value
        )
        .order_by(Auction.finished_at.desc(), Auction.id.desc())
    )
    notifications = []
    for auction in result.scalars().all():
        payments = await get_auction_payments(session, auction.id)
        seller = await session.get(User, auction.seller_id)
        notifications.append({
            "auction": auction,
            "amount": auction.current_bid,
            "seller": build_contact_card(
                seller,
                can_winner_see_seller_phone(auction, winner.id, payments),
            ),
        })
    return notifications
