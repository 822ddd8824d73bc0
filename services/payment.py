"""Журнал заявок на оплату

Пользователь присылает подтверждение оплаты (взнос за участие или доплата
победителя), администратор один раз подтверждает или отклоняет заявку.
Записи не переписываются: после отклонения пользователь подает новую заявку,
старая остается в журнале.
"""
import logging
from datetime import datetime
from math import ceil
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func, case
from sqlalchemy.exc import IntegrityError
from database.models.auction import Auction, AuctionStatus
from database.models.payment import PaymentRequest, PaymentType, VerificationStatus
from database.models.user import User
from services.auction import get_auction, utcnow, as_utc
from services.errors import (
    AlreadyResolvedError,
    AuthorizationError,
    DuplicatePendingRequestError,
    NotFoundError,
    ValidationError,
)
from config import settings

logger = logging.getLogger(__name__)


def expected_participation_fee(auction: Auction) -> int:
    """Взнос за участие: минимальная цена или 10% стартовой, но не меньше порога"""
    if auction.minimum_price:
        return auction.minimum_price
    return max(auction.starting_price // 10, settings.PARTICIPATION_FEE_FLOOR)


def expected_winner_payment(auction: Auction) -> int:
    """Доплата победителя: выигрышная ставка минус уже внесенная минимальная цена"""
    return max(auction.current_bid - (auction.minimum_price or 0), 0)


def admin_payment_methods() -> dict:
    return {
        "upi": {
            "id": settings.ADMIN_UPI_ID,
            "qrCode": settings.ADMIN_UPI_QR or None,
            "name": "Auction System Admin",
        },
        "bankTransfer": {
            "accountNumber": settings.ADMIN_ACCOUNT_NUMBER,
            "ifsc": settings.ADMIN_IFSC,
            "accountName": settings.ADMIN_ACCOUNT_NAME,
            "bankName": settings.ADMIN_BANK_NAME,
        },
    }


def _require_reserve(auction: Auction) -> None:
    if not auction.is_reserve:
        raise ValidationError("Payment not required for this auction type")


def _check_participation_allowed(auction: Auction, user: User) -> None:
    _require_reserve(auction)
    if auction.status not in (AuctionStatus.UPCOMING.value, AuctionStatus.ACTIVE.value):
        raise ValidationError("Cannot join - auction is not active")
    if auction.seller_id == user.id:
        raise ValidationError("You cannot join your own auction")


def _check_winner_payment_allowed(auction: Auction, user: User) -> None:
    _require_reserve(auction)
    if auction.status != AuctionStatus.ENDED.value:
        raise ValidationError("Auction has not ended yet")
    if auction.winner_id != user.id:
        raise AuthorizationError("Only the auction winner can make this payment")


async def get_user_payments(
    session: AsyncSession,
    user_id: int,
    auction_id: int,
    payment_type: str
) -> list[PaymentRequest]:
    """Заявки пользователя по аукциону и типу, новые сверху"""
    result = await session.execute(
        select(PaymentRequest)
        .where(
            PaymentRequest.user_id == user_id,
            PaymentRequest.auction_id == auction_id,
            PaymentRequest.payment_type == payment_type
        )
        .order_by(PaymentRequest.submitted_at.desc(), PaymentRequest.id.desc())
    )
    return list(result.scalars().all())


async def get_auction_payments(session: AsyncSession, auction_id: int) -> list[PaymentRequest]:
    """Все записи журнала по аукциону, новые сверху"""
    result = await session.execute(
        select(PaymentRequest)
        .where(PaymentRequest.auction_id == auction_id)
        .order_by(PaymentRequest.submitted_at.desc(), PaymentRequest.id.desc())
    )
    return list(result.scalars().all())


async def get_payment_details(
    session: AsyncSession,
    auction_id: int,
    user: User
) -> dict:
    """Реквизиты и сумма взноса за участие в reserve-аукционе"""
    auction = await get_auction(session, auction_id)
    _check_participation_allowed(auction, user)

    amount = expected_participation_fee(auction)
    basis = "Minimum price for participation" if auction.minimum_price else "10% of starting price"
    existing = await get_user_payments(session, user.id, auction.id, PaymentType.PARTICIPATION_FEE.value)
    return {
        "auctionId": auction.id,
        "auctionTitle": auction.title,
        "initialPaymentAmount": amount,
        "currency": auction.currency,
        "paymentMethods": admin_payment_methods(),
        "existingStatus": existing[0].verification_status if existing else None,
        "instructions": [
            f"Pay exactly {amount} {auction.currency} ({basis})",
            "Take a clear screenshot of the payment confirmation",
            "Upload the screenshot using the form below",
            "Wait for admin verification before bidding",
        ],
    }


async def get_winner_payment_details(
    session: AsyncSession,
    auction_id: int,
    user: User
) -> dict:
    """Реквизиты и сумма доплаты победителя"""
    auction = await get_auction(session, auction_id)
    _check_winner_payment_allowed(auction, user)

    amount = expected_winner_payment(auction)
    minimum_price = auction.minimum_price or 0
    existing = await get_user_payments(session, user.id, auction.id, PaymentType.WINNER_PAYMENT.value)
    return {
        "auctionId": auction.id,
        "auctionTitle": auction.title,
        "winningAmount": amount,
        "originalBidAmount": auction.current_bid,
        "minimumPrice": minimum_price,
        "auctionType": auction.auction_type,
        "currency": auction.currency,
        "paymentMethods": admin_payment_methods(),
        "existingStatus": existing[0].verification_status if existing else None,
        "instructions": [
            f"Pay the additional amount of {amount} {auction.currency} "
            f"(Your Bid: {auction.current_bid} - Minimum Price: {minimum_price})",
            "Take a clear screenshot of the payment confirmation",
            "Upload the screenshot using the form below",
            "Wait for admin verification to complete the purchase",
        ],
    }


async def submit_payment_request(
    session: AsyncSession,
    user: User,
    auction_id: int,
    payment_type: str,
    payment_screenshot: str,
    amount: Optional[int] = None,
    payment_method: str = "UPI",
    transaction_id: Optional[str] = None,
    paid_at: Optional[datetime] = None
) -> PaymentRequest:
    """Подать заявку на оплату (статус pending)"""
    if payment_type not in (PaymentType.PARTICIPATION_FEE.value, PaymentType.WINNER_PAYMENT.value):
        raise ValidationError(f"Unknown payment type: {payment_type}")
    if not payment_screenshot or not payment_screenshot.strip():
        raise ValidationError("Payment screenshot is required")
    if amount is not None and amount < 0:
        raise ValidationError("Payment amount must not be negative")

    auction = await get_auction(session, auction_id)
    if payment_type == PaymentType.PARTICIPATION_FEE.value:
        _check_participation_allowed(auction, user)
        expected = expected_participation_fee(auction)
    else:
        _check_winner_payment_allowed(auction, user)
        expected = expected_winner_payment(auction)

    for existing in await get_user_payments(session, user.id, auction.id, payment_type):
        if existing.verification_status == VerificationStatus.PENDING.value:
            raise DuplicatePendingRequestError(
                "Payment request already exists",
                status=existing.verification_status,
            )
        if existing.verification_status == VerificationStatus.APPROVED.value:
            raise AlreadyResolvedError(
                "Payment has already been approved",
                status=existing.verification_status,
            )

    now = utcnow()
    payment_request = PaymentRequest(
        user_id=user.id,
        auction_id=auction.id,
        payment_type=payment_type,
        payment_amount=expected if amount is None else amount,
        payment_method=(payment_method or "UPI").strip(),
        transaction_id=(transaction_id or "").strip() or None,
        payment_screenshot=payment_screenshot.strip(),
        paid_at=as_utc(paid_at) or now,
        verification_status=VerificationStatus.PENDING.value,
        submitted_at=now,
    )
    session.add(payment_request)
    try:
        await session.commit()
    except IntegrityError:
        # Параллельная заявка успела раньше
        await session.rollback()
        raise DuplicatePendingRequestError(
            "Payment request already exists",
            status=VerificationStatus.PENDING.value,
        )
    await session.refresh(payment_request)

    logger.info(
        f"Заявка на оплату {payment_request.id} ({payment_type}, {payment_request.payment_amount}) "
        f"от пользователя {user.id} по аукциону {auction.id}"
    )
    return payment_request


async def get_payment_request(session: AsyncSession, request_id: int) -> PaymentRequest:
    """Получить заявку по ID"""
    result = await session.execute(
        select(PaymentRequest)
        .where(PaymentRequest.id == request_id)
        .execution_options(populate_existing=True)
    )
    payment_request = result.scalar_one_or_none()
    if not payment_request:
        raise NotFoundError("Payment request not found")
    return payment_request


async def _resolve_payment_request(
    session: AsyncSession,
    request_id: int,
    values: dict
) -> PaymentRequest:
    """Перевести заявку из pending одним условным UPDATE"""
    payment_request = await get_payment_request(session, request_id)
    if payment_request.verification_status != VerificationStatus.PENDING.value:
        raise AlreadyResolvedError(
            "Payment request has already been processed",
            currentStatus=payment_request.verification_status,
        )

    try:
        result = await session.execute(
            update(PaymentRequest)
            .where(
                PaymentRequest.id == request_id,
                PaymentRequest.verification_status == VerificationStatus.PENDING.value
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        resolved = result.rowcount == 1
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise AlreadyResolvedError(
            "An approved winner payment already exists for this auction",
            currentStatus=VerificationStatus.PENDING.value,
        )

    payment_request = await get_payment_request(session, request_id)
    if not resolved:
        raise AlreadyResolvedError(
            "Payment request has already been processed",
            currentStatus=payment_request.verification_status,
        )
    return payment_request


async def approve_payment_request(
    session: AsyncSession,
    request_id: int,
    admin: User,
    admin_notes: Optional[str] = None
) -> PaymentRequest:
    """Подтвердить оплату"""
    payment_request = await get_payment_request(session, request_id)
    now = utcnow()
    values = {
        "verification_status": VerificationStatus.APPROVED.value,
        "verified_by_id": admin.id,
        "verified_at": now,
        "admin_notes": (admin_notes or "").strip() or "Payment approved by admin",
    }
    if payment_request.payment_type == PaymentType.PARTICIPATION_FEE.value:
        # Участник может делать ставки сразу после подтверждения
        values["bidding_eligible_from"] = now

    payment_request = await _resolve_payment_request(session, request_id, values)
    logger.info(
        f"Оплата {request_id} ({payment_request.payment_type}) подтверждена администратором {admin.id}"
    )
    return payment_request


async def reject_payment_request(
    session: AsyncSession,
    request_id: int,
    admin: User,
    admin_notes: str
) -> PaymentRequest:
    """Отклонить оплату; причина обязательна"""
    if not admin_notes or not admin_notes.strip():
        raise ValidationError("Rejection reason is required")

    payment_request = await _resolve_payment_request(
        session,
        request_id,
        {
            "verification_status": VerificationStatus.REJECTED.value,
            "verified_by_id": admin.id,
            "verified_at": utcnow(),
            "admin_notes": admin_notes.strip(),
        },
    )
    logger.info(f"Оплата {request_id} отклонена администратором {admin.id}")
    return payment_request


async def count_payment_requests(session: AsyncSession) -> dict:
    """Счетчики по статусам и типам по всему журналу"""
    counts = {
        VerificationStatus.PENDING.value: 0,
        VerificationStatus.APPROVED.value: 0,
        VerificationStatus.REJECTED.value: 0,
        "total": 0,
        "winner_payments": 0,
        "participation_fees": 0,
    }

    result = await session.execute(
        select(PaymentRequest.verification_status, func.count(PaymentRequest.id))
        .group_by(PaymentRequest.verification_status)
    )
    for status, count in result.all():
        counts[status] = count
        counts["total"] += count

    result = await session.execute(
        select(PaymentRequest.payment_type, func.count(PaymentRequest.id))
        .group_by(PaymentRequest.payment_type)
    )
    for payment_type, count in result.all():
        if payment_type == PaymentType.WINNER_PAYMENT.value:
            counts["winner_payments"] = count
        else:
            counts["participation_fees"] += count

    return counts


async def list_payment_requests(
    session: AsyncSession,
    status: str = "all",
    payment_type: str = "all",
    page: int = 1,
    limit: int = 20
) -> tuple[list[PaymentRequest], dict, dict]:
    """Страница журнала для администратора: оплаты победителей первыми, новые сверху"""
    page = max(1, page)
    limit = max(1, limit)

    filters = []
    if status and status != "all":
        filters.append(PaymentRequest.verification_status == status)
    if payment_type and payment_type != "all":
        filters.append(PaymentRequest.payment_type == payment_type)

    total = (
        await session.execute(select(func.count(PaymentRequest.id)).where(*filters))
    ).scalar() or 0

    winner_first = case(
        (PaymentRequest.payment_type == PaymentType.WINNER_PAYMENT.value, 0),
        else_=1,
    )
    result = await session.execute(
        select(PaymentRequest)
        .where(*filters)
        .order_by(winner_first, PaymentRequest.submitted_at.desc(), PaymentRequest.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    pagination = {
        "current": page,
        "total": ceil(total / limit),
        "limit": limit,
        "totalRecords": total,
    }
    counts = await count_payment_requests(session)
    return list(result.scalars().all()), pagination, counts


async def get_payment_request_detail(session: AsyncSession, request_id: int) -> dict:
    """Заявка вместе с плательщиком, аукционом, продавцом и проверяющим"""
    payment_request = await get_payment_request(session, request_id)
    auction = await session.get(Auction, payment_request.auction_id)
    return {
        "payment_request": payment_request,
        "user": await session.get(User, payment_request.user_id),
        "auction": auction,
        "seller": await session.get(User, auction.seller_id) if auction else None,
        "verified_by": (
            await session.get(User, payment_request.verified_by_id)
            if payment_request.verified_by_id else None
        ),
    }


async def get_my_payments(session: AsyncSession, user_id: int) -> list[tuple[PaymentRequest, Auction]]:
    """Заявки пользователя вместе с аукционами"""
    result = await session.execute(
        select(PaymentRequest, Auction)
        .join(Auction, PaymentRequest.auction_id == Auction.id)
        .where(PaymentRequest.user_id == user_id)
        .order_by(PaymentRequest.submitted_at.desc(), PaymentRequest.id.desc())
    )
    return [(payment, auction) for payment, auction in result.all()]


def _status_view(payment_request: PaymentRequest) -> dict:
    return {
        "status": payment_request.verification_status,
        "amount": payment_request.payment_amount,
        "submittedAt": payment_request.submitted_at,
        "verifiedAt": payment_request.verified_at,
        "adminNotes": payment_request.admin_notes,
    }


async def get_payment_status(
    session: AsyncSession,
    auction_id: int,
    user: User
) -> dict:
    """Статус взноса за участие: есть ли заявка и можно ли делать ставки"""
    auction = await get_auction(session, auction_id)
    payments = await get_user_payments(session, user.id, auction.id, PaymentType.PARTICIPATION_FEE.value)
    if not payments:
        return {
            "hasPayment": False,
            "canBid": False,
            "message": "No payment request found for this auction",
        }

    latest = payments[0]
    return {
        "hasPayment": True,
        "canBid": latest.verification_status == VerificationStatus.APPROVED.value,
        "paymentRequest": _status_view(latest),
    }


async def get_winner_payment_status(
    session: AsyncSession,
    auction_id: int,
    user: User
) -> dict:
    """Статус доплаты победителя; продавец видит оплату своего победителя"""
    auction = await get_auction(session, auction_id)
    is_auction_creator = auction.seller_id == user.id

    if is_auction_creator:
        if auction.winner_id is None:
            payments = []
        else:
            payments = await get_user_payments(
                session, auction.winner_id, auction.id, PaymentType.WINNER_PAYMENT.value
            )
        if not payments:
            return {
                "isAuctionCreator": True,
                "hasPayment": False,
                "message": "No winner has submitted payment for this auction yet",
            }
        winner = await session.get(User, auction.winner_id)
        view = _status_view(payments[0])
        view["winnerName"] = winner.full_name if winner else None
        return {
            "isAuctionCreator": True,
            "hasPayment": True,
            "winnerPayment": view,
            "message": f"Winner payment is {payments[0].verification_status}",
        }

    payments = await get_user_payments(session, user.id, auction.id, PaymentType.WINNER_PAYMENT.value)
    if not payments:
        return {
            "isAuctionCreator": False,
            "hasPayment": False,
            "message": "No winner payment request found for this auction",
        }
    return {
        "isAuctionCreator": False,
        "hasPayment": True,
        "paymentRequest": _status_view(payments[0]),
        "message": f"Your payment is {payments[0].verification_status}",
    }
