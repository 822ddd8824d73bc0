"""Маршруты оплаты для пользователей"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from database.connection import get_session
from database.models.payment import PaymentType
from database.models.user import User
from schemas import AuctionBrief, PaymentRequestOut, PaymentSubmission, dump
from services.payment import (
    get_my_payments,
    get_payment_details,
    get_payment_status,
    get_winner_payment_details,
    get_winner_payment_status,
    submit_payment_request,
)
from api.deps import get_current_user

router = APIRouter(prefix="/payments", tags=["payments"])


async def _submit(session: AsyncSession, user: User, body: PaymentSubmission, payment_type: str):
    return await submit_payment_request(
        session,
        user,
        body.auction_id,
        payment_type,
        body.payment_screenshot,
        amount=body.payment_amount,
        payment_method=body.payment_method,
        transaction_id=body.transaction_id,
        paid_at=body.payment_date,
    )


@router.get("/payment-details/{auction_id}")
async def payment_details(
    auction_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    return {
        "message": "Payment details retrieved successfully",
        "paymentDetails": await get_payment_details(session, auction_id, user),
    }


@router.post("/submit-payment", status_code=201)
async def submit_payment(
    body: PaymentSubmission,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    payment_request = await _submit(session, user, body, PaymentType.PARTICIPATION_FEE.value)
    return {
        "message": "Payment request submitted successfully",
        "paymentRequest": dump(PaymentRequestOut, payment_request),
        "status": payment_request.verification_status,
    }


@router.get("/winner-payment-details/{auction_id}")
async def winner_payment_details(
    auction_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    return {
        "message": "Winner payment details retrieved successfully",
        "paymentDetails": await get_winner_payment_details(session, auction_id, user),
    }


@router.post("/submit-winner-payment", status_code=201)
async def submit_winner_payment(
    body: PaymentSubmission,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    payment_request = await _submit(session, user, body, PaymentType.WINNER_PAYMENT.value)
    return {
        "message": "Winner payment request submitted successfully",
        "paymentRequest": dump(PaymentRequestOut, payment_request),
        "status": payment_request.verification_status,
    }


@router.get("/my-payments")
async def my_payments(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    rows = await get_my_payments(session, user.id)
    return {
        "message": "Payment requests retrieved successfully",
        "paymentRequests": [
            dump(PaymentRequestOut, payment, auction=dump(AuctionBrief, auction))
            for payment, auction in rows
        ],
    }


@router.get("/payment-status/{auction_id}")
async def payment_status(
    auction_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    return await get_payment_status(session, auction_id, user)


@router.get("/winner-payment-status/{auction_id}")
async def winner_payment_status(
    auction_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    return await get_winner_payment_status(session, auction_id, user)
