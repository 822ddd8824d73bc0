"""Админ-маршруты журнала оплат"""
from typing import Optional

from aiogram import Bot
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from database.connection import get_session
from database.models.user import User
from schemas import AdminNotesBody, AuctionOut, PaymentRequestOut, UserBrief, UserContact, dump
from services.auction import get_auction
from services.notifications import notify_payment_verified
from services.payment import (
    approve_payment_request,
    get_auction_payments,
    get_payment_request_detail,
    list_payment_requests,
    reject_payment_request,
)
from api.deps import get_bot, require_admin

router = APIRouter(prefix="/admin/payments", tags=["admin-payments"])


async def _payment_view(session: AsyncSession, payment_request) -> dict:
    user = await session.get(User, payment_request.user_id)
    return dump(PaymentRequestOut, payment_request, user=dump(UserContact, user) if user else None)


@router.get("/payment-requests")
async def payment_requests(
    status: str = "all",
    payment_type: str = Query("all", alias="paymentType"),
    page: int = 1,
    limit: int = 20,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session)
):
    records, pagination, counts = await list_payment_requests(session, status, payment_type, page, limit)
    return {
        "message": "Payment requests retrieved successfully",
        "paymentRequests": [await _payment_view(session, record) for record in records],
        "pagination": pagination,
        "counts": counts,
    }


@router.get("/payment-requests/{request_id}")
async def payment_request_detail(
    request_id: int,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session)
):
    detail = await get_payment_request_detail(session, request_id)
    auction = detail["auction"]
    seller = detail["seller"]
    verified_by = detail["verified_by"]
    return {
        "message": "Payment request details retrieved successfully",
        "paymentRequest": dump(
            PaymentRequestOut,
            detail["payment_request"],
            user=dump(UserContact, detail["user"]) if detail["user"] else None,
            auction=dump(AuctionOut, auction, seller=dump(UserBrief, seller) if seller else None)
            if auction else None,
            verified_by=dump(UserBrief, verified_by) if verified_by else None,
        ),
    }


@router.post("/payment-requests/{request_id}/approve")
async def approve(
    request_id: int,
    body: Optional[AdminNotesBody] = None,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
    bot: Optional[Bot] = Depends(get_bot)
):
    payment_request = await approve_payment_request(
        session, request_id, admin, body.admin_notes if body else None
    )
    await notify_payment_verified(bot, session, payment_request)
    return {
        "message": "Payment approved successfully",
        "paymentRequest": dump(PaymentRequestOut, payment_request),
    }


@router.post("/payment-requests/{request_id}/reject")
async def reject(
    request_id: int,
    body: Optional[AdminNotesBody] = None,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
    bot: Optional[Bot] = Depends(get_bot)
):
    payment_request = await reject_payment_request(
        session, request_id, admin, body.admin_notes if body else ""
    )
    await notify_payment_verified(bot, session, payment_request)
    return {
        "message": "Payment rejected",
        "paymentRequest": dump(PaymentRequestOut, payment_request),
    }


@router.get("/auction/{auction_id}/payment-requests")
async def auction_payment_requests(
    auction_id: int,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session)
):
    auction = await get_auction(session, auction_id, include_deleted=True)
    payments = await get_auction_payments(session, auction.id)
    return {
        "message": "Auction payment requests retrieved successfully",
        "auction": dump(AuctionOut, auction),
        "paymentRequests": [await _payment_view(session, payment) for payment in payments],
    }
