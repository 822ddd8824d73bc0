"""Админ-маршруты: модерация заявок, управление аукционами и пользователями"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from database.connection import get_session
from database.models.user import User
from schemas import AdminNotesBody, AuctionOut, AuctionRequestOut, UserBrief, UserOut, dump
from services.auction import continue_auction, delete_auction, get_all_auctions, stop_auction
from services.moderation import (
    approve_auction_request,
    get_auction_request,
    get_auction_request_stats,
    get_auction_requests,
    reject_auction_request,
)
from services.user import list_users, set_user_suspended
from api.deps import require_admin

router = APIRouter(prefix="/admin", tags=["admin"])


# ---------- Заявки на reserve-аукционы ----------

@router.get("/auction-requests")
async def auction_requests(
    status: str = "pending",
    page: int = 1,
    limit: int = 10,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session)
):
    requests, pagination = await get_auction_requests(session, status, page, limit)
    return {
        "requests": [dump(AuctionRequestOut, auction_request) for auction_request in requests],
        "pagination": pagination,
    }


@router.get("/auction-requests/stats")
async def auction_request_stats(
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session)
):
    return await get_auction_request_stats(session)


@router.get("/auction-requests/{request_id}")
async def auction_request_detail(
    request_id: int,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session)
):
    auction_request = await get_auction_request(session, request_id)
    seller = await session.get(User, auction_request.seller_id)
    return dump(AuctionRequestOut, auction_request, seller=dump(UserBrief, seller) if seller else None)


@router.post("/auction-requests/{request_id}/approve")
async def approve_request(
    request_id: int,
    body: Optional[AdminNotesBody] = None,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session)
):
    auction_request, auction = await approve_auction_request(session, request_id, admin, body.admin_notes if body else None)
    return {
        "message": "Auction request approved and auction created successfully",
        "auctionRequest": dump(AuctionRequestOut, auction_request),
        "auction": dump(AuctionOut, auction),
    }


@router.post("/auction-requests/{request_id}/reject")
async def reject_request(
    request_id: int,
    body: Optional[AdminNotesBody] = None,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session)
):
    auction_request = await reject_auction_request(session, request_id, admin, body.admin_notes if body else "")
    return {
        "message": "Auction request rejected",
        "auctionRequest": dump(AuctionRequestOut, auction_request),
    }


# ---------- Аукционы ----------

@router.get("/auctions")
async def all_auctions(
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session)
):
    auctions = await get_all_auctions(session)
    return [dump(AuctionOut, auction) for auction in auctions]


@router.get("/auctions/deleted")
async def deleted_auctions(
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session)
):
    auctions = await get_all_auctions(session, deleted_only=True)
    return [dump(AuctionOut, auction) for auction in auctions]


@router.put("/auctions/{auction_id}/stop")
async def stop(
    auction_id: int,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session)
):
    auction = await stop_auction(session, auction_id)
    return {"message": "Auction stopped", "auction": dump(AuctionOut, auction)}


@router.put("/auctions/{auction_id}/continue")
async def resume(
    auction_id: int,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session)
):
    auction = await continue_auction(session, auction_id)
    return {"message": "Auction continued", "auction": dump(AuctionOut, auction)}


@router.delete("/auctions/{auction_id}")
async def remove(
    auction_id: int,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session)
):
    await delete_auction(session, auction_id, admin)
    return {"message": "Auction deleted"}


# ---------- Пользователи ----------

@router.get("/users")
async def users(
    search: str = "",
    page: int = 1,
    page_size: int = Query(10, alias="pageSize"),
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session)
):
    found, total = await list_users(session, search, page, page_size)
    return {"users": [dump(UserOut, user) for user in found], "total": total}


@router.put("/users/{user_id}/suspend")
async def suspend(
    user_id: int,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session)
):
    user = await set_user_suspended(session, user_id, True)
    return {"message": "User suspended", "user": dump(UserOut, user)}


@router.put("/users/{user_id}/unsuspend")
async def unsuspend(
    user_id: int,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session)
):
    user = await set_user_suspended(session, user_id, False)
    return {"message": "User unsuspended", "user": dump(UserOut, user)}
