"""Маршруты аукционов для пользователей"""
from typing import Optional

from aiogram import Bot
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from database.connection import get_session
from database.models.auction_request import AuctionRequest
from database.models.user import User
from schemas import (
    AuctionBrief,
    AuctionDraft,
    AuctionOut,
    AuctionRequestOut,
    AuctionUpdate,
    BidOut,
    EndTimeBody,
    PlaceBidBody,
    UserBrief,
    dump,
)
from services.auction import (
    delete_auction,
    force_end_auction,
    get_auction,
    get_created_bids,
    get_my_auctions,
    get_participated_bids,
    place_bid,
    submit_auction,
    update_auction,
    update_end_time,
)
from services.disclosure import get_contact_view, get_winner_notifications
from services.moderation import get_my_auction_requests
from services.notifications import notify_auction_finished
from api.deps import get_bot, get_current_user

router = APIRouter(prefix="/auctions", tags=["auctions"])


@router.post("", status_code=201)
async def create_auction(
    draft: AuctionDraft,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    created = await submit_auction(session, user, draft)
    if isinstance(created, AuctionRequest):
        return {
            "message": "Reserve auction request submitted successfully. "
                       "It will be reviewed by admin before going live.",
            "auctionRequest": dump(AuctionRequestOut, created),
            "requiresApproval": True,
        }
    return {
        "message": "Auction created successfully",
        "auction": dump(AuctionOut, created),
        "requiresApproval": False,
    }


@router.get("/my")
async def my_auctions(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    auctions = await get_my_auctions(session, user.id)
    return [dump(AuctionOut, auction) for auction in auctions]


@router.get("/my-requests")
async def my_auction_requests(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    requests = await get_my_auction_requests(session, user.id)
    return [dump(AuctionRequestOut, auction_request) for auction_request in requests]


@router.get("/user/winner-notifications")
async def winner_notifications(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    notifications = await get_winner_notifications(session, user)
    return {
        "notifications": [
            {
                "auction": dump(AuctionBrief, item["auction"]),
                "amount": item["amount"],
                "seller": item["seller"],
            }
            for item in notifications
        ]
    }


@router.get("/user/participated-bids")
async def participated_bids(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    rows = await get_participated_bids(session, user.id)
    return {
        "bids": [
            dump(BidOut, bid, auction=dump(AuctionBrief, auction))
            for bid, auction in rows
        ],
        "totalBids": len(rows),
    }


@router.get("/user/created-bids/{auction_id}")
async def created_bids(
    auction_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    bids = await get_created_bids(session, auction_id, user)
    items = []
    for bid in bids:
        bidder = await session.get(User, bid.user_id)
        items.append(dump(BidOut, bid, bidder=dump(UserBrief, bidder) if bidder else None))
    return {
        "success": True,
        "bids": items,
        "totalBids": len(items),
        "highestBid": items[0] if items else None,
    }


@router.get("/{auction_id}")
async def auction_detail(
    auction_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    auction = await get_auction(session, auction_id)
    return dump(AuctionOut, auction)


@router.get("/{auction_id}/contacts")
async def auction_contacts(
    auction_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    return await get_contact_view(session, auction_id, user)


@router.post("/{auction_id}/bid")
async def bid(
    auction_id: int,
    body: PlaceBidBody,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    placed = await place_bid(session, auction_id, user, body.amount)
    auction = await get_auction(session, auction_id)
    return {
        "message": "Bid placed successfully",
        "bid": dump(BidOut, placed),
        "auction": dump(AuctionOut, auction),
    }


@router.delete("/{auction_id}")
async def remove_auction(
    auction_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    await delete_auction(session, auction_id, user)
    return {"message": "Auction deleted successfully"}


@router.put("/{auction_id}")
async def edit_auction(
    auction_id: int,
    changes: AuctionUpdate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    auction = await update_auction(session, auction_id, user, changes)
    return {"message": "Auction updated successfully", "auction": dump(AuctionOut, auction)}


@router.put("/{auction_id}/endtime")
async def change_end_time(
    auction_id: int,
    body: EndTimeBody,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    bot: Optional[Bot] = Depends(get_bot)
):
    auction, finished_now = await update_end_time(session, auction_id, user, body.ends_at)
    if finished_now:
        await notify_auction_finished(bot, session, auction)
    return {
        "message": "End time updated successfully",
        "endsAt": auction.ends_at,
        "auction": dump(AuctionOut, auction),
    }


@router.post("/{auction_id}/force-end")
async def force_end(
    auction_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    bot: Optional[Bot] = Depends(get_bot)
):
    auction = await force_end_auction(session, auction_id, user)
    await notify_auction_finished(bot, session, auction)
    return {"message": "Auction force-ended successfully", "auction": dump(AuctionOut, auction)}
