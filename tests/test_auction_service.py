import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import select

from database.models.auction import Auction, AuctionStatus, ApprovalStatus
from database.models.auction_request import AuctionRequest
from database.models.bid import Bid
from schemas import AuctionUpdate
from services import auction as auction_service
from services.auction import (
    continue_auction,
    delete_auction,
    finish_auction,
    force_end_auction,
    get_auction,
    get_auction_bids,
    get_created_bids,
    get_participated_bids,
    place_bid,
    stop_auction,
    submit_auction,
    update_auction,
    update_end_time,
    utcnow,
)
from services.errors import (
    AlreadyResolvedError,
    AuthorizationError,
    InvalidBidError,
    NotFoundError,
    ValidationError,
)
from services.moderation import (
    approve_auction_request,
    get_auction_request_stats,
    get_auction_requests,
    reject_auction_request,
)
from services.user import set_user_suspended
from tests.conftest import create_live_reserve_auction, join_reserve_auction, make_draft


async def test_english_auction_goes_live_immediately(session, seller):
    auction = await submit_auction(session, seller, make_draft())

    assert isinstance(auction, Auction)
    assert auction.status == AuctionStatus.ACTIVE.value
    assert auction.approval_status == ApprovalStatus.APPROVED.value
    assert auction.current_bid == auction.starting_price


async def test_future_start_is_upcoming(session, seller):
    now = utcnow()
    auction = await submit_auction(
        session,
        seller,
        make_draft(starts_at=now + timedelta(hours=1), ends_at=now + timedelta(hours=2)),
    )
    assert auction.status == AuctionStatus.UPCOMING.value


async def test_reserve_auction_waits_for_moderation(session, seller):
    created = await submit_auction(session, seller, make_draft("reserve"))

    assert isinstance(created, AuctionRequest)
    assert created.approval_status == ApprovalStatus.PENDING.value
    result = await session.execute(select(Auction))
    assert result.scalars().all() == []


@pytest.mark.parametrize("images", [[], [f"https://cdn.example.com/{i}.jpg" for i in range(6)]])
async def test_image_count_is_validated(session, seller, images):
    with pytest.raises(ValidationError):
        await submit_auction(session, seller, make_draft(images=images))


@pytest.mark.parametrize("certificates", [[], [f"https://cdn.example.com/{i}.pdf" for i in range(6)]])
async def test_reserve_certificate_count_is_validated(session, seller, certificates):
    with pytest.raises(ValidationError):
        await submit_auction(session, seller, make_draft("reserve", certificates=certificates))


async def test_end_before_start_is_rejected(session, seller):
    now = utcnow()
    with pytest.raises(ValidationError):
        await submit_auction(
            session,
            seller,
            make_draft(starts_at=now + timedelta(hours=2), ends_at=now + timedelta(hours=1)),
        )


async def test_suspended_seller_cannot_create(session, seller):
    await set_user_suspended(session, seller.id, True)
    with pytest.raises(AuthorizationError):
        await submit_auction(session, seller, make_draft())


async def test_approve_creates_live_auction(session, seller, admin):
    auction_request = await submit_auction(session, seller, make_draft("reserve"))

    reviewed, auction = await approve_auction_request(session, auction_request.id, admin, "Looks fine")

    assert reviewed.approval_status == ApprovalStatus.APPROVED.value
    assert reviewed.created_auction_id == auction.id
    assert reviewed.reviewed_by_id == admin.id
    assert auction.auction_type == "reserve"
    assert auction.minimum_price == 100
    assert auction.status == AuctionStatus.ACTIVE.value
    assert auction.certificates == ["https://cdn.example.com/ownership.pdf"]


async def test_request_cannot_be_resolved_twice(session, seller, admin):
    auction_request = await submit_auction(session, seller, make_draft("reserve"))
    await reject_auction_request(session, auction_request.id, admin, "Blurry certificate")

    with pytest.raises(AlreadyResolvedError):
        await approve_auction_request(session, auction_request.id, admin)
    with pytest.raises(AlreadyResolvedError):
        await reject_auction_request(session, auction_request.id, admin, "Again")


async def test_reject_requires_reason(session, seller, admin):
    auction_request = await submit_auction(session, seller, make_draft("reserve"))

    with pytest.raises(ValidationError):
        await reject_auction_request(session, auction_request.id, admin, "  ")

    requests, pagination = await get_auction_requests(session)
    assert [r.id for r in requests] == [auction_request.id]
    assert pagination == {"current": 1, "pages": 1, "total": 1, "limit": 10}


async def test_bids_must_beat_current_plus_increment(session, seller, bidder):
    auction = await submit_auction(session, seller, make_draft())

    with pytest.raises(InvalidBidError):
        await place_bid(session, auction.id, bidder, 100)
    with pytest.raises(InvalidBidError) as exc_info:
        await place_bid(session, auction.id, bidder, 105)
    assert exc_info.value.current_bid == 100

    auction = await get_auction(session, auction.id)
    assert auction.current_bid == 100
    assert auction.current_highest_bidder_id is None
    assert await get_auction_bids(session, auction.id) == []


async def test_highest_bid_becomes_current(session, seller, bidder, other_bidder):
    auction = await submit_auction(session, seller, make_draft())

    await place_bid(session, auction.id, bidder, 110)
    await place_bid(session, auction.id, other_bidder, 150)
    with pytest.raises(InvalidBidError) as exc_info:
        await place_bid(session, auction.id, bidder, 155)
    assert exc_info.value.current_bid == 150

    auction = await get_auction(session, auction.id)
    assert auction.current_bid == 150
    assert auction.current_highest_bidder_id == other_bidder.id
    bids = await get_auction_bids(session, auction.id)
    assert [b.amount for b in bids] == [110, 150]


async def test_seller_cannot_bid_on_own_auction(session, seller):
    auction = await submit_auction(session, seller, make_draft())
    with pytest.raises(ValidationError):
        await place_bid(session, auction.id, seller, 200)


async def test_bid_on_upcoming_auction_fails(session, seller, bidder):
    now = utcnow()
    auction = await submit_auction(
        session,
        seller,
        make_draft(starts_at=now + timedelta(hours=1), ends_at=now + timedelta(hours=2)),
    )
    with pytest.raises(InvalidBidError):
        await place_bid(session, auction.id, bidder, 200)


async def test_concurrent_bids_accept_exactly_one(session_maker, seller, bidder, other_bidder):
    async with session_maker() as setup:
        auction = await submit_auction(setup, seller, make_draft())

    async def bid_as(user, amount):
        async with session_maker() as own_session:
            try:
                return await place_bid(own_session, auction.id, user, amount)
            except InvalidBidError as e:
                return e

    first, second = await asyncio.gather(bid_as(bidder, 110), bid_as(other_bidder, 115))

    placed = [r for r in (first, second) if isinstance(r, Bid)]
    failed = [r for r in (first, second) if isinstance(r, InvalidBidError)]
    assert len(placed) == 1
    assert len(failed) == 1
    assert failed[0].current_bid == placed[0].amount

    async with session_maker() as check:
        auction = await get_auction(check, auction.id)
        assert auction.current_bid == placed[0].amount
        assert auction.current_highest_bidder_id == placed[0].user_id
        assert len(await get_auction_bids(check, auction.id)) == 1


async def test_reserve_bidding_requires_approved_fee(session, seller, bidder, admin):
    auction = await create_live_reserve_auction(session, seller, admin)

    with pytest.raises(AuthorizationError) as exc_info:
        await place_bid(session, auction.id, bidder, 200)
    assert exc_info.value.details["requiresPayment"] is True

    await join_reserve_auction(session, auction, bidder, admin)
    bid = await place_bid(session, auction.id, bidder, 200)
    assert bid.amount == 200


async def test_finish_declares_highest_bidder_winner(session, seller, bidder, other_bidder):
    auction = await submit_auction(session, seller, make_draft())
    await place_bid(session, auction.id, bidder, 110)
    await place_bid(session, auction.id, other_bidder, 130)

    auction, finished_now = await finish_auction(session, auction.id)
    assert finished_now
    assert auction.status == AuctionStatus.ENDED.value
    assert auction.winner_id == other_bidder.id

    bids = await get_auction_bids(session, auction.id)
    assert [b.is_winning for b in bids] == [False, True]

    # Повторное завершение ничего не меняет
    auction, finished_now = await finish_auction(session, auction.id)
    assert not finished_now
    assert auction.winner_id == other_bidder.id


async def test_ended_auction_never_reverts(session, seller, bidder):
    auction = await submit_auction(session, seller, make_draft())
    await finish_auction(session, auction.id)

    with pytest.raises(InvalidBidError):
        await place_bid(session, auction.id, bidder, 500)
    with pytest.raises(ValidationError):
        await stop_auction(session, auction.id)
    auction = await get_auction(session, auction.id)
    assert auction.status == AuctionStatus.ENDED.value


async def test_stop_and_continue(session, seller, bidder):
    auction = await submit_auction(session, seller, make_draft())

    auction = await stop_auction(session, auction.id)
    assert auction.status == AuctionStatus.STOPPED.value
    with pytest.raises(InvalidBidError):
        await place_bid(session, auction.id, bidder, 200)

    auction = await continue_auction(session, auction.id)
    assert auction.status == AuctionStatus.ACTIVE.value
    with pytest.raises(ValidationError):
        await continue_auction(session, auction.id)


async def test_delete_is_soft_and_owner_only(session, seller, bidder, admin):
    auction = await submit_auction(session, seller, make_draft())

    with pytest.raises(AuthorizationError):
        await delete_auction(session, auction.id, bidder)

    await delete_auction(session, auction.id, seller)
    with pytest.raises(NotFoundError):
        await get_auction(session, auction.id)
    deleted = await get_auction(session, auction.id, include_deleted=True)
    assert deleted.status == AuctionStatus.DELETED.value


async def test_created_bids_sorted_for_owner_only(session, seller, bidder, other_bidder):
    auction = await submit_auction(session, seller, make_draft())
    await place_bid(session, auction.id, bidder, 110)
    await place_bid(session, auction.id, other_bidder, 120)

    bids = await get_created_bids(session, auction.id, seller)
    assert [b.amount for b in bids] == [120, 110]

    with pytest.raises(AuthorizationError):
        await get_created_bids(session, auction.id, bidder)

    history = await get_participated_bids(session, bidder.id)
    assert [(b.amount, a.id) for b, a in history] == [(110, auction.id)]


async def test_stop_keeps_auction_that_ended_meanwhile(session_maker, seller, bidder, monkeypatch):
    async with session_maker() as setup:
        auction = await submit_auction(setup, seller, make_draft())
        await place_bid(setup, auction.id, bidder, 110)

    refresh = auction_service.refresh_auction_status

    async def refresh_then_finish_elsewhere(own_session, current, now=None):
        refreshed = await refresh(own_session, current, now)
        # Планировщик успевает завершить аукцион между чтением и записью
        async with session_maker() as scheduler_session:
            await finish_auction(scheduler_session, current.id)
        return refreshed

    monkeypatch.setattr(auction_service, "refresh_auction_status", refresh_then_finish_elsewhere)
    async with session_maker() as admin_session:
        with pytest.raises(ValidationError):
            await stop_auction(admin_session, auction.id)
    monkeypatch.undo()

    async with session_maker() as check:
        ended = await get_auction(check, auction.id)
        assert ended.status == AuctionStatus.ENDED.value
        assert ended.winner_id == bidder.id


async def test_continue_keeps_auction_deleted_meanwhile(session_maker, seller, admin, monkeypatch):
    async with session_maker() as setup:
        auction = await submit_auction(setup, seller, make_draft())
        await stop_auction(setup, auction.id)

    set_status = auction_service._set_status

    async def delete_elsewhere_first(own_session, auction_id, expected, new_status, now):
        if new_status != AuctionStatus.DELETED.value:
            async with session_maker() as other:
                await delete_auction(other, auction_id, admin)
        return await set_status(own_session, auction_id, expected, new_status, now)

    monkeypatch.setattr(auction_service, "_set_status", delete_elsewhere_first)
    async with session_maker() as admin_session:
        with pytest.raises(ValidationError):
            await continue_auction(admin_session, auction.id)
    monkeypatch.undo()

    async with session_maker() as check:
        deleted = await get_auction(check, auction.id, include_deleted=True)
        assert deleted.status == AuctionStatus.DELETED.value


async def test_seller_updates_upcoming_auction(session, seller, bidder):
    now = utcnow()
    auction = await submit_auction(
        session,
        seller,
        make_draft(starts_at=now + timedelta(hours=1), ends_at=now + timedelta(hours=3)),
    )

    with pytest.raises(AuthorizationError):
        await update_auction(session, auction.id, bidder, AuctionUpdate(title="Hijacked"))

    updated = await update_auction(
        session,
        auction.id,
        seller,
        AuctionUpdate(title="Rare film camera", starting_price=150, ends_at=now + timedelta(hours=5)),
    )
    assert updated.title == "Rare film camera"
    assert updated.starting_price == 150
    assert updated.current_bid == 150
    assert updated.status == AuctionStatus.UPCOMING.value


async def test_update_validates_fields(session, seller):
    now = utcnow()
    auction = await submit_auction(
        session,
        seller,
        make_draft(starts_at=now + timedelta(hours=1), ends_at=now + timedelta(hours=3)),
    )

    with pytest.raises(ValidationError):
        await update_auction(session, auction.id, seller, AuctionUpdate(ends_at=now + timedelta(minutes=30)))
    with pytest.raises(ValidationError):
        await update_auction(session, auction.id, seller, AuctionUpdate(images=[]))
    with pytest.raises(ValidationError):
        await update_auction(session, auction.id, seller, AuctionUpdate(minimum_price=50))


async def test_only_upcoming_auction_can_be_updated(session, seller):
    auction = await submit_auction(session, seller, make_draft())
    assert auction.status == AuctionStatus.ACTIVE.value

    with pytest.raises(ValidationError):
        await update_auction(session, auction.id, seller, AuctionUpdate(title="Too late"))
    auction = await get_auction(session, auction.id)
    assert auction.title == "Vintage camera"


async def test_end_time_moves_for_active_auction(session, seller, bidder):
    auction = await submit_auction(session, seller, make_draft())
    new_end = utcnow() + timedelta(days=1)

    with pytest.raises(AuthorizationError):
        await update_end_time(session, auction.id, bidder, new_end)

    moved, finished_now = await update_end_time(session, auction.id, seller, new_end)
    assert not finished_now
    assert moved.status == AuctionStatus.ACTIVE.value
    assert abs((auction_service.as_utc(moved.ends_at) - new_end).total_seconds()) < 1


async def test_end_time_in_past_declares_winner(session, seller, bidder):
    auction = await submit_auction(session, seller, make_draft(starts_at=utcnow() - timedelta(hours=1)))
    await place_bid(session, auction.id, bidder, 110)

    ended, finished_now = await update_end_time(
        session, auction.id, seller, utcnow() - timedelta(minutes=1)
    )
    assert finished_now
    assert ended.status == AuctionStatus.ENDED.value
    assert ended.winner_id == bidder.id

    with pytest.raises(ValidationError):
        await update_end_time(session, auction.id, seller, utcnow() + timedelta(days=1))


async def test_force_end_declares_winner(session, seller, bidder):
    auction = await submit_auction(session, seller, make_draft())
    await place_bid(session, auction.id, bidder, 120)

    with pytest.raises(AuthorizationError):
        await force_end_auction(session, auction.id, bidder)

    ended = await force_end_auction(session, auction.id, seller)
    assert ended.status == AuctionStatus.ENDED.value
    assert ended.winner_id == bidder.id
    bids = await get_auction_bids(session, auction.id)
    assert bids[0].is_winning

    with pytest.raises(ValidationError):
        await force_end_auction(session, auction.id, seller)


async def test_auction_request_stats(session, seller, admin):
    first = await submit_auction(session, seller, make_draft("reserve"))
    second = await submit_auction(session, seller, make_draft("reserve"))
    await submit_auction(session, seller, make_draft("reserve"))
    await approve_auction_request(session, first.id, admin)
    await reject_auction_request(session, second.id, admin, "Certificate is unreadable")

    assert await get_auction_request_stats(session) == {
        "pending": 1,
        "approved": 1,
        "rejected": 1,
        "total": 3,
    }
