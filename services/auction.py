"""Сервис для работы с аукционами"""
import logging
from datetime import datetime, timezone
from typing import Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from database.models.auction import (
    Auction,
    AuctionStatus,
    AuctionType,
    ApprovalStatus,
)
from database.models.auction_request import AuctionRequest
from database.models.bid import Bid
from database.models.payment import PaymentRequest, PaymentType, VerificationStatus
from database.models.user import User
from schemas import AuctionDraft, AuctionUpdate, ReserveAuctionDraft, SealedAuctionDraft
from services.errors import (
    AuthorizationError,
    InvalidBidError,
    NotFoundError,
    ValidationError,
)
from config import settings

logger = logging.getLogger(__name__)

MAX_IMAGES = 5
MAX_CERTIFICATES = 5


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Привести datetime к aware UTC (SQLite возвращает naive)"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def status_for_times(starts_at: datetime, ends_at: datetime, now: datetime) -> str:
    """Статус живого аукциона по его времени"""
    if now < as_utc(starts_at):
        return AuctionStatus.UPCOMING.value
    if now < as_utc(ends_at):
        return AuctionStatus.ACTIVE.value
    return AuctionStatus.ENDED.value


def _validate_images(images: list[str]) -> None:
    if not images:
        raise ValidationError("At least one image is required")
    if len(images) > MAX_IMAGES:
        raise ValidationError(f"Maximum {MAX_IMAGES} images allowed")


def _validate_times(starts_at: datetime, ends_at: datetime, now: datetime) -> None:
    if ends_at <= starts_at:
        raise ValidationError("End date must be after start date")
    if ends_at <= now:
        raise ValidationError("End date must be in the future")


def _validate_draft(draft: AuctionDraft, now: datetime) -> None:
    _validate_images(draft.images)

    if isinstance(draft, ReserveAuctionDraft):
        if not draft.certificates:
            raise ValidationError("At least one ownership certificate is required for reserve auctions")
        if len(draft.certificates) > MAX_CERTIFICATES:
            raise ValidationError(f"Maximum {MAX_CERTIFICATES} ownership certificates allowed")

    _validate_times(as_utc(draft.starts_at), as_utc(draft.ends_at), now)


async def submit_auction(
    session: AsyncSession,
    seller: User,
    draft: AuctionDraft
) -> Union[Auction, AuctionRequest]:
    """Создать аукцион; reserve-аукцион уходит на модерацию"""
    if seller.is_suspended:
        raise AuthorizationError("Your account is suspended. You cannot create auctions.")

    now = utcnow()
    _validate_draft(draft, now)

    if isinstance(draft, ReserveAuctionDraft):
        auction_request = AuctionRequest(
            title=draft.title,
            description=draft.description,
            category=draft.category.value,
            auction_type=AuctionType.RESERVE.value,
            starting_price=draft.starting_price,
            minimum_price=draft.minimum_price,
            bid_increment=draft.bid_increment,
            currency=draft.currency,
            images=list(draft.images),
            video=draft.video,
            certificates=list(draft.certificates),
            starts_at=as_utc(draft.starts_at),
            ends_at=as_utc(draft.ends_at),
            seller_id=seller.id,
            approval_status=ApprovalStatus.PENDING.value,
            submitted_at=now,
        )
        session.add(auction_request)
        await session.commit()
        await session.refresh(auction_request)
        logger.info(f"Заявка на reserve-аукцион {auction_request.id} от пользователя {seller.id} ждет модерации")
        return auction_request

    auction = Auction(
        title=draft.title,
        description=draft.description,
        category=draft.category.value,
        auction_type=draft.auction_type,
        approval_status=ApprovalStatus.APPROVED.value,
        status=status_for_times(draft.starts_at, draft.ends_at, now),
        starting_price=draft.starting_price,
        current_bid=draft.starting_price,
        reserve_price=draft.reserve_price if isinstance(draft, SealedAuctionDraft) else None,
        bid_increment=draft.bid_increment,
        currency=draft.currency,
        images=list(draft.images),
        video=draft.video,
        certificates=[],
        seller_id=seller.id,
        starts_at=as_utc(draft.starts_at),
        ends_at=as_utc(draft.ends_at),
    )
    session.add(auction)
    await session.commit()
    await session.refresh(auction)
    logger.info(f"Аукцион {auction.id} ({auction.auction_type}) создан, статус {auction.status}")
    return auction


async def _load_auction(session: AsyncSession, auction_id: int) -> Optional[Auction]:
    result = await session.execute(
        select(Auction)
        .where(Auction.id == auction_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_auction(
    session: AsyncSession,
    auction_id: int,
    include_deleted: bool = False
) -> Auction:
    """Получить аукцион, применив переходы статуса по времени"""
    auction = await _load_auction(session, auction_id)
    if not auction or (auction.status == AuctionStatus.DELETED.value and not include_deleted):
        raise NotFoundError("Auction not found")
    return await refresh_auction_status(session, auction)


async def refresh_auction_status(
    session: AsyncSession,
    auction: Auction,
    now: Optional[datetime] = None
) -> Auction:
    """Перевести аукцион upcoming -> active -> ended, если подошло время"""
    now = now or utcnow()

    if auction.status == AuctionStatus.UPCOMING.value and as_utc(auction.starts_at) <= now:
        await activate_auction(session, auction.id, now)
        await session.refresh(auction)

    if (
        auction.status in (AuctionStatus.UPCOMING.value, AuctionStatus.ACTIVE.value)
        and as_utc(auction.ends_at) <= now
    ):
        auction, _ = await finish_auction(session, auction.id, now)

    return auction


async def activate_auction(
    session: AsyncSession,
    auction_id: int,
    now: Optional[datetime] = None
) -> bool:
    """Запустить торги; возвращает True, если статус действительно сменился"""
    now = now or utcnow()
    result = await session.execute(
        update(Auction)
        .where(
            Auction.id == auction_id,
            Auction.status == AuctionStatus.UPCOMING.value,
            Auction.starts_at <= now,
            Auction.ends_at > now
        )
        .values(status=AuctionStatus.ACTIVE.value, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    activated = bool(result.rowcount)
    await session.commit()
    if activated:
        logger.info(f"Аукцион {auction_id} запущен")
    return activated


async def finish_auction(
    session: AsyncSession,
    auction_id: int,
    now: Optional[datetime] = None
) -> tuple[Auction, bool]:
    """Завершить аукцион и определить победителя

    Текущий лидер становится победителем. Возвращает (аукцион, завершен_сейчас);
    повторный вызов для уже завершенного аукциона ничего не меняет.
    """
    now = now or utcnow()
    result = await session.execute(
        update(Auction)
        .where(
            Auction.id == auction_id,
            Auction.status.in_([AuctionStatus.UPCOMING.value, AuctionStatus.ACTIVE.value])
        )
        .values(
            status=AuctionStatus.ENDED.value,
            winner_id=Auction.current_highest_bidder_id,
            finished_at=now,
            updated_at=now
        )
        .execution_options(synchronize_session=False)
    )
    finished_now = bool(result.rowcount)

    if finished_now:
        # Помечаем выигрышную ставку
        result = await session.execute(
            select(Bid)
            .where(Bid.auction_id == auction_id)
            .order_by(Bid.amount.desc(), Bid.created_at.asc(), Bid.id.asc())
            .limit(1)
        )
        winning_bid = result.scalar_one_or_none()
        if winning_bid:
            winning_bid.is_winning = True

    await session.commit()

    auction = await _load_auction(session, auction_id)
    if not auction:
        raise NotFoundError("Auction not found")
    if finished_now:
        logger.info(f"Аукцион {auction_id} завершен. Победитель: {auction.winner_id}")
    return auction, finished_now


async def _ensure_participation_approved(
    session: AsyncSession,
    auction: Auction,
    bidder_id: int,
    now: datetime
) -> None:
    result = await session.execute(
        select(PaymentRequest)
        .where(
            PaymentRequest.auction_id == auction.id,
            PaymentRequest.user_id == bidder_id,
            PaymentRequest.payment_type == PaymentType.PARTICIPATION_FEE.value
        )
        .order_by(PaymentRequest.submitted_at.desc(), PaymentRequest.id.desc())
        .limit(1)
    )
    payment = result.scalar_one_or_none()

    if not payment:
        raise AuthorizationError(
            "Payment required to participate in reserve auction",
            requiresPayment=True,
        )
    if payment.verification_status == VerificationStatus.PENDING.value:
        raise AuthorizationError(
            "Your payment is being verified by admin. Please wait for approval.",
            paymentStatus=payment.verification_status,
        )
    if payment.verification_status == VerificationStatus.REJECTED.value:
        raise AuthorizationError(
            f"Your payment was rejected. Reason: {payment.admin_notes or 'Contact admin for details'}",
            paymentStatus=payment.verification_status,
            requiresPayment=True,
        )
    eligible_from = as_utc(payment.bidding_eligible_from)
    if not eligible_from or eligible_from > now:
        raise AuthorizationError(
            "Payment approved but bidding not yet enabled. Contact admin.",
            paymentStatus=payment.verification_status,
        )


async def place_bid(
    session: AsyncSession,
    auction_id: int,
    bidder: User,
    amount: int
) -> Bid:
    """Сделать ставку

    Цена обновляется условным UPDATE по наблюдаемой current_bid. Если другой
    участник успел раньше, аукцион перечитывается и ставка проверяется заново.
    """
    if bidder.is_suspended:
        raise AuthorizationError("Your account is suspended. You cannot participate in auctions.")
    if amount is None or amount <= 0:
        raise ValidationError("Valid bid amount is required")

    # После rollback() объекты сессии просрочены
    bidder_id = bidder.id

    observed_bid = None
    for attempt in range(1, settings.BID_RETRY_ATTEMPTS + 1):
        now = utcnow()
        auction = await get_auction(session, auction_id)

        if auction.status != AuctionStatus.ACTIVE.value:
            raise InvalidBidError("Auction is not active", current_bid=auction.current_bid)
        if auction.seller_id == bidder_id:
            raise ValidationError("You cannot bid on your own auction")
        if auction.is_reserve:
            await _ensure_participation_approved(session, auction, bidder_id, now)

        observed_bid = auction.current_bid
        if amount <= observed_bid:
            raise InvalidBidError(
                f"Bid must be higher than current bid of {observed_bid}",
                current_bid=observed_bid,
            )
        if amount < observed_bid + auction.bid_increment:
            raise InvalidBidError(
                f"Minimum bid increment is {auction.bid_increment}",
                current_bid=observed_bid,
            )

        result = await session.execute(
            update(Auction)
            .where(
                Auction.id == auction_id,
                Auction.status == AuctionStatus.ACTIVE.value,
                Auction.current_bid == observed_bid
            )
            .values(
                current_bid=amount,
                current_highest_bidder_id=bidder_id,
                updated_at=now
            )
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 1:
            bid = Bid(
                auction_id=auction_id,
                user_id=bidder_id,
                amount=amount,
                created_at=now
            )
            session.add(bid)
            await session.commit()
            await session.refresh(bid)
            logger.info(f"Ставка {amount} на аукцион {auction_id} от пользователя {bidder_id}")
            return bid

        await session.rollback()
        logger.warning(
            f"Аукцион {auction_id}: цена изменилась во время ставки {amount} "
            f"(попытка {attempt}/{settings.BID_RETRY_ATTEMPTS})"
        )

    auction = await get_auction(session, auction_id)
    raise InvalidBidError(
        f"Bid could not be placed, current bid is now {auction.current_bid}",
        current_bid=auction.current_bid,
    )


async def _get_live_auction(session: AsyncSession, auction_id: int) -> Auction:
    auction = await _load_auction(session, auction_id)
    if not auction or auction.status == AuctionStatus.DELETED.value:
        raise NotFoundError("Auction not found")
    return auction


async def _set_status(
    session: AsyncSession,
    auction_id: int,
    expected: list[str],
    new_status: str,
    now: datetime
) -> bool:
    """Сменить статус, только если текущий статус из expected"""
    result = await session.execute(
        update(Auction)
        .where(Auction.id == auction_id, Auction.status.in_(expected))
        .values(status=new_status, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    changed = bool(result.rowcount)
    await session.commit()
    return changed


async def stop_auction(session: AsyncSession, auction_id: int) -> Auction:
    """Остановить аукцион (администратор)"""
    auction = await _get_live_auction(session, auction_id)
    await refresh_auction_status(session, auction)

    stopped = await _set_status(
        session,
        auction_id,
        [AuctionStatus.UPCOMING.value, AuctionStatus.ACTIVE.value],
        AuctionStatus.STOPPED.value,
        utcnow(),
    )
    auction = await _load_auction(session, auction_id)
    if not stopped:
        raise ValidationError(f"Auction is {auction.status} and cannot be stopped")
    logger.info(f"Аукцион {auction_id} остановлен")
    return auction


async def continue_auction(session: AsyncSession, auction_id: int) -> Auction:
    """Возобновить остановленный аукцион (администратор)"""
    auction = await _get_live_auction(session, auction_id)
    if auction.status != AuctionStatus.STOPPED.value:
        raise ValidationError("Only stopped auctions can be continued")

    now = utcnow()
    new_status = status_for_times(auction.starts_at, auction.ends_at, now)
    # Срок истек во время остановки: возобновляем и сразу завершаем
    resumed = await _set_status(
        session,
        auction_id,
        [AuctionStatus.STOPPED.value],
        AuctionStatus.ACTIVE.value if new_status == AuctionStatus.ENDED.value else new_status,
        now,
    )
    if not resumed:
        raise ValidationError("Only stopped auctions can be continued")
    logger.info(f"Аукцион {auction_id} возобновлен")

    if new_status == AuctionStatus.ENDED.value:
        auction, _ = await finish_auction(session, auction_id, now)
        return auction
    return await _load_auction(session, auction_id)


async def delete_auction(
    session: AsyncSession,
    auction_id: int,
    actor: User
) -> Auction:
    """Мягко удалить аукцион (продавец или администратор)"""
    auction = await _get_live_auction(session, auction_id)
    if auction.seller_id != actor.id and not actor.is_admin:
        raise AuthorizationError("Not authorized to delete this auction")

    deleted = await _set_status(
        session,
        auction_id,
        [status.value for status in AuctionStatus if status != AuctionStatus.DELETED],
        AuctionStatus.DELETED.value,
        utcnow(),
    )
    if not deleted:
        raise NotFoundError("Auction not found")
    logger.info(f"Аукцион {auction_id} удален пользователем {actor.id}")
    return await _load_auction(session, auction_id)


async def update_auction(
    session: AsyncSession,
    auction_id: int,
    seller: User,
    changes: AuctionUpdate
) -> Auction:
    """Изменить аукцион, пока он не начался (продавец)"""
    auction = await get_auction(session, auction_id)
    if auction.status != AuctionStatus.UPCOMING.value:
        raise ValidationError("Only upcoming auctions can be updated")
    if auction.seller_id != seller.id:
        raise AuthorizationError("Not authorized to update this auction")

    values = changes.model_dump(exclude_none=True)
    if not values:
        return auction

    if "category" in values:
        values["category"] = changes.category.value
    if "reserve_price" in values and auction.auction_type != AuctionType.SEALED.value:
        raise ValidationError("Reserve price is only accepted for sealed auctions")
    if "minimum_price" in values and not auction.is_reserve:
        raise ValidationError("Minimum price is only accepted for reserve auctions")
    if "images" in values:
        _validate_images(values["images"])

    now = utcnow()
    starts_at = as_utc(values.get("starts_at", auction.starts_at))
    ends_at = as_utc(values.get("ends_at", auction.ends_at))
    _validate_times(starts_at, ends_at, now)
    values["starts_at"] = starts_at
    values["ends_at"] = ends_at
    # До начала торгов ставок нет, текущая цена равна стартовой
    if "starting_price" in values:
        values["current_bid"] = values["starting_price"]
    values["updated_at"] = now

    result = await session.execute(
        update(Auction)
        .where(Auction.id == auction_id, Auction.status == AuctionStatus.UPCOMING.value)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    updated = bool(result.rowcount)
    await session.commit()
    if not updated:
        raise ValidationError("Only upcoming auctions can be updated")

    logger.info(f"Аукцион {auction_id} изменен продавцом {seller.id}: {sorted(changes.model_fields_set)}")
    return await get_auction(session, auction_id)


async def update_end_time(
    session: AsyncSession,
    auction_id: int,
    seller: User,
    ends_at: datetime
) -> tuple[Auction, bool]:
    """Перенести окончание активного аукциона (продавец)

    Если новое время уже наступило, аукцион завершается и победитель
    объявляется сразу. Возвращает (аукцион, завершен_сейчас).
    """
    auction = await get_auction(session, auction_id)
    if auction.status != AuctionStatus.ACTIVE.value:
        raise ValidationError("Only active auctions can be updated")
    if auction.seller_id != seller.id:
        raise AuthorizationError("Not authorized to update this auction")

    ends_at = as_utc(ends_at)
    if ends_at <= as_utc(auction.starts_at):
        raise ValidationError("End date must be after start date")

    now = utcnow()
    result = await session.execute(
        update(Auction)
        .where(Auction.id == auction_id, Auction.status == AuctionStatus.ACTIVE.value)
        .values(ends_at=ends_at, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    moved = bool(result.rowcount)
    await session.commit()
    if not moved:
        auction = await _load_auction(session, auction_id)
        raise ValidationError(f"Auction is {auction.status} and its end time cannot be changed")
    logger.info(f"Аукцион {auction_id}: окончание перенесено на {ends_at.isoformat()}")

    if ends_at <= now:
        return await finish_auction(session, auction_id, now)
    return await _load_auction(session, auction_id), False


async def force_end_auction(
    session: AsyncSession,
    auction_id: int,
    seller: User
) -> Auction:
    """Досрочно завершить свой аукцион и объявить победителя"""
    auction = await get_auction(session, auction_id)
    if auction.seller_id != seller.id:
        raise AuthorizationError("Not authorized to end this auction")

    now = utcnow()
    result = await session.execute(
        update(Auction)
        .where(
            Auction.id == auction_id,
            Auction.status.in_([AuctionStatus.UPCOMING.value, AuctionStatus.ACTIVE.value])
        )
        .values(ends_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        await session.rollback()
        auction = await _load_auction(session, auction_id)
        raise ValidationError(f"Auction is {auction.status} and cannot be ended")

    # finish_auction коммитит перенос срока вместе с завершением
    auction, _ = await finish_auction(session, auction_id, now)
    logger.info(f"Аукцион {auction_id} досрочно завершен продавцом {seller.id}")
    return auction


async def get_auction_bids(session: AsyncSession, auction_id: int) -> list[Bid]:
    """Ставки аукциона в хронологическом порядке"""
    result = await session.execute(
        select(Bid)
        .where(Bid.auction_id == auction_id)
        .order_by(Bid.id.asc())
    )
    return list(result.scalars().all())


async def get_created_bids(
    session: AsyncSession,
    auction_id: int,
    seller: User
) -> list[Bid]:
    """Ставки на аукцион продавца: сначала крупные, при равенстве новые"""
    auction = await get_auction(session, auction_id, include_deleted=True)
    if auction.seller_id != seller.id:
        raise AuthorizationError("Access denied: You are not the owner of this auction")

    result = await session.execute(
        select(Bid)
        .where(Bid.auction_id == auction_id)
        .order_by(Bid.amount.desc(), Bid.created_at.desc(), Bid.id.desc())
    )
    return list(result.scalars().all())


async def get_participated_bids(session: AsyncSession, user_id: int) -> list[tuple[Bid, Auction]]:
    """История ставок пользователя вместе с аукционами"""
    result = await session.execute(
        select(Bid, Auction)
        .join(Auction, Bid.auction_id == Auction.id)
        .where(Bid.user_id == user_id)
        .order_by(Bid.created_at.desc(), Bid.id.desc())
    )
    return [(bid, auction) for bid, auction in result.all()]


async def get_my_auctions(session: AsyncSession, seller_id: int) -> list[Auction]:
    """Аукционы продавца"""
    result = await session.execute(
        select(Auction)
        .where(Auction.seller_id == seller_id)
        .order_by(Auction.created_at.desc(), Auction.id.desc())
    )
    auctions = list(result.scalars().all())
    return [await refresh_auction_status(session, auction) for auction in auctions]


async def get_all_auctions(session: AsyncSession, deleted_only: bool = False) -> list[Auction]:
    """Все аукционы для администратора"""
    query = select(Auction).order_by(Auction.created_at.desc(), Auction.id.desc())
    if deleted_only:
        query = query.where(Auction.status == AuctionStatus.DELETED.value)
    result = await session.execute(query)
    return list(result.scalars().all())


async def get_due_auctions(
    session: AsyncSession,
    now: datetime
) -> tuple[list[int], list[int]]:
    """ID аукционов, которые пора запустить, и тех, которые пора завершить"""
    result = await session.execute(
        select(Auction.id).where(
            Auction.status == AuctionStatus.UPCOMING.value,
            Auction.starts_at <= now,
            Auction.ends_at > now
        )
    )
    to_start = [row[0] for row in result.all()]

    result = await session.execute(
        select(Auction.id).where(
            Auction.status.in_([AuctionStatus.UPCOMING.value, AuctionStatus.ACTIVE.value]),
            Auction.ends_at <= now
        )
    )
    to_finish = [row[0] for row in result.all()]
    return to_start, to_finish