"""Сервис модерации заявок на reserve-аукционы"""
import logging
from math import ceil
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from database.models.auction import Auction, AuctionStatus, ApprovalStatus
from database.models.auction_request import AuctionRequest
from database.models.user import User
from services.auction import status_for_times, finish_auction, utcnow
from services.errors import AlreadyResolvedError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


async def get_auction_request(session: AsyncSession, request_id: int) -> AuctionRequest:
    """Получить заявку по ID"""
    result = await session.execute(
        select(AuctionRequest)
        .where(AuctionRequest.id == request_id)
        .execution_options(populate_existing=True)
    )
    auction_request = result.scalar_one_or_none()
    if not auction_request:
        raise NotFoundError("Auction request not found")
    return auction_request


async def _resolve_request(
    session: AsyncSession,
    request_id: int,
    admin: User,
    status: str,
    admin_notes: str,
    created_auction_id: Optional[int] = None
) -> bool:
    """Атомарно перевести заявку из pending; False, если ее уже обработали"""
    result = await session.execute(
        update(AuctionRequest)
        .where(
            AuctionRequest.id == request_id,
            AuctionRequest.approval_status == ApprovalStatus.PENDING.value
        )
        .values(
            approval_status=status,
            admin_notes=admin_notes,
            reviewed_by_id=admin.id,
            reviewed_at=utcnow(),
            created_auction_id=created_auction_id
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def approve_auction_request(
    session: AsyncSession,
    request_id: int,
    admin: User,
    admin_notes: Optional[str] = None
) -> tuple[AuctionRequest, Auction]:
    """Одобрить заявку и создать по ней живой аукцион"""
    auction_request = await get_auction_request(session, request_id)
    if auction_request.approval_status != ApprovalStatus.PENDING.value:
        raise AlreadyResolvedError(
            f"Auction request is already {auction_request.approval_status}",
            currentStatus=auction_request.approval_status,
        )

    now = utcnow()
    initial_status = status_for_times(auction_request.starts_at, auction_request.ends_at, now)
    auction = Auction(
        title=auction_request.title,
        description=auction_request.description,
        category=auction_request.category,
        auction_type=auction_request.auction_type,
        approval_status=ApprovalStatus.APPROVED.value,
        # Просроченная заявка создается активной и тут же завершается
        status=AuctionStatus.ACTIVE.value if initial_status == AuctionStatus.ENDED.value else initial_status,
        starting_price=auction_request.starting_price,
        current_bid=auction_request.starting_price,
        minimum_price=auction_request.minimum_price,
        bid_increment=auction_request.bid_increment,
        currency=auction_request.currency,
        images=list(auction_request.images or []),
        video=auction_request.video,
        certificates=list(auction_request.certificates or []),
        seller_id=auction_request.seller_id,
        starts_at=auction_request.starts_at,
        ends_at=auction_request.ends_at,
    )
    session.add(auction)
    await session.flush()

    resolved = await _resolve_request(
        session,
        request_id,
        admin,
        ApprovalStatus.APPROVED.value,
        admin_notes or "Approved by admin",
        created_auction_id=auction.id,
    )
    if not resolved:
        await session.rollback()
        auction_request = await get_auction_request(session, request_id)
        raise AlreadyResolvedError(
            f"Auction request is already {auction_request.approval_status}",
            currentStatus=auction_request.approval_status,
        )

    await session.commit()
    logger.info(f"Заявка {request_id} одобрена администратором {admin.id}, создан аукцион {auction.id}")

    if initial_status == AuctionStatus.ENDED.value:
        auction, _ = await finish_auction(session, auction.id, now)
    else:
        await session.refresh(auction)
    return await get_auction_request(session, request_id), auction


async def reject_auction_request(
    session: AsyncSession,
    request_id: int,
    admin: User,
    reason: str
) -> AuctionRequest:
    """Отклонить заявку (окончательно)"""
    if not reason or not reason.strip():
        raise ValidationError("Rejection reason is required")

    await get_auction_request(session, request_id)
    resolved = await _resolve_request(
        session,
        request_id,
        admin,
        ApprovalStatus.REJECTED.value,
        reason.strip(),
    )
    if not resolved:
        await session.rollback()
        auction_request = await get_auction_request(session, request_id)
        raise AlreadyResolvedError(
            f"Auction request is already {auction_request.approval_status}",
            currentStatus=auction_request.approval_status,
        )

    await session.commit()
    logger.info(f"Заявка {request_id} отклонена администратором {admin.id}")
    return await get_auction_request(session, request_id)


async def get_auction_requests(
    session: AsyncSession,
    status: str = ApprovalStatus.PENDING.value,
    page: int = 1,
    limit: int = 10
) -> tuple[list[AuctionRequest], dict]:
    """Страница заявок (новые сверху) и пагинация"""
    page = max(1, page)
    limit = max(1, limit)

    query = select(AuctionRequest)
    count_query = select(func.count(AuctionRequest.id))
    if status and status != "all":
        query = query.where(AuctionRequest.approval_status == status)
        count_query = count_query.where(AuctionRequest.approval_status == status)

    total = (await session.execute(count_query)).scalar() or 0
    result = await session.execute(
        query
        .order_by(AuctionRequest.submitted_at.desc(), AuctionRequest.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    pagination = {
        "current": page,
        "pages": ceil(total / limit),
        "total": total,
        "limit": limit,
    }
    return list(result.scalars().all()), pagination


async def get_my_auction_requests(session: AsyncSession, seller_id: int) -> list[AuctionRequest]:
    """Заявки продавца"""
    result = await session.execute(
        select(AuctionRequest)
        .where(AuctionRequest.seller_id == seller_id)
        .order_by(AuctionRequest.submitted_at.desc(), AuctionRequest.id.desc())
    )
    return list(result.scalars().all())


async def get_auction_request_stats(session: AsyncSession) -> dict:
    """Количество заявок по статусам модерации"""
    result = await session.execute(
        select(AuctionRequest.approval_status, func.count(AuctionRequest.id))
        .group_by(AuctionRequest.approval_status)
    )
    stats = {status.value: 0 for status in ApprovalStatus}
    for status, count in result.all():
        stats[status] = count
    stats["total"] = sum(stats.values())
    return stats
