"""Сервис для отправки уведомлений через Telegram-бота"""
import asyncio
import logging
from typing import Optional

from aiogram import Bot
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy import select, func
from database.models.auction import Auction
from database.models.payment import PaymentRequest, PaymentType, VerificationStatus
from database.models.user import User, UserRole
from services.disclosure import can_winner_see_seller_phone
from services.payment import get_auction_payments
from config import settings

logger = logging.getLogger(__name__)


def create_bot() -> Optional[Bot]:
    """Создать бота, если задан токен; без токена уведомления только логируются"""
    if not settings.BOT_TOKEN:
        logger.info("BOT_TOKEN не задан, уведомления будут только в логах")
        return None
    return Bot(
        token=settings.BOT_TOKEN,
        default=DefaultBotProperties(parse_mode=ParseMode.HTML)
    )


async def send_to_user(bot: Optional[Bot], user: Optional[User], text: str) -> bool:
    """Отправить сообщение пользователю; ошибки доставки только логируются"""
    if user is None:
        return False
    if bot is None or not user.telegram_id:
        logger.info(f"Уведомление пользователю {user.id} не отправлено (нет бота или Telegram ID): {text}")
        return False
    try:
        await bot.send_message(user.telegram_id, text)
        return True
    except Exception as e:
        logger.error(f"Ошибка отправки уведомления пользователю {user.id}: {e}")
        return False


async def notify_auction_finished(
    bot: Optional[Bot],
    session: AsyncSession,
    auction: Auction
) -> None:
    """Сообщить победителю и продавцу о завершении аукциона"""
    seller = await session.get(User, auction.seller_id)
    if auction.winner_id is None:
        await send_to_user(
            bot,
            seller,
            f"Аукцион <b>{auction.title}</b> завершен без ставок."
        )
        return

    winner = await session.get(User, auction.winner_id)
    payments = await get_auction_payments(session, auction.id)

    text = (
        f"🏆 Вы выиграли аукцион <b>{auction.title}</b>!\n"
        f"Ваша ставка: {auction.current_bid:,} {auction.currency}\n"
    )
    if can_winner_see_seller_phone(auction, winner.id, payments):
        text += f"📞 Телефон продавца: {seller.phone or 'Не указан'}\n📧 Email: {seller.email}"
    else:
        text += (
            f"📧 Email продавца: {seller.email}\n"
            "Телефон продавца будет доступен после подтверждения оплаты администратором."
        )
    await send_to_user(bot, winner, text)

    await send_to_user(
        bot,
        seller,
        f"Аукцион <b>{auction.title}</b> завершен. "
        f"Победитель: {winner.full_name}, ставка {auction.current_bid:,} {auction.currency}."
    )


async def notify_payment_verified(
    bot: Optional[Bot],
    session: AsyncSession,
    payment_request: PaymentRequest
) -> None:
    """Сообщить плательщику решение администратора"""
    payer = await session.get(User, payment_request.user_id)
    auction = await session.get(Auction, payment_request.auction_id)
    title = auction.title if auction else f"#{payment_request.auction_id}"

    if payment_request.verification_status == VerificationStatus.REJECTED.value:
        await send_to_user(
            bot,
            payer,
            f"❌ Оплата по аукциону <b>{title}</b> отклонена.\n"
            f"Причина: {payment_request.admin_notes}\n"
            "Вы можете отправить платеж повторно."
        )
        return

    text = f"✅ Оплата по аукциону <b>{title}</b> подтверждена."
    if payment_request.payment_type == PaymentType.PARTICIPATION_FEE.value:
        text += "\nТеперь вы можете делать ставки."
    elif auction is not None:
        payments = await get_auction_payments(session, auction.id)
        if can_winner_see_seller_phone(auction, payer.id, payments):
            seller = await session.get(User, auction.seller_id)
            text += f"\n📞 Телефон продавца: {seller.phone or 'Не указан'}"
    await send_to_user(bot, payer, text)


async def check_and_notify_pending_payments(
    bot: Optional[Bot],
    session_maker: async_sessionmaker
) -> int:
    """Напомнить администраторам о непроверенных оплатах"""
    async with session_maker() as session:
        result = await session.execute(
            select(func.count(PaymentRequest.id)).where(
                PaymentRequest.verification_status == VerificationStatus.PENDING.value
            )
        )
        pending_count = result.scalar() or 0

        if pending_count == 0:
            return 0

        text = (
            f"🔔 Напоминание о проверке оплат\n\n"
            f"Заявок на проверке: <b>{pending_count}</b>"
        )

        # Администраторы из настроек и из БД
        admin_ids = set(settings.admin_telegram_ids_list)
        result = await session.execute(
            select(User.telegram_id).where(
                User.role == UserRole.ADMIN.value,
                User.telegram_id.is_not(None)
            )
        )
        admin_ids.update(row[0] for row in result.all())

    if bot is None:
        logger.info(f"Заявок на проверке: {pending_count} (бот не настроен)")
        return pending_count

    for admin_id in sorted(admin_ids):
        try:
            await bot.send_message(admin_id, text)
        except Exception as e:
            logger.error(f"Ошибка отправки напоминания админу {admin_id}: {e}")
    return pending_count


async def payment_reminder_scheduler(bot: Optional[Bot], session_maker: async_sessionmaker):
    """Планировщик напоминаний о проверке оплат"""
    while True:
        try:
            await check_and_notify_pending_payments(bot, session_maker)
        except Exception as e:
            logger.error(f"Ошибка в планировщике напоминаний: {e}")

        await asyncio.sleep(settings.PAYMENT_REMINDER_HOURS * 60 * 60)


def start_payment_reminder(bot: Optional[Bot], session_maker: async_sessionmaker) -> asyncio.Task:
    """Запустить планировщик напоминаний"""
    task = asyncio.create_task(payment_reminder_scheduler(bot, session_maker))
    logger.info("Планировщик напоминаний о проверке оплат запущен")
    return task
