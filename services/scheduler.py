"""Планировщик задач для запуска и завершения аукционов"""
import asyncio
import logging
from datetime import datetime
from typing import Optional

from aiogram import Bot
from sqlalchemy.ext.asyncio import async_sessionmaker
from services.auction import activate_auction, finish_auction, get_due_auctions, utcnow
from services.notifications import notify_auction_finished
from config import settings

logger = logging.getLogger(__name__)


async def check_and_finish_auctions(
    bot: Optional[Bot],
    session_maker: async_sessionmaker,
    now: Optional[datetime] = None
) -> tuple[int, int]:
    """Запустить наступившие и завершить истекшие аукционы

    Возвращает (запущено, завершено).
    """
    now = now or utcnow()
    started = finished = 0

    async with session_maker() as session:
        to_start, to_finish = await get_due_auctions(session, now)

        for auction_id in to_start:
            try:
                if await activate_auction(session, auction_id, now):
                    started += 1
            except Exception as e:
                await session.rollback()
                logger.error(f"Ошибка при запуске аукциона {auction_id}: {e}")

        for auction_id in to_finish:
            try:
                auction, finished_now = await finish_auction(session, auction_id, now)
            except Exception as e:
                await session.rollback()
                logger.error(f"Ошибка при завершении аукциона {auction_id}: {e}")
                continue

            if not finished_now:
                # Уже завершен запросом на чтение
                continue
            finished += 1

            try:
                await notify_auction_finished(bot, session, auction)
            except Exception as e:
                logger.error(f"Ошибка при отправке уведомлений по аукциону {auction_id}: {e}")

    if started or finished:
        logger.info(f"Планировщик: запущено {started}, завершено {finished}")
    return started, finished


async def scheduler_loop(bot: Optional[Bot], session_maker: async_sessionmaker):
    """Основной цикл планировщика"""
    while True:
        try:
            await check_and_finish_auctions(bot, session_maker)
        except Exception as e:
            logger.error(f"Ошибка в планировщике: {e}")

        await asyncio.sleep(settings.SCHEDULER_INTERVAL_SECONDS)


def start_scheduler(bot: Optional[Bot], session_maker: async_sessionmaker) -> asyncio.Task:
    """Запустить планировщик"""
    task = asyncio.create_task(scheduler_loop(bot, session_maker))
    logger.info("Планировщик аукционов запущен")
    return task
