"""Главный файл API"""
import asyncio
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from database.connection import async_session_maker, create_tables
from services.errors import ServiceError
from services.notifications import create_bot, start_payment_reminder
from services.scheduler import start_scheduler
from api.handlers import admin, admin_payments, auctions, payments
from config import settings

# Настройка логирования
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_tables()

    bot = create_bot()
    app.state.bot = bot

    tasks = []
    if settings.SCHEDULER_ENABLED:
        # Запускаем планировщик для завершения аукционов
        tasks.append(start_scheduler(bot, async_session_maker))
        # Запускаем планировщик напоминаний об оплатах
        tasks.append(start_payment_reminder(bot, async_session_maker))

    logger.info("API запущен")
    yield

    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    if bot is not None:
        await bot.session.close()
    logger.info("API остановлен")


async def service_error_handler(request: Request, exc: ServiceError):
    content = {"message": exc.message}
    content.update({key: value for key, value in exc.details.items() if value is not None})
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(content))


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail},
        headers=getattr(exc, "headers", None)
    )


async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"message": "Invalid request", "errors": jsonable_encoder(exc.errors())}
    )


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Необработанная ошибка {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"message": "Internal server error"})


def create_app() -> FastAPI:
    app = FastAPI(title="Auction Marketplace", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(auctions.router)
    app.include_router(payments.router)
    app.include_router(admin.router)
    app.include_router(admin_payments.router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host=settings.API_HOST, port=settings.API_PORT)
