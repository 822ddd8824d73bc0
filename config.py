"""Конфигурация приложения"""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Настройки приложения"""

    # Database
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_USER: str = ""
    DB_PASSWORD: str = ""
    DB_NAME: str = ""
    # Полный URL имеет приоритет над DB_* (например, sqlite+aiosqlite:///auction.db)
    DATABASE_URL: str = ""

    # Auth
    JWT_SECRET: str = "devsecret"
    JWT_ALGORITHM: str = "HS256"

    # Telegram notifications
    BOT_TOKEN: str = ""
    ADMIN_TELEGRAM_IDS: str = ""

    # Admin payment details shown to payers
    ADMIN_UPI_ID: str = "admin@paytm"
    ADMIN_UPI_QR: str = ""
    ADMIN_ACCOUNT_NUMBER: str = "1234567890"
    ADMIN_IFSC: str = "BANK0001234"
    ADMIN_ACCOUNT_NAME: str = "Auction System"
    ADMIN_BANK_NAME: str = "Example Bank"

    # FastAPI
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    # Scheduler
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_INTERVAL_SECONDS: int = 60
    PAYMENT_REMINDER_HOURS: float = 2.0

    # Auction Settings
    # Сколько раз переигрывать ставку при конкурентном обновлении цены
    BID_RETRY_ATTEMPTS: int = 3
    # Минимальный взнос за участие, если у аукциона не задана минимальная цена
    PARTICIPATION_FEE_FLOOR: int = 100

    @property
    def admin_telegram_ids_list(self) -> List[int]:
        """Список Telegram ID администраторов"""
        if not self.ADMIN_TELEGRAM_IDS:
            return []
        return [int(uid.strip()) for uid in self.ADMIN_TELEGRAM_IDS.split(",") if uid.strip()]

    @property
    def database_url(self) -> str:
        """URL подключения к базе данных"""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"postgresql+asyncpg://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
