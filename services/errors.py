"""Ошибки предметной области

Сервисы сообщают об отказах через ValueError-подклассы; каждый класс несет
HTTP-статус, с которым ошибка уходит клиенту.
"""
from typing import Any, Dict, Optional


class ServiceError(ValueError):
    """Базовая ошибка сервисного слоя"""
    status_code = 400

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details


class ValidationError(ServiceError):
    """Некорректные или недостающие данные"""
    status_code = 400


class InvalidBidError(ServiceError):
    """Ставка устарела или слишком мала"""
    status_code = 400

    def __init__(self, message: str, current_bid: Optional[int] = None, **details: Any):
        super().__init__(message, currentBid=current_bid, **details)
        self.current_bid = current_bid


class AuthorizationError(ServiceError):
    """Нет прав на действие (роль, владелец, блокировка)"""
    status_code = 403


class NotFoundError(ServiceError):
    """Объект не найден"""
    status_code = 404


class DuplicatePendingRequestError(ServiceError):
    """Уже есть необработанная заявка"""
    status_code = 409


class AlreadyResolvedError(ServiceError):
    """Заявка уже обработана"""
    status_code = 409
