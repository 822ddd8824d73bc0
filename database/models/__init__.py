"""Модели базы данных"""
from .user import User
from .auction import Auction
from .auction_request import AuctionRequest
from .bid import Bid
from .payment import PaymentRequest

__all__ = [
    "User",
    "Auction",
    "AuctionRequest",
    "Bid",
    "PaymentRequest",
]
