"""
Pydantic-схемы: входные черновики аукционов, тела запросов и представления ответов.

Черновик аукциона размечен по auction_type, и каждый тип
несет только свои поля (reserve_price только у sealed, minimum_price и
certificates только у reserve). На проводе ключи в camelCase, snake_case
тоже принимается.
"""
from datetime import datetime
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from database.models.auction import AuctionCategory


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# ----------------------- Auction drafts -----------------------
class _AuctionDraftBase(CamelModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    category: AuctionCategory
    starting_price: int = Field(..., ge=0)
    bid_increment: int = Field(10, ge=1)
    currency: str = Field("USD", min_length=1, max_length=10)
    images: List[str] = Field(default_factory=list, description="Image URIs, 1 to 5")
    video: Optional[str] = None
    starts_at: datetime
    ends_at: datetime


class EnglishAuctionDraft(_AuctionDraftBase):
    auction_type: Literal["english"]


class DutchAuctionDraft(_AuctionDraftBase):
    auction_type: Literal["dutch"]


class SealedAuctionDraft(_AuctionDraftBase):
    auction_type: Literal["sealed"]
    reserve_price: Optional[int] = Field(None, ge=0)


class ReserveAuctionDraft(_AuctionDraftBase):
    auction_type: Literal["reserve"]
    minimum_price: int = Field(..., ge=0)
    certificates: List[str] = Field(default_factory=list, description="Ownership certificate URIs, 1 to 5")


AuctionDraft = Annotated[
    Union[EnglishAuctionDraft, DutchAuctionDraft, SealedAuctionDraft, ReserveAuctionDraft],
    Field(discriminator="auction_type"),
]


# ----------------------- Request bodies -----------------------
class PlaceBidBody(CamelModel):
    amount: int


class AuctionUpdate(CamelModel):
    """Правка upcoming-аукциона продавцом: меняются только переданные поля"""
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, min_length=1)
    category: Optional[AuctionCategory] = None
    starting_price: Optional[int] = Field(None, ge=0)
    bid_increment: Optional[int] = Field(None, ge=1)
    currency: Optional[str] = Field(None, min_length=1, max_length=10)
    reserve_price: Optional[int] = Field(None, ge=0)
    minimum_price: Optional[int] = Field(None, ge=0)
    images: Optional[List[str]] = None
    video: Optional[str] = None
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None


class EndTimeBody(CamelModel):
    ends_at: datetime


class AdminNotesBody(CamelModel):
    admin_notes: Optional[str] = None


class PaymentSubmission(CamelModel):
    auction_id: int
    payment_amount: Optional[int] = Field(None, ge=0)
    payment_method: str = "UPI"
    transaction_id: Optional[str] = None
    payment_screenshot: str = ""
    payment_date: Optional[datetime] = None


# ----------------------- Views -----------------------
class UserBrief(CamelModel):
    id: int
    full_name: str
    email: str


class UserContact(UserBrief):
    phone: Optional[str] = None


class UserOut(UserContact):
    role: str
    is_suspended: bool
    created_at: Optional[datetime] = None


class BidOut(CamelModel):
    id: int
    auction_id: int
    user_id: int
    amount: int
    is_winning: bool = False
    created_at: datetime


class AuctionBrief(CamelModel):
    id: int
    title: str
    auction_type: str
    status: str
    starting_price: int
    current_bid: int
    minimum_price: Optional[int] = None
    currency: str
    seller_id: int


class AuctionOut(AuctionBrief):
    description: str
    category: str
    approval_status: str
    reserve_price: Optional[int] = None
    bid_increment: int
    images: List[str] = []
    video: Optional[str] = None
    certificates: List[str] = []
    current_highest_bidder_id: Optional[int] = None
    winner_id: Optional[int] = None
    starts_at: datetime
    ends_at: datetime
    finished_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class AuctionRequestOut(CamelModel):
    id: int
    title: str
    description: str
    category: str
    auction_type: str
    starting_price: int
    minimum_price: int
    bid_increment: int
    currency: str
    images: List[str] = []
    video: Optional[str] = None
    certificates: List[str] = []
    starts_at: datetime
    ends_at: datetime
    seller_id: int
    approval_status: str
    admin_notes: Optional[str] = None
    reviewed_by_id: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    created_auction_id: Optional[int] = None
    submitted_at: Optional[datetime] = None


class PaymentRequestOut(CamelModel):
    id: int
    user_id: int
    auction_id: int
    payment_type: str
    payment_amount: int
    payment_method: str
    transaction_id: Optional[str] = None
    payment_screenshot: str
    paid_at: Optional[datetime] = None
    verification_status: str
    admin_notes: Optional[str] = None
    verified_by_id: Optional[int] = None
    verified_at: Optional[datetime] = None
    bidding_eligible_from: Optional[datetime] = None
    submitted_at: datetime


def dump(schema: type, obj: Any, **extra: Any) -> dict:
    """Сериализовать ORM-объект через схему в JSON-совместимый dict с camelCase-ключами"""
    data = schema.model_validate(obj).model_dump(by_alias=True, mode="json")
    for key, value in extra.items():
        data[to_camel(key)] = value
    return data
