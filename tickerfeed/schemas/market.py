"""
Ticker feed schemas using Pydantic for validation and serialization.
Decimal values stay as strings; precision is the consumer's concern.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Annotated, Dict, List, Literal, Union


class Ticker(BaseModel):
    """Point-in-time market state for one instrument."""
    model_config = ConfigDict(populate_by_name=True)

    product_id: str                 # e.g. "BTC-USD"
    price: str
    best_bid: str
    best_ask: str
    best_bid_quantity: str
    best_ask_quantity: str
    high_24_h: str
    low_24_h: str
    high_52_w: str
    low_52_w: str
    price_percent_chg_24_h: str
    volume_24_h: str
    ticker_type: str = Field(alias="type")  # "snapshot" | "update"

    @field_validator("product_id")
    @classmethod
    def validate_product_id(cls, v):
        if not v or not v.strip():
            raise ValueError("product_id must be non-empty")
        return v


class TickerEvent(BaseModel):
    """Batch of ticker records sharing one event type."""
    model_config = ConfigDict(populate_by_name=True)

    event_type: str = Field(alias="type")
    tickers: List[Ticker]


class SubscriptionEvent(BaseModel):
    """Server acknowledgment of active subscriptions, channel -> keys."""
    subscriptions: Dict[str, List[str]]


# Untagged: TickerEvent shape is tried first, SubscriptionEvent second
Event = Annotated[
    Union[TickerEvent, SubscriptionEvent],
    Field(union_mode="left_to_right"),
]


class Envelope(BaseModel):
    """One inbound protocol message."""
    channel: str
    client_id: str = ""
    events: List[Event]
    sequence_num: int = Field(ge=0)
    timestamp: str                  # opaque, never parsed


class SubscribeRequest(BaseModel):
    """Outbound subscription request."""
    type: Literal["subscribe"] = "subscribe"
    product_ids: List[str]
    channel: str
