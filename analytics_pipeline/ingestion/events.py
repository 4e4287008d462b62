"""
Analytics Event Models

Wire schema of the user interaction events carried on the events topic.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AnalyticsAction(str, Enum):
    """Supported user actions"""
    PRODUCT_VIEW = "product_view"
    ADD_TO_CART = "add_to_cart"
    REMOVE_FROM_CART = "remove_from_cart"
    ADD_TO_WISHLIST = "add_to_wishlist"
    REMOVE_FROM_WISHLIST = "remove_from_wishlist"
    SHOP_VISIT = "shop_visit"
    PURCHASE = "purchase"

    @classmethod
    def values(cls) -> frozenset:
        return frozenset(action.value for action in cls)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """
    Coerce a wire timestamp to an aware UTC datetime.

    Numbers are epoch milliseconds, strings are ISO-8601. Anything absent or
    unparseable falls back to the current time.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, bool) or value is None:
        return utcnow()
    elif isinstance(value, (int, float)):
        try:
            parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return utcnow()
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return utcnow()
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            try:
                parsed = datetime.fromtimestamp(float(text) / 1000, tz=timezone.utc)
            except (OverflowError, OSError, ValueError):
                return utcnow()
    else:
        return utcnow()

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class AnalyticsEvent(BaseModel):
    """A validated user interaction event"""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    user_id: str = Field(alias="userId", min_length=1)
    product_id: Optional[str] = Field(default=None, alias="productId")
    shop_id: Optional[str] = Field(default=None, alias="shopId")
    action: AnalyticsAction
    timestamp: datetime = Field(default_factory=utcnow)
    country: Optional[str] = None
    city: Optional[str] = None
    device: Optional[str] = None

    @field_validator("user_id", mode="before")
    @classmethod
    def strip_user_id(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("product_id", "shop_id", "country", "city", "device", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        """Blank optional strings are treated as absent"""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("timestamp", mode="before")
    @classmethod
    def coerce_timestamp(cls, v: Any) -> datetime:
        return parse_timestamp(v)

    def summary(self) -> Dict[str, Any]:
        """Entry appended to the user's action log"""
        return {
            "product_id": self.product_id,
            "shop_id": self.shop_id,
            "action": self.action.value,
            "timestamp": self.timestamp,
            "country": self.country,
            "city": self.city,
            "device": self.device,
        }

    def to_payload(self) -> Dict[str, Any]:
        """Wire representation (camelCase keys, ISO timestamp)"""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")
