"""
Pydantic schemas for request validation.
"""

import base64
import binascii
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from canteen_shared.constants import DiningOption, PaymentMethod


class VariationSelectionRequest(BaseModel):
    variation_id: int
    quantity: int = Field(default=1, ge=1)


class OrderLineRequest(BaseModel):
    menu_item_id: int
    quantity: int = Field(default=1, ge=1)
    note: str | None = Field(None, max_length=500)
    dining_option: DiningOption = DiningOption.DINE_IN
    variations: list[VariationSelectionRequest] = Field(default_factory=list)


class CreateOrderRequest(BaseModel):
    customer_id: int | None = None
    concession_id: int
    payment_method: str
    in_cart: bool = False
    items: list[OrderLineRequest] = Field(..., min_length=1)

    @field_validator("payment_method")
    @classmethod
    def validate_payment_method(cls, v):
        return PaymentMethod.normalize(v).value


class UpdateOrderDetailRequest(BaseModel):
    quantity: int | None = Field(None, ge=1)
    note: str | None = Field(None, max_length=500)
    dining_option: DiningOption | None = None
    variations: list[VariationSelectionRequest] | None = None


class UpdateOrderStatusRequest(BaseModel):
    status: str = Field(..., min_length=1)
    updated_total_price: Decimal | None = None
    price_change_reason: str | None = Field(None, max_length=500)
    decline_reason: str | None = None
    decline_reason_text: str | None = Field(None, max_length=1000)
    unavailable_item_ids: list[int] = Field(default_factory=list)
    unavailable_variation_ids: list[int] = Field(default_factory=list)


class ChangePaymentMethodRequest(BaseModel):
    payment_method: str = Field(..., min_length=1)


class UploadReceiptRequest(BaseModel):
    """Base64 screenshot payload for clients that cannot send multipart."""

    gcash_screenshot: str = Field(..., min_length=1)

    @field_validator("gcash_screenshot")
    @classmethod
    def validate_base64(cls, v):
        if "," in v and v.startswith("data:"):
            v = v.split(",", 1)[1]
        try:
            base64.b64decode(v, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError("gcash_screenshot must be base64 encoded") from exc
        return v

    def image_bytes(self) -> bytes:
        return base64.b64decode(self.gcash_screenshot)


class RejectReceiptRequest(BaseModel):
    reason: str = Field(..., min_length=1)
    message: str | None = Field(None, max_length=1000)


class DeclineUnpaidRequest(BaseModel):
    message: str | None = Field(None, max_length=1000)


class ReopeningRequestCreate(BaseModel):
    request_type: str = Field(..., min_length=1)
    message: str | None = Field(None, max_length=1000)


class ReopeningResponseRequest(BaseModel):
    action: str
    response_type: str | None = None
    message: str | None = Field(None, max_length=1000)

    @field_validator("action")
    @classmethod
    def validate_action(cls, v):
        v = v.strip().lower()
        if v not in {"approve", "reject"}:
            raise ValueError("action must be 'approve' or 'reject'")
        return v


class ReceiptTimerUpdateRequest(BaseModel):
    receipt_timer: str | int = Field(..., description="HH:MM[:SS] or a number of minutes")
