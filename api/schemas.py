"""
API Schemas Module

This module defines Pydantic models for request/response validation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from db.models import BillingStatus


class BillingCreate(BaseModel):
    identifier: str = Field(min_length=1, max_length=64)
    amount: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    currency: str = Field("USD", min_length=3, max_length=3)
    gateway: str = "paypal"


class BillingOut(BaseModel):
    identifier: str
    amount: Decimal = Field(validation_alias="amount_value")
    currency: str
    gateway: str
    status: BillingStatus
    payload: dict[str, Any]
    capture_id: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentResponse(BaseModel):
    """Schema for pay/verify responses."""

    identifier: str
    provider: str
    status: BillingStatus
    order_id: Optional[str] = None
    capture_id: Optional[str] = None
    result: Optional[dict[str, Any]] = None


class ConfigFieldOut(BaseModel):
    name: str
    label: str
    type: str
    required: bool
    default: Any = None


class WidgetOut(BaseModel):
    clientId: str
    clientToken: str
