"""
Payment event DTOs.

The gateway integration verifies signatures upstream; this service only
consumes the verified outcome for an order.
"""
from __future__ import annotations

from typing import Literal, Optional

from pydantic import Field, field_validator

from application.dto import DTOBase


class PaymentEventDTO(DTOBase):
    order_number: str = Field(..., min_length=1, max_length=32)
    payment_ref: Optional[str] = Field(None, max_length=128)
    status: Literal["COMPLETED", "FAILED", "CANCELLED"]
    reason: Optional[str] = Field(None, max_length=500)

    @field_validator("status", mode="before")
    @classmethod
    def _upper_status(cls, v):
        return v.upper() if isinstance(v, str) else v
