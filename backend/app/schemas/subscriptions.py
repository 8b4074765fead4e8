"""Pydantic schemas for subscriptions"""
from pydantic import BaseModel
from typing import Optional


class CheckoutRequest(BaseModel):
    priceId: Optional[str] = None
    planName: Optional[str] = None
