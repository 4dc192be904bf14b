"""Pydantic schemas for Paystack checkout routes"""
from pydantic import BaseModel, Field
from typing import Any, Optional


class InitializeRequest(BaseModel):
    email: Optional[str] = None
    plan: Optional[str] = None  # 'premium', 'pro'


class InitializeOnceRequest(BaseModel):
    email: Optional[str] = None
    amount_ghs: Any = Field(default=49, alias="amountGHS")


class InitializeResponse(BaseModel):
    authorization_url: Optional[str] = None
    reference: Optional[str] = None


class PaystackDiagnostics(BaseModel):
    has_SECRET_KEY: bool
    PUBLIC_URL: str
    premiumPlanSet: bool
    proPlanSet: bool
    premiumPlanCode_preview: Optional[str] = None
    proPlanCode_preview: Optional[str] = None
