"""Pydantic schemas for subscriptions"""
from datetime import datetime
from pydantic import BaseModel
from typing import Optional


class SubscriptionStatusResponse(BaseModel):
    status: str  # 'active', 'free'
    plan: Optional[str] = None
    since: Optional[datetime] = None
