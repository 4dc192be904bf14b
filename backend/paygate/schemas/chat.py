"""Pydantic schemas for the chat proxy"""
from pydantic import BaseModel
from typing import Optional


class ChatRequest(BaseModel):
    email: Optional[str] = None
    assistant: str = "Math GPT"
    message: str = ""
    image: Optional[str] = None


class ChatResponse(BaseModel):
    content: str
