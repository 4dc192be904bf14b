"""Chat API routes"""
import logging
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from openai import OpenAIError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from paygate.db.gateway import get_or_create_user
from paygate.db.session import get_db
from paygate.schemas.chat import ChatRequest, ChatResponse
from paygate.services.chat_service import answer_chat

router = APIRouter(prefix="/api", tags=["chat"])
logger = logging.getLogger(__name__)


@router.post("/chat", response_model=ChatResponse)
def chat(body: ChatRequest, db: Session = Depends(get_db)):
    """Answer one tutoring question (text and/or image)"""
    if not body.message and not body.image:
        return JSONResponse(status_code=400, content={"error": "message or image required"})

    if body.email:
        try:
            get_or_create_user(body.email, db)
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning(f"Database not ready, skipping user persistence for chat: {e.__class__.__name__}")

    try:
        return {"content": answer_chat(body.message, body.image, body.assistant)}
    except OpenAIError as e:
        logger.error(f"Chat error: {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Failed to get an answer from OpenAI"})
