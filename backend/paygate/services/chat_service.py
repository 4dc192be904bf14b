"""Chat completions proxy for the tutor assistant"""
import logging
from functools import lru_cache
from typing import Any, Dict, List, Optional

from openai import OpenAI

from paygate.core.config import settings

logger = logging.getLogger(__name__)

EMPTY_ANSWER = "No response from the AI."


def system_prompt_for(assistant: str = "Math GPT") -> str:
    return (
        "You are a clear, step-by-step math tutor.\n"
        "Explain the reasoning simply, show workings line by line, and present the final answer clearly at the end.\n"
        "Avoid big section headers; keep formatting compact and readable."
    )


@lru_cache()
def get_openai_client() -> OpenAI:
    return OpenAI(api_key=settings.OPENAI_API_KEY)


def build_user_content(message: str, image: Optional[str]) -> List[Dict[str, Any]]:
    content: List[Dict[str, Any]] = []
    if message and message.strip():
        content.append({"type": "text", "text": message.strip()})
    if image and isinstance(image, str):
        content.append({"type": "image_url", "image_url": {"url": image}})
    return content


def answer_chat(message: str, image: Optional[str] = None, assistant: str = "Math GPT") -> str:
    """Send one user turn to the chat model and return the answer text"""
    completion = get_openai_client().chat.completions.create(
        model=settings.OPENAI_MODEL,
        temperature=0.2,
        messages=[
            {"role": "system", "content": system_prompt_for(assistant)},
            {"role": "user", "content": build_user_content(message, image)},
        ],
    )

    text = None
    if completion.choices:
        text = completion.choices[0].message.content
    return (text or "").strip() or EMPTY_ANSWER
