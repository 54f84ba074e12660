"""Chat model access for the generation nodes."""
import json
from typing import Callable, Optional

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from app.config import settings
from .prompts import MODEL_CONFIG, SYSTEM_PROMPTS, TASK_PROMPT


def model_for(kind: str) -> str:
    """Configured model name for a content kind."""
    return {
        "analysis": settings.observer_model,
        "story": settings.story_model,
        "script": settings.script_model,
        "praise": settings.praise_model,
    }[kind]


def build_chat_model(kind: str):
    """ChatOpenAI in JSON mode with the sampling settings for ``kind``."""
    config = MODEL_CONFIG[kind]
    llm = ChatOpenAI(
        model=model_for(kind),
        api_key=settings.openai_api_key,
        temperature=config["temperature"],
        max_tokens=config["max_tokens"],
    )
    return llm.bind(response_format={"type": "json_object"})


def extract_json(content: str) -> dict:
    """Parse a JSON object from a model reply, tolerating markdown fences."""
    if "```json" in content:
        content = content.split("```json")[1].split("```")[0]
    elif "```" in content:
        content = content.split("```")[1].split("```")[0]

    result = json.loads(content.strip())
    if not isinstance(result, dict):
        raise ValueError("Model reply is not a JSON object")
    return result


class LLMClient:
    """
    Sends one generation request and returns the parsed JSON reply.

    ``chat_factory`` builds the chat model for a kind; tests pass a factory
    returning a fake model.
    """

    def __init__(self, chat_factory: Optional[Callable[[str], BaseChatModel]] = None):
        self._chat_factory = chat_factory or build_chat_model

    async def generate_json(self, kind: str, payload: dict) -> tuple[dict, str, Optional[int]]:
        """Return ``(parsed reply, model name, total tokens)``."""
        llm = self._chat_factory(kind)
        messages = [
            SystemMessage(content=SYSTEM_PROMPTS[kind]),
            HumanMessage(content=TASK_PROMPT.format(payload=json.dumps(payload, indent=2, default=str))),
        ]

        response = await llm.ainvoke(messages)

        usage = getattr(response, "usage_metadata", None) or {}
        return extract_json(response.content), model_for(kind), usage.get("total_tokens")
