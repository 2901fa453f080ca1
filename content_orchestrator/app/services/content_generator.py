"""
AI content generator used by recurring jobs.
All GPT calls live here. The model must answer with JSON {"title": str, "text": str}.
"""
import asyncio
import json
import time
from dataclasses import dataclass
from typing import Any, Dict, Protocol

from app.config import Settings
from app.errors import GenerationError
from app.logging_config import get_logger
from app.schemas.recurring_job import GenerationParams

logger = get_logger(__name__)

UsageInfo = Dict[str, int]  # prompt_tokens, completion_tokens, total_tokens

MAX_TITLE_LENGTH = 512


@dataclass(frozen=True)
class GeneratedContent:
    title: str
    text: str


class ContentGenerator(Protocol):
    async def generate(self, params: GenerationParams) -> GeneratedContent:
        """Raise GenerationError when nothing usable comes back."""
        ...


def _strip_code_fence(content: str) -> str:
    if content.startswith("```"):
        lines = content.split("\n")
        content = "\n".join(lines[1:-1] if lines[-1].strip() == "```" else lines[1:])
    return content


def parse_generated(content: str, params: GenerationParams) -> GeneratedContent:
    """Parse the model answer; a missing title falls back to the topic, a missing text is an error."""
    data = json.loads(_strip_code_fence(content.strip()))
    if not isinstance(data, dict):
        raise GenerationError("invalid_generator_output", detail="expected a JSON object")
    text = str(data.get("text") or data.get("body") or "").strip()
    if not text:
        raise GenerationError("invalid_generator_output", detail="empty text")
    title = str(data.get("title") or "").strip() or params.topic
    return GeneratedContent(title=title[:MAX_TITLE_LENGTH], text=text)


class OpenAIContentGenerator:
    """OpenAI chat completions; one post per call."""

    def __init__(self, settings: Settings) -> None:
        self.api_key = settings.openai_api_key
        self.model = settings.openai_model
        self.timeout_seconds = settings.openai_timeout_seconds
        self.max_retries = settings.openai_max_retries
        self.temperature = settings.openai_temperature
        self._client: Any = None

    def _get_client(self):  # noqa: ANN201
        """Lazy init OpenAI client (avoids import if key missing)."""
        if self._client is not None:
            return self._client
        try:
            from openai import OpenAI
            self._client = OpenAI(api_key=self.api_key or "", timeout=float(self.timeout_seconds), max_retries=self.max_retries)
            return self._client
        except Exception as e:
            logger.warning("generator.openai_client_init_failed", error=str(e))
            return None

    def _extract_usage(self, resp: Any) -> UsageInfo:
        usage = getattr(resp, "usage", None)
        if not usage:
            return {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}
        return {
            "prompt_tokens": getattr(usage, "prompt_tokens", 0) or 0,
            "completion_tokens": getattr(usage, "completion_tokens", 0) or 0,
            "total_tokens": getattr(usage, "total_tokens", 0) or 0,
        }

    def _prompts(self, params: GenerationParams) -> Dict[str, str]:
        system = (
            f"You are a social media content writer. Write one {params.type} for {params.platform}. "
            "Return ONLY valid JSON, no markdown or explanation. "
            "Strict format: {\"title\": \"...\", \"text\": \"...\"}. "
            "title is a short internal headline; text is the ready-to-post copy."
        )
        user = f"Topic: {params.topic}."
        if params.tone:
            user += f" Tone: {params.tone}."
        user += " Return ONLY the JSON object."
        return {"system": system, "user": user}

    async def generate(self, params: GenerationParams) -> GeneratedContent:
        client = self._get_client()
        if not client or not self.api_key:
            raise GenerationError("openai_not_configured")

        prompts = self._prompts(params)
        start = time.perf_counter()
        try:
            resp = await asyncio.to_thread(
                client.chat.completions.create,
                model=self.model,
                messages=[
                    {"role": "system", "content": prompts["system"]},
                    {"role": "user", "content": prompts["user"]},
                ],
                temperature=self.temperature,
            )
            latency_ms = (time.perf_counter() - start) * 1000
            generated = parse_generated(resp.choices[0].message.content or "", params)
            usage = self._extract_usage(resp)
            logger.info(
                "generator.success",
                model=self.model,
                latency_ms=round(latency_ms),
                total_tokens=usage["total_tokens"],
                platform=params.platform,
            )
            return generated
        except json.JSONDecodeError as e:
            latency_ms = (time.perf_counter() - start) * 1000
            logger.warning("generator.json_failed", model=self.model, latency_ms=round(latency_ms), error=str(e))
            raise GenerationError("invalid_generator_output", detail=str(e)) from e
        except GenerationError:
            raise
        except Exception as e:
            latency_ms = (time.perf_counter() - start) * 1000
            logger.warning("generator.failed", model=self.model, latency_ms=round(latency_ms), error=str(e))
            raise GenerationError(detail=str(e) or type(e).__name__) from e
