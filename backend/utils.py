import asyncio
import logging
import time
from typing import Any, List, Optional, Sequence, Tuple

import aiohttp

from .errors import CredentialsNotConfigured, EnhancementFailed, MissingPrompt, RateLimited

logger = logging.getLogger(__name__)


class ModelNotFound(Exception):
    """The upstream does not serve this model id; the next one may work."""


class PromptEnhancer:
    """
    Rewrites a short user prompt into a richer image-generation prompt using
    an Ollama-compatible LLM endpoint (``POST {host}/api/generate``).

    Models are tried in order. Only a "model not found" answer moves on to
    the next one; any other failure aborts straight away.
    """

    def __init__(
        self,
        host: str = "https://ollama.com",
        models: Sequence[str] = ("gpt-oss:120b",),
        api_key: Optional[str] = None,
        request_timeout: float = 30.0,
    ):
        self.host = host.rstrip("/")
        self.models: List[str] = list(models)
        self.api_key = api_key
        self.request_timeout = request_timeout

    @staticmethod
    def build_instruction(prompt: str) -> str:
        return f"""
You are an expert prompt writer for a text-to-image model (FLUX).

Rewrite the user's idea below into ONE detailed image prompt:
- keep the subject and intent of the original idea
- add concrete details about composition, lighting, colors, style and mood
- write natural descriptive sentences, not a list of tags
- stay under 120 words

Return ONLY the rewritten prompt, with no introduction, no quotes and no
explanation.

User idea:
"{prompt.strip()}"
        """.strip()

    @staticmethod
    def _clean(text: str) -> str:
        text = (text or "").strip()
        if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'":
            text = text[1:-1].strip()
        return text

    @staticmethod
    def _is_model_not_found(status: int, body: Any) -> bool:
        if status == 404:
            return True
        message = str(body.get("error", "")) if isinstance(body, dict) else str(body)
        message = message.lower()
        return "model" in message and "not found" in message

    async def _call_model(self, session: aiohttp.ClientSession, model: str, instruction: str) -> str:
        url = f"{self.host}/api/generate"
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        payload = {
            "model": model,
            "prompt": instruction,
            "stream": False,
        }

        async with session.post(url, headers=headers, json=payload) as resp:
            if resp.status != 200:
                body_text = await resp.text()
                try:
                    body: Any = await resp.json(content_type=None)
                except ValueError:
                    body = body_text

                if self._is_model_not_found(resp.status, body):
                    raise ModelNotFound(model)

                logger.error("LLM HTTP %s from %s: %s", resp.status, url, body_text[:300])
                if resp.status == 429:
                    raise RateLimited("Prompt enhancement rate limited", payload=body)
                message = body.get("error") if isinstance(body, dict) else None
                raise EnhancementFailed(
                    message or f"Prompt enhancement failed (HTTP {resp.status})",
                    upstream_status=resp.status,
                    model=model,
                )

            body = await resp.json(content_type=None)
            if not isinstance(body, dict):
                raise EnhancementFailed(
                    "Unexpected response from prompt enhancement API",
                    model=model,
                )
            # Ollama returns the completion under "response"
            text = body.get("response")
            return text if isinstance(text, str) else ""

    async def enhance(self, prompt: Optional[str]) -> Tuple[str, str]:
        """
        Returns ``(enhanced_prompt, model_used)``.
        """
        if not self.api_key:
            raise CredentialsNotConfigured("LLM API key not configured")
        if not prompt or not prompt.strip():
            raise MissingPrompt("Prompt is required")

        instruction = self.build_instruction(prompt)
        timeout = aiohttp.ClientTimeout(total=self.request_timeout)
        tried: List[str] = []

        async with aiohttp.ClientSession(timeout=timeout) as session:
            for model in self.models:
                tried.append(model)
                try:
                    text = await self._call_model(session, model, instruction)
                except ModelNotFound:
                    logger.warning("Model %s not found, trying next model", model)
                    continue
                except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                    logger.error("Error calling LLM with model %s: %s", model, e)
                    raise EnhancementFailed(
                        f"Could not reach prompt enhancement API: {e}", model=model
                    ) from e
                except ValueError as e:
                    raise EnhancementFailed(
                        f"Unreadable response from prompt enhancement API: {e}", model=model
                    ) from e

                enhanced = self._clean(text)
                if not enhanced:
                    raise EnhancementFailed("Empty response from prompt enhancement API", model=model)
                logger.info("Prompt enhanced with %s", model)
                return enhanced, model

        raise EnhancementFailed(
            "No prompt enhancement model available",
            tried_models=tried,
        )


def get_timestamp_ms() -> int:
    return int(time.time() * 1000)
