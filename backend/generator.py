# backend/generator.py

import logging
from typing import Optional

import httpx

from config.settings import Settings

from .bfl_client import fetch_status, submit_job
from .model import GenerateRequest, GenerationResult
from .payload_builder import build_payload, model_for
from .poller import CancelCheck, JobPoller
from .validation import validate_generate_request

logger = logging.getLogger(__name__)


def make_poller(client: httpx.AsyncClient, settings: Settings, **poller_kwargs) -> JobPoller:
    api_key = settings.BFL_API_KEY or ""

    async def fetch(polling_url: str):
        return await fetch_status(client, polling_url, api_key)

    return JobPoller(
        fetch,
        interval=settings.POLL_INTERVAL,
        max_attempts=settings.POLL_MAX_ATTEMPTS,
        expires_in=settings.IMAGE_URL_TTL,
        **poller_kwargs,
    )


async def generate_image(
    req: GenerateRequest,
    client: httpx.AsyncClient,
    settings: Settings,
    poller: Optional[JobPoller] = None,
    is_cancelled: Optional[CancelCheck] = None,
) -> GenerationResult:
    """
    Validate -> submit -> poll. Any failure surfaces as a RelayError.
    """
    normalized = validate_generate_request(req)
    payload = build_payload(normalized)
    model = model_for(normalized, settings)

    logger.info(
        "Generating mode=%s model=%s size=%sx%s prompt=%s...",
        normalized.mode, model, normalized.width, normalized.height, normalized.prompt[:50],
    )

    job = await submit_job(
        client,
        payload,
        model,
        api_key=settings.BFL_API_KEY,
        base_url=settings.BFL_API_BASE,
    )

    if poller is None:
        poller = make_poller(client, settings)
    return await poller.wait_for_result(job, is_cancelled=is_cancelled)
