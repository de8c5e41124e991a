import logging
from typing import Any, Dict, Optional, Sequence

import httpx

from config.settings import settings

from .errors import (
    CredentialsNotConfigured,
    MissingPollEndpoint,
    RateLimited,
    UpstreamRejected,
    UpstreamUnavailable,
)
from .model import Job
from .utils import get_timestamp_ms

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER = 60

# Candidate field names, tried in priority order. Older BFL responses use
# "request_id", newer ones "id".
JOB_ID_FIELDS: Sequence[str] = ("id", "request_id")
# "sample" is the current field; the other two are kept for older payloads.
IMAGE_URL_FIELDS: Sequence[str] = ("sample", "image_url", "url")


def first_present(data: Optional[Dict[str, Any]], fields: Sequence[str]) -> Optional[Any]:
    """
    Return the first non-empty value among ``fields`` in ``data``.
    """
    if not isinstance(data, dict):
        return None
    for field in fields:
        value = data.get(field)
        if value not in (None, ""):
            return value
    return None


def extract_image_url(result: Optional[Dict[str, Any]]) -> Optional[str]:
    value = first_present(result, IMAGE_URL_FIELDS)
    return str(value) if value is not None else None


def _headers(api_key: str) -> Dict[str, str]:
    return {
        "accept": "application/json",
        "x-key": api_key,
    }


def _body(r: httpx.Response) -> Any:
    try:
        return r.json()
    except ValueError:
        return r.text[:500]


def _error_message(body: Any, status_code: int) -> str:
    if isinstance(body, dict):
        for key in ("error", "detail", "message"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
            if value:
                return str(value)
    return f"Generation API returned HTTP {status_code}"


def _retry_after(r: httpx.Response, body: Any) -> int:
    candidates = []
    if isinstance(body, dict):
        candidates.append(body.get("retry_after"))
    candidates.append(r.headers.get("retry-after"))
    for value in candidates:
        if value in (None, ""):
            continue
        try:
            return int(float(value))
        except (TypeError, ValueError):
            continue
    return DEFAULT_RETRY_AFTER


def _require_key(api_key: Optional[str]) -> str:
    if not api_key:
        raise CredentialsNotConfigured("BFL API key not configured")
    return api_key


async def submit_job(
    client: httpx.AsyncClient,
    payload: Dict[str, Any],
    model: str,
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
) -> Job:
    """
    Send one creation request to ``{base_url}/{model}``.
    Returns the Job (id + polling_url) that the poller consumes.
    """
    key = _require_key(api_key)
    base = (base_url or settings.BFL_API_BASE).rstrip("/")
    url = f"{base}/{model}"

    try:
        r = await client.post(url, json=payload, headers=_headers(key))
    except httpx.HTTPError as e:
        logger.error("Creation call to %s failed: %s", url, e)
        raise UpstreamUnavailable(f"Could not reach generation API: {e}") from e

    body = _body(r)

    if r.status_code == 429:
        retry_after = _retry_after(r, body)
        logger.warning("Generation API rate limited, retry after %ss", retry_after)
        raise RateLimited(
            _error_message(body, r.status_code),
            retry_after_seconds=retry_after,
            payload=body,
        )

    if r.status_code >= 400:
        logger.error("Generation API returned %s: %s", r.status_code, str(body)[:500])
        raise UpstreamRejected(
            _error_message(body, r.status_code),
            upstream_status=r.status_code,
            payload=body,
        )

    if not isinstance(body, dict):
        raise MissingPollEndpoint("Generation API returned a non-JSON response")

    job_id = first_present(body, JOB_ID_FIELDS)
    polling_url = body.get("polling_url")
    if not polling_url:
        raise MissingPollEndpoint(
            "No polling URL received from API",
            job_id=job_id,
            request_id=job_id,
        )

    job = Job(
        id=str(job_id) if job_id is not None else "",
        polling_url=polling_url,
        created_at=get_timestamp_ms(),
        cost=body.get("cost"),
        input_mp=body.get("input_mp"),
        output_mp=body.get("output_mp"),
    )
    logger.info("Submitted job %s to %s", job.id, model)
    return job


async def fetch_status(
    client: httpx.AsyncClient,
    polling_url: str,
    api_key: str,
) -> Dict[str, Any]:
    """
    One GET on the polling URL. HTTP errors are raised as
    ``httpx.HTTPStatusError``, transport errors as ``httpx.HTTPError`` and a
    non-JSON body as ``ValueError``; the poller decides what is fatal.
    """
    r = await client.get(polling_url, headers=_headers(api_key))
    r.raise_for_status()
    data = r.json()
    if not isinstance(data, dict):
        raise ValueError(f"Unexpected poll payload: {str(data)[:200]}")
    return data
