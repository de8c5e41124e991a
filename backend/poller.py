# backend/poller.py
"""
Fixed-interval poll loop bridging the asynchronous BFL job API to one
synchronous HTTP response.

State machine::

    Submitted -> (Pending | Processing | <unknown>)* -> Ready
                                                     -> Error / Failed
              -> (non-terminal) x max_attempts       -> Timeout

Attempts are ``interval`` seconds apart. The whole loop runs against a
deadline of ``max_attempts * interval`` from the start: each poll call is
cut off at the deadline and sleeps never run past it, so a slow or hung
upstream cannot stretch the wait. Transport errors, HTTP errors from the
poll call itself, poll calls cut off by the deadline and unreadable bodies
are logged and count as a spent attempt; only the job's own status ends
the loop early.

``fetch``, ``sleep`` and ``clock`` are injectable so tests can script the
upstream and run without real delays.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from .bfl_client import extract_image_url
from .errors import ClientDisconnected, GenerationFailed, GenerationTimeout, ReadyWithoutImage
from .model import TERMINAL_FAILURE, GenerationResult, Job, JobStatus

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 0.5
DEFAULT_MAX_ATTEMPTS = 120
FAILURE_FALLBACK_MESSAGE = "Image generation failed"

Fetch = Callable[[str], Awaitable[Dict[str, Any]]]
Sleep = Callable[[float], Awaitable[Any]]
CancelCheck = Callable[[], Awaitable[bool]]


class JobPoller:
    def __init__(
        self,
        fetch: Fetch,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        interval: float = DEFAULT_INTERVAL,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        expires_in: int = 600,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self.fetch = fetch
        self.sleep = sleep
        self.clock = clock
        self.interval = interval
        self.max_attempts = max_attempts
        self.expires_in = expires_in

    async def _poll_once(self, job: Job, attempt: int, timeout: float) -> Optional[Dict[str, Any]]:
        try:
            return await asyncio.wait_for(self.fetch(job.polling_url), timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Poll %d/%d for job %s gave no answer within %.2fs",
                attempt, self.max_attempts, job.id, timeout,
            )
        except httpx.HTTPStatusError as e:
            # The job may not be visible yet on the polling side
            logger.warning(
                "Poll %d/%d for job %s returned HTTP %s, continuing",
                attempt, self.max_attempts, job.id, e.response.status_code,
            )
        except httpx.HTTPError as e:
            logger.warning(
                "Poll %d/%d for job %s failed: %s, continuing",
                attempt, self.max_attempts, job.id, e,
            )
        except ValueError as e:
            logger.warning(
                "Poll %d/%d for job %s returned an unreadable body: %s",
                attempt, self.max_attempts, job.id, e,
            )
        return None

    def _to_result(self, job: Job, data: Dict[str, Any]) -> GenerationResult:
        image_url = extract_image_url(data.get("result"))
        if not image_url:
            raise ReadyWithoutImage(
                "Job is Ready but no image URL was returned",
                job_id=job.id,
                request_id=job.id,
            )
        return GenerationResult(
            image_url=image_url,
            job_id=job.id,
            expires_in=self.expires_in,
            cost=job.cost,
            input_mp=job.input_mp,
            output_mp=job.output_mp,
        )

    async def wait_for_result(
        self,
        job: Job,
        is_cancelled: Optional[CancelCheck] = None,
    ) -> GenerationResult:
        started = self.clock()
        deadline = started + self.max_attempts * self.interval
        polls = 0

        for attempt in range(1, self.max_attempts + 1):
            if attempt > 1:
                await self.sleep(min(self.interval, max(deadline - self.clock(), 0.0)))

            if is_cancelled is not None and await is_cancelled():
                logger.info("Client went away, stop polling job %s", job.id)
                raise ClientDisconnected(
                    "Client disconnected",
                    job_id=job.id,
                    polling_url=job.polling_url,
                )

            remaining = deadline - self.clock()
            if remaining <= 0:
                break

            polls += 1
            data = await self._poll_once(job, attempt, remaining)
            if data is None:
                continue

            status = data.get("status")
            if status == JobStatus.READY.value:
                logger.info(
                    "Job %s ready after %d polls (%.1fs)",
                    job.id, attempt, self.clock() - started,
                )
                return self._to_result(job, data)

            if status in TERMINAL_FAILURE:
                message = data.get("error") or FAILURE_FALLBACK_MESSAGE
                logger.error("Job %s %s: %s", job.id, status, message)
                raise GenerationFailed(
                    str(message),
                    job_id=job.id,
                    request_id=job.id,
                    status=status,
                )

            logger.debug("Job %s status=%s (poll %d)", job.id, status, attempt)

        logger.error(
            "Job %s timed out after %d polls (%.1fs)",
            job.id, polls, self.clock() - started,
        )
        raise GenerationTimeout(
            "Image generation timed out",
            job_id=job.id,
            polling_url=job.polling_url,
            attempts=polls,
        )
