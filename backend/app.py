# backend/app.py

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config.settings import Settings, settings
from .errors import RateLimited, RelayError
from .generator import generate_image, make_poller
from .poller import JobPoller
from .model import (
    EnhancePromptRequest,
    EnhancePromptResponse,
    ErrorResponse,
    GenerateRequest,
    GenerateResponse,
)
from .utils import PromptEnhancer

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    # One pooled client for every outbound call to the generation API
    app.state.http_client = httpx.AsyncClient(timeout=settings.REQUEST_TIMEOUT)
    if not settings.BFL_API_KEY:
        logger.warning("BFL_API_KEY not found in environment, /api/generate is disabled")
    if not settings.OLLAMA_API_KEY:
        logger.warning("OLLAMA_API_KEY not found in environment, /api/enhance-prompt is disabled")

    yield

    await app.state.http_client.aclose()


app = FastAPI(title="Flux Image Relay", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def get_settings() -> Settings:
    return settings


def get_http_client(request: Request) -> httpx.AsyncClient:
    # Created and closed by the lifespan, never here
    return request.app.state.http_client


def get_poller(
    client: httpx.AsyncClient = Depends(get_http_client),
    cfg: Settings = Depends(get_settings),
) -> JobPoller:
    return make_poller(client, cfg)


def get_enhancer(cfg: Settings = Depends(get_settings)) -> PromptEnhancer:
    return PromptEnhancer(
        host=cfg.OLLAMA_HOST,
        models=cfg.ENHANCE_MODELS,
        api_key=cfg.OLLAMA_API_KEY,
        request_timeout=cfg.ENHANCE_TIMEOUT,
    )


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


@app.exception_handler(RelayError)
async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    headers = None
    if isinstance(exc, RateLimited):
        headers = {"Retry-After": str(exc.retry_after_seconds)}
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


@app.exception_handler(RequestValidationError)
async def body_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    else:
        message = "Invalid request body"
    return JSONResponse(status_code=400, content={"error": message, "code": "ValidationError"})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s", request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": str(exc) or "Internal server error", "code": "InternalError"},
    )


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    429: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
    504: {"model": ErrorResponse},
}


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.post("/api/generate", response_model=GenerateResponse, responses=ERROR_RESPONSES)
async def generate(
    req: GenerateRequest,
    request: Request,
    client: httpx.AsyncClient = Depends(get_http_client),
    cfg: Settings = Depends(get_settings),
    poller: JobPoller = Depends(get_poller),
):
    result = await generate_image(
        req,
        client,
        cfg,
        poller=poller,
        is_cancelled=request.is_disconnected,
    )

    return GenerateResponse(
        image_url=result.image_url,
        job_id=result.job_id,
        request_id=result.job_id,
        expires_in=result.expires_in,
        cost=result.cost,
        input_mp=result.input_mp,
        output_mp=result.output_mp,
    )


@app.post("/api/enhance-prompt", response_model=EnhancePromptResponse, responses=ERROR_RESPONSES)
async def enhance_prompt(
    req: EnhancePromptRequest,
    enhancer: PromptEnhancer = Depends(get_enhancer),
):
    enhanced, model = await enhancer.enhance(req.prompt)
    return EnhancePromptResponse(enhanced_prompt=enhanced, model=model)


def main() -> None:
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    uvicorn.run("backend.app:app", host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    main()
