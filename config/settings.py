import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv

# Load environment variables from .env
BASE_DIR = Path(__file__).resolve().parent
load_dotenv(BASE_DIR / ".env")


def _split_list(raw: str) -> List[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


class Settings:
    BFL_API_BASE: str = os.getenv("BFL_API_BASE", "https://api.bfl.ai/v1")
    BFL_API_KEY: str | None = os.getenv("BFL_API_KEY")

    # Text-to-image and image editing use different Flux endpoints
    BFL_MODEL: str = os.getenv("BFL_MODEL", "flux-pro-1.1")
    BFL_EDIT_MODEL: str = os.getenv("BFL_EDIT_MODEL", "flux-kontext-pro")

    REQUEST_TIMEOUT: float = float(os.getenv("REQUEST_TIMEOUT", "30"))

    POLL_INTERVAL: float = float(os.getenv("POLL_INTERVAL", "0.5"))  # seconds
    POLL_MAX_ATTEMPTS: int = int(os.getenv("POLL_MAX_ATTEMPTS", "120"))

    # Signed result URLs from BFL expire after 10 minutes
    IMAGE_URL_TTL: int = int(os.getenv("IMAGE_URL_TTL", "600"))

    OLLAMA_HOST: str = os.getenv("OLLAMA_HOST", "https://ollama.com")
    OLLAMA_API_KEY: str | None = os.getenv("OLLAMA_API_KEY")
    ENHANCE_MODELS: List[str] = _split_list(
        os.getenv("ENHANCE_MODELS", "gpt-oss:120b,gpt-oss:20b,llama3.1:8b")
    )
    ENHANCE_TIMEOUT: float = float(os.getenv("ENHANCE_TIMEOUT", "30"))

    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "3000"))


settings = Settings()
