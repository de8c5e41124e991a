# backend/model.py
from enum import Enum
from typing import Any, Optional, Literal

from pydantic import BaseModel

Mode = Literal["generate", "edit"]

OutputFormat = Literal["jpeg", "png"]


class JobStatus(str, Enum):
    """Status vocabulary of the BFL polling endpoint (case sensitive)."""

    PENDING = "Pending"
    PROCESSING = "Processing"
    READY = "Ready"
    ERROR = "Error"
    FAILED = "Failed"


TERMINAL_FAILURE = (JobStatus.ERROR.value, JobStatus.FAILED.value)


class GenerateRequest(BaseModel):
    # Types are kept loose here; semantic checks live in backend.validation
    prompt: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    # any JSON value; a wrong type is InvalidFormat / InvalidSafetyTolerance
    output_format: Optional[Any] = None
    seed: Optional[int] = None
    safety_tolerance: Optional[Any] = None
    input_image: Optional[str] = None  # base64 / data URL / http(s) URL


class NormalizedRequest(BaseModel):
    prompt: str
    mode: Mode
    output_format: OutputFormat = "jpeg"
    width: Optional[int] = None  # None -> upstream uses the input image size
    height: Optional[int] = None
    seed: Optional[int] = None
    safety_tolerance: Optional[int] = None
    input_image: Optional[str] = None


class Job(BaseModel):
    id: str
    polling_url: str
    created_at: int  # ms
    cost: Optional[float] = None
    input_mp: Optional[float] = None
    output_mp: Optional[float] = None


class GenerationResult(BaseModel):
    image_url: str
    job_id: str
    expires_in: int = 600
    cost: Optional[float] = None
    input_mp: Optional[float] = None
    output_mp: Optional[float] = None


class GenerateResponse(BaseModel):
    success: bool = True
    image_url: str
    job_id: str
    request_id: str  # same as job_id, kept for older front-end builds
    expires_in: int
    cost: Optional[float] = None
    input_mp: Optional[float] = None
    output_mp: Optional[float] = None


class EnhancePromptRequest(BaseModel):
    prompt: Optional[str] = None


class EnhancePromptResponse(BaseModel):
    success: bool = True
    enhanced_prompt: str
    model: str


class ErrorResponse(BaseModel):
    error: str
    code: str
